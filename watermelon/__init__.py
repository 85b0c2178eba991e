"""
watermelon: Turn the songs mentioned on a YouTube page into a Spotify playlist.

Architecture:
    The work is split into two pipelines:

    Extraction (extraction/): page HTML -> candidate songs
        - Read the description, pinned comment, chapter list and
          playlist listing, in that priority order
        - Parse "00:45 Artist - Title" tracklist lines
        - Deduplicate by (title, artist), first occurrence wins

    Sync (spotify/): candidate songs -> private Spotify playlist
        - OAuth 2 + PKCE login with persisted, refreshable credential
        - Ranked search queries per song, first hit wins
        - Playlist creation (one retry after re-authentication)
        - Tracks added in batches of 100

Modules:
    core/        - Configuration, credential storage, logging, exceptions
    extraction/  - Parser, page access and multi-source extractor
    spotify/     - Authentication, API wrapper, matcher, synchronizer

Usage:
    from pathlib import Path
    from watermelon import (
        CredentialStore, HtmlPage, JsonFileStore, PlaylistSynchronizer,
        SongExtractor, SpotifyApi, SpotifyAuth, TrackMatcher,
        load_config, setup_logging
    )

    config = load_config()
    setup_logging(config.logging.directory)

    page = HtmlPage.from_file(Path("watch.html"), "https://www.youtube.com/watch?v=...")
    extraction = SongExtractor().extract(page)

    auth = SpotifyAuth(config, CredentialStore(JsonFileStore(config.storage.token_file)))
    if auth.get_valid_token() is None:
        auth.authenticate()

    api = SpotifyApi(config.spotify.requests_timeout)
    synchronizer = PlaylistSynchronizer(auth, TrackMatcher(api), api, config)
    result = synchronizer.sync(extraction.songs, extraction.video_title)
    print(result.playlist_url)

Dependencies:
    - spotipy: Spotify Web API client
    - requests: Token endpoint calls
    - beautifulsoup4: Page HTML lookups
    - pyyaml: Configuration file parsing
    - python-dotenv: .env loading
    - tqdm: Progress bars and progress-safe console logging
"""

__version__ = "0.1.0"
__author__ = "watermelon"
__license__ = "MIT"

# Convenience imports for common usage
from watermelon.core import (
    AuthError,
    Config,
    ConfigError,
    CredentialStore,
    JsonFileStore,
    MemoryStore,
    SpotifyApiError,
    StorageError,
    WaterMelonError,
    get_logger,
    load_config,
    setup_logging,
)
from watermelon.extraction import CandidateSong, ExtractionResult, HtmlPage, SongExtractor
from watermelon.spotify import (
    MatchedSong,
    PlaylistSynchronizer,
    SpotifyApi,
    SpotifyAuth,
    SyncError,
    SyncResult,
    TrackMatcher,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "setup_logging",
    "get_logger",
    "CredentialStore",
    "JsonFileStore",
    "MemoryStore",
    # Exceptions
    "WaterMelonError",
    "ConfigError",
    "StorageError",
    "AuthError",
    "SpotifyApiError",
    # Extraction
    "CandidateSong",
    "ExtractionResult",
    "HtmlPage",
    "SongExtractor",
    # Sync
    "SpotifyAuth",
    "SpotifyApi",
    "TrackMatcher",
    "PlaylistSynchronizer",
    "MatchedSong",
    "SyncResult",
    "SyncError",
]
