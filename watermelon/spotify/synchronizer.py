"""
Playlist synchronization for watermelon.

This module turns a list of candidate songs into a private Spotify
playlist and reports what happened to each song.

Sync Workflow:
    1. Get a token from SpotifyAuth (stored or refreshed, never interactive)
    2. Match every candidate, in order, without aborting on failures
    3. Stop with success if nothing matched (no empty playlist is created)
    4. Create the playlist; on 401/403 re-authenticate once and retry once
    5. Add the matched tracks in batches of 100
    6. Return a SyncResult

Failure Behavior:
    Failures are reported as SyncError values inside the SyncResult, with
    the per-song matching data attached whenever matching already ran.
    If adding tracks fails, the created (empty or partial) playlist is left
    in place and its URL is still reported.

Usage:
    from watermelon.spotify import PlaylistSynchronizer, SyncError

    result = synchronizer.sync(extraction.songs, extraction.video_title)
    if result.error == SyncError.NOT_AUTHENTICATED:
        auth.authenticate()
"""

from typing import Iterable

from tqdm import tqdm

from watermelon.core.config import Config
from watermelon.core.exceptions import SpotifyApiError, StorageError
from watermelon.core.logger import get_logger
from watermelon.extraction.models import CandidateSong
from watermelon.spotify.auth import SpotifyAuth
from watermelon.spotify.client import SpotifyApi
from watermelon.spotify.matcher import TrackMatcher
from watermelon.spotify.models import MatchedSong, RemotePlaylist, SyncError, SyncResult, SyncState


logger = get_logger(__name__)


# Spotify rejects longer playlist names
MAX_PLAYLIST_NAME_LENGTH = 100

UNTITLED_VIDEO = "WaterMelon playlist"


class PlaylistSynchronizer:
    """
    Runs the sync workflow for one list of songs at a time.

    Attributes:
        auth: Token provider; also invalidated after an auth rejection.
        matcher: Finds the Spotify track for each song.
        api: Playlist writes.
        config: Playlist naming and description.
        state: Current SyncState, updated as sync() progresses.

    Example:
        api = SpotifyApi(config.spotify.requests_timeout)
        synchronizer = PlaylistSynchronizer(auth, TrackMatcher(api), api, config)
        result = synchronizer.sync(songs, "Kpop Mix 2024")
        print(result.to_dict())
    """

    def __init__(
        self,
        auth: SpotifyAuth,
        matcher: TrackMatcher,
        api: SpotifyApi,
        config: Config
    ) -> None:
        self.auth = auth
        self.matcher = matcher
        self.api = api
        self.config = config
        self.state = SyncState.IDLE

    def playlist_name(self, video_title: str) -> str:
        """Configured prefix + video title, cut to Spotify's length limit."""
        title = video_title.strip() or UNTITLED_VIDEO
        return f"{self.config.playlist.name_prefix}{title}"[:MAX_PLAYLIST_NAME_LENGTH]

    def sync(
        self,
        songs: Iterable[CandidateSong],
        video_title: str,
        show_progress: bool = False
    ) -> SyncResult:
        """
        Match songs and write them to a new playlist.

        Args:
            songs: Candidate songs in the order they should appear.
            video_title: Used for the playlist name.
            show_progress: Show a tqdm progress bar while matching.

        Returns:
            SyncResult. error is None on success (including the case where
            no song matched and no playlist was created).
        """
        songs = list(songs)
        if not songs:
            logger.info("No songs to sync")
            self.state = SyncState.DONE
            return SyncResult()

        self.state = SyncState.AUTHENTICATING
        token = self.auth.get_valid_token()
        if token is None:
            logger.error("Not logged in to Spotify")
            return self._fail(SyncResult(error=SyncError.NOT_AUTHENTICATED))

        self.state = SyncState.MATCHING
        matched = self._match_all(token, songs, show_progress)
        uris = [m.remote_track_id for m in matched if m.is_matched and m.remote_track_id]
        logger.info(f"Matched {len(uris)}/{len(songs)} songs")

        if not uris:
            self.state = SyncState.DONE
            return SyncResult(matched=matched, matched_count=0)

        def outcome(playlist_url: str | None = None, error: SyncError | None = None) -> SyncResult:
            return SyncResult(
                matched=matched,
                matched_count=len(uris),
                playlist_url=playlist_url,
                error=error
            )

        self.state = SyncState.CREATING_PLAYLIST
        name = self.playlist_name(video_title)
        try:
            token, playlist = self._create_playlist(token, name)
        except _NotAuthenticated:
            return self._fail(outcome(error=SyncError.NOT_AUTHENTICATED))
        except (SpotifyApiError, StorageError) as e:
            logger.error(f"Could not create playlist '{name}': {e.message}")
            return self._fail(outcome(error=SyncError.FAILED_TO_CREATE_PLAYLIST))

        self.state = SyncState.ADDING_TRACKS
        try:
            self.api.add_tracks(token, playlist.playlist_id, uris)
        except SpotifyApiError as e:
            logger.error(f"Could not add tracks to playlist '{name}': {e.message}")
            return self._fail(outcome(playlist.url, SyncError.FAILED_TO_ADD_TRACKS))

        self.state = SyncState.DONE
        logger.info(f"Created playlist '{name}' with {len(uris)} tracks: {playlist.url}")
        return outcome(playlist.url)

    def _match_all(
        self,
        token: str,
        songs: list[CandidateSong],
        show_progress: bool
    ) -> tuple[MatchedSong, ...]:
        iterator = tqdm(songs, desc="Matching", unit="song", disable=not show_progress)
        return tuple(self.matcher.match(token, song) for song in iterator)

    def _create_playlist(self, token: str, name: str) -> tuple[str, RemotePlaylist]:
        """
        Create the playlist, re-authenticating once on an auth rejection.

        Returns:
            (token, playlist). The token is the one that succeeded and must
            be used for the following calls.

        Raises:
            _NotAuthenticated: No token could be obtained for the retry.
            SpotifyApiError: Creation failed (including the retry). A second
                             auth rejection also clears the credential.
            StorageError: The credential store could not be updated.
        """
        description = self.config.playlist.description

        try:
            return token, self.api.create_playlist(token, name, description)
        except SpotifyApiError as e:
            if not e.is_auth_error:
                raise
            logger.warning(f"Spotify rejected the access token ({e.http_status}), re-authenticating")

        self.auth.invalidate_access_token()
        token = self.auth.get_valid_token()
        if token is None:
            logger.error("Re-authentication failed, log in again")
            raise _NotAuthenticated()

        try:
            return token, self.api.create_playlist(token, name, description)
        except SpotifyApiError as e:
            if e.is_auth_error:
                logger.error("Spotify rejected the refreshed token, logging out")
                self.auth.logout()
            raise

    def _fail(self, result: SyncResult) -> SyncResult:
        self.state = SyncState.FAILED
        return result


class _NotAuthenticated(Exception):
    """No token available for the playlist-creation retry."""
