"""
Spotify integration module for watermelon.

This module provides authentication, track matching and playlist
creation against the Spotify Web API.

Components:
    - SpotifyAuth: OAuth 2 + PKCE login, token refresh and invalidation
    - SpotifyApi: spotipy wrapper for search and playlist writes
    - TrackMatcher: Ranked search queries per candidate song
    - PlaylistSynchronizer: Full sync of candidate songs into a playlist
    - MatchedSong / SyncResult / SyncError / SyncState: Outcome models

Usage:
    from watermelon.spotify import (
        SpotifyAuth,
        SpotifyApi,
        TrackMatcher,
        PlaylistSynchronizer
    )

    api = SpotifyApi(config.spotify.requests_timeout)
    synchronizer = PlaylistSynchronizer(auth, TrackMatcher(api), api, config)
    result = synchronizer.sync(songs, video_title)
"""

from watermelon.spotify.auth import (
    CallbackHandler,
    ConsentDriver,
    LocalCallbackConsent,
    PastedRedirectConsent,
    PkceSession,
    SpotifyAuth,
    build_authorization_url,
    compute_code_challenge,
    default_consent,
    parse_authorization_response,
)
from watermelon.spotify.client import SpotifyApi
from watermelon.spotify.matcher import TrackMatcher, build_queries, clean_title
from watermelon.spotify.models import (
    Confidence,
    MatchedSong,
    RemotePlaylist,
    SyncError,
    SyncResult,
    SyncState,
)
from watermelon.spotify.synchronizer import PlaylistSynchronizer

__all__ = [
    # Models
    "Confidence",
    "MatchedSong",
    "RemotePlaylist",
    "SyncError",
    "SyncResult",
    "SyncState",
    # Auth
    "SpotifyAuth",
    "PkceSession",
    "ConsentDriver",
    "CallbackHandler",
    "LocalCallbackConsent",
    "PastedRedirectConsent",
    "default_consent",
    "build_authorization_url",
    "compute_code_challenge",
    "parse_authorization_response",
    # API
    "SpotifyApi",
    # Matching
    "TrackMatcher",
    "build_queries",
    "clean_title",
    # Sync
    "PlaylistSynchronizer",
]
