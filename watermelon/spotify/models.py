"""
Data models for the Spotify side of a sync.

This module defines the outcome types handed back to the caller:
per-song match results, the created playlist and the overall result
of a sync.

Design Decisions:
    - All dataclasses are frozen (immutable)
    - Sync failures are values (SyncError), not exceptions, so a caller
      always gets the per-song matching data back
    - to_dict() output uses plain strings and lists so it can be
      serialized to JSON as is

Usage:
    from watermelon.spotify.models import SyncResult

    result = synchronizer.sync(songs, video_title)
    if result.ok:
        print(f"{result.matched_count} songs -> {result.playlist_url}")
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from watermelon.extraction.models import CandidateSong


class Confidence(str, Enum):
    """How sure the matcher is about a song."""
    MATCHED = "matched"
    UNCERTAIN = "uncertain"


class SyncState(str, Enum):
    """Phases a PlaylistSynchronizer moves through during sync()."""
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    MATCHING = "matching"
    CREATING_PLAYLIST = "creating_playlist"
    ADDING_TRACKS = "adding_tracks"
    DONE = "done"
    FAILED = "failed"


class SyncError(str, Enum):
    """
    Why a sync did not finish.

    Values:
        NOT_AUTHENTICATED: No usable token, even after a refresh attempt.
                           The caller should run SpotifyAuth.authenticate().
        FAILED_TO_CREATE_PLAYLIST: Playlist creation failed, including the
                                   single retry after re-authentication.
        FAILED_TO_ADD_TRACKS: The playlist exists (and is reported) but
                              adding the matched tracks failed.
    """
    NOT_AUTHENTICATED = "not_authenticated"
    FAILED_TO_CREATE_PLAYLIST = "failed_to_create_playlist"
    FAILED_TO_ADD_TRACKS = "failed_to_add_tracks"


@dataclass(frozen=True)
class MatchedSong:
    """
    A candidate song after the Spotify lookup.

    Attributes:
        song: The candidate as extracted from the page.
        confidence: MATCHED when a search query returned a track,
                    UNCERTAIN when every query came back empty.
        remote_track_id: Spotify track URI when matched, else None.
                         Example: "spotify:track:4cOdK2wGLETKBW3PvgPWqT"
    """
    song: CandidateSong
    confidence: Confidence
    remote_track_id: str | None = None

    @classmethod
    def matched(cls, song: CandidateSong, track_uri: str) -> "MatchedSong":
        return cls(song=song, confidence=Confidence.MATCHED, remote_track_id=track_uri)

    @classmethod
    def uncertain(cls, song: CandidateSong) -> "MatchedSong":
        return cls(song=song, confidence=Confidence.UNCERTAIN, remote_track_id=None)

    @property
    def is_matched(self) -> bool:
        return self.confidence == Confidence.MATCHED and self.remote_track_id is not None

    def to_dict(self) -> dict[str, Any]:
        data = self.song.to_dict()
        data["confidence"] = self.confidence.value
        data["remote_track_id"] = self.remote_track_id
        return data


@dataclass(frozen=True)
class RemotePlaylist:
    """
    A playlist created on Spotify.

    Attributes:
        playlist_id: Spotify playlist ID.
        url: Public web link, e.g. "https://open.spotify.com/playlist/<id>".
    """
    playlist_id: str
    url: str


@dataclass(frozen=True)
class SyncResult:
    """
    Outcome of one PlaylistSynchronizer.sync() call.

    Attributes:
        matched: One MatchedSong per candidate, in input order. Empty when
                 the sync stopped before matching.
        matched_count: Number of songs with a Spotify track.
        playlist_url: Link to the created playlist, None when no playlist
                      was created.
        error: None on success, else the reason the sync stopped.
    """
    matched: tuple[MatchedSong, ...] = ()
    matched_count: int = 0
    playlist_url: str | None = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def unmatched(self) -> tuple[MatchedSong, ...]:
        """Songs no search query could find."""
        return tuple(m for m in self.matched if not m.is_matched)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched": [m.to_dict() for m in self.matched],
            "matched_count": self.matched_count,
            "playlist_url": self.playlist_url,
            "error": self.error.value if self.error is not None else None,
        }
