"""
Data models for song extraction.

Design Decisions:
    - All dataclasses are frozen (immutable); a candidate song is never
      modified after the extractor creates it
    - Source priority is the declaration order of SongSource
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SongSource(str, Enum):
    """Where on the page a song was found, highest priority first."""
    DESCRIPTION = "description"
    PINNED_COMMENT = "pinned_comment"
    CHAPTER = "chapter"
    PLAYLIST = "playlist"


@dataclass(frozen=True)
class CandidateSong:
    """
    A song reference extracted from the page, before any Spotify lookup.

    Attributes:
        title: Song title with ordinal and featuring clause removed.
               Example: "Blueming"
        artist: Artist name, or "" when the text had no separator.
                Example: "IU"
        offset_seconds: Position in the video, 0 when unknown.
                        Example: 45
        offset_label: Timestamp as written on the page, "" when unknown.
                      Example: "00:45" or "1:02:03"
        source: Which page source produced the song.
    """
    title: str
    artist: str = ""
    offset_seconds: int = 0
    offset_label: str = ""
    source: SongSource = SongSource.DESCRIPTION

    @property
    def dedup_key(self) -> tuple[str, str]:
        """Identity used for deduplication: lowercase (title, artist)."""
        return (self.title.lower(), self.artist.lower())

    @property
    def display_name(self) -> str:
        return f"{self.artist} - {self.title}" if self.artist else self.title

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "offset_seconds": self.offset_seconds,
            "offset_label": self.offset_label,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """
    Everything the extractor found on one page.

    Attributes:
        songs: Deduplicated candidates in priority order.
        video_title: Display title of the scanned page.
        source_url: URL of the scanned page.
    """
    songs: tuple[CandidateSong, ...]
    video_title: str
    source_url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "songs": [song.to_dict() for song in self.songs],
            "video_title": self.video_title,
            "source_url": self.source_url,
        }
