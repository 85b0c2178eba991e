"""
Song extraction module for watermelon.

This module turns a video page into a list of candidate songs.

Components:
    - parser: Timestamp and "Artist - Title" parsing of single lines
    - PageDocument / HtmlPage: CSS-selector access to page HTML
    - SongExtractor: Runs all page sources in priority order and deduplicates
    - CandidateSong / ExtractionResult: Data models

Usage:
    from watermelon.extraction import HtmlPage, SongExtractor

    page = HtmlPage(html, url="https://www.youtube.com/watch?v=abc")
    result = SongExtractor().extract(page)
    print(f"Found {len(result.songs)} songs in {result.video_title}")
"""

from watermelon.extraction.extractor import SongExtractor, dedup_songs
from watermelon.extraction.models import CandidateSong, ExtractionResult, SongSource
from watermelon.extraction.page import HtmlPage, PageDocument
from watermelon.extraction.parser import (
    ParsedLine,
    parse_line,
    parse_offset,
    split_artist_title,
)

__all__ = [
    # Models
    "CandidateSong",
    "ExtractionResult",
    "SongSource",
    # Parser
    "ParsedLine",
    "parse_line",
    "parse_offset",
    "split_artist_title",
    # Page access
    "PageDocument",
    "HtmlPage",
    # Extractor
    "SongExtractor",
    "dedup_songs",
]
