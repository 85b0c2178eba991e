"""
Multi-source song extraction for watermelon.

This module finds every song mentioned on a video page and returns
them as one ordered, deduplicated list of candidate songs.

Sources (priority order, highest first):
    1. Description: tracklist lines like "00:45 IU - Blueming"
    2. Pinned comment: same line format, often posted by the uploader
    3. Chapters: chapter titles with their time label
    4. Playlist: video titles on a playlist page or in the playlist panel

Lookup Strategy:
    Every source has an ordered list of CSS selectors. YouTube changes
    its markup regularly, so the first selector that yields at least one
    non-empty line of text wins and the rest are not tried.

Failure Behavior:
    A source that raises is logged and contributes zero songs; the other
    sources still run. extract() itself does not raise on page content.

Usage:
    from watermelon.extraction import HtmlPage, SongExtractor

    page = HtmlPage.from_file(Path("watch.html"), url)
    result = SongExtractor().extract(page)
    for song in result.songs:
        print(song.offset_label, song.display_name)
"""

from typing import Callable, Iterable
from urllib.parse import urlparse

from watermelon.core.logger import get_logger
from watermelon.extraction.models import CandidateSong, ExtractionResult, SongSource
from watermelon.extraction.page import PageDocument
from watermelon.extraction.parser import parse_line, parse_offset, split_artist_title


logger = get_logger(__name__)


# =============================================================================
# PAGE SELECTORS
# =============================================================================

DESCRIPTION_SELECTORS = (
    "#description-inner ytd-text-inline-expander #attributed-snippet-text",
    "#description-inner ytd-text-inline-expander",
    "#description ytd-text-inline-expander",
    "#description .content",
    "#description",
)

PINNED_COMMENT_SELECTORS = (
    "ytd-comment-thread-renderer:has(ytd-pinned-comment-badge-renderer) #content-text",
    "ytd-comment-thread-renderer:has(#pinned-comment-badge) #content-text",
    "ytd-comment-view-model:has(#pinned-comment-badge) #content-text",
)

CHAPTER_ITEM_SELECTORS = (
    "ytd-macro-markers-list-item-renderer",
    "ytd-chapter-renderer",
)

CHAPTER_FIELD_SELECTORS = {
    "title": "#details h4, #details .macro-markers, .chapter-title",
    "time": "#details #time, #time, .timestamp",
}

PLAYLIST_PANEL_SELECTOR = "ytd-playlist-panel-renderer"

PLAYLIST_TITLE_SELECTORS = (
    "ytd-playlist-panel-video-renderer #video-title",
    "ytd-playlist-video-renderer #video-title",
)

VIDEO_TITLE_SELECTORS = (
    "h1.ytd-watch-metadata yt-formatted-string",
    "h1.ytd-video-primary-info-renderer",
)


def dedup_songs(songs: Iterable[CandidateSong]) -> list[CandidateSong]:
    """
    Remove repeats by lowercase (title, artist), keeping the first one.

    Order is preserved, so with songs concatenated in source priority
    order the highest-priority occurrence survives. Idempotent.
    """
    seen: set[tuple[str, str]] = set()
    unique = []
    for song in songs:
        if song.dedup_key in seen:
            continue
        seen.add(song.dedup_key)
        unique.append(song)
    return unique


def _has_text(text: str | None) -> bool:
    return text is not None and any(line.strip() for line in text.splitlines())


class SongExtractor:
    """
    Runs every page source in priority order and merges the results.

    The extractor is stateless; one instance can scan any number of pages.
    """

    def extract(self, document: PageDocument) -> ExtractionResult:
        """
        Extract candidate songs from a page.

        Args:
            document: The page to scan.

        Returns:
            ExtractionResult with deduplicated songs, the video title
            and the page URL.
        """
        sources: tuple[tuple[SongSource, Callable[[PageDocument], list[CandidateSong]]], ...] = (
            (SongSource.DESCRIPTION, self._from_description),
            (SongSource.PINNED_COMMENT, self._from_pinned_comment),
            (SongSource.CHAPTER, self._from_chapters),
            (SongSource.PLAYLIST, self._from_playlist),
        )

        collected: list[CandidateSong] = []
        for source, read in sources:
            try:
                found = read(document)
            except Exception as e:
                logger.warning(f"Skipping {source.value}: {e}")
                continue

            if not found:
                logger.debug(f"No songs in {source.value}")
                continue

            logger.debug(f"Found {len(found)} songs in {source.value}")
            collected.extend(found)

        songs = dedup_songs(collected)
        if len(songs) < len(collected):
            logger.debug(f"Removed {len(collected) - len(songs)} duplicate songs")

        video_title = self._video_title(document)
        logger.info(f"Extracted {len(songs)} songs from '{video_title}'")

        return ExtractionResult(
            songs=tuple(songs),
            video_title=video_title,
            source_url=document.url
        )

    # =========================================================================
    # SOURCES
    # =========================================================================

    def _first_text(self, document: PageDocument, selectors: Iterable[str]) -> str | None:
        for selector in selectors:
            text = document.select_text(selector)
            if _has_text(text):
                return text
        return None

    def _parse_lines(self, text: str | None, source: SongSource) -> list[CandidateSong]:
        if text is None:
            return []

        songs = []
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue

            parsed = parse_line(line)
            if parsed is None:
                continue

            songs.append(CandidateSong(
                title=parsed.title,
                artist=parsed.artist,
                offset_seconds=parsed.offset_seconds,
                offset_label=parsed.offset_label,
                source=source
            ))
        return songs

    def _from_description(self, document: PageDocument) -> list[CandidateSong]:
        text = self._first_text(document, DESCRIPTION_SELECTORS)
        return self._parse_lines(text, SongSource.DESCRIPTION)

    def _from_pinned_comment(self, document: PageDocument) -> list[CandidateSong]:
        text = self._first_text(document, PINNED_COMMENT_SELECTORS)
        return self._parse_lines(text, SongSource.PINNED_COMMENT)

    def _from_chapters(self, document: PageDocument) -> list[CandidateSong]:
        items: list[dict[str, str]] = []
        for selector in CHAPTER_ITEM_SELECTORS:
            items = [
                item for item in document.select_items(selector, CHAPTER_FIELD_SELECTORS)
                if item.get("title")
            ]
            if items:
                break

        songs = []
        for item in items:
            artist, title = split_artist_title(item["title"])
            if not title:
                continue

            time_label = item.get("time", "")
            songs.append(CandidateSong(
                title=title,
                artist=artist,
                offset_seconds=parse_offset(time_label) or 0,
                offset_label=time_label,
                source=SongSource.CHAPTER
            ))
        return songs

    def _from_playlist(self, document: PageDocument) -> list[CandidateSong]:
        on_playlist_page = "/playlist" in urlparse(document.url).path
        if not on_playlist_page and document.select_text(PLAYLIST_PANEL_SELECTOR) is None:
            return []

        titles: list[str] = []
        for selector in PLAYLIST_TITLE_SELECTORS:
            titles = document.select_texts(selector)
            if titles:
                break

        songs = []
        for raw_title in titles:
            artist, title = split_artist_title(raw_title)
            if title:
                songs.append(CandidateSong(title=title, artist=artist, source=SongSource.PLAYLIST))
        return songs

    def _video_title(self, document: PageDocument) -> str:
        for selector in VIDEO_TITLE_SELECTORS:
            text = document.select_text(selector)
            if text and text.strip():
                return text.strip()
        return document.title
