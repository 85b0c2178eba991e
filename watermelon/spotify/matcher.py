"""
Spotify track matching for watermelon.

Free-text song references from a video page rarely match Spotify's
catalog verbatim: titles carry romanizations, "(Official Video)" tags
or translations in brackets. The matcher tries a short ranked list of
queries per song and takes the first one that returns a track.

Query Order:
    Artist known:
        1. track:<clean title> artist:<artist>
        2. <clean title> <artist>
    Artist unknown:
        1. <clean title>
        2. first bracketed text of the title, if any
    Always last:
        3. the original title verbatim

    "Clean title" is the title with every (...) / [...] span removed.
    Empty queries and repeats of an earlier query are skipped.

Example:
    build_queries("뱅뱅뱅 (BANG BANG BANG)", "")
    -> ["뱅뱅뱅", "BANG BANG BANG", "뱅뱅뱅 (BANG BANG BANG)"]

Failure Behavior:
    A search that raises SpotifyApiError counts as "no result" for that
    query. A song no query finds is returned as UNCERTAIN and written
    to the unmatched songs report; it is not an error.
"""

import re

from watermelon.core.exceptions import SpotifyApiError
from watermelon.core.logger import format_matched_message, get_logger, log_unmatched_song
from watermelon.extraction.models import CandidateSong
from watermelon.spotify.client import SpotifyApi
from watermelon.spotify.models import MatchedSong


logger = get_logger(__name__)


BRACKET_SPAN_RE = re.compile(r"\s*[\(\[].+?[\)\]]\s*")
BRACKET_TEXT_RE = re.compile(r"[\(\[](.+?)[\)\]]")


def clean_title(title: str) -> str:
    """Title without bracketed spans; the original title if nothing is left."""
    cleaned = " ".join(BRACKET_SPAN_RE.sub(" ", title).split())
    return cleaned or title


def build_queries(title: str, artist: str) -> list[str]:
    """Ranked, duplicate-free search queries for one song."""
    clean = clean_title(title)
    artist = artist.strip()

    if artist:
        candidates = [f"track:{clean} artist:{artist}", f"{clean} {artist}"]
    else:
        candidates = [clean]
        bracket = BRACKET_TEXT_RE.search(title)
        if bracket:
            candidates.append(bracket.group(1))

    candidates.append(title)

    queries: list[str] = []
    for query in candidates:
        query = query.strip()
        if query and query not in queries:
            queries.append(query)
    return queries


class TrackMatcher:
    """
    Finds the Spotify track for a candidate song.

    Attributes:
        api: SpotifyApi used for the searches.

    Example:
        matcher = TrackMatcher(api)
        result = matcher.match(token, song)
        if result.is_matched:
            print(result.remote_track_id)
    """

    def __init__(self, api: SpotifyApi) -> None:
        self.api = api

    def match(self, token: str, song: CandidateSong) -> MatchedSong:
        """
        Run the query list for one song, stopping at the first hit.

        Args:
            token: Bearer access token.
            song: The candidate to look up.

        Returns:
            MatchedSong, MATCHED with the track URI or UNCERTAIN.
        """
        queries = build_queries(song.title, song.artist)

        for query in queries:
            try:
                uri = self.api.search(token, query)
            except SpotifyApiError as e:
                logger.warning(f"Search failed, trying next query: {e.message}")
                continue

            if uri:
                logger.info(format_matched_message(song.artist, song.title, uri))
                logger.debug(f"Matched with query '{query}'")
                return MatchedSong.matched(song, uri)

        log_unmatched_song(
            logger,
            song.title,
            song.artist,
            song.offset_label,
            song.source.value,
            queries_tried=len(queries)
        )
        return MatchedSong.uncertain(song)
