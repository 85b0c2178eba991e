"""
Timestamp and title parsing for tracklist lines.

Pure functions with no page or network dependency:

    parse_line("1. 00:45 IU - Blueming")
        -> ParsedLine(offset_seconds=45, offset_label="00:45", artist="IU", title="Blueming")

    split_artist_title("Dynamite (feat. Someone)") -> ("", "Dynamite")

    parse_offset("1:02:03") -> 3723
"""

import re
from dataclasses import dataclass


# Timestamp prefix: optional ordinal or bullet, optional bracket, optional
# hours, required MM:SS, then one dash/dot/colon/pipe before the text.
TIMESTAMP_RE = re.compile(
    r"^\s*(?:\d+\.\s*|[-*•·]\s*)?[\[(]?\s*(?:(\d{1,2}):)?(\d{1,2}):(\d{2})(?!\d)"
    r"\s*[\])]?\s*[-–—.:|]?\s*(.+)"
)

# A bare "[H:]MM:SS" label, e.g. the time shown next to a chapter
OFFSET_RE = re.compile(r"^\s*(?:(\d{1,2}):)?(\d{1,2}):(\d{2})\s*$")

ORDINAL_RE = re.compile(r"^\d+\.\s*")

# "(feat. X)" / "[ft. X]" at the end; removed before splitting so a dash
# inside the clause ("feat. Jay-Z") is not taken as the separator
BRACKETED_FEAT_RE = re.compile(
    r"\s*[\(\[]\s*(?:featuring|feat|ft)\b\.?[^\)\]]*[\)\]]\s*$", re.IGNORECASE
)

# "ft. X" / "feat X" without brackets, up to the end of the part
BARE_FEAT_RE = re.compile(r"\s+(?:featuring|feat|ft)\b.*$", re.IGNORECASE)

# First hyphen, en dash or em dash splits "Artist - Title"
ARTIST_TITLE_RE = re.compile(r"^(.+?)\s*[-–—]\s*(.+)$")

# A title needs at least one letter or digit
WORD_RE = re.compile(r"\w")


@dataclass(frozen=True)
class ParsedLine:
    offset_seconds: int
    offset_label: str
    artist: str
    title: str


def _to_seconds(hours: str | None, minutes: str, seconds: str) -> int:
    return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)


def _strip_feat(text: str) -> str:
    text = BRACKETED_FEAT_RE.sub("", text)
    text = BARE_FEAT_RE.sub("", text)
    return text.strip()


def split_artist_title(raw: str) -> tuple[str, str]:
    """
    Split free text into (artist, title).

    Removes a leading ordinal ("1. ") and featuring clauses, then splits
    on the first dash-family separator. Without a separator the whole
    text is the title and the artist is "". The title may come back
    empty; callers drop such entries.
    """
    cleaned = ORDINAL_RE.sub("", raw.strip())
    cleaned = BRACKETED_FEAT_RE.sub("", cleaned).strip()

    match = ARTIST_TITLE_RE.match(cleaned)
    if match:
        return _strip_feat(match.group(1)), _strip_feat(match.group(2))

    return "", _strip_feat(cleaned)


def parse_line(line: str) -> ParsedLine | None:
    """
    Parse one tracklist line.

    Returns:
        ParsedLine, or None when the line does not start with a timestamp
        or no letter or digit is left of the title after cleaning.
    """
    match = TIMESTAMP_RE.match(line)
    if not match:
        return None

    hours, minutes, seconds, rest = match.groups()
    artist, title = split_artist_title(rest)
    if not WORD_RE.search(title):
        return None

    label = f"{hours}:{minutes}:{seconds}" if hours else f"{minutes}:{seconds}"

    return ParsedLine(
        offset_seconds=_to_seconds(hours, minutes, seconds),
        offset_label=label,
        artist=artist,
        title=title
    )


def parse_offset(text: str) -> int | None:
    """Seconds for a bare "[H:]MM:SS" label, None if it isn't one."""
    match = OFFSET_RE.match(text)
    if not match:
        return None
    return _to_seconds(*match.groups())
