"""Test configuration and fixtures"""

import tempfile
from html import escape
from pathlib import Path

import pytest

from watermelon.core.config import config_from_dict
from watermelon.core.credentials import CredentialStore, MemoryStore
from watermelon.core.exceptions import SpotifyApiError
from watermelon.spotify.models import RemotePlaylist


ENV_VARS = ("WATERMELON_CLIENT_ID", "WATERMELON_REDIRECT_URI", "WATERMELON_TOKEN_FILE")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of config parsing"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def config(temp_dir):
    """Minimal valid configuration"""
    return config_from_dict({
        "spotify": {"client_id": "test-client-id"},
        "storage": {"token_file": str(temp_dir / "token.json")},
    })


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def credential_store(memory_store):
    return CredentialStore(memory_store)


class FakeClock:
    """Callable clock returning epoch seconds, moved by hand"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    @property
    def now_ms(self) -> int:
        return int(self.now * 1000)

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class FakeSpotifyApi:
    """
    In-memory stand-in for SpotifyApi.

    search_results maps query -> URI; a query mapping to an exception
    instance raises it. create_errors / add_errors are consumed one per
    call before any call succeeds.
    """

    def __init__(self, search_results=None, create_errors=None, add_errors=None):
        self.search_results = dict(search_results or {})
        self.create_errors = list(create_errors or [])
        self.add_errors = list(add_errors or [])
        self.searches = []
        self.created = []
        self.added = []

    def search(self, token, query):
        self.searches.append((token, query))
        result = self.search_results.get(query)
        if isinstance(result, Exception):
            raise result
        return result

    def create_playlist(self, token, name, description):
        self.created.append((token, name, description))
        if self.create_errors:
            raise self.create_errors.pop(0)
        return RemotePlaylist(
            playlist_id="pl123",
            url="https://open.spotify.com/playlist/pl123"
        )

    def add_tracks(self, token, playlist_id, uris):
        self.added.append((token, playlist_id, list(uris)))
        if self.add_errors:
            raise self.add_errors.pop(0)


@pytest.fixture
def fake_api():
    return FakeSpotifyApi()


def api_error(status):
    """SpotifyApiError with the given HTTP status"""
    return SpotifyApiError(f"HTTP {status}", details={"http_status": status}, http_status=status)


def watch_page(
    title="Kpop Mix 2024",
    description=None,
    pinned_comment=None,
    chapters=None,
    playlist_titles=None,
    document_title="Kpop Mix 2024 - YouTube"
):
    """
    Build a minimal YouTube watch page.

    description / pinned_comment are lists of lines, joined with <br>.
    chapters is a list of (title, time) tuples. playlist_titles adds a
    playlist panel with one entry per title.
    """
    parts = [f"<html><head><title>{escape(document_title)}</title></head><body>"]

    if title is not None:
        parts.append(
            '<ytd-watch-metadata><h1 class="ytd-watch-metadata">'
            f"<yt-formatted-string>{escape(title)}</yt-formatted-string></h1></ytd-watch-metadata>"
        )

    if description is not None:
        parts.append(
            '<div id="description-inner"><ytd-text-inline-expander>'
            f'<span id="attributed-snippet-text">{"<br>".join(escape(line) for line in description)}</span>'
            "</ytd-text-inline-expander></div>"
        )

    if pinned_comment is not None:
        parts.append(
            "<ytd-comment-thread-renderer>"
            '<ytd-pinned-comment-badge-renderer id="pinned-comment-badge"></ytd-pinned-comment-badge-renderer>'
            f'<span id="content-text">{"<br>".join(escape(line) for line in pinned_comment)}</span>'
            "</ytd-comment-thread-renderer>"
        )
        parts.append(
            "<ytd-comment-thread-renderer>"
            '<span id="content-text">99:99 Not pinned - Ignore me</span>'
            "</ytd-comment-thread-renderer>"
        )

    for chapter_title, chapter_time in chapters or []:
        parts.append(
            "<ytd-macro-markers-list-item-renderer><div id=\"details\">"
            f"<h4>{escape(chapter_title)}</h4><div id=\"time\">{escape(chapter_time)}</div>"
            "</div></ytd-macro-markers-list-item-renderer>"
        )

    if playlist_titles is not None:
        parts.append("<ytd-playlist-panel-renderer>")
        for video_title in playlist_titles:
            parts.append(
                "<ytd-playlist-panel-video-renderer>"
                f'<span id="video-title">{escape(video_title)}</span>'
                "</ytd-playlist-panel-video-renderer>"
            )
        parts.append("</ytd-playlist-panel-renderer>")

    parts.append("</body></html>")
    return "".join(parts)
