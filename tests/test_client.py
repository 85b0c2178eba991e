"""Test the spotipy wrapper"""

from unittest.mock import Mock, patch

import pytest
import requests
import spotipy

from watermelon.core.exceptions import SpotifyApiError
from watermelon.spotify.client import SpotifyApi
from watermelon.spotify.models import RemotePlaylist


def spotify_exception(status, msg="error"):
    return spotipy.SpotifyException(status, -1, msg)


@pytest.fixture
def spotify():
    """Mock spotipy.Spotify instance"""
    client = Mock()
    client.current_user.return_value = {"id": "user1"}
    client.search.return_value = {"tracks": {"items": []}}
    client.user_playlist_create.return_value = {
        "id": "pl1",
        "external_urls": {"spotify": "https://open.spotify.com/playlist/pl1"},
    }
    return client


@pytest.fixture
def factory(spotify):
    return Mock(return_value=spotify)


@pytest.fixture
def api(factory):
    return SpotifyApi(requests_timeout=7, client_factory=factory)


class TestClientConstruction:
    """Test how spotipy clients are built"""

    def test_default_factory_disables_retries(self):
        with patch("watermelon.spotify.client.spotipy.Spotify") as spotify_class:
            SpotifyApi(requests_timeout=7).search("tok", "q")

        spotify_class.assert_called_once_with(
            auth="tok", requests_timeout=7, retries=0, status_retries=0
        )

    def test_client_reused_per_token(self, api, factory):
        api.search("tok", "a")
        api.search("tok", "b")
        api.search("other", "c")

        assert factory.call_count == 2
        factory.assert_called_with("other", 7)


class TestSearch:
    """Test track search"""

    def test_first_result_uri(self, api, spotify):
        spotify.search.return_value = {"tracks": {"items": [{"uri": "spotify:track:1"}]}}

        assert api.search("tok", "track:Blueming artist:IU") == "spotify:track:1"
        spotify.search.assert_called_once_with(q="track:Blueming artist:IU", type="track", limit=1)

    @pytest.mark.parametrize("response", [
        {"tracks": {"items": []}},
        {"tracks": None},
        {},
        None,
    ])
    def test_no_results(self, api, spotify, response):
        spotify.search.return_value = response

        assert api.search("tok", "nothing") is None

    def test_api_error(self, api, spotify):
        spotify.search.side_effect = spotify_exception(401, "The access token expired")

        with pytest.raises(SpotifyApiError) as exc_info:
            api.search("tok", "q")

        assert exc_info.value.http_status == 401
        assert exc_info.value.is_auth_error

    def test_rate_limit(self, api, spotify):
        spotify.search.side_effect = spotify_exception(429)

        with pytest.raises(SpotifyApiError) as exc_info:
            api.search("tok", "q")

        assert exc_info.value.is_rate_limit

    def test_transport_error(self, api, spotify):
        spotify.search.side_effect = requests.ConnectionError("offline")

        with pytest.raises(SpotifyApiError) as exc_info:
            api.search("tok", "q")

        assert exc_info.value.http_status is None


class TestCreatePlaylist:
    """Test playlist creation"""

    def test_private_playlist_for_current_user(self, api, spotify):
        playlist = api.create_playlist("tok", "🍉 Mix", "Created by WaterMelon")

        assert playlist == RemotePlaylist("pl1", "https://open.spotify.com/playlist/pl1")
        spotify.user_playlist_create.assert_called_once_with(
            "user1", "🍉 Mix", public=False, description="Created by WaterMelon"
        )

    def test_url_fallback(self, api, spotify):
        spotify.user_playlist_create.return_value = {"id": "pl9"}

        assert api.create_playlist("tok", "n", "d").url == "https://open.spotify.com/playlist/pl9"

    def test_auth_rejection(self, api, spotify):
        spotify.current_user.side_effect = spotify_exception(403, "Forbidden")

        with pytest.raises(SpotifyApiError) as exc_info:
            api.create_playlist("tok", "n", "d")

        assert exc_info.value.is_auth_error

    def test_empty_response(self, api, spotify):
        spotify.user_playlist_create.return_value = None

        with pytest.raises(SpotifyApiError):
            api.create_playlist("tok", "n", "d")


class TestAddTracks:
    """Test batched track addition"""

    def test_batches_of_100(self, api, spotify):
        uris = [f"spotify:track:{i}" for i in range(250)]

        api.add_tracks("tok", "pl1", uris)

        batches = [c.args[1] for c in spotify.playlist_add_items.call_args_list]
        assert [len(b) for b in batches] == [100, 100, 50]
        assert sum(batches, []) == uris

    def test_nothing_to_add(self, api, spotify):
        api.add_tracks("tok", "pl1", [])

        spotify.playlist_add_items.assert_not_called()

    def test_failure_stops_at_batch(self, api, spotify):
        spotify.playlist_add_items.side_effect = [None, spotify_exception(500, "Server error")]
        uris = [f"spotify:track:{i}" for i in range(150)]

        with pytest.raises(SpotifyApiError) as exc_info:
            api.add_tracks("tok", "pl1", uris)

        assert exc_info.value.details["batch_start"] == 100
        assert exc_info.value.http_status == 500
