"""
Spotify Web API wrapper for watermelon.

This module wraps the spotipy library for the three calls a sync
makes: track search, playlist creation and adding tracks.

Authentication:
    Every call takes the bearer token explicitly. The token is owned by
    SpotifyAuth, which refreshes and replaces it; this module never
    stores or refreshes tokens itself. A spotipy.Spotify instance is
    built per token with auth=<token>.

Retries:
    spotipy's built-in retry adapters are disabled (retries=0,
    status_retries=0). The only retry in a sync is the single
    playlist-creation retry after re-authentication, done by the
    PlaylistSynchronizer.

Errors:
    Every spotipy.SpotifyException and requests transport error is
    converted to SpotifyApiError carrying the HTTP status (None for
    transport failures), so callers can check is_auth_error.

Usage:
    from watermelon.spotify.client import SpotifyApi

    api = SpotifyApi(requests_timeout=10)
    uri = api.search(token, "track:Blueming artist:IU")
    playlist = api.create_playlist(token, "🍉 Mix", "Created by WaterMelon")
    api.add_tracks(token, playlist.playlist_id, [uri])
"""

from typing import Any, Callable

import requests
import spotipy

from watermelon.core.exceptions import SpotifyApiError
from watermelon.core.logger import get_logger
from watermelon.spotify.models import RemotePlaylist


logger = get_logger(__name__)


# Spotify accepts at most 100 URIs per add-items request
ADD_TRACKS_BATCH_SIZE = 100

PLAYLIST_URL_TEMPLATE = "https://open.spotify.com/playlist/{playlist_id}"


def _default_client_factory(token: str, requests_timeout: int) -> spotipy.Spotify:
    return spotipy.Spotify(
        auth=token,
        requests_timeout=requests_timeout,
        retries=0,
        status_retries=0
    )


class SpotifyApi:
    """
    Thin bearer-token wrapper over spotipy.

    Attributes:
        requests_timeout: Seconds before a Web API call times out.

    The most recently used spotipy client is reused while the token
    stays the same.
    """

    def __init__(
        self,
        requests_timeout: int = 10,
        client_factory: Callable[[str, int], Any] | None = None
    ) -> None:
        """
        Args:
            requests_timeout: Seconds before a Web API call times out.
            client_factory: Builds a spotipy-compatible client from
                            (token, requests_timeout). Defaults to
                            spotipy.Spotify with retries disabled.
        """
        self.requests_timeout = requests_timeout
        self._client_factory = client_factory or _default_client_factory
        self._cached_token: str | None = None
        self._cached_client: Any = None

    def _client(self, token: str) -> Any:
        if self._cached_client is None or token != self._cached_token:
            self._cached_client = self._client_factory(token, self.requests_timeout)
            self._cached_token = token
        return self._cached_client

    # =========================================================================
    # Search
    # =========================================================================

    def search(self, token: str, query: str) -> str | None:
        """
        Search for a single track.

        Args:
            token: Bearer access token.
            query: Spotify search query, e.g. "track:Blueming artist:IU".

        Returns:
            URI of the top result ("spotify:track:..."), or None when the
            search returned nothing.

        Raises:
            SpotifyApiError: If the request fails.
        """
        try:
            result = self._client(token).search(q=query, type="track", limit=1)
        except spotipy.SpotifyException as e:
            raise self._api_error(f"Search failed for '{query}'", e, {"query": query}) from e
        except requests.RequestException as e:
            raise self._transport_error(f"Search failed for '{query}'", e, {"query": query}) from e

        items = ((result or {}).get("tracks") or {}).get("items") or []
        if not items:
            return None

        return items[0].get("uri")

    # =========================================================================
    # Playlist Operations
    # =========================================================================

    def create_playlist(self, token: str, name: str, description: str) -> RemotePlaylist:
        """
        Create a private playlist for the current user.

        Args:
            token: Bearer access token.
            name: Playlist name.
            description: Playlist description.

        Returns:
            RemotePlaylist with the new playlist's ID and web link.

        Raises:
            SpotifyApiError: If fetching the user or creating the playlist
                             fails. is_auth_error is True on 401/403.
        """
        client = self._client(token)
        details = {"playlist_name": name}

        try:
            user = client.current_user()
            playlist = client.user_playlist_create(
                user["id"],
                name,
                public=False,
                description=description
            )
        except spotipy.SpotifyException as e:
            raise self._api_error("Failed to create playlist", e, details) from e
        except requests.RequestException as e:
            raise self._transport_error("Failed to create playlist", e, details) from e

        if not playlist or not playlist.get("id"):
            raise SpotifyApiError(
                "Failed to create playlist: empty response",
                details=details
            )

        playlist_id = playlist["id"]
        url = (
            (playlist.get("external_urls") or {}).get("spotify")
            or PLAYLIST_URL_TEMPLATE.format(playlist_id=playlist_id)
        )

        logger.debug(f"Created playlist '{name}' ({playlist_id})")
        return RemotePlaylist(playlist_id=playlist_id, url=url)

    def add_tracks(self, token: str, playlist_id: str, uris: list[str]) -> None:
        """
        Append tracks to a playlist, in order.

        Args:
            token: Bearer access token.
            playlist_id: Target playlist ID.
            uris: Track URIs. Sent in batches of 100 (API limit).

        Raises:
            SpotifyApiError: If any batch fails. Batches before the
                             failing one stay in the playlist.
        """
        client = self._client(token)

        for start in range(0, len(uris), ADD_TRACKS_BATCH_SIZE):
            batch = uris[start:start + ADD_TRACKS_BATCH_SIZE]
            details = {"playlist_id": playlist_id, "batch_start": start, "batch_size": len(batch)}

            try:
                client.playlist_add_items(playlist_id, batch)
            except spotipy.SpotifyException as e:
                raise self._api_error("Failed to add tracks", e, details) from e
            except requests.RequestException as e:
                raise self._transport_error("Failed to add tracks", e, details) from e

            logger.debug(f"Added {len(batch)} tracks to playlist {playlist_id}")

    # =========================================================================
    # Error Conversion
    # =========================================================================

    def _api_error(
        self,
        message: str,
        error: spotipy.SpotifyException,
        details: dict[str, Any]
    ) -> SpotifyApiError:
        status = error.http_status
        if status == 429:
            message = f"{message}: rate limited"
        else:
            message = f"{message}: {error.msg}"

        return SpotifyApiError(
            message,
            details={**details, "http_status": status, "original_error": str(error)},
            http_status=status
        )

    def _transport_error(
        self,
        message: str,
        error: requests.RequestException,
        details: dict[str, Any]
    ) -> SpotifyApiError:
        return SpotifyApiError(
            f"{message}: {error}",
            details={**details, "original_error": str(error)},
            http_status=None
        )
