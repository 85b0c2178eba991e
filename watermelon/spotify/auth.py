"""
OAuth 2 authorization code + PKCE flow for Spotify.

This module obtains, refreshes and invalidates the user's access token.
No client secret is involved: the token exchange is protected by a
one-time PKCE verifier instead.

Authorization Flow:
    1. Clear any stored credential
    2. Generate a PkceSession (random verifier + S256 challenge)
    3. Build the authorization URL and hand it to a consent driver
    4. The driver returns the URL Spotify redirected the browser to
    5. Read 'code' (or 'error') from that URL
    6. Exchange the code + verifier for tokens at the token endpoint
    7. Persist the Credential with a one minute safety margin on expiry

Consent Drivers:
    - LocalCallbackConsent: for localhost / 127.0.0.1 redirect URIs.
      Serves the redirect with an embedded HTTP server in a daemon thread.
    - PastedRedirectConsent: for any other redirect URI. The user pastes
      the URL they were redirected to (or just the code).

Token Lifecycle:
    get_valid_token() is the only call a sync needs. It returns the stored
    token while it is fresh, refreshes it once it expired and returns None
    when neither works. invalidate_access_token() forces the next call to
    refresh, for when the Web API rejects a token before its expiry.

Usage:
    from watermelon.spotify.auth import SpotifyAuth

    auth = SpotifyAuth(config, CredentialStore(JsonFileStore(config.storage.token_file)))
    token = auth.get_valid_token() or auth.authenticate()
"""

import base64
import hashlib
import secrets
import string
import threading
import time
import webbrowser
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable
from urllib.parse import parse_qs, quote, urlencode, urlparse

import requests

from watermelon.core.config import Config
from watermelon.core.credentials import Credential, CredentialStore
from watermelon.core.exceptions import (
    AuthError,
    AuthRejected,
    ConsentTimeout,
    MissingCode,
    RefreshFailed,
    StorageError,
    TokenExchangeFailed,
)
from watermelon.core.logger import get_logger


logger = get_logger(__name__)


AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"

# RFC 7636 unreserved characters: A-Z a-z 0-9 - . _ ~
VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
VERIFIER_LENGTH = 64

# Used when the token response has no usable expires_in
DEFAULT_EXPIRES_IN_SECONDS = 3600

# Tokens are treated as expired one minute early
EXPIRY_MARGIN_MS = 60_000

LOCAL_REDIRECT_HOSTS = ("localhost", "127.0.0.1")

# (authorization_url, redirect_uri) -> URL the browser was redirected to
ConsentDriver = Callable[[str, str], str]


@dataclass(frozen=True)
class PkceSession:
    """
    One PKCE verifier/challenge pair.

    Created fresh for every authenticate() call and never stored. Both
    fields are excluded from repr so they cannot leak into logs.
    """
    code_verifier: str = field(repr=False)
    code_challenge: str = field(repr=False)

    @classmethod
    def generate(cls) -> "PkceSession":
        verifier = "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(VERIFIER_LENGTH))
        return cls(code_verifier=verifier, code_challenge=compute_code_challenge(verifier))


def compute_code_challenge(code_verifier: str) -> str:
    """S256 challenge: unpadded base64url of the verifier's SHA-256 digest."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scope: str,
    code_challenge: str
) -> str:
    """
    Build the URL of Spotify's consent page.

    Values are percent-encoded with spaces as %20 (not '+'), and the
    consent dialog is always shown so the user can pick another account.
    """
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": scope,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
        "show_dialog": "true",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params, quote_via=quote)}"


def parse_authorization_response(redirect_url: str) -> str:
    """
    Read the authorization code from the redirect URL.

    Raises:
        AuthRejected: If the URL carries an 'error' parameter.
        MissingCode: If it carries no 'code' parameter.
    """
    query = parse_qs(urlparse(redirect_url).query)

    error = (query.get("error") or [None])[0]
    if error:
        raise AuthRejected(
            f"Spotify rejected the authorization: {error}",
            details={"error": error}
        )

    code = (query.get("code") or [None])[0]
    if not code:
        raise MissingCode(
            "Redirect URL does not contain an authorization code",
            details={"redirect_url": redirect_url.split("?", 1)[0]}
        )

    return code


# =============================================================================
# CONSENT DRIVERS
# =============================================================================

class CallbackHandler(BaseHTTPRequestHandler):
    """
    Receives the OAuth redirect on the local callback server.

    Stores the request path (with its query) on the server as
    redirect_path once a request carries 'code' or 'error'. Other
    requests, such as the browser asking for /favicon.ico, get a 404.
    """

    def do_GET(self) -> None:
        query = parse_qs(urlparse(self.path).query)

        if "code" not in query and "error" not in query:
            self.send_response(404)
            self.end_headers()
            return

        self.server.redirect_path = self.path  # type: ignore[attr-defined]

        if "code" in query:
            status = 200
            body = (
                "<html><head><title>WaterMelon</title></head>"
                "<body style=\"font-family: Arial, sans-serif; text-align: center; margin-top: 50px;\">"
                "<h1 style=\"color: #1DB954;\">Authorization Successful!</h1>"
                "<p>You can now close this window.</p></body></html>"
            )
        else:
            status = 400
            body = (
                "<html><head><title>WaterMelon</title></head>"
                "<body style=\"font-family: Arial, sans-serif; text-align: center; margin-top: 50px;\">"
                "<h1 style=\"color: #E22134;\">Authorization Failed</h1>"
                "<p>Please try again.</p></body></html>"
            )

        encoded = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def log_message(self, format: str, *args: Any) -> None:
        # Request lines carry the authorization code
        pass


class LocalCallbackConsent:
    """
    Consent driver that catches the redirect on a local HTTP server.

    The server listens on the host and port of the redirect URI, runs
    in a daemon thread and is always shut down before returning.

    Attributes:
        open_browser: Open the consent page with the webbrowser module.
        timeout_seconds: How long to wait for the redirect.
        poll_interval: Seconds between checks for an arrived redirect.
    """

    def __init__(
        self,
        open_browser: bool = True,
        timeout_seconds: float = 300,
        poll_interval: float = 0.5
    ) -> None:
        self.open_browser = open_browser
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval

    def __call__(self, authorization_url: str, redirect_uri: str) -> str:
        """
        Show the consent page and wait for the redirect.

        Returns:
            The full redirect URL, including its query string.

        Raises:
            AuthError: If the callback server cannot listen on the port.
            ConsentTimeout: If no redirect arrives within timeout_seconds.
        """
        parsed = urlparse(redirect_uri)
        host = parsed.hostname or "127.0.0.1"
        port = parsed.port or 80

        try:
            server = HTTPServer((host, port), CallbackHandler)
        except OSError as e:
            raise AuthError(
                f"Cannot start the local callback server on {host}:{port}: {e}",
                details={"redirect_uri": redirect_uri, "original_error": str(e)}
            ) from e

        server.redirect_path = None  # type: ignore[attr-defined]
        server_thread = threading.Thread(target=server.serve_forever, daemon=True)
        server_thread.start()

        try:
            print("Opening browser for Spotify authorization...")
            print(f"If the browser doesn't open, visit: {authorization_url}")
            if self.open_browser:
                webbrowser.open(authorization_url)

            logger.info(f"Waiting for the authorization callback on {host}:{port}")
            deadline = time.monotonic() + self.timeout_seconds
            while server.redirect_path is None:  # type: ignore[attr-defined]
                if time.monotonic() >= deadline:
                    raise ConsentTimeout(
                        f"No authorization callback within {self.timeout_seconds} seconds",
                        details={"redirect_uri": redirect_uri}
                    )
                time.sleep(self.poll_interval)

            redirect_path = server.redirect_path  # type: ignore[attr-defined]
        finally:
            server.shutdown()
            server.server_close()

        return f"{parsed.scheme}://{parsed.netloc}{redirect_path}"


class PastedRedirectConsent:
    """
    Consent driver for redirect URIs this machine cannot serve.

    Prints the consent URL and reads the redirect URL from the user.
    A bare authorization code is accepted too.

    Attributes:
        open_browser: Open the consent page with the webbrowser module.
        input_func: Reads one line from the user (input() by default).
    """

    def __init__(
        self,
        open_browser: bool = True,
        input_func: Callable[[str], str] = input
    ) -> None:
        self.open_browser = open_browser
        self.input_func = input_func

    def __call__(self, authorization_url: str, redirect_uri: str) -> str:
        print(f"Visit this URL to authorize WaterMelon: {authorization_url}")
        if self.open_browser:
            webbrowser.open(authorization_url)

        print("\n" + "=" * 80)
        print("1. Complete authorization in the browser")
        print(f"2. You will be redirected to {redirect_uri}")
        print("3. Copy the full URL from the address bar and paste it below")
        print("=" * 80 + "\n")

        try:
            pasted = self.input_func("Redirect URL: ").strip()
        except (KeyboardInterrupt, EOFError) as e:
            raise AuthRejected("Authorization cancelled by user") from e

        if not pasted:
            raise MissingCode("No redirect URL provided")

        # Only the code was pasted
        if "://" not in pasted and "=" not in pasted:
            return f"{redirect_uri}?code={quote(pasted, safe='')}"

        return pasted


def default_consent(
    redirect_uri: str,
    open_browser: bool = True,
    timeout_seconds: float = 300
) -> ConsentDriver:
    """
    Pick the consent driver that fits the redirect URI.

    http://localhost/... and http://127.0.0.1/... get the local callback
    server, everything else the paste flow.
    """
    parsed = urlparse(redirect_uri)
    if parsed.scheme == "http" and parsed.hostname in LOCAL_REDIRECT_HOSTS:
        return LocalCallbackConsent(open_browser=open_browser, timeout_seconds=timeout_seconds)
    return PastedRedirectConsent(open_browser=open_browser)


def _is_rejection(error: AuthError) -> bool:
    """True when the token endpoint answered with a 4xx (e.g. invalid_grant)."""
    status = error.details.get("http_status")
    return isinstance(status, int) and 400 <= status < 500


# =============================================================================
# AUTHENTICATOR
# =============================================================================

class SpotifyAuth:
    """
    Owns the user's Spotify credential.

    This is the only component that writes to the CredentialStore.

    Attributes:
        config: Application configuration (spotify and auth sections are used).
        store: Where the Credential is persisted.

    Example:
        auth = SpotifyAuth(config, store)

        token = auth.get_valid_token()
        if token is None:
            token = auth.authenticate()  # Opens the browser
    """

    def __init__(
        self,
        config: Config,
        store: CredentialStore,
        consent: ConsentDriver | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time
    ) -> None:
        """
        Args:
            config: Application configuration.
            store: Credential store to read and write.
            consent: Consent driver; picked from the redirect URI when None.
            session: HTTP session for the token endpoint.
            clock: Returns the current time in epoch seconds.
        """
        self.config = config
        self.store = store
        self._consent = consent or default_consent(
            config.spotify.redirect_uri,
            open_browser=config.auth.open_browser,
            timeout_seconds=config.auth.timeout_seconds
        )
        self._session = session or requests.Session()
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def authenticate(self) -> str:
        """
        Run the interactive authorization flow.

        Returns:
            The new access token (also persisted with its refresh token).

        Raises:
            AuthRejected: The user or Spotify refused consent.
            MissingCode: The redirect carried no code.
            ConsentTimeout: No redirect arrived in time.
            TokenExchangeFailed: The code could not be exchanged.
            StorageError: The credential could not be persisted.
        """
        self.store.clear()

        pkce = PkceSession.generate()
        spotify = self.config.spotify
        authorization_url = build_authorization_url(
            client_id=spotify.client_id,
            redirect_uri=spotify.redirect_uri,
            scope=spotify.scope,
            code_challenge=pkce.code_challenge
        )

        logger.info("Starting Spotify authorization")
        redirect_url = self._consent(authorization_url, spotify.redirect_uri)
        code = parse_authorization_response(redirect_url)

        payload = self._request_token(
            {
                "client_id": spotify.client_id,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": spotify.redirect_uri,
                "code_verifier": pkce.code_verifier,
            },
            TokenExchangeFailed,
            "Failed to exchange authorization code"
        )

        credential = self._credential_from(payload, previous_refresh_token=None)
        self.store.set(credential)
        logger.info("Spotify authorization successful")
        return credential.access_token

    def refresh(self, refresh_token: str) -> Credential:
        """
        Obtain a new access token with the refresh token.

        Spotify may rotate the refresh token; when the response has none
        the old one is kept.

        Raises:
            RefreshFailed: The token endpoint did not return a token.
            StorageError: The credential could not be persisted.
        """
        payload = self._request_token(
            {
                "client_id": self.config.spotify.client_id,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            RefreshFailed,
            "Failed to refresh access token"
        )

        credential = self._credential_from(payload, previous_refresh_token=refresh_token)
        self.store.set(credential)
        logger.debug("Access token refreshed")
        return credential

    def get_valid_token(self) -> str | None:
        """
        Return a usable access token without user interaction.

        Returns:
            The stored token if it has not expired, a refreshed token if
            it has and a refresh token is available, else None.

        Never raises. A refresh the token endpoint rejects with a 4xx
        status also clears the stored credential, so the next step is a
        fresh login. Network failures and server errors keep it for the
        next attempt.
        """
        credential = self.store.get()
        if credential is None:
            return None

        if credential.access_token and not credential.is_expired(self._now_ms()):
            return credential.access_token

        if not credential.refresh_token:
            logger.debug("Access token expired and no refresh token stored")
            return None

        try:
            return self.refresh(credential.refresh_token).access_token
        except RefreshFailed as e:
            logger.warning(f"Could not refresh Spotify session: {e.message}")
            if _is_rejection(e):
                self._clear_quietly()
            return None
        except StorageError as e:
            logger.error(f"Could not store refreshed token: {e.message}")
            return None

    def invalidate_access_token(self) -> None:
        """
        Forget the access token after the Web API rejected it.

        The refresh token is kept, so the next get_valid_token() refreshes.
        """
        logger.debug("Dropping rejected access token")
        self.store.drop_access_token()

    def logout(self) -> None:
        """Remove the stored credential."""
        self.store.clear()
        logger.info("Logged out of Spotify")

    def _clear_quietly(self) -> None:
        try:
            self.store.clear()
        except StorageError as e:
            logger.error(f"Could not clear stored credential: {e.message}")

    def _request_token(
        self,
        data: dict[str, str],
        error_class: type[AuthError],
        failure_message: str
    ) -> dict[str, Any]:
        """
        POST a form to the token endpoint and return the JSON body.

        Raises:
            error_class: On transport failure, a non-2xx status or a
                         response without access_token. The message
                         carries the provider's error_description (or
                         error) when there is one.
        """
        try:
            response = self._session.post(
                TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.config.spotify.requests_timeout
            )
        except requests.RequestException as e:
            raise error_class(
                f"{failure_message}: {e}",
                details={"original_error": str(e)}
            ) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not 200 <= response.status_code < 300:
            reason = (
                payload.get("error_description")
                or payload.get("error")
                or f"HTTP {response.status_code}"
            )
            raise error_class(
                f"{failure_message}: {reason}",
                details={"http_status": response.status_code, "error": payload.get("error")}
            )

        if not payload.get("access_token"):
            raise error_class(
                f"{failure_message}: no access token in response",
                details={"http_status": response.status_code}
            )

        return payload

    def _credential_from(
        self,
        payload: dict[str, Any],
        previous_refresh_token: str | None
    ) -> Credential:
        expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN_SECONDS

        return Credential(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at_epoch_ms=self._now_ms() + expires_in * 1000 - EXPIRY_MARGIN_MS
        )
