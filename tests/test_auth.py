"""Test OAuth/PKCE authentication"""

import base64
import hashlib
import threading
from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from watermelon.core.credentials import Credential, CredentialStore, MemoryStore
from watermelon.core.exceptions import (
    AuthRejected,
    ConsentTimeout,
    MissingCode,
    RefreshFailed,
    TokenExchangeFailed,
)
from watermelon.spotify.auth import (
    TOKEN_URL,
    VERIFIER_ALPHABET,
    LocalCallbackConsent,
    PastedRedirectConsent,
    PkceSession,
    SpotifyAuth,
    build_authorization_url,
    compute_code_challenge,
    default_consent,
    parse_authorization_response,
)


def token_response(status=200, payload=None):
    """Mock requests.Response"""
    response = Mock()
    response.status_code = status
    response.json.return_value = payload if payload is not None else {}
    return response


class RecordingConsent:
    """Consent driver returning a fixed redirect and remembering the URL it was shown"""

    def __init__(self, redirect="http://127.0.0.1:8888/callback?code=auth-code"):
        self.redirect = redirect
        self.calls = []

    def __call__(self, authorization_url, redirect_uri):
        self.calls.append((authorization_url, redirect_uri))
        return self.redirect


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def consent():
    return RecordingConsent()


@pytest.fixture
def auth(config, credential_store, consent, session, clock):
    return SpotifyAuth(config, credential_store, consent=consent, session=session, clock=clock)


class TestPkce:
    """Test PKCE session generation"""

    def test_known_challenge(self):
        """Test the RFC 7636 appendix B example"""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        assert compute_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_challenge_matches_definition(self):
        """Test challenge is unpadded base64url of SHA-256"""
        verifier = "a" * 64
        digest = hashlib.sha256(verifier.encode()).digest()
        expected = base64.urlsafe_b64encode(digest).decode().rstrip("=")

        assert compute_code_challenge(verifier) == expected
        assert compute_code_challenge(verifier) == compute_code_challenge(verifier)

    def test_generated_verifier(self):
        session = PkceSession.generate()

        assert len(session.code_verifier) == 64
        assert set(session.code_verifier) <= set(VERIFIER_ALPHABET)
        assert session.code_challenge == compute_code_challenge(session.code_verifier)
        assert "=" not in session.code_challenge

    def test_sessions_are_unique(self):
        assert PkceSession.generate().code_verifier != PkceSession.generate().code_verifier

    def test_verifier_hidden_from_repr(self):
        session = PkceSession.generate()
        assert session.code_verifier not in repr(session)

    def test_alphabet(self):
        assert len(VERIFIER_ALPHABET) == 66


class TestAuthorizationUrl:
    """Test authorization URL building and redirect parsing"""

    def test_parameters(self):
        url = build_authorization_url(
            "client", "http://127.0.0.1:8888/callback", "playlist-modify-public playlist-modify-private", "chal"
        )

        parsed = urlparse(url)
        params = parse_qs(parsed.query)

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://accounts.spotify.com/authorize"
        assert params == {
            "client_id": ["client"],
            "response_type": ["code"],
            "redirect_uri": ["http://127.0.0.1:8888/callback"],
            "scope": ["playlist-modify-public playlist-modify-private"],
            "code_challenge_method": ["S256"],
            "code_challenge": ["chal"],
            "show_dialog": ["true"],
        }

    def test_spaces_encoded_as_percent_20(self):
        url = build_authorization_url("c", "http://127.0.0.1:8888/callback", "a b", "x")

        assert "scope=a%20b" in url
        assert "+" not in url

    def test_parse_code(self):
        assert parse_authorization_response("http://127.0.0.1:8888/callback?code=xyz") == "xyz"

    def test_parse_error(self):
        with pytest.raises(AuthRejected) as exc_info:
            parse_authorization_response("http://127.0.0.1:8888/callback?error=access_denied")

        assert exc_info.value.details["error"] == "access_denied"

    def test_parse_missing_code(self):
        with pytest.raises(MissingCode):
            parse_authorization_response("http://127.0.0.1:8888/callback?state=1")


class TestAuthenticate:
    """Test the interactive flow with a fake consent driver"""

    def test_success(self, auth, consent, session, credential_store, clock):
        session.post.return_value = token_response(payload={
            "access_token": "access",
            "refresh_token": "refresh",
            "expires_in": 3600,
        })

        token = auth.authenticate()

        assert token == "access"
        assert credential_store.get() == Credential("access", "refresh", clock.now_ms + 3_540_000)

        authorization_url, redirect_uri = consent.calls[0]
        assert redirect_uri == "http://127.0.0.1:8888/callback"
        challenge = parse_qs(urlparse(authorization_url).query)["code_challenge"][0]

        args, kwargs = session.post.call_args
        assert args[0] == TOKEN_URL
        data = kwargs["data"]
        assert data["client_id"] == "test-client-id"
        assert data["grant_type"] == "authorization_code"
        assert data["code"] == "auth-code"
        assert data["redirect_uri"] == "http://127.0.0.1:8888/callback"
        assert compute_code_challenge(data["code_verifier"]) == challenge

    def test_default_expiry(self, auth, session, credential_store, clock):
        """Test missing expires_in counts as one hour"""
        session.post.return_value = token_response(payload={"access_token": "access"})

        auth.authenticate()

        assert credential_store.get().expires_at_epoch_ms == clock.now_ms + 3_540_000

    def test_clears_stale_credential_first(self, config, session, clock):
        """Test an old credential doesn't survive a failed login"""
        store = CredentialStore(MemoryStore())
        store.set(Credential("old", "old-refresh", 1))
        failing = SpotifyAuth(
            config, store,
            consent=RecordingConsent("http://127.0.0.1:8888/callback?error=access_denied"),
            session=session, clock=clock
        )

        with pytest.raises(AuthRejected):
            failing.authenticate()

        assert store.get() is None
        session.post.assert_not_called()

    def test_missing_code(self, config, credential_store, session, clock):
        auth = SpotifyAuth(
            config, credential_store,
            consent=RecordingConsent("http://127.0.0.1:8888/callback"),
            session=session, clock=clock
        )

        with pytest.raises(MissingCode):
            auth.authenticate()

    def test_exchange_error_description(self, auth, session):
        """Test the provider's error_description is surfaced"""
        session.post.return_value = token_response(400, {
            "error": "invalid_grant",
            "error_description": "Invalid authorization code",
        })

        with pytest.raises(TokenExchangeFailed, match="Invalid authorization code"):
            auth.authenticate()

    def test_exchange_error_code_only(self, auth, session):
        session.post.return_value = token_response(400, {"error": "invalid_client"})

        with pytest.raises(TokenExchangeFailed, match="invalid_client"):
            auth.authenticate()

    def test_exchange_without_access_token(self, auth, session, credential_store):
        session.post.return_value = token_response(200, {"token_type": "Bearer"})

        with pytest.raises(TokenExchangeFailed):
            auth.authenticate()

        assert credential_store.get() is None

    def test_exchange_transport_failure(self, auth, session):
        session.post.side_effect = requests.ConnectionError("offline")

        with pytest.raises(TokenExchangeFailed, match="offline"):
            auth.authenticate()

    def test_non_json_error_body(self, auth, session):
        response = token_response(502)
        response.json.side_effect = ValueError("not json")
        session.post.return_value = response

        with pytest.raises(TokenExchangeFailed, match="HTTP 502"):
            auth.authenticate()


class TestRefresh:
    """Test the refresh grant"""

    def test_keeps_old_refresh_token(self, auth, session, credential_store, clock):
        session.post.return_value = token_response(payload={"access_token": "new", "expires_in": 1800})

        credential = auth.refresh("old-refresh")

        assert credential == Credential("new", "old-refresh", clock.now_ms + 1_740_000)
        assert credential_store.get() == credential
        data = session.post.call_args.kwargs["data"]
        assert data == {
            "client_id": "test-client-id",
            "grant_type": "refresh_token",
            "refresh_token": "old-refresh",
        }

    def test_rotated_refresh_token(self, auth, session):
        session.post.return_value = token_response(payload={
            "access_token": "new",
            "refresh_token": "rotated",
        })

        assert auth.refresh("old").refresh_token == "rotated"

    def test_rejected(self, auth, session):
        session.post.return_value = token_response(400, {"error": "invalid_grant"})

        with pytest.raises(RefreshFailed):
            auth.refresh("old")


class TestGetValidToken:
    """Test non-interactive token retrieval"""

    def test_fresh_token(self, auth, credential_store, session, clock):
        credential_store.set(Credential("access", "refresh", clock.now_ms + 60_000))

        assert auth.get_valid_token() == "access"
        session.post.assert_not_called()

    def test_expired_token_is_refreshed(self, auth, credential_store, session, clock):
        credential_store.set(Credential("access", "refresh", clock.now_ms - 1))
        session.post.return_value = token_response(payload={"access_token": "fresh"})

        assert auth.get_valid_token() == "fresh"
        assert credential_store.get().access_token == "fresh"

    def test_expiry_boundary(self, auth, credential_store, session, clock):
        """Test a token is not used at its expiry instant"""
        credential_store.set(Credential("access", None, clock.now_ms))

        assert auth.get_valid_token() is None

    def test_nothing_stored(self, auth):
        assert auth.get_valid_token() is None

    def test_failed_refresh_clears_credential(self, auth, credential_store, session, clock):
        credential_store.set(Credential("access", "refresh", clock.now_ms - 1))
        session.post.return_value = token_response(400, {"error": "invalid_grant"})

        assert auth.get_valid_token() is None
        assert credential_store.get() is None

    def test_transport_failure_returns_none(self, auth, credential_store, session, clock):
        """Test a network failure keeps the refresh token for the next attempt"""
        credential_store.set(Credential("access", "refresh", clock.now_ms - 1))
        session.post.side_effect = requests.ConnectionError("network down")

        assert auth.get_valid_token() is None
        assert credential_store.get().refresh_token == "refresh"

    def test_server_error_keeps_credential(self, auth, credential_store, session, clock):
        credential_store.set(Credential("access", "refresh", clock.now_ms - 1))
        session.post.return_value = token_response(503, {"error": "server_error"})

        assert auth.get_valid_token() is None
        assert credential_store.get().refresh_token == "refresh"

    def test_refresh_after_network_recovers(self, auth, credential_store, session, clock):
        credential_store.set(Credential("access", "refresh", clock.now_ms - 1))
        session.post.side_effect = [
            requests.Timeout("slow"),
            token_response(payload={"access_token": "fresh"}),
        ]

        assert auth.get_valid_token() is None
        assert auth.get_valid_token() == "fresh"

    def test_token_used_until_clock_passes_expiry(self, auth, credential_store, session, clock):
        credential_store.set(Credential("access", "refresh", clock.now_ms + 10_000))
        session.post.return_value = token_response(payload={"access_token": "fresh"})

        assert auth.get_valid_token() == "access"
        clock.advance(10)
        assert auth.get_valid_token() == "fresh"


class TestInvalidateAndLogout:
    """Test forced refresh and logout"""

    def test_invalidate_forces_refresh(self, auth, credential_store, session, clock):
        credential_store.set(Credential("rejected", "refresh", clock.now_ms + 600_000))
        session.post.return_value = token_response(payload={"access_token": "fresh"})

        auth.invalidate_access_token()

        assert auth.get_valid_token() == "fresh"
        assert session.post.call_args.kwargs["data"]["refresh_token"] == "refresh"

    def test_invalidate_without_refresh_token(self, auth, credential_store, clock):
        credential_store.set(Credential("rejected", None, clock.now_ms + 600_000))

        auth.invalidate_access_token()

        assert auth.get_valid_token() is None

    def test_logout(self, auth, credential_store, clock):
        credential_store.set(Credential("access", "refresh", clock.now_ms + 600_000))

        auth.logout()

        assert credential_store.get() is None


class TestConsentDrivers:
    """Test consent driver selection and behavior"""

    @pytest.mark.parametrize("uri", [
        "http://127.0.0.1:8888/callback",
        "http://localhost:8080/cb",
    ])
    def test_local_redirect_uses_callback_server(self, uri):
        assert isinstance(default_consent(uri), LocalCallbackConsent)

    @pytest.mark.parametrize("uri", [
        "https://example.ngrok.io/callback",
        "https://localhost:8888/callback",
    ])
    def test_other_redirect_uses_paste(self, uri):
        assert isinstance(default_consent(uri), PastedRedirectConsent)

    def test_pasted_redirect_url(self):
        driver = PastedRedirectConsent(
            open_browser=False,
            input_func=lambda prompt: "  https://example.com/cb?code=abc  "
        )

        assert driver("https://accounts.spotify.com/authorize?x", "https://example.com/cb") == \
            "https://example.com/cb?code=abc"

    def test_pasted_bare_code(self):
        driver = PastedRedirectConsent(open_browser=False, input_func=lambda prompt: "abc123")

        redirect = driver("https://accounts.spotify.com/authorize?x", "https://example.com/cb")

        assert parse_authorization_response(redirect) == "abc123"

    def test_pasted_nothing(self):
        driver = PastedRedirectConsent(open_browser=False, input_func=lambda prompt: "")

        with pytest.raises(MissingCode):
            driver("https://accounts.spotify.com/authorize?x", "https://example.com/cb")

    def test_paste_cancelled(self):
        def cancel(prompt):
            raise KeyboardInterrupt

        driver = PastedRedirectConsent(open_browser=False, input_func=cancel)

        with pytest.raises(AuthRejected):
            driver("https://accounts.spotify.com/authorize?x", "https://example.com/cb")

    def test_local_callback_receives_redirect(self, monkeypatch, free_port):
        """Test the callback server returns the redirect the browser hits"""
        redirect_uri = f"http://127.0.0.1:{free_port}/callback"

        browser = requests.Session()
        browser.trust_env = False  # no proxies for 127.0.0.1

        def fake_browser(url):
            threading.Thread(
                target=browser.get,
                args=(f"{redirect_uri}?code=from-browser",),
                kwargs={"timeout": 5},
                daemon=True
            ).start()
            return True

        monkeypatch.setattr("watermelon.spotify.auth.webbrowser.open", fake_browser)
        driver = LocalCallbackConsent(open_browser=True, timeout_seconds=10, poll_interval=0.05)

        redirect = driver("https://accounts.spotify.com/authorize?x", redirect_uri)

        assert parse_authorization_response(redirect) == "from-browser"

    def test_local_callback_timeout(self, free_port):
        driver = LocalCallbackConsent(open_browser=False, timeout_seconds=0.2, poll_interval=0.05)

        with pytest.raises(ConsentTimeout):
            driver("https://accounts.spotify.com/authorize?x", f"http://127.0.0.1:{free_port}/callback")


@pytest.fixture
def free_port():
    """A TCP port nothing listens on"""
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
