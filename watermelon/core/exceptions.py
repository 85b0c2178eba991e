"""
Exception classes for watermelon.

This module defines all custom exceptions used throughout the package.
Each exception carries a human-readable message plus a details dict
so callers can log context without parsing strings.

Exception Hierarchy:
    WaterMelonError (base)
        ConfigError - Configuration file issues
        StorageError - Token storage could not be written
        ExtractionError - A page source could not be read
        AuthError - OAuth/PKCE failures
            AuthRejected - The user or Spotify refused consent
            MissingCode - Redirect came back without a code
            TokenExchangeFailed - Code could not be exchanged for tokens
            RefreshFailed - Refresh token was not accepted
            ConsentTimeout - No redirect arrived in time
        SpotifyApiError - A bearer-authenticated Web API call failed

Sync-level outcomes (not authenticated, playlist creation failed, track
addition failed) are never raised; they are reported as SyncError values
inside a SyncResult.
"""


class WaterMelonError(Exception):
    """
    Base exception for all watermelon errors.

    All custom exceptions in this package inherit from this class,
    allowing callers to catch every watermelon error with a single
    except clause.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., HTTP status, URL).

    Example:
        try:
            auth.authenticate()
        except WaterMelonError as e:
            logger.error(f"Login failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'http_status': Status code of a failed HTTP call
                     - 'url': URL that caused the error
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(WaterMelonError):
    """
    Raised when there's an issue with the configuration file.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - spotify.client_id missing and not provided through the environment
        - Invalid field values (e.g., non-positive timeout)

    Example:
        raise ConfigError(
            "'spotify.client_id' must be a non-empty string",
            details={'field': 'spotify.client_id'}
        )
    """
    pass


class StorageError(WaterMelonError):
    """
    Raised when the credential storage cannot be written.

    Reading problems are not raised: an unreadable token file is treated
    as "no stored credential" so the user is simply asked to log in again.
    """
    pass


class ExtractionError(WaterMelonError):
    """
    Raised when a page source cannot be read.

    The extractor always recovers from this error: the failing source
    contributes zero candidate songs and the remaining sources still run.
    """
    pass


class AuthError(WaterMelonError):
    """
    Base class for OAuth/PKCE failures.

    Raised by SpotifyAuth.authenticate() and SpotifyAuth.refresh().
    SpotifyAuth.get_valid_token() never lets these escape; it returns None
    instead and leaves the decision to log in again to the caller.
    """
    pass


class AuthRejected(AuthError):
    """
    Raised when the redirect carries an 'error' parameter.

    Typically 'access_denied' when the user clicks Cancel on the consent
    screen, or 'invalid_client' when the client id is wrong.

    Example:
        raise AuthRejected(
            "Spotify rejected the authorization: access_denied",
            details={'error': 'access_denied'}
        )
    """
    pass


class MissingCode(AuthError):
    """Raised when the redirect carries neither 'code' nor 'error'."""
    pass


class TokenExchangeFailed(AuthError):
    """
    Raised when the authorization code cannot be exchanged for tokens.

    The message is the provider's 'error_description' (or 'error') when
    the token endpoint returned one.
    """
    pass


class RefreshFailed(AuthError):
    """Raised when the token endpoint does not accept the refresh token."""
    pass


class ConsentTimeout(AuthError):
    """Raised when no redirect reaches the local callback server in time."""
    pass


class SpotifyApiError(WaterMelonError):
    """
    Raised when a bearer-authenticated Spotify Web API call fails.

    Callers decide how fatal this is:
        - Search failures only skip the current query.
        - Auth failures (401/403) on playlist creation trigger one
          re-authentication and a single retry.
        - Anything else on playlist writes ends the sync with a SyncError.

    Attributes:
        http_status: HTTP status code, or None for transport failures
                     (DNS, connection reset, timeout).

    Example:
        raise SpotifyApiError(
            "Failed to create playlist: Insufficient client scope",
            details={'http_status': 403},
            http_status=403
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        http_status: int | None = None
    ) -> None:
        """
        Initialize Spotify API error with the HTTP status.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            http_status: Status code returned by the Web API, if any.
        """
        super().__init__(message, details)
        self.http_status = http_status

    @property
    def is_auth_error(self) -> bool:
        """True for 401/403 responses, which mean the token is not usable."""
        return self.http_status in (401, 403)

    @property
    def is_rate_limit(self) -> bool:
        """True for 429 responses."""
        return self.http_status == 429
