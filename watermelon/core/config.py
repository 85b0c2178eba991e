"""
Configuration management for watermelon.

This module handles loading, validating, and providing access to the
configuration stored in config.yaml.

The configuration file contains:
    - Spotify application settings (client_id, redirect_uri, scope)
    - Interactive login behavior (browser, callback timeout)
    - Where the OAuth credential is persisted
    - Playlist naming and description
    - Optional directory for log files

PKCE is used for the token exchange, so no client secret is needed
or accepted.

Environment Overrides:
    A .env file in the working directory is loaded first (python-dotenv).
    These variables take precedence over the YAML values:
        WATERMELON_CLIENT_ID     -> spotify.client_id
        WATERMELON_REDIRECT_URI  -> spotify.redirect_uri
        WATERMELON_TOKEN_FILE    -> storage.token_file

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      redirect_uri: "http://127.0.0.1:8888/callback"
      scope: "playlist-modify-public playlist-modify-private"
      requests_timeout: 10

    auth:
      open_browser: true
      timeout_seconds: 300

    storage:
      token_file: "~/.watermelon/token.json"

    playlist:
      name_prefix: "🍉 "
      description: "Created by WaterMelon"

    logging:
      directory: "~/.watermelon"
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from watermelon.core.exceptions import ConfigError


# Default configuration file name (looked up in the current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_SCOPE = "playlist-modify-public playlist-modify-private"
DEFAULT_REQUESTS_TIMEOUT = 10
DEFAULT_AUTH_TIMEOUT_SECONDS = 300
DEFAULT_TOKEN_FILE = "~/.watermelon/token.json"
DEFAULT_NAME_PREFIX = "🍉 "
DEFAULT_DESCRIPTION = "Created by WaterMelon"

ENV_CLIENT_ID = "WATERMELON_CLIENT_ID"
ENV_REDIRECT_URI = "WATERMELON_REDIRECT_URI"
ENV_TOKEN_FILE = "WATERMELON_TOKEN_FILE"


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify application settings.

    The client id comes from the Spotify Developer Dashboard:
    https://developer.spotify.com/dashboard

    Attributes:
        client_id: The Spotify application client ID.
        redirect_uri: Redirect URI registered for the application.
                      Must match the dashboard entry exactly.
        scope: Space-separated OAuth scopes requested at login.
        requests_timeout: Seconds before a Web API or token call times out.
    """
    client_id: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scope: str = DEFAULT_SCOPE
    requests_timeout: int = DEFAULT_REQUESTS_TIMEOUT


@dataclass(frozen=True)
class AuthConfig:
    """
    Interactive login settings.

    Attributes:
        open_browser: Open the consent page in the default browser.
                      When False the URL is only printed.
        timeout_seconds: How long the local callback server waits for
                         the redirect before giving up.
    """
    open_browser: bool = True
    timeout_seconds: int = DEFAULT_AUTH_TIMEOUT_SECONDS


@dataclass(frozen=True)
class StorageConfig:
    """Where the OAuth credential is persisted."""
    token_file: Path


@dataclass(frozen=True)
class PlaylistConfig:
    """
    Naming of the playlists created by a sync.

    Attributes:
        name_prefix: Prepended to the video title to form the playlist name.
        description: Description set on every created playlist.
    """
    name_prefix: str = DEFAULT_NAME_PREFIX
    description: str = DEFAULT_DESCRIPTION


@dataclass(frozen=True)
class LoggingConfig:
    """
    Attributes:
        directory: Directory for log files, or None for console-only logging.
    """
    directory: Path | None = None


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Redirect URI: {config.spotify.redirect_uri}")
        print(f"Token file: {config.storage.token_file}")
    """
    spotify: SpotifyConfig
    auth: AuthConfig
    storage: StorageConfig
    playlist: PlaylistConfig
    logging: LoggingConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     or contains invalid values. The error message indicates
                     the specific problem.

    Behavior:
        1. Load .env into the process environment (existing variables win)
        2. Locate config file (explicit path or CWD/config.yaml)
        3. Read and parse YAML content
        4. Apply environment overrides
        5. Validate each section, applying defaults for optional ones
        6. Return frozen Config object

    Example:
        try:
            config = load_config()
        except ConfigError as e:
            print(f"Configuration error: {e.message}")
            sys.exit(1)
    """
    load_dotenv()

    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is allowed when everything comes from the environment
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return config_from_dict(raw_config)


def config_from_dict(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from an already parsed dictionary.

    Environment overrides are applied here, so tests and embedding
    applications get the same behavior as load_config().

    Raises:
        ConfigError: If a section has the wrong type or a value is invalid.
    """
    for section in ("spotify", "auth", "storage", "playlist", "logging"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    return Config(
        spotify=_parse_spotify_config(raw_config.get("spotify") or {}),
        auth=_parse_auth_config(raw_config.get("auth") or {}),
        storage=_parse_storage_config(raw_config.get("storage") or {}),
        playlist=_parse_playlist_config(raw_config.get("playlist") or {}),
        logging=_parse_logging_config(raw_config.get("logging") or {}),
    )


def _parse_spotify_config(spotify_section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse and validate the Spotify configuration section.

    Raises:
        ConfigError: If client_id is missing everywhere, redirect_uri is
                     not an http(s) URL, or requests_timeout is not positive.
    """
    client_id = os.getenv(ENV_CLIENT_ID) or spotify_section.get("client_id", "")
    redirect_uri = (
        os.getenv(ENV_REDIRECT_URI)
        or spotify_section.get("redirect_uri", DEFAULT_REDIRECT_URI)
    )
    scope = spotify_section.get("scope", DEFAULT_SCOPE)
    timeout = spotify_section.get("requests_timeout", DEFAULT_REQUESTS_TIMEOUT)

    if not isinstance(client_id, str) or not client_id.strip():
        raise ConfigError(
            f"'spotify.client_id' must be a non-empty string "
            f"(or set {ENV_CLIENT_ID})",
            details={"field": "spotify.client_id"}
        )

    if not isinstance(redirect_uri, str) or not redirect_uri.startswith(("http://", "https://")):
        raise ConfigError(
            "'spotify.redirect_uri' must be an http(s) URL",
            details={"field": "spotify.redirect_uri", "value": redirect_uri}
        )

    if not isinstance(scope, str) or not scope.strip():
        raise ConfigError(
            "'spotify.scope' must be a non-empty string",
            details={"field": "spotify.scope"}
        )

    # bool is a subclass of int, reject it explicitly
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout < 1:
        raise ConfigError(
            "'spotify.requests_timeout' must be a positive integer",
            details={"field": "spotify.requests_timeout", "value": timeout}
        )

    return SpotifyConfig(
        client_id=client_id.strip(),
        redirect_uri=redirect_uri.strip(),
        scope=" ".join(scope.split()),
        requests_timeout=timeout
    )


def _parse_auth_config(auth_section: dict[str, Any]) -> AuthConfig:
    open_browser = auth_section.get("open_browser", True)
    timeout_seconds = auth_section.get("timeout_seconds", DEFAULT_AUTH_TIMEOUT_SECONDS)

    if not isinstance(open_browser, bool):
        raise ConfigError(
            "'auth.open_browser' must be true or false",
            details={"field": "auth.open_browser", "value": open_browser}
        )

    if isinstance(timeout_seconds, bool) or not isinstance(timeout_seconds, int) or timeout_seconds < 1:
        raise ConfigError(
            "'auth.timeout_seconds' must be a positive integer",
            details={"field": "auth.timeout_seconds", "value": timeout_seconds}
        )

    return AuthConfig(open_browser=open_browser, timeout_seconds=timeout_seconds)


def _parse_storage_config(storage_section: dict[str, Any]) -> StorageConfig:
    """
    Parse the storage section.

    Expands ~ to the home directory. Does NOT create the file or its
    directory; JsonFileStore does that on first write.
    """
    token_file = os.getenv(ENV_TOKEN_FILE) or storage_section.get("token_file", DEFAULT_TOKEN_FILE)

    if not isinstance(token_file, str) or not token_file.strip():
        raise ConfigError(
            "'storage.token_file' must be a non-empty string",
            details={"field": "storage.token_file"}
        )

    return StorageConfig(token_file=Path(token_file.strip()).expanduser().resolve())


def _parse_playlist_config(playlist_section: dict[str, Any]) -> PlaylistConfig:
    name_prefix = playlist_section.get("name_prefix", DEFAULT_NAME_PREFIX)
    description = playlist_section.get("description", DEFAULT_DESCRIPTION)

    for field_name, value in (("name_prefix", name_prefix), ("description", description)):
        if not isinstance(value, str):
            raise ConfigError(
                f"'playlist.{field_name}' must be a string",
                details={"field": f"playlist.{field_name}"}
            )

    return PlaylistConfig(name_prefix=name_prefix, description=description)


def _parse_logging_config(logging_section: dict[str, Any]) -> LoggingConfig:
    directory = logging_section.get("directory")

    if directory is None:
        return LoggingConfig()

    if not isinstance(directory, str) or not directory.strip():
        raise ConfigError(
            "'logging.directory' must be a non-empty string or null",
            details={"field": "logging.directory"}
        )

    return LoggingConfig(directory=Path(directory.strip()).expanduser().resolve())
