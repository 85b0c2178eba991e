"""
Core module for watermelon.

This module provides the foundational components used throughout the package:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - credentials: Persistent storage of the OAuth credential
    - logger: Logging system with console and file outputs

Usage:
    from watermelon.core import (
        Config, load_config,
        CredentialStore, JsonFileStore,
        setup_logging, get_logger,
        WaterMelonError, ConfigError
    )
"""

from watermelon.core.config import (
    AuthConfig,
    Config,
    LoggingConfig,
    PlaylistConfig,
    SpotifyConfig,
    StorageConfig,
    config_from_dict,
    load_config,
)
from watermelon.core.credentials import (
    Credential,
    CredentialStore,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
)
from watermelon.core.exceptions import (
    AuthError,
    AuthRejected,
    ConfigError,
    ConsentTimeout,
    ExtractionError,
    MissingCode,
    RefreshFailed,
    SpotifyApiError,
    StorageError,
    TokenExchangeFailed,
    WaterMelonError,
)
from watermelon.core.logger import (
    get_logger,
    log_unmatched_song,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "AuthConfig",
    "StorageConfig",
    "PlaylistConfig",
    "LoggingConfig",
    "load_config",
    "config_from_dict",
    # Credentials
    "Credential",
    "CredentialStore",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    # Exceptions
    "WaterMelonError",
    "ConfigError",
    "StorageError",
    "ExtractionError",
    "AuthError",
    "AuthRejected",
    "MissingCode",
    "TokenExchangeFailed",
    "RefreshFailed",
    "ConsentTimeout",
    "SpotifyApiError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_unmatched_song",
    "shutdown_logging",
]
