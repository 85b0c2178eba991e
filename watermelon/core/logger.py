"""
Logging configuration for watermelon.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible formatting
    - log_full_<timestamp>.log: Complete log of all events (DEBUG and above)
    - log_errors_<timestamp>.log: Only ERROR and CRITICAL level messages
    - unmatched_songs_<timestamp>.log: Songs no Spotify search could find

File outputs are only created when a log directory is given; without
one, logging goes to the console only.

Secrets:
    Access tokens, refresh tokens and PKCE verifiers are never passed
    to a logger anywhere in the package.

Usage:
    from watermelon.core.logger import setup_logging, get_logger

    setup_logging(config.logging.directory)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Starting sync")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


LOG_FULL_FILENAME = "log_full"
LOG_ERRORS_FILENAME = "log_errors"
UNMATCHED_SONGS_FILENAME = "unmatched_songs"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Root of the package logger hierarchy
PACKAGE_LOGGER = "watermelon"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that adds colors to console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking tqdm progress bars.

    Callers may wrap the matching loop in a tqdm bar; plain stderr logging
    would tear it apart. tqdm.write() prints above any active bar.

    Attributes:
        stream: The output stream (defaults to sys.stderr).
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class UnmatchedSongHandler(logging.Handler):
    """
    Handler that captures songs without a Spotify match for the report file.

    Writes unmatched_songs_<timestamp>.log in a simple, human-readable
    format the user can work through by hand:

        [00:45] IU - Blueming (description)
        [12:03] Dynamite (chapter)

    The handler looks for specific extra fields in log records:
        - 'unmatched_song_title': The song title
        - 'unmatched_song_artist': The artist name (may be empty)
        - 'unmatched_song_offset': The timestamp label (may be empty)
        - 'unmatched_song_source': Where the song was found

    Only records containing these fields are written to the report.

    Attributes:
        report_path: Path to the report file.
        report_file: Open file handle, set by open().

    Usage:
        log_unmatched_song(logger, "Blueming", "IU", "00:45", "description")
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """
        Open the report file for writing.

        Called by setup_logging() after the handler is created.
        File is opened in write mode (overwrites existing content).
        """
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "unmatched_song_title"):
            return

        if self.report_file is None:
            return

        try:
            title = getattr(record, "unmatched_song_title", "Unknown")
            artist = getattr(record, "unmatched_song_artist", "")
            offset = getattr(record, "unmatched_song_offset", "")
            source = getattr(record, "unmatched_song_source", "")

            line = f"{artist} - {title}" if artist else title
            if offset:
                line = f"[{offset}] {line}"
            if source:
                line = f"{line} ({source})"

            self.report_file.write(f"{line}\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """
        Close the report file handle.

        Called automatically when logging is shut down.
        Safe to call multiple times.
        """
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path | None = None, verbose: bool = False) -> None:
    """
    Configure the logging system for the package.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory where log files will be created, or None for
                 console-only logging. Created if it doesn't exist.
        verbose: Show DEBUG messages on the console (files always get DEBUG).

    Behavior:
        1. Configure the 'watermelon' logger level to DEBUG
        2. Remove handlers left from a previous call
        3. Add the console handler (TqdmLoggingHandler), INFO or DEBUG
        4. If log_dir is given:
           - Full log file handler (DEBUG)
           - Error-only log file handler (ERROR+ via ErrorOnlyFilter)
           - Unmatched songs report handler

    Only the package logger is configured, so embedding applications
    keep control of the root logger.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    package_logger.propagate = False

    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    package_logger.addHandler(console_handler)

    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    full_handler = logging.FileHandler(
        log_dir / f"{LOG_FULL_FILENAME}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    package_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(
        log_dir / f"{LOG_ERRORS_FILENAME}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    package_logger.addHandler(error_handler)

    unmatched_handler = UnmatchedSongHandler(log_dir / f"{UNMATCHED_SONGS_FILENAME}_{timestamp}.log")
    unmatched_handler.open()
    package_logger.addHandler(unmatched_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.
              This creates a hierarchy like 'watermelon.spotify.auth'.

    Note:
        Loggers obtained before setup_logging() is called have no handlers
        of their own; records reach whatever the root logger does.
    """
    return logging.getLogger(name)


def format_matched_message(artist: str, title: str, uri: str) -> str:
    """Format a 'Matched' message with colors."""
    label = f"{artist} - {title}" if artist else title
    return (
        f"{Colors.GREEN}Matched{Colors.RESET}: "
        f"{label} -> "
        f"{Colors.CYAN}{uri}{Colors.RESET}"
    )


def format_no_match_message(artist: str, title: str, queries_tried: int) -> str:
    """Format a 'No match' warning message with colors."""
    label = f"{artist} - {title}" if artist else title
    return (
        f"{Colors.YELLOW}No match{Colors.RESET}: "
        f"{label} "
        f"({queries_tried} queries tried)"
    )


def log_unmatched_song(
    logger: logging.Logger,
    title: str,
    artist: str,
    offset_label: str,
    source: str,
    queries_tried: int = 0
) -> None:
    """
    Log a song that no search query could match.

    Logs a WARNING with the extra fields UnmatchedSongHandler picks up
    to write the unmatched_songs report.

    Example:
        log_unmatched_song(logger, "Blueming", "IU", "00:45", "description", 3)
    """
    logger.warning(
        format_no_match_message(artist, title, queries_tried),
        extra={
            "unmatched_song_title": title,
            "unmatched_song_artist": artist,
            "unmatched_song_offset": offset_label,
            "unmatched_song_source": source,
        }
    )


def shutdown_logging() -> None:
    """
    Flush, close and detach all handlers of the package logger.

    Records propagate to the root logger again afterwards, as before
    setup_logging(). Typically called in a finally block or atexit handler.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in package_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        package_logger.removeHandler(handler)

    package_logger.propagate = True
