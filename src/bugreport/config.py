"""Configuration loading from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_REPORT_LINKS_MAX = 8


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment.

    Command-line options take precedence over these values.
    """

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Default input files when not given on the command line
    config_files: tuple[Path, ...] = field(default_factory=tuple)
    issues_files: tuple[Path, ...] = field(default_factory=tuple)

    # GitHub REST API configuration
    github_token: str = ""  # Personal access token; anonymous access when empty
    github_api_url: str = ""  # Custom API URL for GitHub Enterprise (empty = github.com)

    # Maximum number of per-repository count links shown for one query
    report_links_max: int = DEFAULT_REPORT_LINKS_MAX

    @property
    def github_configured(self) -> bool:
        """Check if a GitHub token is configured."""
        return bool(self.github_token)


def _parse_positive_int(value: str, name: str, default: int) -> int:
    """Parse a string as a positive integer with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive integer, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = int(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %d is not positive, using default %d",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid integer, using default %d",
            name,
            value,
            default,
        )
        return default


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Logs a warning and returns the default if the value is invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid BUGREPORT_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _parse_paths(value: str) -> tuple[Path, ...]:
    # Comma-separated list, blanks ignored
    return tuple(Path(item.strip()) for item in value.split(",") if item.strip())


def load_config(env_file: Path | None = None) -> Config:
    """Load configuration from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values.

    Values are validated and defaults are used for invalid inputs:
    - BUGREPORT_REPORT_LINKS_MAX must be a positive integer
    - BUGREPORT_LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    log_level = _validate_log_level(os.getenv("BUGREPORT_LOG_LEVEL", "INFO"))
    log_json = _parse_bool(os.getenv("BUGREPORT_LOG_JSON", ""))

    report_links_max = _parse_positive_int(
        os.getenv("BUGREPORT_REPORT_LINKS_MAX", str(DEFAULT_REPORT_LINKS_MAX)),
        "BUGREPORT_REPORT_LINKS_MAX",
        DEFAULT_REPORT_LINKS_MAX,
    )

    return Config(
        log_level=log_level,
        log_json=log_json,
        config_files=_parse_paths(os.getenv("BUGREPORT_CONFIG_FILES", "")),
        issues_files=_parse_paths(os.getenv("BUGREPORT_ISSUES_FILES", "")),
        github_token=os.getenv("GITHUB_TOKEN", ""),
        github_api_url=os.getenv("GITHUB_API_URL", ""),
        report_links_max=report_links_max,
    )
