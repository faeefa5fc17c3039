"""Configuration management for ScoutFlow.

Loads configuration from environment variables and .env file.
Provides validation and sensible defaults.

Usage:
    from scoutflow.core.config import get_config, validate_config

    config = get_config()
    issues = validate_config(config)
    if issues:
        for issue in issues:
            print(f"Config issue: {issue}")
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from scoutflow.core.exceptions import ConfigurationError

# Default paths (defined once, used by both Config and load_config)
DEFAULT_DB_PATH = Path.home() / ".scoutflow" / "scoutflow.db"
DEFAULT_LOG_PATH = Path.home() / ".scoutflow" / "logs"


@dataclass
class Config:
    """Application configuration.

    Attributes:
        db_path: Path to SQLite database file
        log_path: Directory for log files
        batch_size: Max step executions pulled per processing run
        process_interval_minutes: Cadence of the step processor task
        max_delivery_attempts: Attempts per step before dead-lettering (1 = no retry)
        retry_base_minutes: First retry delay; doubles per attempt
        send_timeout_seconds: Timeout for a single channel send
        gateway_url: Messaging gateway endpoint for channel sends
        gateway_token: Bearer token for the messaging gateway
        debug: Enable debug logging
        dry_run: Log messages instead of sending them
    """

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    log_path: Path = field(default_factory=lambda: DEFAULT_LOG_PATH)

    # Step processor
    batch_size: int = 100
    process_interval_minutes: int = 5
    max_delivery_attempts: int = 1
    retry_base_minutes: int = 15

    # Channel gateway
    send_timeout_seconds: float = 10.0
    gateway_url: Optional[str] = None
    gateway_token: Optional[str] = None

    # Feature flags
    debug: bool = False
    dry_run: bool = False


def load_env_file(path: Path) -> dict[str, str]:
    """Parse .env file.

    Handles KEY=VALUE lines, comments, blank lines and quoted values.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of environment variables
    """
    env_vars: dict[str, str] = {}

    if not path.exists():
        return env_vars

    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
                value = value[1:-1]

            if key:
                env_vars[key] = value

    return env_vars


def _lookup(key: str, env_vars: dict[str, str]) -> Optional[str]:
    return os.environ.get(key) or env_vars.get(key) or None


def _get_path(key: str, default: Path, env_vars: dict[str, str]) -> Path:
    """Get path from environment, expanding ~ and resolving."""
    value = _lookup(key, env_vars)
    if value:
        return Path(value).expanduser().resolve()
    return default


def _get_bool(key: str, default: bool, env_vars: dict[str, str]) -> bool:
    value = _lookup(key, env_vars)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_int(key: str, default: int, env_vars: dict[str, str]) -> int:
    value = _lookup(key, env_vars)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from e


def _get_float(key: str, default: float, env_vars: dict[str, str]) -> float:
    value = _lookup(key, env_vars)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from e


def load_config(env_file: Optional[Path] = None) -> Config:
    """Load configuration from environment and .env file.

    Priority:
        1. Environment variables (highest)
        2. .env file
        3. Default values (lowest)

    Args:
        env_file: Path to .env file. Defaults to .env in current directory.

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If a numeric setting cannot be parsed
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"

    env_vars = load_env_file(Path(env_file))

    return Config(
        db_path=_get_path("SCOUTFLOW_DB_PATH", DEFAULT_DB_PATH, env_vars),
        log_path=_get_path("SCOUTFLOW_LOG_PATH", DEFAULT_LOG_PATH, env_vars),
        batch_size=_get_int("SCOUTFLOW_BATCH_SIZE", 100, env_vars),
        process_interval_minutes=_get_int("SCOUTFLOW_PROCESS_INTERVAL_MINUTES", 5, env_vars),
        max_delivery_attempts=_get_int("SCOUTFLOW_MAX_DELIVERY_ATTEMPTS", 1, env_vars),
        retry_base_minutes=_get_int("SCOUTFLOW_RETRY_BASE_MINUTES", 15, env_vars),
        send_timeout_seconds=_get_float("SCOUTFLOW_SEND_TIMEOUT_SECONDS", 10.0, env_vars),
        gateway_url=_lookup("MESSAGING_GATEWAY_URL", env_vars),
        gateway_token=_lookup("MESSAGING_GATEWAY_TOKEN", env_vars),
        debug=_get_bool("SCOUTFLOW_DEBUG", False, env_vars),
        dry_run=_get_bool("SCOUTFLOW_DRY_RUN", False, env_vars),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration.

    Checks:
        - Database and log directories exist or can be created
        - Processor limits are positive
        - Gateway credentials are complete

    Args:
        config: Configuration to validate

    Returns:
        List of issues (empty if valid)
    """
    issues: list[str] = []

    for label, directory in (("Database", config.db_path.parent), ("Log", config.log_path)):
        try:
            directory.mkdir(parents=True, exist_ok=True)
            if not os.access(directory, os.W_OK):
                issues.append(f"{label} directory not writable: {directory}")
        except OSError as e:
            issues.append(f"Cannot create {label.lower()} directory {directory}: {e}")

    if config.batch_size < 1:
        issues.append(f"SCOUTFLOW_BATCH_SIZE must be at least 1, got {config.batch_size}")
    if config.process_interval_minutes < 1:
        issues.append(
            "SCOUTFLOW_PROCESS_INTERVAL_MINUTES must be at least 1, "
            f"got {config.process_interval_minutes}"
        )
    if config.max_delivery_attempts < 1:
        issues.append(
            "SCOUTFLOW_MAX_DELIVERY_ATTEMPTS must be at least 1, "
            f"got {config.max_delivery_attempts}"
        )
    if config.send_timeout_seconds <= 0:
        issues.append("SCOUTFLOW_SEND_TIMEOUT_SECONDS must be positive")

    if config.gateway_token and not config.gateway_url:
        issues.append(
            "CRITICAL: MESSAGING_GATEWAY_TOKEN is set but MESSAGING_GATEWAY_URL is missing. "
            "Channel sends will fail."
        )
    if config.gateway_url and not config.gateway_url.startswith(("http://", "https://")):
        issues.append(f"CRITICAL: MESSAGING_GATEWAY_URL is not an http(s) URL: {config.gateway_url}")

    return issues


# Singleton config
_config: Optional[Config] = None


def get_config() -> Config:
    """Return cached configuration singleton.

    Loads configuration on first call, returns cached version thereafter.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset cached configuration.

    Used primarily for testing.
    """
    global _config
    _config = None
