"""
Configuration management for library-sync
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger


@dataclass
class SyncConfig:
    """Configuration for the sync runner."""

    auto_sync: bool = True
    auto_sync_interval: int = 3600  # Seconds between recurring auto-syncs
    fulltext_enabled: bool = True
    max_attempts: int = 3  # Data/file/full-text passes per session
    max_file_attempts: int = 3  # In-place file sync repeats per library
    concurrency: int = 4  # Shared outbound request limit
    stop_on_error: bool = False

    def validate(self) -> None:
        """Validate sync configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        for name in ("auto_sync_interval", "max_attempts", "max_file_attempts", "concurrency"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class APIConfig:
    """Configuration for the remote API."""

    base_url: str = "https://api.zotero.org/"
    api_version: int = 3
    timeout: float = 30.0
    api_key: Optional[str] = None


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/library-sync/library-sync.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of backup files to keep
    console_output: bool = False  # Also output to console (for debugging)


@dataclass
class Config:
    """Main configuration object."""

    sync: SyncConfig = field(default_factory=SyncConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "library-sync"
    return Path.home() / ".config" / "library-sync"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the current working directory first, then
    falls back to XDG_CONFIG_HOME/library-sync (or ~/.config/library-sync).
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config
    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "library-sync"
    return Path.home() / ".local" / "share" / "library-sync"


def get_log_file_path(config: Config) -> Path:
    """Get the log file path, honouring a custom [logging] log_file."""
    if config.logging.log_file:
        return Path(config.logging.log_file)
    return get_data_dir() / "library-sync.log"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# library-sync configuration

[sync]
# Sync automatically in the background
auto_sync = true

# Seconds between recurring auto-syncs
auto_sync_interval = 3600

# Sync full-text index content
fulltext_enabled = true

# Data/file/full-text passes allowed per session before giving up
max_attempts = 3

# In-place file sync repeats allowed per library
max_file_attempts = 3

# Maximum concurrent requests to the API
concurrency = 4

# Stop the whole session at the first library error
stop_on_error = false

[api]
# API endpoint
base_url = "https://api.zotero.org/"
api_version = 3

# Request timeout in seconds
timeout = 30.0

# API key (prefer LIBRARY_SYNC_API_KEY in ~/.config/library-sync/.env)
# api_key = "your-api-key-here"

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/library-sync/library-sync.log)
# log_file = "/path/to/custom/library-sync.log"

# Maximum log file size in MB before rotation
max_file_size_mb = 10

# Number of backup log files to keep
backup_count = 5

# Also output logs to console (useful for debugging)
console_output = false
""".strip()


def _apply_env_overrides(config: Config) -> Config:
    api_key = os.environ.get("LIBRARY_SYNC_API_KEY")
    api_url = os.environ.get("LIBRARY_SYNC_API_URL")

    if api_key:
        config.api.api_key = api_key
    if api_url:
        config.api.base_url = api_url
    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - LIBRARY_SYNC_API_KEY
    - LIBRARY_SYNC_API_URL
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
        return _apply_env_overrides(Config())

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Error loading configuration from {config_path}: {e}")
        logger.warning("Using default configuration.")
        return _apply_env_overrides(Config())

    config = Config()

    if "sync" in toml_data:
        sync_data = toml_data["sync"]
        config.sync = SyncConfig(
            auto_sync=sync_data.get("auto_sync", config.sync.auto_sync),
            auto_sync_interval=sync_data.get(
                "auto_sync_interval", config.sync.auto_sync_interval
            ),
            fulltext_enabled=sync_data.get(
                "fulltext_enabled", config.sync.fulltext_enabled
            ),
            max_attempts=sync_data.get("max_attempts", config.sync.max_attempts),
            max_file_attempts=sync_data.get(
                "max_file_attempts", config.sync.max_file_attempts
            ),
            concurrency=sync_data.get("concurrency", config.sync.concurrency),
            stop_on_error=sync_data.get("stop_on_error", config.sync.stop_on_error),
        )
        try:
            config.sync.validate()
        except ValueError as e:
            logger.warning(f"Invalid sync configuration: {e}")
            logger.warning("Using default sync configuration.")
            config.sync = SyncConfig()

    if "api" in toml_data:
        api_data = toml_data["api"]
        config.api = APIConfig(
            base_url=api_data.get("base_url", config.api.base_url),
            api_version=api_data.get("api_version", config.api.api_version),
            timeout=float(api_data.get("timeout", config.api.timeout)),
            api_key=api_data.get("api_key"),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get("backup_count", config.logging.backup_count),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return _apply_env_overrides(config)


def ensure_directories() -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
