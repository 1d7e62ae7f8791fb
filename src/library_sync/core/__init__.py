"""Settings and logging shared by the API client and the sync runner.

Nothing here imports from ``library_sync.domain`` or ``library_sync.api``.
"""

# Configuration
from .config import (
    APIConfig,
    Config,
    LoggingConfig,
    SyncConfig,
    create_default_config,
    ensure_directories,
    get_config_dir,
    get_config_path,
    get_data_dir,
    get_log_file_path,
    load_config,
)

# Output
from .output import log, setup_from_config, setup_loguru

__all__ = [
    # Config
    "APIConfig",
    "Config",
    "LoggingConfig",
    "SyncConfig",
    "create_default_config",
    "ensure_directories",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "get_log_file_path",
    "load_config",
    # Output
    "log",
    "setup_from_config",
    "setup_loguru",
]
