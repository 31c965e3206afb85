from .unified_config_loader import (
    AppConfig,
    CcbellConfig,
    ConfigError,
    LoggingConfig,
    MonitorConfig,
    PlaybackConfig,
    UnifiedConfigLoader,
    parse_config,
)

__all__ = [
    "AppConfig",
    "CcbellConfig",
    "ConfigError",
    "LoggingConfig",
    "MonitorConfig",
    "PlaybackConfig",
    "UnifiedConfigLoader",
    "parse_config",
]
