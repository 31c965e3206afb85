"""
Logging setup for ccbell

Rotating main log, separate error log, optional console output.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from ccbell.config import LoggingConfig

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(config: Optional[LoggingConfig] = None, debug: bool = False) -> logging.Logger:
    """Configure the root logger from LoggingConfig and return the ccbell logger."""
    config = config or LoggingConfig()
    level = logging.DEBUG if debug else getattr(logging, str(config.level).upper(), logging.INFO)
    formatter = logging.Formatter(config.format, DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if config.dir:
        log_dir = Path(config.dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / config.file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / config.error_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root_logger.addHandler(error_handler)

    if config.console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # asyncio debug chatter is not useful at INFO
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger("ccbell")
    logger.debug(f"logging configured: level={logging.getLevelName(level)}, dir={config.dir}")
    return logger
