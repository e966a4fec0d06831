"""
Unified logging system for PresenceHub.

Every module logs through the standard library with
``logger = logging.getLogger(__name__)``; this package only decides where
records go and how they look.

Usage:
    from PresenceHub.core.logging import auto_configure

    auto_configure()          # picks a preset from PRESENCEHUB_ENV
    auto_configure("testing")

Custom setup:
    from PresenceHub.core.logging import configure_logging, LogConfig

    configure_logging(LogConfig(level="DEBUG", file_output=False))
"""

import json
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional


@dataclass
class LogConfig:
    """
    Configuration for the logging system.

    Attributes:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files
        console_output: Whether to output to console
        file_output: Whether to output to rotating files
        json_output: Emit console records as JSON lines instead of text
        max_bytes: Maximum size of a log file before rotation (bytes)
        backup_count: Number of rotated files to keep
        format_string: Custom format string for text records
        date_format: Date format for text records
        component_levels: Per-logger level overrides
    """
    level: str = "INFO"
    log_dir: str = "./logs"
    console_output: bool = True
    file_output: bool = True
    json_output: bool = False
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    format_string: Optional[str] = None
    date_format: str = "%Y-%m-%d %H:%M:%S"
    component_levels: Dict[str, str] = field(default_factory=dict)


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d - %(funcName)s] - %(message)s"
)


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name on ANSI terminals."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and sys.platform != 'win32'

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.COLORS.get(record.levelname)
        if self.use_colors and color:
            text = text.replace(record.levelname, f"{color}{record.levelname}{self.RESET}", 1)
        return text


class JsonFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno,
        }
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class LoggingManager:
    """Owns the handlers installed on the root logger."""

    def __init__(self):
        self._config: Optional[LogConfig] = None
        self._handlers: List[logging.Handler] = []

    @property
    def config(self) -> Optional[LogConfig]:
        return self._config

    def configure(self, config: LogConfig) -> None:
        """
        Replace the root logger handlers according to ``config``.

        Args:
            config: Logging configuration
        """
        self._config = config
        level = getattr(logging, config.level.upper())

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

        if config.console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            if config.json_output:
                console_handler.setFormatter(JsonFormatter())
            else:
                console_handler.setFormatter(
                    ColoredFormatter(config.format_string or DEFAULT_FORMAT, config.date_format)
                )
            self._install(root_logger, console_handler)

        if config.file_output:
            Path(config.log_dir).mkdir(parents=True, exist_ok=True)
            formatter = logging.Formatter(config.format_string or DETAILED_FORMAT, config.date_format)

            for filename, handler_level in (("presencehub.log", level),
                                            ("presencehub_errors.log", logging.ERROR)):
                file_handler = logging.handlers.RotatingFileHandler(
                    os.path.join(config.log_dir, filename),
                    maxBytes=config.max_bytes,
                    backupCount=config.backup_count,
                    encoding='utf-8'
                )
                file_handler.setLevel(handler_level)
                file_handler.setFormatter(formatter)
                self._install(root_logger, file_handler)

        for component, component_level in config.component_levels.items():
            logging.getLogger(component).setLevel(getattr(logging, component_level.upper()))

        logging.getLogger(__name__).debug("Logging configured with level %s", config.level)

    def _install(self, root_logger: logging.Logger, handler: logging.Handler) -> None:
        root_logger.addHandler(handler)
        self._handlers.append(handler)


_logging_manager = LoggingManager()


def configure_logging(config: LogConfig) -> None:
    """Configure the logging system."""
    _logging_manager.configure(config)


def get_logging_manager() -> LoggingManager:
    """Get the global logging manager instance."""
    return _logging_manager


PRESETS: Dict[str, LogConfig] = {
    "development": LogConfig(
        level="DEBUG",
        log_dir="./logs/dev",
        max_bytes=5 * 1024 * 1024,
        backup_count=3,
        format_string=DETAILED_FORMAT,
        component_levels={"websockets": "WARNING", "uvicorn.access": "WARNING"},
    ),
    "production": LogConfig(
        level="INFO",
        log_dir="./logs/prod",
        console_output=True,
        json_output=True,
        max_bytes=50 * 1024 * 1024,
        backup_count=10,
        format_string=DETAILED_FORMAT,
        component_levels={"websockets": "ERROR", "uvicorn.access": "WARNING"},
    ),
    "testing": LogConfig(
        level="DEBUG",
        log_dir="./logs/test",
        file_output=False,
        format_string="%(levelname)s - %(name)s - %(message)s",
        component_levels={"websockets": "ERROR"},
    ),
}
PRESETS["dev"] = PRESETS["development"]
PRESETS["prod"] = PRESETS["production"]
PRESETS["test"] = PRESETS["testing"]


def auto_configure(env: Optional[str] = None) -> LogConfig:
    """
    Configure logging from a named preset.

    Args:
        env: development, production or testing. Defaults to PRESENCEHUB_ENV.

    Returns:
        The LogConfig that was applied
    """
    if env is None:
        env = os.environ.get("PRESENCEHUB_ENV", "development")
    config = PRESETS.get(env.lower(), PRESETS["development"])
    configure_logging(config)
    logging.getLogger(__name__).info("Logging auto-configured for environment: %s", env)
    return config


__all__ = [
    'LogConfig',
    'LoggingManager',
    'ColoredFormatter',
    'JsonFormatter',
    'DEFAULT_FORMAT',
    'DETAILED_FORMAT',
    'PRESETS',
    'configure_logging',
    'get_logging_manager',
    'auto_configure',
]
