#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
hotswap/config.py

Runtime settings and logger setup.
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ConfigError(Exception):
    """Configuration file missing, unreadable or malformed."""
    pass


class RobustFileHandler(logging.FileHandler):
    """FileHandler that gracefully handles flush errors on Windows"""

    def flush(self):
        """Flush the stream, ignoring EINVAL from stale Windows handles"""
        try:
            super().flush()
        except OSError as e:
            if e.errno != 22:  # EINVAL
                raise


def configure_logger(logger,
                     log_file=None,
                     log_format=None,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, (str, Path)):
        handler = RobustFileHandler(
            str(log_file),
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)  # Default to stderr if None

    handler.setFormatter(logging.Formatter(log_format or DEFAULT_LOG_FORMAT))

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


@dataclass
class RuntimeConfig:
    """
    Settings for the plugin runtime.

    Attributes:
        fatal_grace_period: Seconds between a fatal plugin crash and exit
        hot_reload: Watch plugin sources and reload on change
        hot_reload_delay: Debounce delay for hot reload in seconds
        log_level: Level name for the 'hotswap' and 'plugin' loggers
        log_file: Log file path (None for stderr)
        log_format: logging.Formatter format string
    """

    fatal_grace_period: float = 5.0
    hot_reload: bool = False
    hot_reload_delay: float = 0.5
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = DEFAULT_LOG_FORMAT

    def __post_init__(self):
        if self.fatal_grace_period < 0:
            raise ConfigError("fatal_grace_period must not be negative")
        if self.hot_reload_delay < 0:
            raise ConfigError("hot_reload_delay must not be negative")
        if not isinstance(logging.getLevelName(str(self.log_level).upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")

    @property
    def level(self) -> int:
        return logging.getLevelName(str(self.log_level).upper())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeConfig":
        """Build from a mapping, ignoring keys this class doesn't know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    def apply_logging(self) -> None:
        """Attach handlers to the runtime and plugin loggers."""
        for name in ("hotswap", "plugin"):
            configure_logger(name, self.log_file, self.log_format, self.level)


def load_config(path: Union[str, Path]) -> RuntimeConfig:
    """Load runtime settings from a JSON or YAML file

    Args:
        path: Config file path; .yaml/.yml is parsed as YAML, anything
            else as JSON

    Returns:
        RuntimeConfig

    Raises:
        ConfigError: File can't be read or parsed
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as fp:
            if path.suffix in ('.yaml', '.yml'):
                conf = yaml.safe_load(fp)
            else:
                conf = json.load(fp)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Malformed config file {path}: {e}") from e

    if conf is None:
        conf = {}
    if not isinstance(conf, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    return RuntimeConfig.from_dict(conf)
