"""Logging setup shared by the API entry point and scripts."""

import logging
import logging.config
from typing import Any, Dict

FORMATS = {
    "simple": "%(asctime)s - %(levelname)s - %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
}

# Third-party loggers that only need to report errors
ERROR_ONLY_MODULES = [
    "asyncio",
    "httpx",
    "httpcore",
]


def build_logging_config(level: str = "INFO", log_format: str = "simple") -> Dict[str, Any]:
    level = level.upper()
    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": FORMATS.get(log_format, FORMATS["simple"]),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {},
    }
    for module in ERROR_ONLY_MODULES:
        config["loggers"][module] = {
            "level": "ERROR",
            "handlers": ["console"],
            "propagate": False,
        }
    return config


def setup_logging(level: str = "INFO", log_format: str = "simple") -> None:
    """Configure the root logger for console output."""
    logging.config.dictConfig(build_logging_config(level, log_format))
    logging.getLogger(__name__).debug("Logging configured at %s", level.upper())
