"""
Logging setup for SignalSynth.

config/logging.yaml (a dictConfig document) is used when present;
otherwise a single stderr handler is installed. Set LOG_FORMAT=json for
one JSON object per line.
"""

import logging
import logging.config
import os
import sys
from pathlib import Path
from typing import Optional

import yaml

ROOT_LOGGER = "signalsynth"

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
JSON_FORMAT = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'


def find_logging_config() -> Optional[Path]:
    """config/logging.yaml under the project root (the directory holding pyproject.toml)."""
    for parent in Path(__file__).resolve().parents:
        if (parent / "pyproject.toml").exists():
            candidate = parent / "config" / "logging.yaml"
            return candidate if candidate.exists() else None
    return None


def setup_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure the `signalsynth` logger tree.

    Args:
        config_path: dictConfig YAML file; looked up from the project root when omitted
        log_level: Level for `signalsynth.*`; defaults to $LOG_LEVEL or INFO
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    path = Path(config_path) if config_path else find_logging_config()

    if path is not None and path.exists():
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
        for handler in config.get("handlers", {}).values():
            if "filename" in handler:
                Path(handler["filename"]).parent.mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(config)
    else:
        fmt = JSON_FORMAT if os.getenv("LOG_FORMAT", "text") == "json" else TEXT_FORMAT
        logging.basicConfig(
            level=level,
            format=fmt,
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=[logging.StreamHandler(sys.stderr)],
        )

    logging.getLogger(ROOT_LOGGER).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Logger under the `signalsynth.` namespace."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


class LoggerMixin:
    """Adds `self.logger`, named after the concrete class."""

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(type(self).__name__)
        return self._logger
