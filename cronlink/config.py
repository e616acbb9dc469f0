"""
Runtime settings, logging setup and value validators shared by the loader.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cronlink.errors import ConfigError

DEFAULT_HOME = "~/.cronlink"
DEFAULT_RETRY_DELAY_SECONDS = 5.0
DEFAULT_HISTORY_SIZE = 10
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 10.0
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    home: Path
    suppress_logs: bool = False
    retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS
    history_size: int = DEFAULT_HISTORY_SIZE
    webhook_timeout: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS
    timezone: Optional[ZoneInfo] = None

    @staticmethod
    def from_env(**overrides: Any) -> "Settings":
        home = Path(os.environ.get("CRONLINK_HOME") or DEFAULT_HOME).expanduser()
        suppress = os.environ.get("CRONLINK_SUPPRESS_LOGS", "").strip().lower() in TRUTHY
        settings = Settings(home=home, suppress_logs=suppress)
        explicit = {key: value for key, value in overrides.items() if value is not None}
        if "home" in explicit:
            explicit["home"] = Path(explicit["home"]).expanduser()
        return replace(settings, **explicit)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger("cronlink")
    logger.setLevel(level.upper())
    if logger.handlers:
        return logger
    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger


def parse_timezone(name: Any, field_path: str) -> ZoneInfo:
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"Error: {field_path} must be a timezone string.")
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f'Error: Invalid timezone "{name}" at {field_path}.') from exc


def ensure_bool(value: Any, field_path: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"Error: {field_path} must be true or false.")
    return value


def ensure_int(value: Any, field_path: str, default: int, minimum: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Error: {field_path} must be an integer.")
    if value < minimum:
        raise ConfigError(f"Error: {field_path} must be >= {minimum}.")
    return value


def ensure_str(value: Any, field_path: str, default: str = "") -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"Error: {field_path} must be a string.")
    return value.strip()


def ensure_str_list(value: Any, field_path: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"Error: {field_path} must be a list of strings.")
    out: List[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"Error: {field_path}[{idx}] must be a non-empty string.")
        out.append(item.strip())
    return out


def ensure_str_map(value: Any, field_path: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Error: {field_path} must be a mapping.")
    out: Dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Error: keys of {field_path} must be strings.")
        if isinstance(item, (dict, list)) or item is None:
            raise ConfigError(f"Error: {field_path}.{key} must be a scalar value.")
        out[key] = str(item).lower() if isinstance(item, bool) else str(item)
    return out


def ensure_known_keys(raw: Dict[str, Any], allowed: set, field_path: str) -> None:
    unknown = set(raw.keys()) - allowed
    if unknown:
        raise ConfigError(f"Error: Unknown keys in {field_path}: {sorted(unknown)}.")
