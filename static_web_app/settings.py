from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv as loadenv


BASE_DIR = Path(__file__).resolve().parent

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_STATIC_DIR = BASE_DIR / "public"
DEFAULT_INDEX_FILE = "index.html"
DEFAULT_ABOUT_FILE = "about.html"
DEFAULT_LOG_LEVEL = "INFO"


class ConfigError(ValueError):
    """Raised when an environment override cannot be used."""


@dataclass(frozen=True)
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    static_dir: Path = DEFAULT_STATIC_DIR
    index_file: str = DEFAULT_INDEX_FILE
    about_file: str = DEFAULT_ABOUT_FILE
    log_level: str = DEFAULT_LOG_LEVEL


def _get(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_port(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(f"PORT must be an integer, got {raw!r}") from None
    if not 1 <= port <= 65535:
        raise ConfigError(f"PORT must be between 1 and 65535, got {port}")
    return port


def _parse_log_level(raw: Optional[str]) -> str:
    if raw is None:
        return DEFAULT_LOG_LEVEL
    level = raw.upper()
    # getLevelName maps known names to their numeric level and anything else to a string.
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"LOG_LEVEL {raw!r} is not a logging level")
    return level


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = None,
) -> Settings:
    """Resolve the process settings from the environment.

    When ``environ`` is omitted a ``.env`` file is loaded first and
    ``os.environ`` is read. The file is ``dotenv_path`` when given, otherwise
    the nearest ``.env`` at or above the working directory. Blank values are
    treated as unset.
    """
    if environ is None:
        loadenv(dotenv_path or find_dotenv(usecwd=True))
        environ = os.environ

    static_raw = _get(environ, "STATIC_DIR")
    static_dir = (
        Path(static_raw).expanduser().resolve() if static_raw else DEFAULT_STATIC_DIR
    )

    return Settings(
        host=_get(environ, "HOST") or DEFAULT_HOST,
        port=_parse_port(_get(environ, "PORT")),
        static_dir=static_dir,
        index_file=_get(environ, "INDEX_FILE") or DEFAULT_INDEX_FILE,
        about_file=_get(environ, "ABOUT_FILE") or DEFAULT_ABOUT_FILE,
        log_level=_parse_log_level(_get(environ, "LOG_LEVEL")),
    )
