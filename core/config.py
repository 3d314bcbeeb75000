"""TOGGLES FILE PURPOSE
Purpose: environment configuration helpers (safe defaults).
Hot path: no (read once at startup; lightweight).
Feature flags: TOGGLES_DEBUG, TOGGLES_LOG_LEVEL, TOGGLES_STORAGE, TOGGLES_MESSAGING, TOGGLES_API_PATH.
Failure mode: safe defaults when unset; unknown backend kind => ValueError when that backend is built.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

STORAGE_KINDS = ("mem", "mongo")
MESSAGING_KINDS = ("noop", "redis")

DEFAULT_MONGODB_URL = "mongodb://127.0.0.1:27017/featuretoggles"
DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"
DEFAULT_API_PATH = "/flags"


def env_flag(name: str, default: str = "0") -> bool:
    v = (os.getenv(name) or default).strip().lower()
    return v in ("1", "true", "yes", "on")


def env_str(name: str, default: str) -> str:
    v = (os.getenv(name) or "").strip()
    return v or default


def is_debug() -> bool:
    return env_flag("TOGGLES_DEBUG", "0")


def log_level() -> str:
    if is_debug():
        return "INFO"
    return env_str("TOGGLES_LOG_LEVEL", "WARNING").upper()


def normalize_api_path(path: str) -> str:
    p = "/" + path.strip().strip("/")
    if p == "/":
        raise ValueError("TOGGLES_API_PATH: must name a path below the root")
    return p


def api_path() -> str:
    return normalize_api_path(env_str("TOGGLES_API_PATH", DEFAULT_API_PATH))


@dataclass(frozen=True)
class Settings:
    storage: str = "mem"
    mongodb_url: str = DEFAULT_MONGODB_URL
    messaging: str = "noop"
    redis_url: str = DEFAULT_REDIS_URL


def check_kind(var: str, kind: str, choices: tuple[str, ...]) -> str:
    if kind not in choices:
        raise ValueError(f"{var}: unknown kind {kind!r} (choices: {', '.join(choices)})")
    return kind


def load_settings() -> Settings:
    # kinds are validated by the factory that builds the backend, so an
    # injected backend is never blocked by a bad variable for its kind
    return Settings(
        storage=env_str("TOGGLES_STORAGE", "mem").lower(),
        mongodb_url=env_str("TOGGLES_MONGODB_URL", DEFAULT_MONGODB_URL),
        messaging=env_str("TOGGLES_MESSAGING", "noop").lower(),
        redis_url=env_str("TOGGLES_REDIS_URL", DEFAULT_REDIS_URL),
    )
