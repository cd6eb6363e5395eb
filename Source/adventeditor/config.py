from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .utils import read_env_file

ENV_FILE = os.path.join(".env", "env_data.txt")

REST_PREFIX = "/rest/v1"
DEFAULT_TABLE = "adventcalendar"
DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.5

SAVE_MODE_FALLBACK = "fallback"
SAVE_MODE_UPSERT = "upsert"
SAVE_MODES = (SAVE_MODE_FALLBACK, SAVE_MODE_UPSERT)

# Column the backend filters on and enforces uniqueness for
KEY_COLUMN = "text_number"

DEFAULT_HEADERS = {
    "accept": "application/json",
    "content-type": "application/json",
    "user-agent": "adventeditor/0.1",
}


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    base_url: str
    api_key: str
    table: str = DEFAULT_TABLE
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    save_mode: str = SAVE_MODE_FALLBACK

    @property
    def collection_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{REST_PREFIX}/{self.table}"

    def __repr__(self) -> str:
        # Keep the credential out of logs and tracebacks
        return (
            f"Settings(base_url={self.base_url!r}, table={self.table!r}, "
            f"timeout={self.timeout!r}, max_retries={self.max_retries!r}, "
            f"save_mode={self.save_mode!r})"
        )


def _lookup(name: str, env: Mapping[str, str], file_values: Mapping[str, str]) -> Optional[str]:
    value = env.get(name)
    if value is None or not value.strip():
        value = file_values.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_settings(env: Optional[Mapping[str, str]] = None, env_path: str = ENV_FILE) -> Settings:
    """Build settings from environment variables, then ``.env/env_data.txt``.

    Raises ConfigError when the backend URL or credential is missing or a
    numeric option cannot be parsed.
    """
    env = os.environ if env is None else env
    file_values = read_env_file(env_path)

    base_url = _lookup("ADVENTEDITOR_BASE_URL", env, file_values)
    api_key = _lookup("ADVENTEDITOR_API_KEY", env, file_values)
    missing = [
        name
        for name, value in (("ADVENTEDITOR_BASE_URL", base_url), ("ADVENTEDITOR_API_KEY", api_key))
        if not value
    ]
    if missing:
        raise ConfigError(
            "Missing configuration: " + ", ".join(missing)
            + f". Set the environment variable(s) or add 'NAME = value' lines to {env_path}"
        )
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"ADVENTEDITOR_BASE_URL must be an http(s) URL, got {base_url!r}")

    table = _lookup("ADVENTEDITOR_TABLE", env, file_values) or DEFAULT_TABLE

    raw_timeout = _lookup("ADVENTEDITOR_TIMEOUT", env, file_values)
    try:
        timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
    except ValueError:
        raise ConfigError(f"ADVENTEDITOR_TIMEOUT must be a number, got {raw_timeout!r}")
    if timeout <= 0:
        raise ConfigError("ADVENTEDITOR_TIMEOUT must be positive")

    raw_retries = _lookup("ADVENTEDITOR_MAX_RETRIES", env, file_values)
    try:
        max_retries = int(raw_retries) if raw_retries else DEFAULT_MAX_RETRIES
    except ValueError:
        raise ConfigError(f"ADVENTEDITOR_MAX_RETRIES must be an integer, got {raw_retries!r}")
    if max_retries < 1:
        raise ConfigError("ADVENTEDITOR_MAX_RETRIES must be at least 1")

    save_mode = (_lookup("ADVENTEDITOR_SAVE_MODE", env, file_values) or SAVE_MODE_FALLBACK).lower()
    if save_mode not in SAVE_MODES:
        raise ConfigError(
            f"ADVENTEDITOR_SAVE_MODE must be one of {', '.join(SAVE_MODES)}, got {save_mode!r}"
        )

    return Settings(
        base_url=base_url,
        api_key=api_key,
        table=table,
        timeout=timeout,
        max_retries=max_retries,
        save_mode=save_mode,
    )
