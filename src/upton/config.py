from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import UptonConfigError
from .retry import RetryPolicy
from .version import USER_AGENT

DEFAULT_TIMEOUT = 30.0


def default_cache_location() -> Path:
    return Path(tempfile.gettempdir()) / "upton"


class DownloaderSettings(BaseModel):
    cache: bool = Field(default=True)
    cache_location: Path = Field(default_factory=default_cache_location)
    verbose: bool = Field(default=False)
    readable_filenames: bool = Field(default=False)
    user_agent: str = Field(default=USER_AGENT)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    max_retries: Optional[int] = Field(default=None, ge=0)
    retry_delay: float = Field(default=0.0, ge=0)
    retry_backoff: float = Field(default=1.0, ge=1)
    annotated_on_miss: bool = Field(default=False)

    model_config = {
        "frozen": True,
    }

    @field_validator("cache_location", mode="after")
    @classmethod
    def _absolute(cls, value: Path) -> Path:
        # abspath, not resolve: symlinks in the configured location are kept
        return Path(os.path.abspath(value.expanduser()))

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=None if self.max_retries is None else self.max_retries + 1,
            delay=self.retry_delay,
            backoff=self.retry_backoff,
        )


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_int(key: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _option_or(options: dict[str, Any], name: str, fallback: Callable[[], Any]) -> Any:
    value = options.get(name)
    return fallback() if value is None else value


def _option_or_env_bool(options: dict[str, Any], name: str, default: bool) -> bool:
    if options.get(name) is not None:
        return bool(options[name])
    return _env_bool(f"UPTON_{name.upper()}", default)


_DOTENV_LOADED = False


def _load_dotenv_once() -> None:
    global _DOTENV_LOADED
    if not _DOTENV_LOADED:
        load_dotenv()
        _DOTENV_LOADED = True


def load_settings(options: dict[str, Any] | None = None) -> DownloaderSettings:
    """Resolve downloader settings.

    Explicit options win, then ``UPTON_*`` environment variables (a ``.env``
    file is honoured), then the defaults.
    """
    _load_dotenv_once()
    options = dict(options or {})

    unknown = set(options) - set(DownloaderSettings.model_fields)
    if unknown:
        raise UptonConfigError(f"Unknown downloader options: {', '.join(sorted(unknown))}")

    try:
        data: dict[str, Any] = {
            "cache": _option_or_env_bool(options, "cache", True),
            "verbose": _option_or_env_bool(options, "verbose", False),
            "readable_filenames": _option_or_env_bool(options, "readable_filenames", False),
            "annotated_on_miss": _option_or_env_bool(options, "annotated_on_miss", False),
            "user_agent": _option_or(options, "user_agent", lambda: os.getenv("UPTON_USER_AGENT", USER_AGENT)),
            "timeout": _option_or(options, "timeout", lambda: _env_float("UPTON_TIMEOUT", DEFAULT_TIMEOUT)),
            "max_retries": _option_or(options, "max_retries", lambda: _env_int("UPTON_MAX_RETRIES", None)),
            "retry_delay": _option_or(options, "retry_delay", lambda: _env_float("UPTON_RETRY_DELAY", 0.0)),
            "retry_backoff": _option_or(options, "retry_backoff", lambda: 1.0),
        }
    except ValueError as exc:
        raise UptonConfigError(f"Invalid environment configuration: {exc}") from exc

    cache_location = _option_or(options, "cache_location", lambda: os.getenv("UPTON_CACHE_LOCATION"))
    if cache_location:
        data["cache_location"] = Path(cache_location)

    try:
        return DownloaderSettings(**data)
    except ValidationError as exc:
        raise UptonConfigError(f"Invalid configuration: {exc}") from exc
