"""
Configuration objects and helpers for the API client.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

__all__ = [
    "API_VERSION",
    "DEFAULT_API_URL",
    "ClientConfig",
    "ConfigError",
    "layered_environment",
    "load_client_config",
    "read_dotenv",
]

API_VERSION = "2015-10-12"
DEFAULT_API_URL = "https://api.stripe.com/v1"

_SECRET_KEY_PREFIXES = ("sk_", "rk_")

_PARAMETER_TO_ENV_KEY = {
    "publishable_key": "STRIPE_PUBLISHABLE_KEY",
    "api_url": "STRIPE_API_URL",
    "timeout_seconds": "STRIPE_TIMEOUT_SECONDS",
    "stripe_account": "STRIPE_ACCOUNT",
    "max_workers": "STRIPE_MAX_WORKERS",
}


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _collect_parameter_overrides(explicit: Mapping[str, Any]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for key, value in explicit.items():
        if value is None:
            continue
        try:
            env_key = _PARAMETER_TO_ENV_KEY[key]
        except KeyError as exc:
            raise TypeError(f"Unknown client parameter '{key}'") from exc
        overrides[env_key] = _stringify(value)
    return overrides


def read_dotenv(path: str) -> Dict[str, str]:
    """
    Read ``NAME=VALUE`` assignments from a dotenv file.

    A missing file reads as empty. Comments and lines without ``=`` are
    ignored, a leading ``export`` is dropped, and one pair of matching quotes
    around a value is removed.
    """
    try:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return {}

    assignments: Dict[str, str] = {}
    for line in map(str.strip, lines):
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        name, sep, value = line.partition("=")
        name, value = name.strip(), value.strip()
        if not sep or not name or name.startswith("#"):
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        assignments[name] = value
    return assignments


def layered_environment(
    *,
    env_file: Optional[str] = ".env",
    base: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Resolve the ``STRIPE_*`` variables a client is configured from.

    Precedence, lowest first: ``env_file`` entries, then ``base`` (the process
    environment unless given), then ``overrides``.
    """
    variables = read_dotenv(env_file) if env_file is not None else {}
    variables.update(os.environ if base is None else base)
    variables.update(overrides or {})
    return variables


class ConfigError(Exception):
    """Raised when the supplied configuration is invalid."""


def _normalize_publishable_key(raw_key: str) -> str:
    if not isinstance(raw_key, str):
        raise ConfigError("STRIPE_PUBLISHABLE_KEY must be a string")
    key = raw_key.strip()
    if not key:
        raise ConfigError("STRIPE_PUBLISHABLE_KEY must not be empty")
    if key.startswith(_SECRET_KEY_PREFIXES):
        raise ConfigError(
            "STRIPE_PUBLISHABLE_KEY looks like a secret key; use a publishable key (pk_...) instead"
        )
    if not key.startswith("pk_"):
        logging.warning("Publishable key does not start with 'pk_'; requests may be rejected")
    return key


def _normalize_api_url(raw_url: str) -> str:
    if not isinstance(raw_url, str):
        raise ConfigError("STRIPE_API_URL must be a string")
    value = raw_url.strip().rstrip("/")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"STRIPE_API_URL must be an absolute http(s) URL, got '{raw_url}'")
    return value


def _positive_number(raw: Any, field_name: str, cast) -> Any:
    try:
        value = cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be a number, got '{raw}'") from exc
    if value <= 0:
        raise ConfigError(f"{field_name} must be greater than zero")
    return value


@dataclass(frozen=True)
class ClientConfig:
    """
    Immutable settings shared by every request a client issues.

    Use :meth:`with_base_url` or :meth:`with_timeout` to derive a modified
    copy; an existing config never changes underneath a request in flight.
    """

    publishable_key: str
    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = 30.0
    stripe_account: Optional[str] = None
    max_workers: int = 4

    def __post_init__(self) -> None:
        object.__setattr__(self, "publishable_key", _normalize_publishable_key(self.publishable_key))
        object.__setattr__(self, "api_url", _normalize_api_url(self.api_url))
        object.__setattr__(
            self,
            "timeout_seconds",
            _positive_number(self.timeout_seconds, "STRIPE_TIMEOUT_SECONDS", float),
        )
        object.__setattr__(
            self,
            "max_workers",
            _positive_number(self.max_workers, "STRIPE_MAX_WORKERS", int),
        )
        if self.stripe_account is not None and not self.stripe_account.strip():
            object.__setattr__(self, "stripe_account", None)

    @property
    def livemode(self) -> bool:
        return not self.publishable_key.startswith("pk_test_")

    def with_base_url(self, api_url: str) -> "ClientConfig":
        return dataclasses.replace(self, api_url=api_url)

    def with_timeout(self, timeout_seconds: float) -> "ClientConfig":
        return dataclasses.replace(self, timeout_seconds=timeout_seconds)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "ClientConfig":
        publishable_key = values.get("STRIPE_PUBLISHABLE_KEY")
        if publishable_key is None:
            raise ConfigError("STRIPE_PUBLISHABLE_KEY must be provided")

        return cls(
            publishable_key=publishable_key,
            api_url=values.get("STRIPE_API_URL", DEFAULT_API_URL),
            timeout_seconds=values.get("STRIPE_TIMEOUT_SECONDS", "30"),
            stripe_account=values.get("STRIPE_ACCOUNT"),
            max_workers=values.get("STRIPE_MAX_WORKERS", "4"),
        )

    @classmethod
    def from_env(
        cls,
        *,
        env_file: Optional[str] = ".env",
        overrides: Optional[Mapping[str, str]] = None,
        base: Optional[Mapping[str, str]] = None,
        publishable_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout_seconds: Optional[float | str] = None,
        stripe_account: Optional[str] = None,
        max_workers: Optional[int | str] = None,
    ) -> "ClientConfig":
        parameter_overrides = _collect_parameter_overrides(
            {
                "publishable_key": publishable_key,
                "api_url": api_url,
                "timeout_seconds": timeout_seconds,
                "stripe_account": stripe_account,
                "max_workers": max_workers,
            }
        )
        merged_overrides = dict(overrides or {})
        merged_overrides.update(parameter_overrides)

        return cls.from_mapping(
            layered_environment(env_file=env_file, base=base, overrides=merged_overrides)
        )


def load_client_config(
    *,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    publishable_key: Optional[str] = None,
    api_url: Optional[str] = None,
    timeout_seconds: Optional[float | str] = None,
    stripe_account: Optional[str] = None,
    max_workers: Optional[int | str] = None,
) -> ClientConfig:
    """
    Convenience wrapper that mirrors :meth:`ClientConfig.from_env`.

    The configuration can come from environment variables, a ``.env`` file,
    direct keyword arguments, or any combination of the three.
    """
    return ClientConfig.from_env(
        env_file=env_file,
        overrides=overrides,
        base=base,
        publishable_key=publishable_key,
        api_url=api_url,
        timeout_seconds=timeout_seconds,
        stripe_account=stripe_account,
        max_workers=max_workers,
    )
