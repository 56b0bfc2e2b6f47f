from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

from .errors import ConfigurationError

DEFAULT_ENDPOINT = "https://api.treebeardhq.com/logs/batch"

# camelCase names used by the ingestion service and other SDKs
_ALIASES = {
    "apiKey": "api_key",
    "projectName": "project_name",
    "batchSize": "batch_size",
    "captureConsole": "capture_console",
    "captureUnhandled": "capture_unhandled",
    "maxRetries": "max_retries",
    "requestTimeout": "request_timeout",
}


@dataclass(frozen=True, slots=True)
class TreebeardConfig:
    """Runtime configuration for TreebeardCore."""

    project_name: str
    api_key: Optional[str] = None
    endpoint: str = DEFAULT_ENDPOINT
    batch_size: int = 100
    flush_interval: float = 5.0
    capture_console: bool = False
    capture_unhandled: bool = True
    max_retries: int = 3
    retry_backoff: float = 0.5
    retry_backoff_max: float = 8.0
    request_timeout: float = 10.0
    shutdown_timeout: float = 5.0
    enable_console_fallback: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.project_name, str) or not self.project_name.strip():
            raise ConfigurationError("project_name must be a non-empty string")
        if self.api_key is not None and not isinstance(self.api_key, str):
            raise ConfigurationError("api_key must be a string")
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise ConfigurationError("batch_size must be an integer")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1")
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise ConfigurationError("max_retries must be an integer")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        for name in ("flush_interval", "request_timeout", "shutdown_timeout"):
            if not _is_number(getattr(self, name)) or getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be > 0")
        for name in ("retry_backoff", "retry_backoff_max"):
            if not _is_number(getattr(self, name)) or getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0")

        if not isinstance(self.endpoint, str):
            raise ConfigurationError("endpoint must be a string")
        parsed = urlparse(self.endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"endpoint is not an http(s) URL: {self.endpoint!r}")
        if self.endpoint.endswith("/"):
            object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))
        if self.api_key == "":
            object.__setattr__(self, "api_key", None)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "TreebeardConfig":
        """Build a config from snake_case or camelCase keys.

        ``flushIntervalMs`` is accepted in milliseconds. Unknown keys are a
        configuration error; framework adapters strip their own keys first.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in options.items():
            if key == "flushIntervalMs":
                if not _is_number(value):
                    raise ConfigurationError("flushIntervalMs must be a number")
                values["flush_interval"] = value / 1000.0
                continue
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"unrecognized configuration key: {key!r}")
            values[name] = value

        if "project_name" not in values:
            raise ConfigurationError("project_name is required")
        return cls(**values)

    @classmethod
    def from_env(cls, **overrides: Any) -> "TreebeardConfig":
        values: Dict[str, Any] = {}
        env_keys = {
            "api_key": "TREEBEARD_API_KEY",
            "endpoint": "TREEBEARD_ENDPOINT",
            "project_name": "TREEBEARD_PROJECT_NAME",
        }
        for name, env_key in env_keys.items():
            if os.environ.get(env_key):
                values[name] = os.environ[env_key]

        try:
            if os.environ.get("TREEBEARD_BATCH_SIZE"):
                values["batch_size"] = int(os.environ["TREEBEARD_BATCH_SIZE"])
            if os.environ.get("TREEBEARD_FLUSH_INTERVAL"):
                values["flush_interval"] = float(os.environ["TREEBEARD_FLUSH_INTERVAL"])
        except ValueError as exc:
            raise ConfigurationError(f"malformed numeric environment value: {exc}") from exc

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.from_mapping(values)

    def with_env_defaults(self) -> "TreebeardConfig":
        """Fill ``api_key`` and ``endpoint`` from the environment when unset."""
        updates: Dict[str, Any] = {}
        if self.api_key is None and os.environ.get("TREEBEARD_API_KEY"):
            updates["api_key"] = os.environ["TREEBEARD_API_KEY"]
        if self.endpoint == DEFAULT_ENDPOINT and os.environ.get("TREEBEARD_ENDPOINT"):
            updates["endpoint"] = os.environ["TREEBEARD_ENDPOINT"]
        if not updates:
            return self
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(updates)
        return TreebeardConfig(**values)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
