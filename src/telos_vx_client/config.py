"""Client configuration."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, replace

DEFAULT_PORT = 20518
DEFAULT_STUDIO_ID = 1
DEFAULT_USERNAME = "user"
DEFAULT_PASSWORD = ""
CONNECT_TIMEOUT = 5.0
REQUEST_TIMEOUT = 30.0


def valid_host(value: object) -> bool:
    return isinstance(value, str) and value != ""


def valid_port(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def valid_studio_id(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def valid_credential(value: object) -> bool:
    return isinstance(value, str) and value != ""


@dataclass
class ClientConfig:
    """Connection and session settings for a ``VXClient``.

    Invalid values never raise; ``normalized()`` falls back to the defaults
    the same way the client setters keep their previous value.
    """

    host: str | None = None
    port: int = DEFAULT_PORT
    studio_id: int = DEFAULT_STUDIO_ID
    username: str = DEFAULT_USERNAME
    password: str = DEFAULT_PASSWORD

    # Colon-separated watcher spec, e.g. "error:warning:in:out"
    log: str | None = None

    connect_timeout: float = CONNECT_TIMEOUT
    request_timeout: float | None = REQUEST_TIMEOUT

    def normalized(self) -> ClientConfig:
        """Return a copy with every invalid field replaced by its default."""
        return replace(
            self,
            host=self.host if valid_host(self.host) else None,
            port=math.floor(self.port) if valid_port(self.port) else DEFAULT_PORT,
            studio_id=self.studio_id if valid_studio_id(self.studio_id) else DEFAULT_STUDIO_ID,
            username=self.username if valid_credential(self.username) else DEFAULT_USERNAME,
            password=self.password if valid_credential(self.password) else DEFAULT_PASSWORD,
            log=self.log if isinstance(self.log, str) and self.log else None,
        )

    @classmethod
    def from_env(cls, **overrides: object) -> ClientConfig:
        """Build a config from ``TELOS_VX_*`` environment variables.

        Keyword overrides that are not ``None`` win over the environment.
        """
        values: dict[str, object] = {}
        if host := os.getenv("TELOS_VX_HOST"):
            values["host"] = host
        if port := os.getenv("TELOS_VX_PORT"):
            values["port"] = _int_or_none(port)
        if studio := os.getenv("TELOS_VX_STUDIO"):
            values["studio_id"] = _int_or_none(studio)
        if user := os.getenv("TELOS_VX_USER"):
            values["username"] = user
        if password := os.getenv("TELOS_VX_PASSWORD"):
            values["password"] = password
        if log := os.getenv("TELOS_VX_LOG"):
            values["log"] = log

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values).normalized()  # type: ignore[arg-type]


def _int_or_none(text: str) -> int | None:
    try:
        return int(text)
    except ValueError:
        return None
