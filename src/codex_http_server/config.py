"""Server configuration.

Values come from (in order of precedence): explicit overrides such as
CLI options, CODEX_HTTP_* environment variables, then defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any

from .errors import ConfigError

DEFAULT_ADDR = "0.0.0.0:8081"

ENV_ADDR = "CODEX_HTTP_ADDR"
ENV_PING_INTERVAL = "CODEX_HTTP_PING_INTERVAL"
ENV_IDLE_TIMEOUT = "CODEX_HTTP_IDLE_TIMEOUT"
ENV_SHUTDOWN_GRACE = "CODEX_HTTP_SHUTDOWN_GRACE"
ENV_BYPASS_SANDBOX = "CODEX_HTTP_BYPASS_SANDBOX"
ENV_LOG_LEVEL = "CODEX_HTTP_LOG_LEVEL"


def parse_addr(addr: str) -> tuple[str, int]:
    """Split ``host:port`` (IPv6 hosts in brackets) into its parts.

    Raises:
        ConfigError: If the address is malformed
    """
    host, sep, port_str = addr.rpartition(":")
    if not sep or not host:
        raise ConfigError(f"Invalid address {addr!r}: expected host:port")

    host = host.strip("[]")
    try:
        port = int(port_str)
    except ValueError:
        raise ConfigError(f"Invalid port in address {addr!r}") from None

    if not 0 <= port <= 65535:
        raise ConfigError(f"Port out of range in address {addr!r}")
    return host, port


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r}")


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"Invalid number for {name}: {value!r}") from None


@dataclass
class ServerSettings:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8081

    # Streaming
    ping_interval: float = 15.0
    idle_timeout: float = 30.0

    # Lifecycle
    shutdown_grace: float = 10.0

    # Agent policy
    dangerously_bypass_approvals_and_sandbox: bool = True

    log_level: str = "INFO"

    @property
    def addr(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> ServerSettings:
        """Build settings from the environment.

        Args:
            environ: Environment mapping (defaults to os.environ)
            **overrides: Field values that win over the environment; None is ignored

        Raises:
            ConfigError: On malformed values
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        if addr := env.get(ENV_ADDR):
            values["host"], values["port"] = parse_addr(addr)
        if value := env.get(ENV_PING_INTERVAL):
            values["ping_interval"] = _parse_float(ENV_PING_INTERVAL, value)
        if value := env.get(ENV_IDLE_TIMEOUT):
            values["idle_timeout"] = _parse_float(ENV_IDLE_TIMEOUT, value)
        if value := env.get(ENV_SHUTDOWN_GRACE):
            values["shutdown_grace"] = _parse_float(ENV_SHUTDOWN_GRACE, value)
        if value := env.get(ENV_BYPASS_SANDBOX):
            values["dangerously_bypass_approvals_and_sandbox"] = _parse_bool(
                ENV_BYPASS_SANDBOX, value
            )
        if value := env.get(ENV_LOG_LEVEL):
            values["log_level"] = value.upper()

        known = {f.name for f in fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise ConfigError(f"Unknown setting: {key}")
            if value is not None:
                values[key] = value

        return replace(cls(), **values)
