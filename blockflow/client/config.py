"""Configuration for the execution-server HTTP client."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    """Immutable client settings loaded from environment variables.

    server_url:  REST base of the execution server, without a trailing slash.
    timeout:     Per-request read timeout in seconds.
    log_level:   Root log level applied by the CLI.
    """

    server_url: str = "http://localhost:8000/api"
    timeout: int = 120
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            server_url=os.getenv("AGPT_SERVER_URL", cls.server_url).rstrip("/"),
            timeout=int(os.getenv("BLOCKFLOW_TIMEOUT", str(cls.timeout))),
            log_level=os.getenv("BLOCKFLOW_LOG_LEVEL", cls.log_level).upper(),
        )

    @property
    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}
