"""Execution-server HTTP client and realtime channel."""

from blockflow.client.config import Settings
from blockflow.client.realtime import ExecutionChannel
from blockflow.client.server_client import ServerClient

__all__ = ["ExecutionChannel", "ServerClient", "Settings"]
