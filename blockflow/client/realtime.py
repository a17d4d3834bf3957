"""Realtime execution channel.

The server pushes JSON frames of the form ``{"method": ..., "data": ...}``.
Subscribing to a graph's executions sends::

    {"method": "subscribe", "data": {"graph_id": "<id>"}}

after which ``execution_event`` frames carry per-node progress
(``{"node_id", "status", "output_data"}``).

The channel does not own a socket implementation. It is given a connector:
an async callable returning a transport with ``send(text)``, ``close()`` and
async iteration over incoming text frames. Any websocket library can be
adapted to that shape.

Live status is best-effort: connection and decode failures are logged and
never propagate into the editing session.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

logger = logging.getLogger("blockflow.client.realtime")

EXECUTION_EVENT = "execution_event"


class Transport(Protocol):
    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str]: ...


Connector = Callable[[], Awaitable[Transport]]
Handler = Callable[[dict[str, Any]], None]


class ExecutionChannel:
    """Dispatches realtime frames to handlers registered per method name."""

    def __init__(self, connector: Connector) -> None:
        self._connector = connector
        self._transport: Transport | None = None
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    @property
    def connected(self) -> bool:
        return self._transport is not None

    async def connect(self) -> bool:
        """Open the transport. Returns False (and logs) when it cannot be opened."""
        try:
            self._transport = await self._connector()
        except Exception as e:
            logger.error("Failed to connect realtime channel: %s", e)
            self._transport = None
            return False
        logger.info("Realtime channel connected")
        return True

    async def close(self) -> None:
        if self._transport is None:
            return
        transport, self._transport = self._transport, None
        try:
            await transport.close()
        except Exception as e:
            logger.warning("Error closing realtime channel: %s", e)

    def on(self, method: str, handler: Handler) -> None:
        """Register ``handler`` for frames whose method is ``method``."""
        self._handlers[method].append(handler)

    async def subscribe_to_execution(self, graph_id: str) -> bool:
        """Ask the server to push execution events for ``graph_id``."""
        return await self._send("subscribe", {"graph_id": graph_id})

    async def listen(self) -> None:
        """Consume frames until the transport ends or fails."""
        if self._transport is None:
            logger.warning("listen() called on a disconnected realtime channel")
            return
        try:
            async for raw in self._transport:
                self.dispatch(raw)
        except Exception as e:
            logger.error("Realtime channel dropped: %s", e)
        finally:
            self._transport = None

    def dispatch(self, raw: str | bytes) -> int:
        """Decode one frame and hand its data to the matching handlers.

        Returns the number of handlers invoked. Malformed frames are dropped.
        """
        try:
            frame = json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning("Dropping undecodable realtime frame: %s", e)
            return 0
        if not isinstance(frame, dict):
            logger.warning("Dropping realtime frame of type %s", type(frame).__name__)
            return 0

        method = frame.get("method", "")
        data = frame.get("data")
        handlers = self._handlers.get(method, [])
        for handler in handlers:
            handler(data if isinstance(data, dict) else {})
        return len(handlers)

    async def _send(self, method: str, data: dict[str, Any]) -> bool:
        if self._transport is None:
            logger.warning("Cannot send %r: realtime channel is not connected", method)
            return False
        try:
            await self._transport.send(json.dumps({"method": method, "data": data}))
        except Exception as e:
            logger.error("Realtime send %r failed: %s", method, e)
            return False
        return True
