"""Async execution-server REST client using httpx."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

from blockflow.client.config import Settings

logger = logging.getLogger("blockflow.client")


class ServerClient:
    """Thin async wrapper around the graph, template and block endpoints.

    Helpers never raise on transport or HTTP failures: they log and return
    ``{"error": ..., "detail": ...}`` so callers decide how fatal a failure is.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.server_url,
            headers=settings.headers,
            timeout=httpx.Timeout(settings.timeout, connect=10.0),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ServerClient":
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, verb: str, path: str, send: Callable[[], Awaitable[httpx.Response]]) -> Any:
        """Run one request; map any failure to an error dict.

        Write verbs may answer with an empty body, reported as {"success": True}.
        """
        try:
            r = await send()
            r.raise_for_status()
            if verb == "GET" or r.text.strip():
                return r.json()
            return {"success": True}
        except httpx.HTTPStatusError as e:
            logger.error("%s %s -> %s", verb, path, e.response.status_code)
            return {"error": f"HTTP {e.response.status_code}", "detail": e.response.text}
        except Exception as e:
            logger.error("%s %s failed: %s", verb, path, e)
            return {"error": str(e)}

    async def _get(self, path: str) -> Any:
        return await self._call("GET", path, lambda: self._client.get(path))

    async def _post(self, path: str, payload: dict | None = None) -> Any:
        return await self._call("POST", path, lambda: self._client.post(path, json=payload or {}))

    async def _put(self, path: str, payload: dict | None = None) -> Any:
        return await self._call("PUT", path, lambda: self._client.put(path, json=payload or {}))

    # ==================================================================
    # SYSTEM
    # ==================================================================

    async def ping(self) -> Any:
        try:
            r = await self._client.get("/health")
            return {"status": r.text.strip()}
        except Exception as e:
            return {"error": str(e)}

    # ==================================================================
    # BLOCKS
    # ==================================================================

    async def list_blocks(self) -> Any:
        return await self._get("/blocks")

    # ==================================================================
    # GRAPHS
    # ==================================================================

    async def get_graph(self, graph_id: str) -> Any:
        return await self._get(f"/graphs/{graph_id}")

    async def create_graph(self, payload: dict[str, Any]) -> Any:
        return await self._post("/graphs", payload)

    async def update_graph(self, graph_id: str, payload: dict[str, Any]) -> Any:
        return await self._put(f"/graphs/{graph_id}", payload)

    async def run_graph(self, graph_id: str, node_input: dict[str, Any] | None = None) -> Any:
        return await self._post(f"/graphs/{graph_id}/execute", node_input or {})

    # ==================================================================
    # TEMPLATES
    # ==================================================================

    async def get_template(self, template_id: str) -> Any:
        return await self._get(f"/templates/{template_id}")

    async def create_template(self, payload: dict[str, Any]) -> Any:
        return await self._post("/templates", payload)

    async def update_template(self, template_id: str, payload: dict[str, Any]) -> Any:
        return await self._put(f"/templates/{template_id}", payload)


def is_error(result: Any) -> bool:
    """True when a client helper returned an error dict instead of data."""
    return isinstance(result, dict) and "error" in result
