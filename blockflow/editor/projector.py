"""Merge realtime execution events onto graph nodes."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import ValidationError

from blockflow.client.models import ExecutionEvent
from blockflow.editor.graph_model import GraphModel

logger = logging.getLogger("blockflow.editor.projector")


class ExecutionStatusProjector:
    """Applies per-node execution progress to a GraphModel.

    The merge is keyed by node id and last-write-wins, so events for
    different nodes may arrive in any order. Events for nodes that no longer
    exist locally are dropped.
    """

    def __init__(self, graph: GraphModel) -> None:
        self._graph = graph

    def project(self, event: ExecutionEvent | dict[str, Any]) -> bool:
        """Apply one event. Returns True when a node was updated."""
        if not isinstance(event, ExecutionEvent):
            try:
                event = ExecutionEvent.model_validate(event)
            except ValidationError as e:
                logger.warning("Dropping malformed execution event: %s", e)
                return False

        node = self._graph.get_node(event.node_id)
        if node is None:
            logger.debug("Execution event for unknown node %s dropped", event.node_id)
            return False

        node.status = event.status
        node.output_data = event.output_data
        node.is_output_open = True
        return True

    def project_many(self, events: Iterable[ExecutionEvent | dict[str, Any]]) -> int:
        return sum(1 for event in events if self.project(event))

    def __call__(self, data: dict[str, Any]) -> None:
        """Realtime channel handler entry point."""
        self.project(data)
