"""Graph synchronization between the in-memory GraphModel and the server.

save():
  1. Takes the per-engine save lock, so only one save is in flight at a time.
  2. Clears transient execution status on every node.
  3. Snapshots the model synchronously: composed input per node, edge stubs
     per node, links, and a correlation key (block_id, x, y) -> local id.
     Edits made after this point belong to the next save.
  4. Skips the network entirely when the snapshot equals the last-synced
     graph, so unchanged graphs do not create new server versions.
  5. Creates or updates the graph (or template) on the server.
  6. Renames locally-numbered nodes to the ids the server assigned, matched by
     correlation key, and rewrites the undo history to the new ids.

The server reassigns node ids on create and returns nothing else that ties a
returned node to a submitted one, hence the (block_id, x, y) key. Two nodes of
the same block at the same position cannot be told apart; the collision is
logged and only one of them is remapped.

load() replaces the model with a persisted graph and empties the history.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import ValidationError

from blockflow.client.models import (
    NodeMetadata,
    NodeRef,
    PersistedGraph,
    PersistedLink,
    PersistedNode,
    Position,
)
from blockflow.client.realtime import ExecutionChannel
from blockflow.client.server_client import ServerClient, is_error
from blockflow.editor.commands import remap_command
from blockflow.editor.composer import prepare_node_input
from blockflow.editor.config import EditorSettings
from blockflow.editor.graph_model import GraphModel, Node
from blockflow.editor.history import CommandHistory

logger = logging.getLogger("blockflow.editor.sync")

CorrelationKey = tuple[str, float, float]


class SyncError(Exception):
    """A remote graph operation failed; the GraphModel was left untouched.

    detail: server-provided error body, when there was one.
    """

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.detail = detail


@dataclass
class GraphSnapshot:
    """Persisted form of the model at one instant, plus save correlation keys."""

    graph: PersistedGraph
    keys: dict[CorrelationKey, str] = field(default_factory=dict)
    collisions: set[CorrelationKey] = field(default_factory=set)


class GraphSyncEngine:
    """Saves and loads one graph against the execution server."""

    def __init__(
        self,
        client: ServerClient,
        graph: GraphModel,
        history: CommandHistory,
        settings: EditorSettings | None = None,
        on_remap: Callable[[dict[str, str]], None] | None = None,
    ) -> None:
        self._client = client
        self._graph = graph
        self._history = history
        self._settings = settings or EditorSettings()
        # Told old -> new node ids whenever a save renames nodes.
        self._on_remap = on_remap
        self._save_lock = asyncio.Lock()
        self._saved: PersistedGraph | None = None
        self._saved_payload: dict[str, Any] | None = None
        self.name: str = ""
        self.description: str = ""

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def saved_graph(self) -> PersistedGraph | None:
        """Last graph confirmed by the server (loaded or saved)."""
        return self._saved

    @property
    def graph_id(self) -> str | None:
        return self._saved.id if self._saved is not None else None

    @property
    def is_template(self) -> bool:
        return bool(self._saved and self._saved.is_template)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        """Assemble the persisted form of the current model."""
        edges = self._graph.edges
        snap = GraphSnapshot(graph=PersistedGraph())
        nodes: list[PersistedNode] = []

        for node in self._graph.nodes:
            key = _correlation_key(node.block_id, node.position["x"], node.position["y"])
            if key in snap.keys:
                snap.collisions.add(key)
                logger.warning(
                    "Nodes %s and %s share block %s and position (%s, %s); "
                    "their ids may not remap correctly after save",
                    snap.keys[key], node.id, node.block_id, key[1], key[2],
                )
            snap.keys[key] = node.id

            nodes.append(PersistedNode(
                id=node.id,
                block_id=node.block_id,
                input_default=copy.deepcopy(prepare_node_input(self._graph.catalog, node)),
                input_nodes=[
                    NodeRef(name=e.target_handle, node_id=e.source)
                    for e in edges if e.target == node.id
                ],
                output_nodes=[
                    NodeRef(name=e.source_handle, node_id=e.target)
                    for e in edges if e.source == node.id
                ],
                metadata=NodeMetadata(
                    position=Position(x=node.position["x"], y=node.position["y"]),
                ),
            ))

        links = [
            PersistedLink(
                source_id=e.source,
                sink_id=e.target,
                source_name=e.source_handle,
                sink_name=e.target_handle,
            )
            for e in edges
        ]

        snap.graph = PersistedGraph(
            id=self.graph_id,
            name=self.name or self._settings.default_name,
            description=self.description or self._settings.default_description,
            is_template=self.is_template,
            nodes=nodes,
            links=links,
        )
        return snap

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(self, as_template: bool = False) -> str:
        """Persist the model; returns the server graph id.

        ``as_template`` only matters for the first save; afterwards the
        persisted graph's own template flag decides the endpoint.
        Raises SyncError when the server call fails.
        """
        async with self._save_lock:
            self._graph.clear_status()
            snap = self.snapshot()
            payload = snap.graph.to_payload()

            if self._saved is not None and payload == self._saved_payload:
                logger.debug("No need to save: graph is the same as version on server")
                return self._saved.id  # type: ignore[return-value]

            logger.debug("Saving new graph version (graph_id=%s)", self.graph_id)
            if self._saved is not None:
                if self._saved.is_template:
                    result = await self._client.update_template(self._saved.id, payload)
                else:
                    result = await self._client.update_graph(self._saved.id, payload)
                creating_template = self._saved.is_template
            elif as_template:
                result = await self._client.create_template(payload)
                creating_template = True
            else:
                result = await self._client.create_graph(payload)
                creating_template = False

            saved = _parse_graph(result, "Saving graph")
            if saved.id is None:
                raise SyncError("Server response to save carries no graph id", detail=result)
            if creating_template:
                saved.is_template = True

            self._adopt_server_ids(saved, snap)
            self._saved = saved
            self._saved_payload = saved.to_payload()
            logger.info("Saved graph %s (%d nodes, %d links)", saved.id, len(saved.nodes), len(saved.links))
            return saved.id

    def _adopt_server_ids(self, saved: PersistedGraph, snap: GraphSnapshot) -> dict[str, str]:
        """Rename local nodes to the ids the server returned. Returns old -> new."""
        mapping: dict[str, str] = {}
        for remote in saved.nodes:
            pos = remote.metadata.position
            key = _correlation_key(remote.block_id, pos.x, pos.y)
            local_id = snap.keys.get(key)
            if local_id is None:
                logger.warning("Server node %s has no local counterpart", remote.id)
                continue
            if local_id == remote.id or local_id in mapping:
                continue
            if self._graph.get_node(local_id) is None:
                # Deleted locally while the save was in flight.
                continue
            if self._graph.get_node(remote.id) is not None:
                logger.warning(
                    "Cannot rename node %s to %s: id already in use", local_id, remote.id,
                )
                continue
            self._graph.rename_node(local_id, remote.id)
            mapping[local_id] = remote.id

        if mapping:
            self._history.rewrite(lambda command: remap_command(command, mapping))
            if self._on_remap is not None:
                self._on_remap(mapping)
            logger.debug("Remapped node ids after save: %s", mapping)
        return mapping

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(self, graph_id: str, template: bool = False) -> PersistedGraph:
        """Replace the model with a persisted graph or template.

        Raises SyncError when the fetch fails and UnknownBlockError when the
        graph uses a block missing from the catalog. Either way the current
        model is left as it was.
        """
        async with self._save_lock:
            if template:
                result = await self._client.get_template(graph_id)
            else:
                result = await self._client.get_graph(graph_id)
            persisted = _parse_graph(result, f"Loading graph {graph_id}")
            if template:
                persisted.is_template = True

            blocks = {n.id: self._graph.catalog.require(n.block_id) for n in persisted.nodes}

            self._graph.reset()
            for remote in persisted.nodes:
                block = blocks[remote.id]
                pos = remote.metadata.position
                self._graph.insert_node(Node(
                    id=remote.id,
                    block_id=block.id,
                    title=f"{block.name} {remote.id}",
                    position={"x": pos.x, "y": pos.y},
                    values=copy.deepcopy(remote.input_default),
                ))
            for link in persisted.links:
                edge = self._graph.add_edge(
                    link.source_id, link.source_name, link.sink_id, link.sink_name,
                )
                if edge is None:
                    logger.warning(
                        "Skipping link %s.%s -> %s.%s",
                        link.source_id, link.source_name, link.sink_id, link.sink_name,
                    )

            self._history.clear()
            self._saved = persisted
            self._saved_payload = persisted.to_payload()
            self.name = persisted.name
            self.description = persisted.description
            logger.info("Loaded graph %s (%d nodes)", persisted.id, len(persisted.nodes))
            return persisted

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, channel: ExecutionChannel | None = None) -> str | None:
        """Save, subscribe to execution events, and start a run.

        Returns the graph id, or None when any step failed (already logged).
        """
        try:
            graph_id = await self.save()
        except SyncError as e:
            logger.error("Error saving agent; aborting run: %s", e)
            return None

        if self.is_template:
            logger.error("Graph %s is a template and cannot be run", graph_id)
            return None

        if channel is not None and channel.connected:
            await channel.subscribe_to_execution(graph_id)

        result = await self._client.run_graph(graph_id)
        if is_error(result):
            logger.error("Error running agent %s: %s", graph_id, result["error"])
            return None
        return graph_id


def _correlation_key(block_id: str, x: float, y: float) -> CorrelationKey:
    return (block_id, float(x), float(y))


def _parse_graph(result: Any, action: str) -> PersistedGraph:
    if is_error(result):
        raise SyncError(f"{action} failed: {result['error']}", detail=result.get("detail"))
    try:
        return PersistedGraph.model_validate(result)
    except ValidationError as e:
        raise SyncError(f"{action} failed: unreadable server response: {e}", detail=result) from e
