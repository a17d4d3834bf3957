"""Editor session — the event surface a canvas front-end drives.

An EditorSession wires together, for one open graph:

  ServerClient        REST calls (explicitly constructed, closed with the session)
  ExecutionChannel    optional realtime execution events (best-effort)
  BlockCatalog        fetched once in open()
  GraphModel          nodes, edges, selection
  CommandHistory      undo/redo over commands.apply_command
  GraphSyncEngine     save / load / run
  Clipboard           copy / paste
  Projector           execution events -> node status

Every user mutation goes through a session method, which mutates the model
and records the matching command in the same call.

Usage::

    async with EditorSession(Settings.from_env()) as session:
        a = session.add_node(block_id, {"x": 0, "y": 0})
        b = session.add_node(other_block_id, {"x": 300, "y": 0})
        session.connect(a.id, "output", b.id, "input")
        graph_id = await session.save()
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Iterable

from blockflow.client.config import Settings
from blockflow.client.models import PersistedGraph
from blockflow.client.realtime import EXECUTION_EVENT, ExecutionChannel
from blockflow.client.server_client import ServerClient, is_error
from blockflow.editor import commands
from blockflow.editor.catalog import BlockCatalog
from blockflow.editor.clipboard import Clipboard
from blockflow.editor.config import EditorSettings
from blockflow.editor.graph_model import Edge, GraphModel, Node
from blockflow.editor.history import CommandHistory
from blockflow.editor.projector import ExecutionStatusProjector
from blockflow.editor.sync import GraphSyncEngine, SyncError

logger = logging.getLogger("blockflow.editor.session")


def _distance(a: dict[str, float], b: dict[str, float]) -> float:
    return math.hypot(b["x"] - a["x"], b["y"] - a["y"])


class EditorSession:
    """One editing session over one graph."""

    def __init__(
        self,
        settings: Settings | None = None,
        editor_settings: EditorSettings | None = None,
        client: ServerClient | None = None,
        channel: ExecutionChannel | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.editor_settings = editor_settings or EditorSettings()
        self.client = client or ServerClient(self.settings)
        self.channel = channel
        self.catalog = BlockCatalog()
        self.graph = GraphModel(self.catalog)
        self.history = CommandHistory(self._apply)
        self.sync = GraphSyncEngine(
            self.client,
            self.graph,
            self.history,
            self.editor_settings,
            on_remap=self._on_ids_remapped,
        )
        self.clipboard = Clipboard()
        self.projector = ExecutionStatusProjector(self.graph)
        self._listen_task: asyncio.Task | None = None
        # Drag-start positions, and anchors for moves outside a drag gesture.
        self._drag_origin: dict[str, dict[str, float]] = {}
        self._move_anchor: dict[str, dict[str, float]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Fetch the block catalog and connect the realtime channel.

        Raises SyncError when the catalog cannot be fetched. A channel that
        fails to connect only disables live status.
        """
        raw = await self.client.list_blocks()
        if is_error(raw):
            raise SyncError(f"Fetching block catalog failed: {raw['error']}", detail=raw.get("detail"))
        catalog = BlockCatalog.from_raw(raw)
        self.catalog = catalog
        self.graph.catalog = catalog
        logger.info("Loaded %d blocks", len(catalog))

        if self.channel is not None:
            if await self.channel.connect():
                self.channel.on(EXECUTION_EVENT, self.projector)
                self._listen_task = asyncio.create_task(self.channel.listen())

    async def close(self) -> None:
        if self.channel is not None:
            # listen() forgets the transport on exit, so close it first.
            await self.channel.close()
        if self._listen_task is not None:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        await self.client.close()

    async def __aenter__(self) -> "EditorSession":
        await self.open()
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Graph metadata
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.sync.name

    @name.setter
    def name(self, value: str) -> None:
        self.sync.name = value

    @property
    def description(self) -> str:
        return self.sync.description

    @description.setter
    def description(self, value: str) -> None:
        self.sync.description = value

    # ------------------------------------------------------------------
    # Nodes & edges
    # ------------------------------------------------------------------

    def add_node(
        self,
        block_id: str,
        position: dict[str, float] | None = None,
        values: dict[str, Any] | None = None,
    ) -> Node | None:
        node = self.graph.add_node(block_id, position, values)
        if node is not None:
            self.history.push(commands.add_node(node))
        return node

    def connect(
        self,
        source: str,
        source_handle: str,
        target: str,
        target_handle: str,
    ) -> Edge | None:
        edge = self.graph.add_edge(source, source_handle, target, target_handle)
        if edge is not None:
            self.history.push(commands.add_edge(edge))
        return edge

    def remove_nodes(self, node_ids: Iterable[str]) -> list[Node]:
        nodes, edges = self.graph.remove_nodes(node_ids)
        if nodes:
            self.history.push(commands.delete_nodes(nodes, edges))
            self._forget_gestures(n.id for n in nodes)
        return nodes

    def remove_edges(self, edge_ids: Iterable[str]) -> list[Edge]:
        edges = self.graph.remove_edges(edge_ids)
        if edges:
            self.history.push(commands.delete_edges(edges))
        return edges

    def delete_selection(self) -> None:
        """Delete the selected edges and nodes as one undoable step."""
        selected_nodes = {n.id for n in self.graph.selected_nodes()}
        loose_edges = self.graph.remove_edges(
            e.id for e in self.graph.selected_edges()
            if e.source not in selected_nodes and e.target not in selected_nodes
        )
        nodes, incident_edges = self.graph.remove_nodes(selected_nodes)
        if nodes:
            self.history.push(commands.delete_nodes(nodes, loose_edges + incident_edges))
            self._forget_gestures(n.id for n in nodes)
        elif loose_edges:
            self.history.push(commands.delete_edges(loose_edges))

    def set_values(self, node_id: str, values: dict[str, Any]) -> None:
        """Replace a node's hardcoded values. Field edits are not undoable."""
        self.graph.set_values(node_id, values)

    def select(
        self,
        node_ids: Iterable[str] = (),
        edge_ids: Iterable[str] = (),
        additive: bool = False,
    ) -> None:
        self.graph.select(node_ids, edge_ids, additive)

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def begin_drag(self, node_id: str) -> None:
        node = self.graph.get_node(node_id)
        if node is not None:
            self._drag_origin[node_id] = dict(node.position)

    def drag(self, node_id: str, position: dict[str, float]) -> None:
        """Intermediate drag frame; moves the node without recording history."""
        self.graph.move_node(node_id, position)

    def end_drag(self, node_id: str, position: dict[str, float] | None = None) -> bool:
        """Finish a drag gesture. Returns True when a move was recorded."""
        origin = self._drag_origin.pop(node_id, None)
        node = self.graph.get_node(node_id)
        if origin is None or node is None:
            return False
        if position is not None:
            self.graph.move_node(node_id, position)
        new_position = dict(node.position)
        if _distance(origin, new_position) <= self.editor_settings.min_move_before_log:
            return False
        self.history.push(commands.move_node(node_id, origin, new_position))
        self._move_anchor.pop(node_id, None)
        return True

    def apply_position_change(self, node_id: str, position: dict[str, float]) -> bool:
        """Position change outside a drag gesture (e.g. programmatic).

        The node always moves; a history entry is recorded only when the
        distance from the last recorded anchor exceeds the threshold.
        """
        node = self.graph.get_node(node_id)
        if node is None:
            return False
        if node_id in self._drag_origin:
            self.graph.move_node(node_id, position)
            return False

        old_position = self._move_anchor.get(node_id, dict(node.position))
        new_position = {"x": position["x"], "y": position["y"]}
        self.graph.move_node(node_id, new_position)
        if _distance(old_position, new_position) <= self.editor_settings.min_move_before_log:
            return False
        self.history.push(commands.move_node(node_id, old_position, new_position))
        self._move_anchor[node_id] = new_position
        return True

    def _forget_gestures(self, node_ids: Iterable[str]) -> None:
        for node_id in node_ids:
            self._move_anchor.pop(node_id, None)
            self._drag_origin.pop(node_id, None)

    def _on_ids_remapped(self, mapping: dict[str, str]) -> None:
        """Re-key per-node gesture state and the clipboard after a save renamed nodes."""
        for state in (self._drag_origin, self._move_anchor):
            for old_id in [k for k in state if k in mapping]:
                state[mapping[old_id]] = state.pop(old_id)
        self.clipboard.remap(mapping)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _apply(self, command: commands.Command, direction: str) -> None:
        commands.apply_command(self.graph, command, direction)  # type: ignore[arg-type]

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    def copy(self) -> int:
        return self.clipboard.copy(self.graph)

    def paste(self) -> list[Node]:
        result = self.clipboard.paste(self.graph, self.editor_settings.paste_offset)
        if result.nodes:
            self.history.push(commands.paste(result.nodes, result.edges))
        return result.nodes

    # ------------------------------------------------------------------
    # Persistence & execution
    # ------------------------------------------------------------------

    async def save(self, as_template: bool = False) -> str:
        return await self.sync.save(as_template)

    async def load(self, graph_id: str, template: bool = False) -> PersistedGraph:
        persisted = await self.sync.load(graph_id, template)
        self._drag_origin.clear()
        self._move_anchor.clear()
        # Load restarts the local id allocator; copied ids would alias new nodes.
        self.clipboard.clear()
        return persisted

    async def run(self) -> str | None:
        return await self.sync.run(self.channel)

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------

    def handle_key(
        self,
        key: str,
        ctrl: bool = False,
        meta: bool = False,
        is_mac: bool = False,
    ) -> bool:
        """Dispatch an editor shortcut. Returns True when the key was handled.

        Ctrl (Cmd on macOS) + Z/Y/C/V: undo / redo / copy / paste.
        Backspace / Delete: delete the selection.
        """
        if key in ("Backspace", "Delete"):
            self.delete_selection()
            return True

        modifier = meta if is_mac else ctrl
        if not modifier:
            return False

        match key.lower():
            case "z":
                self.undo()
            case "y":
                self.redo()
            case "c":
                self.copy()
            case "v":
                self.paste()
            case _:
                return False
        return True
