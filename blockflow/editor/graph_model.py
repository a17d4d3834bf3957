"""In-memory graph of block nodes and typed edges.

The model is the single source of truth for the canvas. It owns:

  nodes:        ordered {node_id: Node}
  edges:        ordered {edge_id: Edge}
  connections:  {node_id: [Connection, ...]}: a derived index of the edges
                incident to each node, rebuilt inside every mutation that
                touches the edge set. Invariant: each edge appears in exactly
                the lists of its source and its target node.
  id allocator: local node ids are increasing integers ("1", "2", ...) until
                a save replaces them with server-assigned ids.

The model performs no undo bookkeeping; EditorSession records commands and
commands.apply_command replays them through the mutation methods below.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Iterable

from blockflow.editor.catalog import UNKNOWN_TYPE, BlockCatalog, type_color

logger = logging.getLogger("blockflow.editor.graph_model")

# Range of the random placement used for manually added nodes.
_SPAWN_AREA: float = 400.0


def edge_id(source: str, source_handle: str, target: str, target_handle: str) -> str:
    """Deterministic edge id. Wiring the same two ports twice yields the same id."""
    return f"{source}_{source_handle}_{target}_{target_handle}"


@dataclass
class Node:
    """A block instance placed on the canvas.

    id:             Local integer string before the first save, server id after.
    block_id:       Catalog id of the block this node instantiates.
    title:          Display title ("<block name> <local id>").
    position:       {x, y} canvas coordinates.
    values:         Hardcoded field values entered by the user.
    status:         Last execution status pushed by the server (transient).
    output_data:    Last execution output pushed by the server (transient).
    is_output_open: Whether the output panel is expanded.
    selected:       Canvas selection flag.
    """

    id: str
    block_id: str
    title: str
    position: dict[str, float]
    values: dict[str, Any] = field(default_factory=dict)
    status: str | None = None
    output_data: Any = None
    is_output_open: bool = False
    selected: bool = False


@dataclass(frozen=True)
class Connection:
    """One endpoint-agnostic view of an edge, as cached per node."""

    source: str
    source_handle: str
    target: str
    target_handle: str


@dataclass
class Edge:
    """A wire from source.source_handle (output) to target.target_handle (input).

    color is derived from the declared type of the source output field.
    """

    source: str
    source_handle: str
    target: str
    target_handle: str
    color: str = type_color(UNKNOWN_TYPE)
    selected: bool = False

    @property
    def id(self) -> str:
        return edge_id(self.source, self.source_handle, self.target, self.target_handle)

    def connection(self) -> Connection:
        return Connection(self.source, self.source_handle, self.target, self.target_handle)


class GraphModel:
    """Nodes, edges and the derived per-node connection index."""

    def __init__(self, catalog: BlockCatalog) -> None:
        self.catalog = catalog
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._connections: dict[str, list[Connection]] = {}
        self._next_local_id = 1

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges.values())

    def node_ids(self) -> set[str]:
        """Return the set of all node IDs currently in the graph."""
        return set(self._nodes)

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id_: str) -> Edge | None:
        return self._edges.get(edge_id_)

    def connections(self, node_id: str) -> tuple[Connection, ...]:
        """Edges incident to ``node_id``. Empty for unknown nodes."""
        return tuple(self._connections.get(node_id, ()))

    def output_type(self, node_id: str, handle: str) -> str:
        node = self._nodes.get(node_id)
        if node is None:
            return UNKNOWN_TYPE
        return self.catalog.output_type(node.block_id, handle)

    # ------------------------------------------------------------------
    # Identifier allocation
    # ------------------------------------------------------------------

    def next_id(self) -> str:
        """Allocate the next local node id, skipping ids already in use."""
        while str(self._next_local_id) in self._nodes:
            self._next_local_id += 1
        allocated = str(self._next_local_id)
        self._next_local_id += 1
        return allocated

    def reset(self) -> None:
        """Drop everything and restart the id allocator (used by load)."""
        self._nodes.clear()
        self._edges.clear()
        self._connections.clear()
        self._next_local_id = 1

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(
        self,
        block_id: str,
        position: dict[str, float] | None = None,
        values: dict[str, Any] | None = None,
    ) -> Node | None:
        """Create a node for ``block_id``. Returns None (and logs) for unknown blocks."""
        block = self.catalog.get(block_id)
        if block is None:
            logger.error("Schema not found for block ID: %s", block_id)
            return None

        node_id = self.next_id()
        if position is None:
            position = {
                "x": random.random() * _SPAWN_AREA,
                "y": random.random() * _SPAWN_AREA,
            }
        node = Node(
            id=node_id,
            block_id=block_id,
            title=f"{block.name} {node_id}",
            position=dict(position),
            values=dict(values or {}),
        )
        self.insert_node(node)
        return node

    def insert_node(self, node: Node) -> None:
        """Insert a fully-formed node. Raises ValueError on an id clash."""
        if node.id in self._nodes:
            raise ValueError(f"Node id {node.id!r} already exists in graph")
        self._nodes[node.id] = node
        self._connections[node.id] = []

    def remove_nodes(self, node_ids: Iterable[str]) -> tuple[list[Node], list[Edge]]:
        """Remove nodes and every edge incident to them.

        Returns (removed_nodes, removed_edges) so callers can record them.
        Unknown ids are ignored.
        """
        ids = {nid for nid in node_ids if nid in self._nodes}
        if not ids:
            return [], []
        incident = [e.id for e in self._edges.values() if e.source in ids or e.target in ids]
        removed_edges = self.remove_edges(incident)
        removed_nodes = [self._nodes.pop(nid) for nid in list(self._nodes) if nid in ids]
        for nid in ids:
            self._connections.pop(nid, None)
        return removed_nodes, removed_edges

    def set_values(self, node_id: str, values: dict[str, Any]) -> None:
        self._require(node_id).values = dict(values)

    def move_node(self, node_id: str, position: dict[str, float]) -> None:
        self._require(node_id).position = {"x": position["x"], "y": position["y"]}

    def rename_node(self, old_id: str, new_id: str) -> None:
        """Re-key a node and rewrite the edges that reference it."""
        if old_id == new_id:
            return
        node = self._require(old_id)
        if new_id in self._nodes:
            raise ValueError(f"Node id {new_id!r} already exists in graph")

        node.id = new_id
        self._nodes = {(new_id if k == old_id else k): v for k, v in self._nodes.items()}

        touched = {new_id}
        rekeyed: dict[str, Edge] = {}
        for edge in self._edges.values():
            if edge.source == old_id:
                edge.source = new_id
                touched.add(edge.target)
            if edge.target == old_id:
                edge.target = new_id
                touched.add(edge.source)
            rekeyed[edge.id] = edge
        self._edges = rekeyed

        self._connections.pop(old_id, None)
        self._reindex(touched)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def add_edge(
        self,
        source: str,
        source_handle: str,
        target: str,
        target_handle: str,
    ) -> Edge | None:
        """Wire two ports. Port types are not checked against each other.

        Returns None when an endpoint is missing or the same two ports are
        already wired.
        """
        if source not in self._nodes or target not in self._nodes:
            logger.warning(
                "Cannot connect %s.%s -> %s.%s: endpoint not in graph",
                source, source_handle, target, target_handle,
            )
            return None

        edge = Edge(
            source=source,
            source_handle=source_handle,
            target=target,
            target_handle=target_handle,
            color=type_color(self.output_type(source, source_handle)),
        )
        if edge.id in self._edges:
            logger.debug("Edge %s already exists; ignoring duplicate connect", edge.id)
            return None
        self.insert_edge(edge)
        return edge

    def insert_edge(self, edge: Edge) -> None:
        """Insert a fully-formed edge. Both endpoints must exist."""
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._nodes:
                raise ValueError(f"Edge {edge.id!r} references missing node {endpoint!r}")
        if edge.id in self._edges:
            raise ValueError(f"Edge {edge.id!r} already exists in graph")
        self._edges[edge.id] = edge
        self._reindex({edge.source, edge.target})

    def remove_edges(self, edge_ids: Iterable[str]) -> list[Edge]:
        """Remove edges by id; unknown ids are ignored. Returns the removed edges."""
        removed = [self._edges.pop(eid) for eid in list(dict.fromkeys(edge_ids)) if eid in self._edges]
        touched: set[str] = set()
        for edge in removed:
            touched.update((edge.source, edge.target))
        self._reindex(touched)
        return removed

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(
        self,
        node_ids: Iterable[str] = (),
        edge_ids: Iterable[str] = (),
        additive: bool = False,
    ) -> None:
        if not additive:
            self.clear_selection()
        for nid in node_ids:
            if nid in self._nodes:
                self._nodes[nid].selected = True
        for eid in edge_ids:
            if eid in self._edges:
                self._edges[eid].selected = True

    def clear_selection(self) -> None:
        for node in self._nodes.values():
            node.selected = False
        for edge in self._edges.values():
            edge.selected = False

    def selected_nodes(self) -> list[Node]:
        return [n for n in self._nodes.values() if n.selected]

    def selected_edges(self) -> list[Edge]:
        return [e for e in self._edges.values() if e.selected]

    # ------------------------------------------------------------------
    # Execution state
    # ------------------------------------------------------------------

    def clear_status(self) -> None:
        """Forget execution status on every node; it must not round-trip to the server."""
        for node in self._nodes.values():
            node.status = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(f"Node {node_id!r} not found in graph")
        return node

    def _reindex(self, node_ids: Iterable[str]) -> None:
        for nid in node_ids:
            if nid not in self._nodes:
                continue
            self._connections[nid] = [
                e.connection()
                for e in self._edges.values()
                if e.source == nid or e.target == nid
            ]
