"""Reversible edit commands, stored as data.

Each command records enough before/after state to be replayed in either
direction by apply_command():

  AddNodeCommand     ADD_NODE              — node snapshot
  DeleteNodeCommand  DELETE_NODE           — node snapshots + edges removed with them
  AddEdgeCommand     ADD_EDGE              — edge snapshot
  DeleteEdgeCommand  DELETE_EDGE           — edge snapshots
  MoveNodeCommand    UPDATE_NODE_POSITION  — node id, old and new position
  PasteCommand       PASTE                 — pasted nodes + edges, one undo unit

Snapshots are deep copies taken when the command is built, and are copied
again on every replay, so graph mutations never alias history state.
"""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from typing import Literal, Union

from blockflow.editor.graph_model import Edge, GraphModel, Node

ADD_NODE = "ADD_NODE"
DELETE_NODE = "DELETE_NODE"
ADD_EDGE = "ADD_EDGE"
DELETE_EDGE = "DELETE_EDGE"
UPDATE_NODE_POSITION = "UPDATE_NODE_POSITION"
PASTE = "PASTE"

Direction = Literal["undo", "redo"]


@dataclass(frozen=True)
class AddNodeCommand:
    node: Node
    kind: str = field(default=ADD_NODE, init=False)


@dataclass(frozen=True)
class DeleteNodeCommand:
    """Deleting nodes also deletes their edges; undo restores both.

    ``edges`` also carries any other edges deleted in the same step.
    """

    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...] = ()
    kind: str = field(default=DELETE_NODE, init=False)


@dataclass(frozen=True)
class AddEdgeCommand:
    edge: Edge
    kind: str = field(default=ADD_EDGE, init=False)


@dataclass(frozen=True)
class DeleteEdgeCommand:
    edges: tuple[Edge, ...]
    kind: str = field(default=DELETE_EDGE, init=False)


@dataclass(frozen=True)
class MoveNodeCommand:
    node_id: str
    old_position: dict[str, float]
    new_position: dict[str, float]
    kind: str = field(default=UPDATE_NODE_POSITION, init=False)


@dataclass(frozen=True)
class PasteCommand:
    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...] = ()
    kind: str = field(default=PASTE, init=False)


Command = Union[
    AddNodeCommand,
    DeleteNodeCommand,
    AddEdgeCommand,
    DeleteEdgeCommand,
    MoveNodeCommand,
    PasteCommand,
]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def add_node(node: Node) -> AddNodeCommand:
    return AddNodeCommand(node=copy.deepcopy(node))


def delete_nodes(nodes: list[Node], edges: list[Edge]) -> DeleteNodeCommand:
    return DeleteNodeCommand(nodes=_snapshot(nodes), edges=_snapshot(edges))


def add_edge(edge: Edge) -> AddEdgeCommand:
    return AddEdgeCommand(edge=copy.deepcopy(edge))


def delete_edges(edges: list[Edge]) -> DeleteEdgeCommand:
    return DeleteEdgeCommand(edges=_snapshot(edges))


def move_node(
    node_id: str,
    old_position: dict[str, float],
    new_position: dict[str, float],
) -> MoveNodeCommand:
    return MoveNodeCommand(
        node_id=node_id,
        old_position=dict(old_position),
        new_position=dict(new_position),
    )


def paste(nodes: list[Node], edges: list[Edge]) -> PasteCommand:
    return PasteCommand(nodes=_snapshot(nodes), edges=_snapshot(edges))


def _snapshot(items: list) -> tuple:
    return tuple(copy.deepcopy(item) for item in items)


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


def apply_command(graph: GraphModel, command: Command, direction: Direction) -> None:
    """Replay ``command`` against ``graph`` in the given direction."""
    forward = direction == "redo"

    if isinstance(command, (AddNodeCommand, PasteCommand)):
        nodes = (command.node,) if isinstance(command, AddNodeCommand) else command.nodes
        edges = () if isinstance(command, AddNodeCommand) else command.edges
        if forward:
            _restore(graph, nodes, edges)
        else:
            graph.remove_nodes(n.id for n in nodes)

    elif isinstance(command, DeleteNodeCommand):
        if forward:
            # May include selected edges not incident to the nodes.
            graph.remove_edges(e.id for e in command.edges)
            graph.remove_nodes(n.id for n in command.nodes)
        else:
            _restore(graph, command.nodes, command.edges)

    elif isinstance(command, AddEdgeCommand):
        if forward:
            graph.insert_edge(copy.deepcopy(command.edge))
        else:
            graph.remove_edges([command.edge.id])

    elif isinstance(command, DeleteEdgeCommand):
        if forward:
            graph.remove_edges(e.id for e in command.edges)
        else:
            for edge in command.edges:
                graph.insert_edge(copy.deepcopy(edge))

    elif isinstance(command, MoveNodeCommand):
        graph.move_node(
            command.node_id,
            command.new_position if forward else command.old_position,
        )

    else:
        raise TypeError(f"Unknown command type: {type(command).__name__}")


def _restore(graph: GraphModel, nodes: tuple[Node, ...], edges: tuple[Edge, ...]) -> None:
    for node in nodes:
        graph.insert_node(copy.deepcopy(node))
    for edge in edges:
        graph.insert_edge(copy.deepcopy(edge))


# ---------------------------------------------------------------------------
# Identifier remapping
# ---------------------------------------------------------------------------


def remap_command(command: Command, mapping: dict[str, str]) -> Command:
    """Return ``command`` with node ids rewritten through ``mapping``.

    Used after a save replaces local node ids with server ids, so older
    history entries keep addressing the same nodes.
    """
    if not mapping:
        return command

    if isinstance(command, AddNodeCommand):
        return dataclasses.replace(command, node=_remap_node(command.node, mapping))
    if isinstance(command, AddEdgeCommand):
        return dataclasses.replace(command, edge=_remap_edge(command.edge, mapping))
    if isinstance(command, DeleteEdgeCommand):
        return dataclasses.replace(
            command, edges=tuple(_remap_edge(e, mapping) for e in command.edges),
        )
    if isinstance(command, (DeleteNodeCommand, PasteCommand)):
        return dataclasses.replace(
            command,
            nodes=tuple(_remap_node(n, mapping) for n in command.nodes),
            edges=tuple(_remap_edge(e, mapping) for e in command.edges),
        )
    if isinstance(command, MoveNodeCommand):
        return dataclasses.replace(
            command, node_id=mapping.get(command.node_id, command.node_id),
        )
    raise TypeError(f"Unknown command type: {type(command).__name__}")


def _remap_node(node: Node, mapping: dict[str, str]) -> Node:
    return dataclasses.replace(node, id=mapping.get(node.id, node.id))


def _remap_edge(edge: Edge, mapping: dict[str, str]) -> Edge:
    return dataclasses.replace(
        edge,
        source=mapping.get(edge.source, edge.source),
        target=mapping.get(edge.target, edge.target),
    )
