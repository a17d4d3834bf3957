"""In-editor copy & paste of nodes and edges.

Copy takes a by-value snapshot of the current selection. Paste materializes
fresh nodes from it and re-homes the copied edges through an explicit
old-id -> new-id map built during the paste, so duplicate display titles
cannot cross-wire pasted nodes.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field

from blockflow.editor.graph_model import Edge, GraphModel, Node

logger = logging.getLogger("blockflow.editor.clipboard")


@dataclass
class PasteResult:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    id_map: dict[str, str] = field(default_factory=dict)


class Clipboard:
    """Holds the last copied selection for the lifetime of an editor session."""

    def __init__(self) -> None:
        self._nodes: list[Node] = []
        self._edges: list[Edge] = []

    @property
    def empty(self) -> bool:
        return not self._nodes

    def copy(self, graph: GraphModel) -> int:
        """Snapshot the selected nodes and edges. Returns the number of nodes copied."""
        self._nodes = [copy.deepcopy(n) for n in graph.selected_nodes()]
        self._edges = [copy.deepcopy(e) for e in graph.selected_edges()]
        logger.debug("Copied %d nodes, %d edges", len(self._nodes), len(self._edges))
        return len(self._nodes)

    def clear(self) -> None:
        self._nodes = []
        self._edges = []

    def remap(self, mapping: dict[str, str]) -> None:
        """Follow node renames so copied edges keep pointing at the same live nodes."""
        for node in self._nodes:
            node.id = mapping.get(node.id, node.id)
        for edge in self._edges:
            edge.source = mapping.get(edge.source, edge.source)
            edge.target = mapping.get(edge.target, edge.target)

    def paste(self, graph: GraphModel, offset: float) -> PasteResult:
        """Insert copies of the clipboard into ``graph``.

        New nodes get fresh local ids, are shifted by ``offset`` on both axes,
        lose any execution status/output, and become the only selection.
        An edge whose endpoint was not copied stays attached to that live
        node, and is pasted only when both endpoints exist.
        """
        result = PasteResult()
        if self.empty:
            return result

        graph.clear_selection()
        for original in self._nodes:
            new_id = graph.next_id()
            result.id_map[original.id] = new_id
            pasted = copy.deepcopy(original)
            pasted.id = new_id
            pasted.position = {
                "x": original.position["x"] + offset,
                "y": original.position["y"] + offset,
            }
            pasted.status = None
            pasted.output_data = None
            pasted.selected = True
            graph.insert_node(pasted)
            result.nodes.append(pasted)

        for original in self._edges:
            source = result.id_map.get(original.source, original.source)
            target = result.id_map.get(original.target, original.target)
            if graph.get_node(source) is None or graph.get_node(target) is None:
                logger.debug("Skipping pasted edge %s: endpoint no longer exists", original.id)
                continue
            edge = graph.add_edge(source, original.source_handle, target, original.target_handle)
            if edge is not None:
                result.edges.append(edge)

        return result
