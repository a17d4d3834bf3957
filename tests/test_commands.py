"""Edit commands — replay in both directions and node id remapping."""

from __future__ import annotations

import pytest

from blockflow.editor import commands
from blockflow.editor.graph_model import Edge, GraphModel, Node


@pytest.fixture
def graph(catalog) -> GraphModel:
    g = GraphModel(catalog)
    g.add_node("block-text", {"x": 0, "y": 0})
    g.add_node("block-llm", {"x": 300, "y": 0})
    return g


class TestApplyCommand:
    def test_add_edge_round_trip(self, graph):
        edge = graph.add_edge("1", "output", "2", "prompt")
        cmd = commands.add_edge(edge)

        commands.apply_command(graph, cmd, "undo")
        assert graph.edges == []
        commands.apply_command(graph, cmd, "redo")
        assert [e.id for e in graph.edges] == ["1_output_2_prompt"]

    def test_replayed_edge_is_a_fresh_copy(self, graph):
        edge = graph.add_edge("1", "output", "2", "prompt")
        cmd = commands.add_edge(edge)
        commands.apply_command(graph, cmd, "undo")
        commands.apply_command(graph, cmd, "redo")
        assert graph.get_edge(edge.id) is not cmd.edge

    def test_delete_nodes_restores_nodes_and_edges(self, graph):
        graph.add_edge("1", "output", "2", "prompt")
        nodes, edges = graph.remove_nodes(["1"])
        cmd = commands.delete_nodes(nodes, edges)

        commands.apply_command(graph, cmd, "undo")
        assert graph.get_node("1") is not None
        assert len(graph.connections("2")) == 1

        commands.apply_command(graph, cmd, "redo")
        assert graph.get_node("1") is None
        assert graph.connections("2") == ()

    def test_delete_nodes_carries_unrelated_edges(self, graph):
        graph.add_node("block-text", {"x": 600, "y": 0})
        graph.add_edge("1", "output", "2", "prompt")
        loose = graph.remove_edges(["1_output_2_prompt"])
        nodes, incident = graph.remove_nodes(["3"])
        cmd = commands.delete_nodes(nodes, loose + incident)

        commands.apply_command(graph, cmd, "undo")
        assert graph.get_node("3") is not None
        assert graph.get_edge("1_output_2_prompt") is not None

        commands.apply_command(graph, cmd, "redo")
        assert graph.get_node("3") is None
        assert graph.edges == []
        assert graph.connections("2") == ()

    def test_move_node(self, graph):
        cmd = commands.move_node("1", {"x": 0, "y": 0}, {"x": 90, "y": 10})
        commands.apply_command(graph, cmd, "redo")
        assert graph.get_node("1").position == {"x": 90, "y": 10}
        commands.apply_command(graph, cmd, "undo")
        assert graph.get_node("1").position == {"x": 0, "y": 0}

    def test_builders_snapshot_by_value(self, graph):
        node = graph.get_node("1")
        cmd = commands.add_node(node)
        node.values["format"] = "later edit"
        assert cmd.node.values == {}

    def test_unknown_command_raises(self, graph):
        with pytest.raises(TypeError, match="Unknown command type"):
            commands.apply_command(graph, object(), "redo")  # type: ignore[arg-type]


class TestRemapCommand:
    MAPPING = {"1": "srv-1", "2": "srv-2"}

    def test_remap_edge_commands(self):
        edge = Edge(source="1", source_handle="output", target="2", target_handle="prompt")
        remapped = commands.remap_command(commands.add_edge(edge), self.MAPPING)
        assert remapped.edge.id == "srv-1_output_srv-2_prompt"
        assert remapped.kind == commands.ADD_EDGE

    def test_remap_delete_nodes(self):
        node = Node(id="1", block_id="block-text", title="t", position={"x": 0, "y": 0})
        edge = Edge(source="1", source_handle="output", target="9", target_handle="prompt")
        remapped = commands.remap_command(commands.delete_nodes([node], [edge]), self.MAPPING)
        assert remapped.nodes[0].id == "srv-1"
        assert (remapped.edges[0].source, remapped.edges[0].target) == ("srv-1", "9")

    def test_remap_move(self):
        cmd = commands.move_node("2", {"x": 0, "y": 0}, {"x": 1, "y": 1})
        assert commands.remap_command(cmd, self.MAPPING).node_id == "srv-2"

    def test_unmapped_ids_are_kept(self):
        node = Node(id="7", block_id="block-text", title="t", position={"x": 0, "y": 0})
        assert commands.remap_command(commands.add_node(node), self.MAPPING).node.id == "7"

    def test_original_command_is_unchanged(self):
        node = Node(id="1", block_id="block-text", title="t", position={"x": 0, "y": 0})
        cmd = commands.add_node(node)
        commands.remap_command(cmd, self.MAPPING)
        assert cmd.node.id == "1"
