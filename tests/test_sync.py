"""GraphSyncEngine — save, id adoption, load and run against a mocked server."""

from __future__ import annotations

import asyncio
import copy
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from blockflow.editor import commands
from blockflow.editor.catalog import UnknownBlockError
from blockflow.editor.session import EditorSession
from blockflow.editor.sync import SyncError


def _server_copy(payload: dict, graph_id: str | None) -> dict:
    """What the server sends back: the same graph with server-assigned node ids."""
    body = copy.deepcopy(payload)
    ids = {n["id"]: n["id"] if n["id"].startswith("srv-") else f"srv-{n['id']}" for n in body["nodes"]}
    body["id"] = graph_id
    for node in body["nodes"]:
        node["id"] = ids[node["id"]]
        for ref in node["input_nodes"] + node["output_nodes"]:
            ref["node_id"] = ids[ref["node_id"]]
    for link in body["links"]:
        link["source_id"] = ids[link["source_id"]]
        link["sink_id"] = ids[link["sink_id"]]
    return body


def _client(graph_id: str | None = "g1") -> MagicMock:
    client = MagicMock()
    client.close = AsyncMock()
    client.create_graph = AsyncMock(side_effect=lambda payload: _server_copy(payload, graph_id))
    client.create_template = AsyncMock(side_effect=lambda payload: _server_copy(payload, graph_id))
    client.update_graph = AsyncMock(side_effect=lambda gid, payload: _server_copy(payload, gid))
    client.update_template = AsyncMock(side_effect=lambda gid, payload: _server_copy(payload, gid))
    client.run_graph = AsyncMock(return_value={"id": "exec-1"})
    client.get_graph = AsyncMock()
    client.get_template = AsyncMock()
    return client


def _build(session: EditorSession):
    a = session.add_node("block-text", {"x": 0, "y": 0}, {"format": "Hi {name}", "junk": 1})
    b = session.add_node("block-llm", {"x": 300, "y": 50})
    session.connect(a.id, "output", b.id, "prompt")
    return a, b


LOADED = {
    "id": "g9",
    "name": "Loaded",
    "description": "Desc",
    "is_template": False,
    "nodes": [
        {
            "id": "n1",
            "block_id": "block-text",
            "input_default": {"format": "Hi"},
            "input_nodes": [],
            "output_nodes": [{"name": "output", "node_id": "n2"}],
            "metadata": {"position": {"x": 10.0, "y": 20.0}},
        },
        {
            "id": "n2",
            "block_id": "block-llm",
            "input_default": {},
            "input_nodes": [{"name": "prompt", "node_id": "n1"}],
            "output_nodes": [],
            "metadata": {"position": {"x": 300.0, "y": 20.0}},
        },
    ],
    "links": [{"source_id": "n1", "sink_id": "n2", "source_name": "output", "sink_name": "prompt"}],
}


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestSnapshot:
    def test_snapshot_composes_inputs_and_edge_stubs(self, make_session):
        session = make_session(_client())
        a, b = _build(session)

        graph = session.sync.snapshot().graph

        assert graph.id is None
        assert graph.name == "Agent Name"
        assert graph.description == "Agent Description"
        first, second = graph.nodes
        assert first.input_default == {"format": "Hi {name}"}
        assert [(r.name, r.node_id) for r in first.output_nodes] == [("output", b.id)]
        assert [(r.name, r.node_id) for r in second.input_nodes] == [("prompt", a.id)]
        assert second.metadata.position.y == 50
        assert [(l.source_id, l.sink_id, l.source_name, l.sink_name) for l in graph.links] == [
            (a.id, b.id, "output", "prompt"),
        ]

    def test_snapshot_input_is_a_copy(self, make_session):
        session = make_session(_client())
        a = session.add_node("block-text", {"x": 0, "y": 0}, {"values": {"name": "Ada"}})
        graph = session.sync.snapshot().graph
        a.values["values"]["name"] = "changed"
        assert graph.nodes[0].input_default == {"values": {"name": "Ada"}}


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


class TestSave:
    @pytest.mark.asyncio
    async def test_first_save_creates_graph(self, make_session):
        client = _client()
        session = make_session(client)
        _build(session)
        session.name = "My Agent"

        assert await session.save() == "g1"

        client.create_graph.assert_awaited_once()
        payload = client.create_graph.await_args.args[0]
        assert payload["id"] is None
        assert payload["name"] == "My Agent"
        assert "is_template" not in payload
        assert session.sync.graph_id == "g1"

    @pytest.mark.asyncio
    async def test_nodes_adopt_server_ids(self, make_session):
        session = make_session(_client())
        _build(session)

        await session.save()

        assert [n.id for n in session.graph.nodes] == ["srv-1", "srv-2"]
        assert [e.id for e in session.graph.edges] == ["srv-1_output_srv-2_prompt"]
        assert len(session.graph.connections("srv-1")) == 1

    @pytest.mark.asyncio
    async def test_history_follows_renamed_nodes(self, make_session):
        session = make_session(_client())
        _build(session)
        await session.save()

        assert session.history.commands[0].node.id == "srv-1"
        assert session.history.commands[2].edge.id == "srv-1_output_srv-2_prompt"

        session.undo()
        assert session.graph.edges == []
        session.undo()
        session.undo()
        assert session.graph.nodes == []
        session.redo()
        session.redo()
        session.redo()
        assert [e.id for e in session.graph.edges] == ["srv-1_output_srv-2_prompt"]

    @pytest.mark.asyncio
    async def test_drag_spanning_a_save_is_recorded(self, make_session):
        session = make_session(_client())
        a, _ = _build(session)
        session.begin_drag(a.id)

        await session.save()

        assert session.end_drag("srv-1", {"x": 400, "y": 400}) is True
        move = session.history.commands[-1]
        assert move.kind == commands.UPDATE_NODE_POSITION
        assert move.node_id == "srv-1"
        assert move.old_position == {"x": 0, "y": 0}
        session.undo()
        assert session.graph.get_node("srv-1").position == {"x": 0, "y": 0}

    @pytest.mark.asyncio
    async def test_move_anchor_follows_renamed_node(self, make_session):
        session = make_session(_client())
        a, _ = _build(session)
        assert session.apply_position_change(a.id, {"x": 100, "y": 0}) is True
        assert session.apply_position_change(a.id, {"x": 130, "y": 0}) is False

        await session.save()

        # 70 from the recorded anchor, 40 from the current position.
        assert session.apply_position_change("srv-1", {"x": 170, "y": 0}) is True
        move = session.history.commands[-1]
        assert (move.node_id, move.old_position["x"]) == ("srv-1", 100)

    @pytest.mark.asyncio
    async def test_copied_edges_follow_renamed_nodes(self, make_session):
        session = make_session(_client())
        a, b = _build(session)
        session.select([a.id], ["1_output_2_prompt"])
        session.copy()

        await session.save()
        pasted = session.paste()

        assert [n.id for n in pasted] == ["3"]
        assert session.graph.get_edge("3_output_srv-2_prompt") is not None

    @pytest.mark.asyncio
    async def test_unchanged_graph_is_not_saved_again(self, make_session):
        client = _client()
        session = make_session(client)
        _build(session)

        await session.save()
        assert await session.save() == "g1"

        assert client.create_graph.await_count == 1
        client.update_graph.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_changed_graph_is_updated(self, make_session):
        client = _client()
        session = make_session(client)
        a, _ = _build(session)
        await session.save()

        session.apply_position_change(a.id, {"x": 500, "y": 500})
        await session.save()

        client.update_graph.assert_awaited_once()
        assert client.update_graph.await_args.args[0] == "g1"

    @pytest.mark.asyncio
    async def test_save_clears_status_but_keeps_output(self, make_session):
        session = make_session(_client())
        a, _ = _build(session)
        a.status = "COMPLETED"
        a.output_data = {"output": ["Hi"]}

        await session.save()

        assert a.status is None
        assert a.output_data == {"output": ["Hi"]}

    @pytest.mark.asyncio
    async def test_failed_save_leaves_model_untouched(self, make_session):
        client = _client()
        client.create_graph = AsyncMock(return_value={"error": "HTTP 500", "detail": "boom"})
        session = make_session(client)
        _build(session)

        with pytest.raises(SyncError) as exc_info:
            await session.save()

        assert exc_info.value.detail == "boom"
        assert [n.id for n in session.graph.nodes] == ["1", "2"]
        assert session.sync.graph_id is None

    @pytest.mark.asyncio
    async def test_response_without_id_is_an_error(self, make_session):
        session = make_session(_client(graph_id=None))
        _build(session)
        with pytest.raises(SyncError, match="no graph id"):
            await session.save()

    @pytest.mark.asyncio
    async def test_concurrent_saves_are_serialized(self, make_session):
        client = _client()
        session = make_session(client)
        _build(session)

        ids = await asyncio.gather(session.save(), session.save())

        assert ids == ["g1", "g1"]
        assert client.create_graph.await_count == 1
        client.update_graph.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_position_collision_is_logged(self, make_session, caplog):
        session = make_session(_client())
        session.add_node("block-text", {"x": 0, "y": 0})
        session.add_node("block-text", {"x": 0, "y": 0})

        with caplog.at_level(logging.WARNING, logger="blockflow.editor.sync"):
            await session.save()

        assert "share block" in caplog.text
        renamed = [n.id for n in session.graph.nodes if n.id.startswith("srv-")]
        assert len(renamed) == 1


class TestTemplates:
    @pytest.mark.asyncio
    async def test_save_as_template(self, make_session):
        client = _client(graph_id="t1")
        session = make_session(client)
        _build(session)

        assert await session.save(as_template=True) == "t1"
        client.create_template.assert_awaited_once()
        client.create_graph.assert_not_awaited()
        assert session.sync.is_template

        session.add_node("block-llm", {"x": 900, "y": 0})
        await session.save()
        client.update_template.assert_awaited_once()
        assert client.update_template.await_args.args[0] == "t1"

    @pytest.mark.asyncio
    async def test_templates_cannot_run(self, make_session):
        client = _client(graph_id="t1")
        session = make_session(client)
        _build(session)
        await session.save(as_template=True)

        assert await session.run() is None
        client.run_graph.assert_not_awaited()


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_replaces_model(self, make_session):
        client = _client()
        client.get_graph = AsyncMock(return_value=copy.deepcopy(LOADED))
        session = make_session(client)
        session.add_node("block-text", {"x": 0, "y": 0})

        persisted = await session.load("g9")

        assert persisted.id == "g9"
        assert [n.id for n in session.graph.nodes] == ["n1", "n2"]
        assert session.graph.get_node("n1").values == {"format": "Hi"}
        assert session.graph.get_node("n1").title == "TextFormatterBlock n1"
        assert [e.id for e in session.graph.edges] == ["n1_output_n2_prompt"]
        assert len(session.history) == 0
        assert (session.name, session.description) == ("Loaded", "Desc")
        client.get_graph.assert_awaited_once_with("g9")

    @pytest.mark.asyncio
    async def test_save_after_load_is_skipped(self, make_session):
        client = _client()
        client.get_graph = AsyncMock(return_value=copy.deepcopy(LOADED))
        session = make_session(client)
        await session.load("g9")

        assert await session.save() == "g9"
        client.update_graph.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_load_empties_clipboard(self, make_session):
        client = _client()
        client.get_graph = AsyncMock(return_value=copy.deepcopy(LOADED))
        session = make_session(client)
        a, _ = _build(session)
        session.select([a.id], ["1_output_2_prompt"])
        session.copy()

        await session.load("g9")
        session.add_node("block-text", {"x": 0, "y": 0})
        session.add_node("block-llm", {"x": 300, "y": 0})

        assert session.clipboard.empty
        assert session.paste() == []
        assert [e.id for e in session.graph.edges] == ["n1_output_n2_prompt"]

    @pytest.mark.asyncio
    async def test_load_template(self, make_session):
        client = _client()
        client.get_template = AsyncMock(return_value=copy.deepcopy(LOADED))
        session = make_session(client)

        await session.load("g9", template=True)

        assert session.sync.is_template
        client.get_graph.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_block_leaves_model_untouched(self, make_session):
        broken = copy.deepcopy(LOADED)
        broken["nodes"][1]["block_id"] = "retired-block"
        client = _client()
        client.get_graph = AsyncMock(return_value=broken)
        session = make_session(client)
        existing = session.add_node("block-text", {"x": 0, "y": 0})

        with pytest.raises(UnknownBlockError) as exc_info:
            await session.load("g9")

        assert exc_info.value.block_id == "retired-block"
        assert session.graph.nodes == [existing]
        assert len(session.history) == 1

    @pytest.mark.asyncio
    async def test_fetch_error_raises_sync_error(self, make_session):
        client = _client()
        client.get_graph = AsyncMock(return_value={"error": "HTTP 404", "detail": "Not Found"})
        session = make_session(client)

        with pytest.raises(SyncError, match="HTTP 404"):
            await session.load("missing")


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


class TestRun:
    @pytest.mark.asyncio
    async def test_run_saves_subscribes_and_executes(self, make_session):
        client = _client()
        channel = MagicMock()
        channel.connected = True
        channel.subscribe_to_execution = AsyncMock(return_value=True)
        session = make_session(client, channel=channel)
        _build(session)

        assert await session.run() == "g1"

        client.create_graph.assert_awaited_once()
        channel.subscribe_to_execution.assert_awaited_once_with("g1")
        client.run_graph.assert_awaited_once_with("g1")

    @pytest.mark.asyncio
    async def test_run_without_channel(self, make_session):
        client = _client()
        session = make_session(client)
        _build(session)

        assert await session.run() == "g1"
        client.run_graph.assert_awaited_once_with("g1")

    @pytest.mark.asyncio
    async def test_failed_save_aborts_run(self, make_session):
        client = _client()
        client.create_graph = AsyncMock(return_value={"error": "HTTP 500"})
        session = make_session(client)
        _build(session)

        assert await session.run() is None
        client.run_graph.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_execute_returns_none(self, make_session):
        client = _client()
        client.run_graph = AsyncMock(return_value={"error": "HTTP 503"})
        session = make_session(client)
        _build(session)

        assert await session.run() is None
