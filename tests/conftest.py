"""Shared block catalog fixtures."""

from __future__ import annotations

import pytest

from blockflow.editor.catalog import BlockCatalog

TEXT_BLOCK = {
    "id": "block-text",
    "name": "TextFormatterBlock",
    "description": "Formats a string template",
    "inputSchema": {
        "type": "object",
        "properties": {
            "format": {"type": "string"},
            "values": {
                "type": "object",
                "properties": {"name": {"type": "string"}},
                "additionalProperties": True,
            },
        },
    },
    "outputSchema": {
        "type": "object",
        "properties": {"output": {"type": "string"}},
    },
}

LLM_BLOCK = {
    "id": "block-llm",
    "name": "LlmCallBlock",
    "inputSchema": {
        "type": "object",
        "properties": {
            "prompt": {"type": "string"},
            "config": {
                "type": "object",
                "properties": {"temperature": {"type": "number"}},
            },
        },
    },
    "outputSchema": {
        "type": "object",
        "properties": {
            "response": {"type": "object"},
            "tokens": {"type": "number"},
        },
    },
}

BLOCKS = [TEXT_BLOCK, LLM_BLOCK]


@pytest.fixture
def catalog() -> BlockCatalog:
    return BlockCatalog.from_raw(BLOCKS)


@pytest.fixture
def make_session(catalog):
    """Factory for EditorSessions bound to ``catalog`` without opening them."""
    from blockflow.editor.session import EditorSession

    def _make(client, channel=None, editor_settings=None) -> EditorSession:
        session = EditorSession(editor_settings=editor_settings, client=client, channel=channel)
        session.catalog = catalog
        session.graph.catalog = catalog
        return session

    return _make
