"""Wire models for the execution server's graph and block endpoints.

Persisted graph shape (JSON):

  {
    "id": "c0ffee...",
    "name": "My Agent",
    "description": "...",
    "is_template": false,
    "nodes": [
      {
        "id": "5b2e...",
        "block_id": "a1b2...",
        "input_default": {"text": "hello"},
        "input_nodes":  [{"name": "text", "node_id": "9f00..."}],
        "output_nodes": [{"name": "output", "node_id": "7d11..."}],
        "metadata": {"position": {"x": 100, "y": 200}}
      }
    ],
    "links": [
      {"source_id": "9f00...", "sink_id": "5b2e...",
       "source_name": "output", "sink_name": "text"}
    ]
  }

Unknown keys sent by the server are ignored so newer server versions keep
validating.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class BlockInfo(_WireModel):
    """One entry of the server's block catalog (GET /blocks)."""

    id: str
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")
    output_schema: dict[str, Any] = Field(default_factory=dict, alias="outputSchema")


class NodeRef(_WireModel):
    """Edge stub stored on a persisted node: the peer node and the local field name."""

    name: str = ""
    node_id: str


class Position(_WireModel):
    x: float = 0.0
    y: float = 0.0


class NodeMetadata(_WireModel):
    position: Position = Field(default_factory=Position)


class PersistedNode(_WireModel):
    id: str
    block_id: str
    input_default: dict[str, Any] = Field(default_factory=dict)
    input_nodes: list[NodeRef] = Field(default_factory=list)
    output_nodes: list[NodeRef] = Field(default_factory=list)
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)


class PersistedLink(_WireModel):
    source_id: str
    sink_id: str
    source_name: str = ""
    sink_name: str = ""


class PersistedGraph(_WireModel):
    """The server's canonical form of a graph or template."""

    id: str | None = None
    name: str = ""
    description: str = ""
    is_template: bool = False
    nodes: list[PersistedNode] = Field(default_factory=list)
    links: list[PersistedLink] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Request body for create/update calls.

        ``is_template`` is not part of the body: the endpoint decides it.
        """
        return self.model_dump(mode="json", exclude={"is_template"})


class ExecutionEvent(_WireModel):
    """Per-node progress pushed over the realtime channel."""

    node_id: str
    status: str | None = None
    output_data: Any = None
    graph_id: str | None = None
