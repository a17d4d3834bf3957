"""Read-only block catalog fetched once per editor session."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from blockflow.client.models import BlockInfo

logger = logging.getLogger("blockflow.editor.catalog")

UNKNOWN_TYPE = "unknown"

# Edge colors per JSON schema type of the source output field.
_TYPE_COLORS: dict[str, str] = {
    "string": "#22c55e",
    "number": "#3b82f6",
    "integer": "#3b82f6",
    "boolean": "#eab308",
    "object": "#a855f7",
    "array": "#f97316",
    "null": "#6b7280",
    "any": "#6b7280",
}
_FALLBACK_COLOR = "#6b7280"


class UnknownBlockError(KeyError):
    """A graph references a block id that is not in the catalog."""

    def __init__(self, block_id: str) -> None:
        super().__init__(block_id)
        self.block_id = block_id

    def __str__(self) -> str:
        return f"Block {self.block_id!r} is not in the block catalog"


def type_color(type_name: str | None) -> str:
    """Display color for a schema type name. Unknown types get a neutral grey."""
    if not type_name:
        return _FALLBACK_COLOR
    return _TYPE_COLORS.get(type_name, _FALLBACK_COLOR)


def display_name(name: str) -> str:
    """Human-readable block name: "TextLlmCallBlock" -> "Text Llm Call"."""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name.replace("_", " "))
    spaced = re.sub(r"\s*Block$", "", spaced)
    return " ".join(w[:1].upper() + w[1:] for w in spaced.split())


class BlockCatalog:
    """Block definitions keyed by id, in server order."""

    def __init__(self, blocks: Iterable[BlockInfo] = ()) -> None:
        self._blocks: dict[str, BlockInfo] = {b.id: b for b in blocks}

    @classmethod
    def from_raw(cls, raw: list[dict[str, Any]]) -> "BlockCatalog":
        """Build from the JSON list returned by GET /blocks."""
        return cls(BlockInfo.model_validate(item) for item in raw or [])

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def __iter__(self):
        return iter(self._blocks.values())

    def get(self, block_id: str) -> BlockInfo | None:
        return self._blocks.get(block_id)

    def require(self, block_id: str) -> BlockInfo:
        """Like get(), but raises UnknownBlockError for a missing id."""
        block = self._blocks.get(block_id)
        if block is None:
            raise UnknownBlockError(block_id)
        return block

    def search(self, query: str) -> list[BlockInfo]:
        """Case-insensitive substring match on block names."""
        q = query.lower()
        return [b for b in self._blocks.values() if q in b.name.lower()]

    def output_type(self, block_id: str, handle: str) -> str:
        """Declared type of output field ``handle``; "unknown" when undeclared."""
        block = self._blocks.get(block_id)
        if block is None:
            return UNKNOWN_TYPE
        prop = (block.output_schema.get("properties") or {}).get(handle)
        if not isinstance(prop, dict):
            logger.debug("Output handle %r not declared on block %s", handle, block_id)
            return UNKNOWN_TYPE
        return prop.get("type") or UNKNOWN_TYPE
