"""Schema-driven input composition.

Projects a node's flat hardcoded values through its block's input schema into
the nested ``input_default`` payload the server expects:

  - declared properties present in the values are copied; "object" properties
    are composed recursively against their nested schema;
  - when the schema allows additional properties, the whole raw value map is
    merged over the result, so undeclared keys pass through untyped.

Example::

    schema = {"properties": {"a": {"type": "string"},
                             "b": {"type": "object",
                                   "properties": {"c": {"type": "number"}}}}}
    compose_input(schema, {"a": "x", "b": {"c": 5}, "z": 1})
    # -> {"a": "x", "b": {"c": 5}}
"""

from __future__ import annotations

import logging
from typing import Any

from blockflow.editor.catalog import BlockCatalog
from blockflow.editor.graph_model import Node

logger = logging.getLogger("blockflow.editor.composer")


def compose_input(schema: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
    """Compose ``values`` against ``schema``. Never mutates its arguments."""
    result: dict[str, Any] = {}
    if not isinstance(values, dict):
        return result

    for key, prop in (schema.get("properties") or {}).items():
        if key not in values:
            continue
        if isinstance(prop, dict) and prop.get("type") == "object":
            result[key] = compose_input(prop, values[key])
        else:
            result[key] = values[key]

    if schema.get("additionalProperties"):
        result = {**result, **values}

    return result


def prepare_node_input(catalog: BlockCatalog, node: Node) -> dict[str, Any]:
    """Composed input payload for ``node``; {} when its block schema is unknown."""
    block = catalog.get(node.block_id)
    if block is None:
        logger.error("Schema not found for block ID: %s (node %s)", node.block_id, node.id)
        return {}
    input_data = compose_input(block.input_schema, node.values)
    logger.debug("Prepared input for %s (%s): %s", block.name, node.id, input_data)
    return input_data
