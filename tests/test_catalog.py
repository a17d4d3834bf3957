"""BlockCatalog lookups, display names and edge colors."""

from __future__ import annotations

import pytest

from blockflow.editor.catalog import (
    UNKNOWN_TYPE,
    BlockCatalog,
    UnknownBlockError,
    display_name,
    type_color,
)


class TestBlockCatalog:
    def test_from_raw_keeps_server_order(self, catalog):
        assert [b.id for b in catalog] == ["block-text", "block-llm"]
        assert len(catalog) == 2
        assert "block-llm" in catalog
        assert "nope" not in catalog

    def test_empty_catalog(self):
        assert len(BlockCatalog.from_raw([])) == 0
        assert len(BlockCatalog()) == 0

    def test_require_raises_for_unknown_block(self, catalog):
        with pytest.raises(UnknownBlockError) as exc_info:
            catalog.require("missing")
        assert exc_info.value.block_id == "missing"
        assert "missing" in str(exc_info.value)

    def test_unknown_block_error_is_a_key_error(self, catalog):
        with pytest.raises(KeyError):
            catalog.require("missing")

    def test_search_is_case_insensitive(self, catalog):
        assert [b.id for b in catalog.search("llm")] == ["block-llm"]
        assert [b.id for b in catalog.search("BLOCK")] == ["block-text", "block-llm"]
        assert catalog.search("zzz") == []

    def test_output_type(self, catalog):
        assert catalog.output_type("block-llm", "tokens") == "number"
        assert catalog.output_type("block-llm", "missing") == UNKNOWN_TYPE
        assert catalog.output_type("missing", "tokens") == UNKNOWN_TYPE


class TestDisplayHelpers:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("TextLlmCallBlock", "Text Llm Call"),
            ("StoreValueBlock", "Store Value"),
            ("http_request_block", "Http Request Block"),
            ("Search", "Search"),
        ],
    )
    def test_display_name(self, name, expected):
        assert display_name(name) == expected

    def test_type_colors(self):
        assert type_color("string") != type_color("number")
        assert type_color("number") == type_color("integer")
        assert type_color("mystery") == type_color(UNKNOWN_TYPE)
        assert type_color(None) == type_color(UNKNOWN_TYPE)
