"""Tests for tabby.collectors.sql — statement normalization and rendering."""

from __future__ import annotations

import pytest

from tabby.collectors.formatter import BINARY_MARKER
from tabby.collectors.sql import SqlRenderer, normalize_statement


@pytest.fixture
def renderer() -> SqlRenderer:
    return SqlRenderer()


# ---------------------------------------------------------------------------
# normalize_statement
# ---------------------------------------------------------------------------


class TestNormalizeStatement:
    """normalize_statement — one line, one trailing semicolon."""

    def test_appends_single_semicolon(self) -> None:
        assert normalize_statement("SELECT 1") == "SELECT 1;"
        assert normalize_statement("SELECT 1;;  \n") == "SELECT 1;"

    def test_joins_lines(self) -> None:
        sql = "SELECT *\n    FROM users\n\n   WHERE id = 1"
        assert normalize_statement(sql) == "SELECT * FROM users WHERE id = 1;"

    def test_comment_lines_become_block_comments(self) -> None:
        sql = "-- load users\nSELECT * FROM users"
        assert normalize_statement(sql) == "/* load users */ SELECT * FROM users;"

    def test_idempotent(self) -> None:
        samples = [
            "SELECT 1",
            "-- note\nSELECT *\nFROM t;\n",
            "  UPDATE t SET a = 1 ;  ",
            "",
        ]
        for sql in samples:
            once = normalize_statement(sql)
            assert normalize_statement(once) == once


# ---------------------------------------------------------------------------
# SqlRenderer
# ---------------------------------------------------------------------------


class TestRenderPositional:
    """Positional ``?`` bindings."""

    def test_without_embedding_returns_sql(self, renderer: SqlRenderer) -> None:
        assert renderer.render("SELECT * FROM t WHERE x=?", [5]) == "SELECT * FROM t WHERE x=?"

    def test_embeds_numbers_literally(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT * FROM t WHERE x=? AND y=?", [5, 1.5], embed_bindings=True)
        assert sql == "SELECT * FROM t WHERE x=5 AND y=1.5"

    def test_quotes_strings(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT * FROM t WHERE name=?", ["O'Brien"], embed_bindings=True)
        assert sql == "SELECT * FROM t WHERE name='O\\'Brien'"

    def test_skips_placeholder_inside_literal(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT '?' FROM t WHERE x=?", [5], embed_bindings=True)
        assert sql == "SELECT '?' FROM t WHERE x=5"

    def test_missing_binding_leaves_placeholder(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT * FROM t WHERE a=? AND b=?", [1], embed_bindings=True)
        assert sql == "SELECT * FROM t WHERE a=1 AND b=?"

    def test_extra_bindings_dropped(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT * FROM t WHERE a=?", [1, 2, 3], embed_bindings=True)
        assert sql == "SELECT * FROM t WHERE a=1"

    def test_null_and_bool(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("INSERT INTO t VALUES (?, ?, ?)", [None, True, False], embed_bindings=True)
        assert sql == "INSERT INTO t VALUES (NULL, '1', '0')"

    def test_binary_binding(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT * FROM t WHERE blob=?", [b"\xff\xfe"], embed_bindings=True)
        assert sql == f"SELECT * FROM t WHERE blob='{BINARY_MARKER}'"

    def test_escaped_double_placeholder_untouched(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT data ?? 'k' FROM t WHERE id=?", [3], embed_bindings=True)
        assert sql == "SELECT data ? 'k' FROM t WHERE id=3"


class TestRenderNamed:
    """Named ``:name`` bindings."""

    def test_named_binding(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT * FROM t WHERE id = :id", {"id": 7}, embed_bindings=True)
        assert sql == "SELECT * FROM t WHERE id = 7"

    def test_leading_colon_in_key(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT * FROM t WHERE id = :id", {":id": 7}, embed_bindings=True)
        assert sql == "SELECT * FROM t WHERE id = 7"

    def test_prefix_names_not_confused(self, renderer: SqlRenderer) -> None:
        sql = renderer.render(
            "SELECT * FROM t WHERE a = :id_two AND b = :id",
            {"id": 1, "id_two": 2},
            embed_bindings=True,
        )
        assert sql == "SELECT * FROM t WHERE a = 2 AND b = 1"

    def test_named_inside_literal_skipped(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT ':id', x FROM t WHERE id = :id", {"id": 1}, embed_bindings=True)
        assert sql == "SELECT ':id', x FROM t WHERE id = 1"

    def test_cast_syntax_not_a_placeholder(self, renderer: SqlRenderer) -> None:
        sql = renderer.render("SELECT x::id FROM t WHERE id = :id", {"id": 1}, embed_bindings=True)
        assert sql == "SELECT x::id FROM t WHERE id = 1"
