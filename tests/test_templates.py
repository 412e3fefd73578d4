"""
Tests for SQL template rendering.

Covers:
- Component sources: live folder, pinned snapshot, path normalization
- TemplateRenderer: SQL formatting of every expression, safe output,
  includes, filters and globals, context, streaming
- Fault reporting: missing scripts and fragments, syntax errors
- Live and freshly pinned renders producing identical SQL
"""

from __future__ import annotations

import uuid

import pytest

from spawnsql.faults import (
    FragmentNotFoundFault,
    InvalidValueFault,
    RenderFault,
    TemplateNotFoundFault,
    UninitializedSourceFault,
)
from spawnsql.store import HashStore, SnapshotEngine
from spawnsql.templates import (
    LiveComponentSource,
    PinnedComponentSource,
    TemplateRenderer,
    normalize_name,
)


@pytest.fixture
def components(tmp_path, write):
    root = tmp_path / "components"
    write(root / "users.sql", "CREATE TABLE {{ variables.table|escape_identifier }} (id int);\n")
    write(root / "admin/audit.sql", "-- audit for {{ env }}\n")
    write(root / "data/seed.json", '{"roles": ["admin", "viewer"]}')
    write(root / "data/seed.yaml", "roles:\n  - admin\n")
    return root


@pytest.fixture
def renderer(components):
    return TemplateRenderer(LiveComponentSource(components), environment="test")


def render(renderer, text, variables=None):
    return renderer.render_string(text, variables)


# ════════════════════════════════════════════════════════════════════════
# Sources
# ════════════════════════════════════════════════════════════════════════


class TestSources:

    @pytest.mark.parametrize("name, expected", [
        ("users.sql", "users.sql"),
        ("./admin//audit.sql", "admin/audit.sql"),
        ("admin\\audit.sql", "admin/audit.sql"),
        ("../secrets.sql", None),
        ("admin/../../x", None),
        ("", None),
    ])
    def test_normalize_name(self, name, expected):
        assert normalize_name(name) == expected

    def test_live_load(self, components):
        source = LiveComponentSource(components)
        assert source.load("admin/audit.sql") == b"-- audit for {{ env }}\n"
        assert source.load("missing.sql") is None
        assert source.load("admin") is None
        assert source.load("../components/users.sql") is None

    def test_pinned_load(self, tmp_path, components):
        store = HashStore(tmp_path / "pinned")
        root = SnapshotEngine(store).snapshot(components)
        source = PinnedComponentSource.from_pin(store, root)
        assert source.load("admin/audit.sql") == b"-- audit for {{ env }}\n"
        assert source.load("missing.sql") is None

    def test_pinned_source_ignores_later_edits(self, tmp_path, components):
        store = HashStore(tmp_path / "pinned")
        source = PinnedComponentSource.from_pin(store, SnapshotEngine(store).snapshot(components))
        (components / "admin/audit.sql").write_text("changed")
        assert source.load("admin/audit.sql") == b"-- audit for {{ env }}\n"

    def test_uninitialized_pinned_source(self, tmp_path):
        source = PinnedComponentSource(HashStore(tmp_path / "pinned"))
        assert not source.initialized
        with pytest.raises(UninitializedSourceFault):
            source.load("users.sql")


# ════════════════════════════════════════════════════════════════════════
# Formatting
# ════════════════════════════════════════════════════════════════════════


class TestFormatting:

    def test_string_literal(self, renderer):
        assert render(renderer, "SELECT {{ \"it's\" }};") == "SELECT 'it''s';"

    def test_variables_are_formatted(self, renderer):
        sql = render(renderer, "SELECT {{ variables.row }}, {{ variables.missing }};", {
            "row": [1, "hello", True],
            "missing": None,
        })
        assert sql == "SELECT ARRAY[1, 'hello', TRUE], NULL;"

    def test_safe_is_verbatim(self, renderer):
        assert render(renderer, "WHERE {{ '1 OR 1=1'|safe }}") == "WHERE 1 OR 1=1"

    def test_escape_identifier_filter(self, renderer):
        assert render(renderer, "{{ 'user\"s'|escape_identifier }}") == '"user""s"'

    def test_undefined_renders_empty(self, renderer):
        assert render(renderer, "[{{ variables.nope }}]") == "[]"

    def test_macro_output_not_requoted(self, renderer):
        text = "{% macro col(n) %}{{ n|escape_identifier }} text{% endmacro %}{{ col('name') }}"
        assert render(renderer, text) == '"name" text'

    def test_set_block_not_requoted(self, renderer):
        text = "{% set body %}SELECT {{ 1 }}{% endset %}{{ body }};"
        assert render(renderer, text) == "SELECT 1;"

    def test_join_is_quoted_once(self, renderer):
        assert render(renderer, "{{ ['a', 'b']|join(',') }}") == "'a,b'"

    def test_concat_with_identifier_is_quoted(self, renderer):
        sql = render(renderer, "{{ (variables.t|escape_identifier) ~ variables.v }}", {
            "t": "users",
            "v": " WHERE x = 'a' OR 1=1; DROP TABLE users; --",
        })
        assert sql == "'\"users\" WHERE x = ''a'' OR 1=1; DROP TABLE users; --'"
        assert "&#39;" not in sql

    def test_concat_with_macro_output_is_quoted(self, renderer):
        text = "{% macro col(n) %}{{ n|escape_identifier }}{% endmacro %}{{ col('a') ~ \" < 'b'\" }}"
        assert render(renderer, text) == "'\"a\" < ''b'''"

    def test_concat_of_constants(self, renderer):
        assert render(renderer, "{{ 'a' ~ \"'b\" }}") == "'a''b'"

    def test_plus_with_safe_operand_is_quoted(self, renderer):
        sql = render(renderer, "{{ ('t'|escape_identifier) + variables.v }}", {"v": "'x'"})
        assert sql == "'\"t\"''x'''"

    def test_percent_format_with_safe_template_is_quoted(self, renderer):
        variables = {"v": "a'b"}
        assert render(renderer, "{{ ('%s'|safe) % variables.v }}", variables) == "'a''b'"
        assert render(renderer, "{{ ('%s'|safe)|format(variables.v) }}", variables) == "'a''b'"

    def test_html_escape_filter_unavailable(self, renderer):
        with pytest.raises(RenderFault):
            render(renderer, "{{ 'x'|e }}")

    def test_callable_output_rejected(self, renderer):
        with pytest.raises(InvalidValueFault):
            render(renderer, "{{ gen_uuid_v4 }}")

    def test_non_finite_float_rejected(self, renderer):
        with pytest.raises(InvalidValueFault):
            render(renderer, "{{ variables.x }}", {"x": float("nan")})

    def test_trailing_newline_kept(self, renderer):
        assert render(renderer, "SELECT 1;\n") == "SELECT 1;\n"


# ════════════════════════════════════════════════════════════════════════
# Components, filters and globals
# ════════════════════════════════════════════════════════════════════════


class TestComponents:

    def test_include(self, renderer):
        sql = render(renderer, "{% include 'users.sql' %}", {"table": "users"})
        assert sql == 'CREATE TABLE "users" (id int);\n'

    def test_include_sees_env(self, renderer):
        assert render(renderer, "{% include 'admin/audit.sql' %}") == "-- audit for 'test'\n"

    def test_missing_fragment(self, renderer):
        with pytest.raises(FragmentNotFoundFault) as exc_info:
            render(renderer, "{% include 'nope.sql' %}")
        assert exc_info.value.metadata["name"] == "nope.sql"

    def test_read_file_and_parse_json(self, renderer):
        sql = render(renderer, "{{ ('data/seed.json'|read_file|parse_json).roles }}")
        assert sql == "ARRAY['admin', 'viewer']"

    def test_read_file_and_parse_yaml(self, renderer):
        sql = render(renderer, "{{ ('data/seed.yaml'|read_file|parse_yaml).roles[0] }}")
        assert sql == "'admin'"

    def test_read_file_as_text(self, renderer):
        sql = render(renderer, "{{ 'admin/audit.sql'|read_file|to_string_lossy }}")
        assert sql == "'-- audit for {{ env }}\n'"

    def test_read_file_missing(self, renderer):
        with pytest.raises(FragmentNotFoundFault):
            render(renderer, "{{ 'nope.json'|read_file }}")

    def test_parse_toml(self, renderer):
        assert render(renderer, "{{ ('a = 1'|parse_toml).a }}") == "1"

    def test_gen_uuid_v5_is_deterministic(self, renderer):
        sql = render(renderer, "{{ gen_uuid_v5('spawn') }}")
        assert sql == f"'{uuid.uuid5(uuid.NAMESPACE_DNS, 'spawn')}'"

    def test_gen_uuid_v4(self, renderer):
        value = render(renderer, "{{ gen_uuid_v4() }}").strip("'")
        assert uuid.UUID(value).version == 4


# ════════════════════════════════════════════════════════════════════════
# Scripts
# ════════════════════════════════════════════════════════════════════════


class TestScripts:

    def test_render_script(self, tmp_path, renderer, write):
        script = write(tmp_path / "up.sql", "BEGIN;\n{% include 'users.sql' %}COMMIT;\n")
        sql = renderer.render(script, {"table": "accounts"})
        assert sql == 'BEGIN;\nCREATE TABLE "accounts" (id int);\nCOMMIT;\n'

    def test_stream_matches_render(self, tmp_path, renderer, write):
        script = write(tmp_path / "up.sql", "SELECT {{ env }};\n{% include 'admin/audit.sql' %}")
        assert b"".join(renderer.stream(script)) == renderer.render_bytes(script)

    def test_missing_script(self, tmp_path, renderer):
        with pytest.raises(TemplateNotFoundFault):
            renderer.render(tmp_path / "nope.sql")

    def test_syntax_error(self, renderer):
        with pytest.raises(RenderFault):
            render(renderer, "{% if %}")

    def test_live_and_pinned_render_identically(self, tmp_path, components, write):
        script = write(
            tmp_path / "up.sql",
            "{% include 'users.sql' %}{% include 'admin/audit.sql' %}"
            "{{ ('data/seed.json'|read_file|parse_json).roles }}\n",
        )
        store = HashStore(tmp_path / "pinned")
        pinned = PinnedComponentSource.from_pin(store, SnapshotEngine(store).snapshot(components))

        live_sql = TemplateRenderer(LiveComponentSource(components)).render(script, {"table": "t"})
        pinned_sql = TemplateRenderer(pinned).render(script, {"table": "t"})
        assert live_sql == pinned_sql
