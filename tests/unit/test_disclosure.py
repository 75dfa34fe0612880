"""
Tests for disclosure nodes and their context capabilities.

Tests:
    - DisclosureNode construction and selection
    - DisclosureNode.call text
    - by_category selector (valid, unknown, missing, malformed)
    - DisclosureContextCapability description and detail
"""

import json

import pytest

from toolloop.capabilities import (
    CallContext,
    DisclosureContextCapability,
    DisclosureNode,
    FunctionCapability,
)
from toolloop.capabilities.builtin import math_node, text_node
from toolloop.errors import DuplicateCapabilityError


def make(name: str, description: str | None = None) -> FunctionCapability:
    return FunctionCapability(name, description or f"{name} capability", lambda args: name)


class TestDisclosureNode:
    """Tests for DisclosureNode."""

    def test_select_all_without_selector(self):
        """Test a node without selector reveals every child."""
        node = DisclosureNode("db", "Database", [make("query"), make("insert")])
        assert [c.name for c in node.select("{}")] == ["query", "insert"]

    def test_custom_selector(self):
        """Test the selector receives the raw input."""
        seen = []
        query = make("query")

        def selector(raw):
            seen.append(raw)
            return [query]

        node = DisclosureNode("db", "Database", [query, make("insert")], selector=selector)
        assert node.select('{"mode": "read"}') == [query]
        assert seen == ['{"mode": "read"}']

    def test_duplicate_children_rejected(self):
        """Test inner names must be unique."""
        with pytest.raises(DuplicateCapabilityError):
            DisclosureNode("db", "Database", [make("query"), make("query")])

    def test_inner_capabilities_are_immutable(self):
        """Test the children are stored as a tuple."""
        children = [make("query")]
        node = DisclosureNode("db", "Database", children)
        children.append(make("insert"))
        assert len(node.inner_capabilities) == 1

    def test_call_reports_enabled(self):
        """Test the text the model sees after unfolding."""
        node = DisclosureNode("db", "Database", [make("query"), make("insert")])
        result = node.call("{}", CallContext())
        assert result.content == "Enabled 2 capabilities: query, insert"

    def test_call_with_empty_selection(self):
        """Test the text when the selector picks nothing."""
        node = DisclosureNode("db", "Database", [make("query")], selector=lambda raw: [])
        result = node.call("{}", CallContext())
        assert not result.is_error
        assert "nothing was enabled" in result.content

    def test_defaults(self):
        """Test default flags and schema."""
        node = DisclosureNode("db", "Database", [])
        assert node.remove_on_invoke is True
        assert node.usage_notes is None
        assert node.input_schema == {"type": "object", "properties": {}}


class TestByCategory:
    """Tests for DisclosureNode.by_category."""

    @pytest.fixture
    def node(self) -> DisclosureNode:
        return DisclosureNode.by_category(
            "file_operations",
            "File operations",
            {
                "read": [make("read_file"), make("list_dir")],
                "write": [make("write_file"), make("delete_file")],
            },
        )

    def test_known_category(self, node):
        """Test a category selects its capabilities only."""
        selected = node.select('{"category": "write"}')
        assert [c.name for c in selected] == ["write_file", "delete_file"]

    def test_unknown_category_selects_all(self, node):
        """Test an unknown category reveals everything."""
        assert len(node.select('{"category": "admin"}')) == 4

    def test_missing_category_selects_all(self, node):
        """Test missing arguments reveal everything."""
        assert len(node.select("{}")) == 4
        assert len(node.select("")) == 4

    def test_malformed_input_selects_all(self, node):
        """Test unparseable input reveals everything."""
        assert len(node.select("not json")) == 4

    def test_repaired_input(self, node):
        """Test slightly malformed JSON is still understood."""
        assert [c.name for c in node.select("{category: 'read'}")] == ["read_file", "list_dir"]

    def test_schema_lists_categories(self, node):
        """Test the input schema advertises the categories."""
        schema = node.input_schema
        assert schema["properties"]["category"]["enum"] == ["read", "write"]

    def test_shared_capability_listed_once(self):
        """Test a capability in two categories is a single child."""
        shared = make("stat")
        node = DisclosureNode.by_category("fs", "Files", {"a": [shared], "b": [shared, make("x")]})
        assert [c.name for c in node.inner_capabilities] == ["stat", "x"]

    def test_custom_parameter(self):
        """Test the category argument name is configurable."""
        node = DisclosureNode.by_category(
            "fs", "Files", {"a": [make("x")], "b": [make("y")]}, category_parameter="kind"
        )
        assert [c.name for c in node.select('{"kind": "b"}')] == ["y"]
        assert "kind" in node.input_schema["properties"]


class TestDisclosureContextCapability:
    """Tests for the companion context capability."""

    def test_name_and_description(self, database_node, query_capability):
        """Test naming and the short description."""
        context = database_node.context_capability([query_capability])
        assert isinstance(context, DisclosureContextCapability)
        assert context.name == "database_context"
        assert context.description.startswith("Context for database (")
        assert "query: Run a read-only SQL query" in context.description

    def test_long_parent_description_is_summarised(self):
        """Test the parent description is cut in the context description."""
        node = DisclosureNode("big", "x" * 500, [make("a")])
        description = node.context_capability([make("a")]).description
        assert "x" * 197 + "..." in description
        assert "x" * 198 not in description

    def test_call_returns_full_detail(self, database_node, query_capability):
        """Test the detail lists each child, its schema and the usage notes."""
        context = database_node.context_capability([query_capability])
        content = context.call("{}", CallContext()).content
        assert content.startswith("# database")
        assert "## query" in content
        assert json.dumps(query_capability.input_schema, sort_keys=True) in content
        assert content.endswith("## Usage notes\nQueries are read-only.")

    def test_without_usage_notes(self):
        """Test no usage section when the node has no notes."""
        node = DisclosureNode("n", "Node", [make("a")])
        content = node.context_capability([make("a")]).call("", CallContext()).content
        assert "Usage notes" not in content


class TestBuiltinCatalog:
    """Tests for the demo catalog nodes."""

    def test_math_node_nests_advanced_math(self):
        """Test math contains a nested node."""
        node = math_node()
        names = [c.name for c in node.inner_capabilities]
        assert names == ["add", "multiply", "advanced_math"]
        assert isinstance(node.inner_capabilities[2], DisclosureNode)

    def test_add(self):
        """Test arithmetic formatting."""
        add = math_node().inner_capabilities[0]
        assert add.call('{"a": 2, "b": 3}', CallContext()).content == "5"
        assert add.call('{"a": 2.5, "b": 1}', CallContext()).content == "3.5"

    def test_add_validates_numbers(self):
        """Test non-numbers are reported to the model."""
        add = math_node().inner_capabilities[0]
        result = add.call('{"a": "2", "b": 3}', CallContext())
        assert result.is_error
        assert result.message == "'a' must be a number"

    def test_text_stats_artifact(self):
        """Test word_count returns an artifact."""
        word_count = next(c for c in text_node().inner_capabilities if c.name == "word_count")
        result = word_count.call('{"text": "one two three"}', CallContext())
        assert result.content == "3"
        assert result.artifact == {"words": 3}
