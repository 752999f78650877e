"""Tests for plexus.core.variables module."""

from dataclasses import dataclass

import pytest

from plexus.core.variables import NodeOutput, available_variables, resolve, stringify


@dataclass
class FakeEdge:
    source_id: str
    target_id: str


class TestStringify:
    """Tests for stringify."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("plain", "plain"),
            (True, "true"),
            (False, "false"),
            (3, "3"),
            (2.5, "2.5"),
            ({"a": 1}, '{"a": 1}'),
            (["x", "y"], '["x", "y"]'),
            (None, "null"),
        ],
    )
    def test_values(self, value, expected):
        assert stringify(value) == expected


class TestResolve:
    """Tests for resolve."""

    def test_input_uses_first_incoming_edge(self):
        outputs = [NodeOutput("a", "from a"), NodeOutput("b", "from b")]
        edges = [FakeEdge("b", "target"), FakeEdge("a", "target"), FakeEdge("a", "other")]

        assert resolve("got {{input}}", "target", outputs, edges) == "got from b"

    def test_input_without_edges_left_verbatim(self):
        outputs = [NodeOutput("a", "from a")]

        assert resolve("got {{input}}", "target", outputs) == "got {{input}}"

    def test_node_reference_by_id_name_and_label(self):
        outputs = [NodeOutput("n1", "one", name="Summary", label="sum-label")]

        assert resolve("{{n1}}", "x", outputs) == "one"
        assert resolve("{{Summary}}", "x", outputs) == "one"
        assert resolve("{{sum-label}}", "x", outputs) == "one"

    def test_case_sensitive_match_wins(self):
        outputs = [
            NodeOutput("a", "lower", name="summary"),
            NodeOutput("b", "upper", name="Summary"),
        ]

        assert resolve("{{Summary}}", "x", outputs) == "upper"
        assert resolve("{{summary}}", "x", outputs) == "lower"

    def test_case_insensitive_fallback(self):
        outputs = [NodeOutput("a", "value", name="MyNode")]

        assert resolve("{{mynode}}", "x", outputs) == "value"

    def test_whitespace_inside_braces(self):
        outputs = [NodeOutput("a", "value")]

        assert resolve("{{ a }}", "x", outputs) == "value"

    def test_property_access(self):
        outputs = [NodeOutput("summary", {"text": "short", "usage": {"totalTokens": 9}})]

        assert resolve("{{summary.text}}", "x", outputs) == "short"
        assert resolve("{{summary.usage}}", "x", outputs) == '{"totalTokens": 9}'

    def test_property_data_is_whole_output(self):
        outputs = [NodeOutput("n", {"k": "v"})]

        assert resolve("{{n.data}}", "x", outputs) == '{"k": "v"}'

    def test_list_index(self):
        outputs = [NodeOutput("items", ["zero", "one"])]

        assert resolve("{{items.1}}", "x", outputs) == "one"
        assert resolve("{{items.5}}", "x", outputs) == "{{items.5}}"

    def test_structured_output_serialized(self):
        outputs = [NodeOutput("n", {"a": [1, 2]})]

        assert resolve("value={{n}}", "x", outputs) == 'value={"a": [1, 2]}'

    def test_unresolved_left_verbatim(self):
        outputs = [NodeOutput("known", "yes")]
        template = "{{unknown}} and {{known.missing}} and {{known}}"

        assert resolve(template, "x", outputs) == "{{unknown}} and {{known.missing}} and yes"

    def test_none_outputs_ignored(self):
        outputs = [NodeOutput("pending", None)]

        assert resolve("{{pending}}", "x", outputs) == "{{pending}}"

    def test_template_without_placeholders(self):
        assert resolve("no placeholders", "x", []) == "no placeholders"


class TestAvailableVariables:
    """Tests for available_variables."""

    def test_lists_input_nodes_and_properties(self):
        outputs = [
            NodeOutput("summary", {"text": "t", "model": "m"}, name="Summary"),
            NodeOutput("plain", "p"),
            NodeOutput("current", "self"),
        ]
        edges = [FakeEdge("plain", "current")]

        variables = available_variables("current", outputs, edges)

        assert variables == [
            "{{input}}",
            "{{Summary}}",
            "{{Summary.text}}",
            "{{Summary.model}}",
            "{{plain}}",
        ]
