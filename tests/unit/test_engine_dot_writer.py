"""Tests for attractor.engine.dot_writer: Graph to DOT serialization."""
from __future__ import annotations

from attractor.engine.dot_writer import dot_escape, edge_display_label, graph_to_dot
from attractor.engine.graph import START_NODE_ID, Edge, Graph, Node


class TestEscape:
    def test_plain(self):
        assert dot_escape("plan") == '"plan"'

    def test_quotes_escaped(self):
        assert dot_escape('say "hi"') == '"say \\"hi\\""'

    def test_backslash_escaped_first(self):
        assert dot_escape('a\\"b') == '"a\\\\\\"b"'


class TestEdgeLabel:
    def test_label_and_condition(self):
        edge = Edge("a", "b", {"label": "retry", "condition": 'outcome("a") == "fail"'})
        assert edge_display_label(edge) == 'retry [outcome("a") == "fail"]'

    def test_label_only(self):
        assert edge_display_label(Edge("a", "b", {"label": "go"})) == "go"

    def test_condition_only(self):
        assert edge_display_label(Edge("a", "b", {"condition": "outcome=success"})) == "outcome=success"

    def test_neither(self):
        assert edge_display_label(Edge("a", "b", {"condition": ""})) == ""


class TestGraphToDot:
    def _graph(self) -> Graph:
        return Graph(
            name="demo",
            attrs={"label": 'The "demo"'},
            nodes={
                START_NODE_ID: Node(START_NODE_ID, {"shape": "Mdiamond", "label": "Start"}),
                "a": Node("a", {"shape": "box", "label": 'Say "hi"', "prompt": "ignored"}),
                "done": Node("done", {"shape": "Msquare"}),
            },
            edges=[
                Edge(START_NODE_ID, "a", {"condition": ""}),
                Edge("a", "a", {"label": "retry", "condition": 'outcome("a") == "fail"'}),
                Edge("a", "done", {"condition": "outcome=success", "weight": 2}),
            ],
        )

    def test_full_output(self):
        expected = (
            'digraph "demo" {\n'
            '  label="The \\"demo\\"";\n'
            '  rankdir="TB";\n'
            "\n"
            '  "__start__" [label="Start", shape="Mdiamond"];\n'
            '  "a" [label="Say \\"hi\\"", shape="box"];\n'
            '  "done" [shape="Msquare"];\n'
            "\n"
            '  "__start__" -> "a";\n'
            '  "a" -> "a" [label="retry [outcome(\\"a\\") == \\"fail\\"]"];\n'
            '  "a" -> "done" [label="outcome=success"];\n'
            "}\n"
        )
        assert graph_to_dot(self._graph()) == expected

    def test_no_graph_label_line_when_unset(self):
        out = graph_to_dot(Graph(name="bare"))
        assert out == 'digraph "bare" {\n  rankdir="TB";\n\n\n}\n'

    def test_defaults_never_emitted(self):
        g = Graph(name="g", nodes={"n": Node("n")}, node_defaults={"shape": "box"},
                  edge_defaults={"weight": 1})
        out = graph_to_dot(g)
        assert "weight" not in out
        assert '"n";' in out

    def test_deterministic(self):
        assert graph_to_dot(self._graph()) == graph_to_dot(self._graph())
