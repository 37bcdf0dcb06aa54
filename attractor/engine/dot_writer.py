"""Render a ``Graph`` as Graphviz DOT text.

Output is deterministic and meant for ``dot``/``graph-easy`` and similar
viewers.  Only display attributes are written: ``label`` and ``shape`` for
nodes, a single ``label`` for edges.  ``node_defaults`` and
``edge_defaults`` are never emitted.
"""
from __future__ import annotations

from typing import Any

from attractor.engine.graph import Edge, Graph, Node

_INDENT = "  "


def dot_escape(value: Any) -> str:
    """Quote *value* for DOT, escaping backslashes and double quotes."""
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _attr_list(attrs: dict[str, Any]) -> str:
    parts = [f"{k}={dot_escape(v)}" for k, v in attrs.items() if v is not None]
    return f" [{', '.join(parts)}]" if parts else ""


def _node_display_attrs(node: Node) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if node.attrs.get("label"):
        out["label"] = node.attrs["label"]
    if node.attrs.get("shape"):
        out["shape"] = node.attrs["shape"]
    return out


def edge_display_label(edge: Edge) -> str:
    """Label shown for *edge*: label, condition, or ``label [condition]``."""
    label, condition = edge.label, edge.condition
    if label and condition:
        return f"{label} [{condition}]"
    return label or condition


def graph_to_dot(graph: Graph) -> str:
    """Serialize *graph* to a DOT string ending in a newline."""
    lines = [f"digraph {dot_escape(graph.name)} {{"]
    if graph.attrs.get("label"):
        lines.append(f"{_INDENT}label={dot_escape(graph.attrs['label'])};")
    lines.append(f'{_INDENT}rankdir="TB";')
    lines.append("")

    for node in graph.nodes.values():
        lines.append(f"{_INDENT}{dot_escape(node.id)}{_attr_list(_node_display_attrs(node))};")
    lines.append("")

    for edge in graph.edges:
        label = edge_display_label(edge)
        attrs = {"label": label} if label else {}
        lines.append(
            f"{_INDENT}{dot_escape(edge.source)} -> {dot_escape(edge.target)}{_attr_list(attrs)};"
        )

    lines.append("}")
    return "\n".join(lines) + "\n"
