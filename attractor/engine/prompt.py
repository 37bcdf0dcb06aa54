"""Prompt construction for LLM stages."""
from __future__ import annotations

from attractor.engine.graph import Graph, Node

GOAL_PLACEHOLDER = "$goal"


def build_stage_prompt(node: Node, graph: Graph) -> str:
    """Return the prompt text for *node*.

    Falls back to the node's label and then its id when no prompt is set.
    ``$goal`` is replaced by the graph-level goal (empty when unset).
    """
    text = node.prompt or node.attrs.get("label") or node.id
    return text.replace(GOAL_PLACEHOLDER, graph.goal)
