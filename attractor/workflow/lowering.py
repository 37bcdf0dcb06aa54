"""Lower a ``WorkflowDefinition`` into the Graph IR.

Lowering is the only bridge between the author-facing AST and the
engine-facing graph.  Nodes carry every stage attribute; routing lives on
edges as AND-only condition strings:

- ``__start__`` (``Mdiamond``) is synthesised and wired to the declared start.
- Global transitions become edges in declaration order, grouped by source.
- Decision routes become one edge per DNF group of their ``when``
  expression, all sharing the route's source and target.
- Human options become one edge each with ``preferred_label=<key>``.

``weight`` on transition and route edges encodes declaration order
(``priority * 1_000_000 + (count - index)``) so weight-based selection agrees
with first-match-wins.

The workflow is validated first; no partial graph is ever returned.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from attractor.engine.graph import START_NODE_ID, Edge, Graph, Node
from attractor.workflow.definition import (
    ModelConfig,
    Stage,
    StageKind,
    Transition,
    WorkflowDefinition,
)
from attractor.workflow.expressions import edge_conditions
from attractor.workflow.validator import validate_workflow_or_raise

logger = logging.getLogger(__name__)

KIND_TO_SHAPE: dict[StageKind, str] = {
    StageKind.LLM: "box",
    StageKind.HUMAN: "hexagon",
    StageKind.DECISION: "diamond",
    StageKind.EXIT: "Msquare",
    StageKind.TOOL: "parallelogram",
}

# Short property names accepted on stages, mapped to their graph attribute
ATTR_ALIASES: dict[str, str] = {
    "model": "llm_model",
    "provider": "llm_provider",
    "command": "tool_command",
}

_PRIORITY_SCALE = 1_000_000


def order_weight(priority: int | None, index: int, total: int) -> int:
    """Weight for the *index*-th of *total* sibling routes."""
    return (priority or 0) * _PRIORITY_SCALE + (total - index)


def _stage_to_node(stage: Stage) -> Node:
    attrs: dict[str, Any] = {}
    for key, value in stage.attrs.items():
        attrs[ATTR_ALIASES.get(key, key)] = value
    # The shape always encodes the stage kind.
    attrs["shape"] = KIND_TO_SHAPE[stage.kind]
    attrs.setdefault("label", stage.id)

    if stage.retry is not None:
        attrs["max_retries"] = max(0, int(stage.retry.max_attempts) - 1)
        if stage.retry.backoff:
            attrs["retry_backoff"] = stage.retry.backoff
        if stage.retry.delay:
            attrs["retry_delay"] = stage.retry.delay
        if stage.retry.max_delay:
            attrs["retry_max_delay"] = stage.retry.max_delay

    profile = stage.model_profile
    if profile:
        classes = [c.strip() for c in str(attrs.get("class") or "").split(",") if c.strip()]
        if profile not in classes:
            classes.append(profile)
        attrs["class"] = ",".join(classes)

    return Node(id=stage.id, attrs=attrs)


def _routing_edges(
    source: str, routes: Iterable[tuple[str, str | None, int | None]]
) -> list[Edge]:
    """Expand ``(target, when, priority)`` routes into weighted edges."""
    routes = list(routes)
    edges: list[Edge] = []
    for index, (target, when, priority) in enumerate(routes):
        weight = order_weight(priority, index, len(routes))
        for condition in edge_conditions(when):
            edges.append(Edge(source, target, {"condition": condition, "weight": weight}))
    return edges


def _transition_edges(transitions: list[Transition]) -> list[Edge]:
    by_source: dict[str, list[Transition]] = {}
    for t in transitions:
        by_source.setdefault(t.from_stage, []).append(t)

    edges: list[Edge] = []
    for source, group in by_source.items():
        edges.extend(_routing_edges(source, ((t.to, t.when, t.priority) for t in group)))
    return edges


def build_model_stylesheet(models: ModelConfig | None, extra: str | None = None) -> str:
    """Render a ``models`` block (plus any explicit stylesheet) as stylesheet text."""
    rules: list[str] = []
    if models is not None:
        if models.default:
            rules.append(f"* {{ llm_model: {models.default}; }}")
        for name, profile in models.profiles.items():
            decls = [
                f"{prop}: {value};"
                for prop, value in (
                    ("llm_model", profile.model),
                    ("llm_provider", profile.provider),
                    ("reasoning_effort", profile.reasoning_effort),
                )
                if value
            ]
            if decls:
                rules.append(f".{name} {{ {' '.join(decls)} }}")
    if extra and extra.strip():
        rules.append(extra.strip())
    return "\n".join(rules)


def workflow_to_graph(workflow: WorkflowDefinition) -> Graph:
    """Validate *workflow* and lower it into a ``Graph``.

    Raises:
        LoweringError: If validation reports any error.
        ExpressionError: If a ``when=`` expression expands past the DNF limit.
    """
    validate_workflow_or_raise(workflow)

    nodes: dict[str, Node] = {
        START_NODE_ID: Node(START_NODE_ID, {"shape": "Mdiamond", "label": "Start"}),
    }
    for stage in workflow.stages:
        nodes[stage.id] = _stage_to_node(stage)

    edges: list[Edge] = [Edge(START_NODE_ID, workflow.start, {"condition": ""})]
    edges.extend(_transition_edges(workflow.transitions))

    for stage in workflow.stages:
        if stage.kind is StageKind.DECISION:
            edges.extend(_routing_edges(stage.id, ((r.to, r.when, r.priority) for r in stage.routes)))
        elif stage.kind is StageKind.HUMAN:
            for option in stage.options:
                edges.append(Edge(stage.id, option.to, {
                    "condition": f"preferred_label={option.key}",
                    "label": option.label,
                }))

    attrs: dict[str, Any] = {"label": workflow.name}
    if workflow.goal:
        attrs["goal"] = workflow.goal
    if workflow.description:
        attrs["description"] = workflow.description
    stylesheet = build_model_stylesheet(workflow.models, workflow.model_stylesheet)
    if stylesheet:
        attrs["model_stylesheet"] = stylesheet

    graph = Graph(name=workflow.name, attrs=attrs, nodes=nodes, edges=edges)
    logger.debug(
        "Lowered workflow %r to %d node(s) and %d edge(s)",
        workflow.name, len(graph.nodes), len(graph.edges),
    )
    return graph
