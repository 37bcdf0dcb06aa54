"""Model stylesheet: CSS-like per-node model defaults.

The stylesheet source lives in ``graph.attrs["model_stylesheet"]``::

    * { llm_model: claude-sonnet-4; }
    .review { llm_provider: anthropic; reasoning_effort: high; }
    #plan { llm_model: gpt-5; }

Selectors and specificity: ``*`` (0), ``.class`` (1), ``#id`` (2).  Rules are
applied in ascending specificity, source order breaking ties, so later and
more specific rules overwrite earlier ones.  A property a node already had
before the cascade started is never overwritten.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from attractor.engine.graph import Graph, Node

logger = logging.getLogger(__name__)

RECOGNIZED_PROPERTIES: frozenset[str] = frozenset(
    {"llm_model", "llm_provider", "reasoning_effort"}
)

_RULE_RE = re.compile(r"([*#.][^{]*)\{([^}]*)\}")

_SPECIFICITY = {"universal": 0, "class": 1, "id": 2}


@dataclass
class StyleRule:
    """One parsed ``selector { prop: value; ... }`` rule."""

    selector_type: str  # "universal" | "class" | "id"
    value: str
    specificity: int
    declarations: dict[str, str] = field(default_factory=dict)

    def matches(self, node: Node) -> bool:
        if self.selector_type == "universal":
            return True
        if self.selector_type == "id":
            return node.id == self.value
        return self.value in node.classes


def _parse_selector(text: str) -> tuple[str, str] | None:
    if text == "*":
        return "universal", "*"
    if text.startswith("#"):
        return "id", text[1:]
    if text.startswith("."):
        return "class", text[1:]
    return None


def _parse_declarations(body: str) -> dict[str, str]:
    declarations: dict[str, str] = {}
    for decl in body.split(";"):
        prop, sep, value = decl.partition(":")
        if not sep:
            continue
        prop, value = prop.strip(), value.strip()
        if prop and value:
            declarations[prop] = value
    return declarations


def parse_stylesheet(source: str) -> list[StyleRule]:
    """Parse *source* into rules sorted stably by specificity.

    Unrecognised selectors are skipped.  Values may themselves contain ``:``.
    """
    rules: list[StyleRule] = []
    for match in _RULE_RE.finditer(source or ""):
        parsed = _parse_selector(match.group(1).strip())
        if parsed is None:
            logger.debug("Skipping unrecognised selector %r", match.group(1).strip())
            continue
        selector_type, value = parsed
        rules.append(
            StyleRule(
                selector_type=selector_type,
                value=value,
                specificity=_SPECIFICITY[selector_type],
                declarations=_parse_declarations(match.group(2)),
            )
        )
    rules.sort(key=lambda r: r.specificity)
    return rules


def apply_stylesheet(graph: Graph) -> None:
    """Apply ``graph.attrs["model_stylesheet"]`` to every node in place."""
    source = graph.attrs.get("model_stylesheet")
    if not source or not isinstance(source, str):
        return

    rules = parse_stylesheet(source)
    for node in graph.nodes.values():
        explicit = {p for p in RECOGNIZED_PROPERTIES if node.attrs.get(p) is not None}
        for rule in rules:
            if not rule.matches(node):
                continue
            for prop, value in rule.declarations.items():
                if prop not in RECOGNIZED_PROPERTIES or prop in explicit:
                    continue
                node.attrs[prop] = value
    logger.debug("Applied %d stylesheet rule(s) to graph %r", len(rules), graph.name)
