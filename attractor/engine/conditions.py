"""Condition language for edge guards.

A condition string is zero or more clauses joined by ``&&``.  Each clause is
``key=value``, ``key!=value`` or a bare ``key`` (shorthand for ``key!=``).
There is no disjunction and no grouping: ``||`` expressions are lowered at
compile time into parallel edges, so the run-time evaluator stays trivial.

Key namespaces:
    outcome           the outcome's status value
    preferred_label   the outcome's preferred label (``""`` when unset)
    context.<name>    ``context.get("context.<name>")``, then ``context.get("<name>")``
    anything else     direct context lookup

Unknown keys resolve to the empty string, so evaluation never raises.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from attractor.engine.outcome import Outcome

_CONTEXT_PREFIX = "context."


@dataclass(frozen=True)
class Clause:
    """A single ``key<op>value`` test."""

    key: str
    operator: str  # "=" or "!="
    value: str


def parse_condition(text: str) -> list[Clause]:
    """Split *text* into clauses in source order.

    Empty or whitespace-only text yields an empty list.
    """
    if not text or not text.strip():
        return []
    parts = [p.strip() for p in text.split("&&")]
    return [_parse_clause(p) for p in parts if p]


def _parse_clause(clause: str) -> Clause:
    # "!=" must be checked first: "a!=b" also contains "="
    if "!=" in clause:
        key, _, value = clause.partition("!=")
        return Clause(key.strip(), "!=", value.strip())
    if "=" in clause:
        key, _, value = clause.partition("=")
        return Clause(key.strip(), "=", value.strip())
    return Clause(clause.strip(), "!=", "")


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _resolve_key(key: str, outcome: Outcome, context: Any) -> str:
    if key == "outcome":
        return _stringify(outcome.status)
    if key == "preferred_label":
        return outcome.preferred_label or ""
    if key.startswith(_CONTEXT_PREFIX):
        value = context.get(key)
        if value is None:
            value = context.get(key[len(_CONTEXT_PREFIX):])
        return _stringify(value)
    return _stringify(context.get(key))


def _evaluate_clause(clause: Clause, outcome: Outcome, context: Any) -> bool:
    resolved = _resolve_key(clause.key, outcome, context)
    if clause.operator == "=":
        return resolved == clause.value
    return resolved != clause.value


def evaluate_condition(text: str, outcome: Outcome, context: Any) -> bool:
    """Return True when every clause of *text* holds.

    Args:
        text:    Condition string, e.g. ``"outcome=success && context.x!=y"``.
        outcome: Outcome of the stage that just ran.
        context: ``PipelineContext`` or any mapping exposing ``get(key)``.

    An empty or whitespace-only condition is vacuously true and neither
    *outcome* nor *context* is touched.
    """
    if not text or not text.strip():
        return True
    return all(_evaluate_clause(c, outcome, context) for c in parse_condition(text))
