"""Human-in-the-loop question/answer contract.

Concrete interviewers (console prompt, auto-approve, queued answers, ...) live
outside this package.  This module defines the data they exchange with a
runner and how a ``hexagon`` node turns into a multiple-choice question.

A human node's outgoing edges carry ``condition = "preferred_label=<key>"``
and ``label = <option label>``.  ``question_for_stage`` reads the option key
back out of the condition, and ``outcome_for_answer`` produces an ``Outcome``
whose ``preferred_label`` makes exactly that edge's condition true.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from attractor.engine.conditions import parse_condition
from attractor.engine.graph import Graph, Node
from attractor.engine.outcome import Outcome, OutcomeStatus


class QuestionType(str, Enum):
    YES_NO = "yes_no"
    CONFIRMATION = "confirmation"
    MULTIPLE_CHOICE = "multiple_choice"
    FREE_FORM = "free_form"


# Answer values with special meaning to runners
ANSWER_SKIPPED = "skipped"
ANSWER_TIMEOUT = "timeout"


@dataclass(frozen=True)
class QuestionOption:
    key: str
    label: str


@dataclass(frozen=True)
class Answer:
    """Reply from an interviewer.

    ``value`` is the option key for multiple-choice questions, ``"yes"`` or
    ``"no"`` for yes/no questions, or ``"skipped"`` / ``"timeout"``.
    """

    value: str
    selected_option: QuestionOption | None = None
    text: str | None = None


@dataclass(frozen=True)
class Question:
    text: str
    type: QuestionType
    stage: str
    options: tuple[QuestionOption, ...] = ()
    details_markdown: str | None = None
    default_answer: Answer | None = None
    timeout_seconds: float | None = None


@runtime_checkable
class Interviewer(Protocol):
    """Anything that can put a question to a human and return the answer."""

    async def ask(self, question: Question) -> Answer:
        ...


_ACCELERATOR_PATTERNS = (
    re.compile(r"^\[(\w)\]\s"),   # [K] Label
    re.compile(r"^(\w)\)\s"),     # K) Label
    re.compile(r"^(\w)\s-\s"),    # K - Label
)


def accelerator_key(label: str) -> str:
    """Derive a one-character shortcut key from an option label."""
    for pattern in _ACCELERATOR_PATTERNS:
        match = pattern.match(label)
        if match:
            return match.group(1)
    return label[:1].upper()


def _option_key(condition: str) -> str | None:
    for clause in parse_condition(condition):
        if clause.key == "preferred_label" and clause.operator == "=":
            return clause.value
    return None


def question_for_stage(node: Node, graph: Graph) -> Question:
    """Build the multiple-choice question for a human node.

    One option per outgoing edge, in edge order.  The key comes from the
    edge's ``preferred_label=<key>`` condition, falling back to an
    accelerator key derived from the label.

    Raises:
        ValueError: If *node* has no outgoing edges.
    """
    edges = graph.edges_from(node.id)
    if not edges:
        raise ValueError(f"Human stage {node.id!r} has no outgoing edges")

    options = []
    for edge in edges:
        label = edge.label or edge.target
        key = _option_key(edge.condition) or accelerator_key(label)
        options.append(QuestionOption(key=key, label=label))

    return Question(
        text=node.prompt or node.attrs.get("label") or "Select an option:",
        type=QuestionType.MULTIPLE_CHOICE,
        stage=node.id,
        options=tuple(options),
    )


def outcome_for_answer(question: Question, answer: Answer) -> Outcome:
    """Translate an interviewer's answer into a stage outcome."""
    if answer.value == ANSWER_TIMEOUT:
        return Outcome(status=OutcomeStatus.RETRY, failure_reason="human gate timeout")
    if answer.value == ANSWER_SKIPPED:
        return Outcome(status=OutcomeStatus.FAIL, failure_reason="human skipped interaction")

    selected = answer.selected_option
    if selected is None:
        selected = next((o for o in question.options if o.key == answer.value), None)
    if selected is None:
        return Outcome(
            status=OutcomeStatus.FAIL,
            failure_reason=f"answer {answer.value!r} matches no option",
        )

    updates: dict[str, str] = {
        f"{question.stage}.selected": selected.key,
        f"{question.stage}.label": selected.label,
    }
    if answer.text:
        updates[f"{question.stage}.feedback"] = answer.text
    return Outcome(
        status=OutcomeStatus.SUCCESS,
        preferred_label=selected.key,
        context_updates=updates,
    )
