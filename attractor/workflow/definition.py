"""Workflow definition AST.

The AST is the author-facing form of a ``*.awf.kdl`` file after parsing and
before lowering.  Stages form a tagged variant on ``kind``: ``options`` is
only populated for ``human`` stages and ``routes`` only for ``decision``
stages; every other property lives in the free-form ``attrs`` bag.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

Scalar = Union[str, int, float, bool]

SUPPORTED_VERSION = 2


class StageKind(str, Enum):
    LLM = "llm"
    HUMAN = "human"
    DECISION = "decision"
    EXIT = "exit"
    TOOL = "tool"


RETRY_BACKOFFS: frozenset[str] = frozenset({"none", "fixed", "exponential"})


@dataclass(frozen=True)
class HumanOption:
    key: str
    label: str
    to: str


@dataclass(frozen=True)
class DecisionRoute:
    """``route when="<expr>" to="<id>"``.  First satisfied route wins."""

    when: str
    to: str
    priority: int | None = None


@dataclass(frozen=True)
class Transition:
    """Global ``transition from=... to=...``; unconditional unless ``when`` is set."""

    from_stage: str
    to: str
    when: str | None = None
    priority: int | None = None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    backoff: str | None = None
    delay: str | None = None
    max_delay: str | None = None


@dataclass(frozen=True)
class ModelProfile:
    model: str | None = None
    provider: str | None = None
    reasoning_effort: str | None = None


@dataclass
class ModelConfig:
    default: str | None = None
    profiles: dict[str, ModelProfile] = field(default_factory=dict)


@dataclass
class Stage:
    """One stage of a workflow.

    Attributes:
        id:      Unique stage identifier.
        kind:    Stage kind.
        attrs:   Free-form properties (``prompt``, ``prompt_file``,
                 ``llm_model``, ``class``, ``model_profile``, ``command``, ...).
        options: Human choices, in declaration order.
        routes:  Decision routes, in declaration order.
        retry:   Optional retry policy.
        line:    1-based source line of the ``stage`` node.
    """

    id: str
    kind: StageKind
    attrs: dict[str, Scalar] = field(default_factory=dict)
    options: list[HumanOption] = field(default_factory=list)
    routes: list[DecisionRoute] = field(default_factory=list)
    retry: RetryPolicy | None = None
    line: int = 0

    @property
    def prompt(self) -> str | None:
        value = self.attrs.get("prompt")
        return value if isinstance(value, str) else None

    @property
    def prompt_file(self) -> str | None:
        value = self.attrs.get("prompt_file")
        return value if isinstance(value, str) else None

    @property
    def model_profile(self) -> str | None:
        value = self.attrs.get("model_profile")
        return value if isinstance(value, str) else None


@dataclass
class WorkflowDefinition:
    name: str
    start: str
    stages: list[Stage] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    version: int = SUPPORTED_VERSION
    goal: str | None = None
    description: str | None = None
    models: ModelConfig | None = None
    model_stylesheet: str | None = None

    def stage(self, stage_id: str) -> Stage | None:
        """Return the first stage with *stage_id*, or ``None``."""
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

    @property
    def stage_ids(self) -> list[str]:
        return [s.id for s in self.stages]
