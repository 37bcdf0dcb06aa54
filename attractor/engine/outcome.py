"""Outcome model for stage execution results.

Every stage execution returns an Outcome.  The engine merges the outcome's
``context_updates`` into ``PipelineContext`` and evaluates edge conditions
against it to pick the next node.

Design notes:
- Frozen dataclass (not Pydantic) because Outcome is an in-memory value
  object, immutable after construction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class OutcomeStatus(str, Enum):
    """Normalised execution result for a single stage.

    Values are lower-case strings so that conditions such as
    ``outcome=success`` compare without case conversion.
    """

    SUCCESS = "success"
    FAIL = "fail"
    PARTIAL_SUCCESS = "partial_success"
    RETRY = "retry"


@dataclass(frozen=True)
class Outcome:
    """Immutable result of running one stage.

    Attributes:
        status:             Normalised execution result.
        preferred_label:    Label chosen by the stage (e.g. the option key a
                            human picked).  Read by ``preferred_label=`` clauses.
        notes:              Free-form notes from the stage.
        failure_reason:     Why the stage failed, if it did.
        suggested_next_ids: Node IDs the stage suggests routing to, in order.
        context_updates:    Key-value pairs to merge into the run context.
    """

    status: OutcomeStatus
    preferred_label: str | None = None
    notes: str | None = None
    failure_reason: str | None = None
    suggested_next_ids: tuple[str, ...] = ()
    context_updates: dict[str, Any] = field(default_factory=dict)

    @property
    def status_value(self) -> str:
        """Status as a plain string (accepts bare strings passed as status)."""
        status = self.status
        return status.value if isinstance(status, OutcomeStatus) else str(status)
