"""Stage backend protocol.

A backend runs the prompt of an LLM (``box``) node and returns either the
raw response text or a fully formed ``Outcome``.  The LLM client, tool
execution and output truncation all live behind this protocol and are not
part of the compiler.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from attractor.engine.graph import Node
from attractor.engine.outcome import Outcome, OutcomeStatus

if TYPE_CHECKING:
    from attractor.engine.context import PipelineContext


@runtime_checkable
class StageBackend(Protocol):
    """Anything that can execute a stage prompt.

    Backends are stateless with respect to a run: everything they need
    arrives through *node*, *prompt* and *context*.
    """

    async def run(
        self, node: Node, prompt: str, context: "PipelineContext"
    ) -> str | Outcome:
        """Execute *prompt* for *node*.

        Returns:
            The response text, or an ``Outcome`` when the backend decides the
            stage status itself.

        Raises:
            Exception: Backend failures propagate to the caller unchanged.
        """
        ...


def coerce_result(node: Node, result: str | Outcome) -> Outcome:
    """Wrap a plain-text backend result in a successful ``Outcome``.

    The text is stored under ``<node-id>.response`` so later conditions can
    read it via ``output("<node-id>.response")``.
    """
    if isinstance(result, Outcome):
        return result
    return Outcome(
        status=OutcomeStatus.SUCCESS,
        context_updates={f"{node.id}.response": result},
    )
