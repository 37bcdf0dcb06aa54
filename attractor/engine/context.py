"""PipelineContext: key-value store threaded through one workflow run.

A context is created per run, mutated after each stage by merging the
stage's ``Outcome.context_updates``, read by condition evaluation and prompt
construction, and discarded with the run.  It is never reset mid-run.

Keys are strings, conventionally dotted namespaces such as
``"<stage-id>.status"`` or ``"<stage-id>.<field>"``.  Values are anything
string-coercible; condition evaluation compares their ``str()`` form.
"""
from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from attractor.engine.outcome import Outcome


class PipelineContext:
    """Key-value store for accumulated run state.

    All public methods acquire an internal lock before touching ``_data`` so
    a single writer and many readers never observe a torn update.  Ordering
    between concurrently running stages is the caller's responsibility.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._logs: list[str] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Core accessors
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key*, or *default* if not present."""
        with self._lock:
            value = self._data.get(key)
        return default if value is None else value

    def get_string(self, key: str, default: str = "") -> str:
        """Return ``str(value)`` for *key*, or *default* when missing."""
        value = self.get(key)
        return default if value is None else str(value)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def update(self, updates: dict[str, Any]) -> None:
        """Merge *updates* into the context, overwriting existing keys."""
        with self._lock:
            self._data.update(updates)

    def apply_outcome(self, outcome: "Outcome") -> None:
        """Merge a stage outcome's ``context_updates`` into the context."""
        if outcome.context_updates:
            self.update(outcome.context_updates)

    def snapshot(self) -> dict[str, Any]:
        """Return a shallow copy of the current context state."""
        with self._lock:
            return dict(self._data)

    def clone(self) -> "PipelineContext":
        """Return an independent copy, logs included."""
        with self._lock:
            copy = PipelineContext(self._data)
            copy._logs = list(self._logs)
        return copy

    # ------------------------------------------------------------------
    # Run log
    # ------------------------------------------------------------------

    def append_log(self, entry: str) -> None:
        with self._lock:
            self._logs.append(entry)

    @property
    def logs(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._logs)

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __repr__(self) -> str:
        with self._lock:
            return f"PipelineContext({self._data!r})"

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
