"""Cooperative cancellation for batch runs.

The orchestrator polls ``is_cancelled`` once before each chunk; a chunk that
has started always runs to completion. Any object with a boolean
``is_cancelled`` attribute can stand in for CancellationToken (for example a
wrapper around a flag stored elsewhere).
"""

from typing import Protocol


class Cancellable(Protocol):
    @property
    def is_cancelled(self) -> bool: ...


class CancellationToken:
    """A flag set once by the caller and read by the orchestrator."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
