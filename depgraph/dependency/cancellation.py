"""
Cooperative cancellation for tree execution.
"""
from typing import Optional


class ExecutionCancelledError(Exception):
    """Raised when a tree execution observes a cancelled token."""

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        message = "Execution aborted"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CancellationToken:
    """
    Observable abort signal checked by the executor before each invocation.

    Cancelling never interrupts a callback that is already running; it only
    stops new invocations from starting.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ExecutionCancelledError(self.reason)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
