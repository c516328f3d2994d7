"""Cooperative cancellation for builds.

The orchestrator and plugins call ``raise_if_cancelled`` between items; a
token can be cancelled from any thread (for example a signal handler).
"""

from __future__ import annotations

import threading

from .errors import BuildCancelled


class CancellationToken:
    """A flag that signals a running build to stop at the next checkpoint."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise BuildCancelled when cancellation has been requested."""
        if self._event.is_set():
            raise BuildCancelled("Build cancelled")

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"CancellationToken(cancelled={self.cancelled})"
