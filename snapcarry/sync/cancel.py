"""Cooperative cancellation shared by the run stages."""

from __future__ import annotations

import threading

from snapcarry.errors import RunCancelled


class CancelToken:
    """Flag checked by the engine between task boundaries.

    Any thread may call :meth:`cancel`; the run notices at its next check.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled("Run cancelled")
