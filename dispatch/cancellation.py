from __future__ import annotations

import threading


class DispatchCancelled(Exception):
    """Raised inside a dispatch cycle once its token has been cancelled."""
    pass


class CancellationToken:
    """
    Cooperative cancellation for one dispatch cycle.

    The caller keeps a reference and calls cancel() from any thread; the
    cycle checks it at every state transition and before every offer.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DispatchCancelled("dispatch cycle cancelled")

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on cancel. Returns True if cancelled.
        """
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)
