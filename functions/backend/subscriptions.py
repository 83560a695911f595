"""
Listener handles returned by every real-time registration.
"""

from __future__ import annotations

import threading
from typing import Callable


class Subscription:
    """
    Handle for a registered listener.

    Call `unsubscribe()` (or the handle itself) to tear the listener down.
    Repeated calls are no-ops.
    """

    def __init__(self, teardown: Callable[[], None]):
        self._teardown = teardown
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._teardown()

    def __call__(self) -> None:
        self.unsubscribe()
