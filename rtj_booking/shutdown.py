"""Process-wide shutdown flag.

The only module that touches signal handlers or the global flag. Everything
else receives a :class:`ShutdownToken` explicitly.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import Optional


class ShutdownToken:
    """Set-once flag raised by an interrupt.

    Setting the token does not abort anything that is already waiting; callers
    check :attr:`is_set` at step boundaries.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._signal: Optional[int] = None

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def signal_number(self) -> Optional[int]:
        return self._signal

    def set(self, signum: Optional[int] = None) -> bool:
        """Raise the flag. Returns False if it was already raised."""
        if self._event.is_set():
            return False
        self._signal = signum
        self._event.set()
        return True

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)


class ShutdownLogFilter(logging.Filter):
    """Drop WARNING and above once shutdown has begun."""

    def __init__(self, token: ShutdownToken) -> None:
        super().__init__()
        self.token = token

    def filter(self, record: logging.LogRecord) -> bool:
        return not (self.token.is_set and record.levelno >= logging.WARNING)


_TOKEN = ShutdownToken()


def install_signal_handlers(token: Optional[ShutdownToken] = None) -> ShutdownToken:
    """Route SIGINT/SIGTERM to ``token`` (the process token by default)."""

    token = token or _TOKEN

    # No logging here: the signal may land while a handler is mid-write.
    def _handler(signum, _frame) -> None:
        token.set(signum)

    signal.signal(signal.SIGINT, _handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handler)
    return token
