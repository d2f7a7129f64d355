"""Exceptions raised by the booking engine."""

from __future__ import annotations


class BookingError(Exception):
    """Base class for every error raised by this package."""


class InvalidScheduleError(BookingError):
    """The configured login instant could not be parsed in its timezone."""


class LocatorMiss(BookingError):
    """No candidate matched the descriptor within the polling budget."""

    def __init__(self, descriptor: str, waited: float) -> None:
        super().__init__(f"no element matched {descriptor!r} after {waited:.1f}s")
        self.descriptor = descriptor
        self.waited = waited


class ActivationFailure(BookingError):
    """A single activation tier failed to click the element."""

    def __init__(self, tier: int, reason: str) -> None:
        super().__init__(f"tier {tier}: {reason}")
        self.tier = tier
        self.reason = reason


class OverlayUnresolved(BookingError):
    """A dialog or backdrop was still visible after a dismiss attempt."""


class EscalationTimeout(BookingError):
    """Nobody completed the booking during the manual handoff window."""

    def __init__(self, descriptor: str, timeout: float) -> None:
        super().__init__(f"manual handoff for {descriptor!r} timed out after {timeout:.0f}s")
        self.descriptor = descriptor
        self.timeout = timeout
