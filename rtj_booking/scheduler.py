"""Fire a single action at a wall-clock instant with millisecond accuracy.

The wait is staged: capped sleeps while the target is far away, short fixed
sleeps once it is close, and a busy-wait over the last ``SPIN_MARGIN_MS``.
Only the busy-wait blocks without yielding to the OS scheduler.
"""

from __future__ import annotations

import logging
import time
import zoneinfo
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from .errors import InvalidScheduleError
from .shutdown import ShutdownToken

log = logging.getLogger(__name__)

COARSE_THRESHOLD_MS = 1200
COARSE_GUARD_MS = 1000
COARSE_STEP_MS = 800
FINE_STEP_MS = 10
SPIN_MARGIN_MS = 100
DEFAULT_TOLERANCE_MS = 100

_DISPLAY_FMT = "%Y-%m-%d %H:%M:%S.%f"


def parse_target_instant(text: str, tz_name: str) -> datetime:
    """Parse an ISO-8601 timestamp as an aware datetime in ``tz_name``.

    Naive timestamps are taken as local time in ``tz_name``; timestamps that
    carry an offset keep their instant.
    """

    try:
        zone = zoneinfo.ZoneInfo(tz_name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidScheduleError(f"unknown timezone {tz_name!r}") from exc

    raw = (text or "").strip()
    if not raw:
        raise InvalidScheduleError("login time is empty")
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidScheduleError(f"login time {text!r} is not a valid ISO timestamp") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=zone)
    return parsed.astimezone(zone)


def to_epoch_ms(instant: datetime) -> int:
    return int(round(instant.timestamp() * 1000))


def _cancelled(token: Optional[ShutdownToken]) -> bool:
    return token is not None and token.is_set


@dataclass
class ScheduledAction:
    target_epoch_ms: int
    action: Callable[[], Any]
    tolerance_ms: int = DEFAULT_TOLERANCE_MS
    label: str = "action"
    fired: bool = False


@dataclass(frozen=True)
class FireReport:
    target_epoch_ms: int
    fired_at_ms: float
    completed_at_ms: float
    tolerance_ms: int

    @property
    def skew_ms(self) -> float:
        return self.fired_at_ms - self.target_epoch_ms

    @property
    def within_tolerance(self) -> bool:
        return 0 <= self.skew_ms <= self.tolerance_ms


class PrecisionScheduler:
    """Waits for a :class:`ScheduledAction`'s instant, then invokes it once.

    ``clock`` returns wall-clock seconds since the epoch, ``perf_counter`` a
    high-resolution monotonic reading; both are swappable for a simulated
    clock in tests.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        perf_counter: Callable[[], float] = time.perf_counter,
        spin_margin_ms: int = SPIN_MARGIN_MS,
        fine_step_ms: int = FINE_STEP_MS,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._perf = perf_counter
        self.spin_margin_ms = spin_margin_ms
        self.fine_step_ms = fine_step_ms

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _coarse_wait(self, target_ms: int, label: str, token: Optional[ShutdownToken]) -> None:
        last_announced = None
        diff = target_ms - self._now_ms()
        while diff > COARSE_THRESHOLD_MS:
            if _cancelled(token):
                return
            secs = int(-(-diff // 1000))
            if secs != last_announced and (secs <= 10 or secs % 30 == 0):
                log.info(f"{label}: {secs}s remaining...")
                last_announced = secs
            self._sleep(min(diff - COARSE_GUARD_MS, COARSE_STEP_MS) / 1000.0)
            diff = target_ms - self._now_ms()

    def _fine_wait(self, target_ms: int, token: Optional[ShutdownToken]) -> None:
        while target_ms - self._now_ms() > self.spin_margin_ms:
            if _cancelled(token):
                return
            self._sleep(self.fine_step_ms / 1000.0)

    def _spin_until(self, target_ms: int) -> None:
        # Anchor the remaining wall-clock gap onto the monotonic counter, then spin.
        remaining = (target_ms - self._now_ms()) / 1000.0
        if remaining <= 0:
            return
        deadline = self._perf() + remaining
        while self._perf() < deadline:
            pass

    def fire(
        self,
        scheduled: ScheduledAction,
        arm: Optional[Callable[[], Callable[[], Any]]] = None,
        token: Optional[ShutdownToken] = None,
    ) -> Optional[FireReport]:
        """Block until the target instant and invoke the action exactly once.

        ``arm`` is called before the wait begins and returns a waiter for the
        action's consequence (for example a page navigation); the waiter runs
        right after the action so the consequence cannot slip past unobserved.

        Returns None without invoking the action when ``token`` is set before
        the instant arrives.
        """

        if scheduled.fired:
            raise RuntimeError(f"{scheduled.label} has already fired")

        target_ms = scheduled.target_epoch_ms
        target_dt = datetime.fromtimestamp(target_ms / 1000.0)
        log.info(f"{scheduled.label}: scheduled for {target_dt.strftime(_DISPLAY_FMT)[:-3]} (local clock)")

        waiter = arm() if arm is not None else None
        self._coarse_wait(target_ms, scheduled.label, token)
        self._fine_wait(target_ms, token)
        if not _cancelled(token):
            self._spin_until(target_ms)
        if _cancelled(token):
            log.info(f"{scheduled.label}: cancelled by interrupt before the scheduled instant.")
            return None

        scheduled.fired = True
        fired_at = self._now_ms()
        scheduled.action()
        if waiter is not None:
            waiter()
        completed_at = self._now_ms()

        report = FireReport(
            target_epoch_ms=target_ms,
            fired_at_ms=fired_at,
            completed_at_ms=completed_at,
            tolerance_ms=scheduled.tolerance_ms,
        )
        if report.within_tolerance:
            log.info(
                f"{scheduled.label}: fired (skew {report.skew_ms:.1f} ms, "
                f"settled after {completed_at - target_ms:.0f} ms)"
            )
        else:
            log.warning(
                f"{scheduled.label}: fired outside tolerance (skew {report.skew_ms:.1f} ms, "
                f"limit {scheduled.tolerance_ms} ms)"
            )
        return report
