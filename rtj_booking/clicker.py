"""One pass of find → click → (maybe) hand off for the target tee time."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import EscalationTimeout, LocatorMiss
from .executor import ActivationResult, InteractionExecutor
from .handoff import DEFAULT_TIMEOUT_SEC, ManualHandoff
from .locator import ElementLocator
from .shutdown import ShutdownToken

log = logging.getLogger(__name__)

DEFAULT_POLL_SEC = 8.0


class ClickState(enum.Enum):
    SEARCHING = "searching"
    FOUND = "found"
    NOT_FOUND = "not_found"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    ESCALATED = "escalated"
    DONE = "done"


@dataclass
class ClickResult:
    descriptor: str
    history: List[ClickState] = field(default_factory=list)
    activation: Optional[ActivationResult] = None
    escalation_outcome: Optional[str] = None

    @property
    def state(self) -> Optional[ClickState]:
        return self.history[-1] if self.history else None

    @property
    def succeeded(self) -> bool:
        return ClickState.SUCCEEDED in self.history or self.escalation_outcome in ("navigation", "dialog")


class TeeTimeClicker:
    """Runs the click state machine once; it never returns to SEARCHING."""

    def __init__(
        self,
        locator: ElementLocator,
        executor: InteractionExecutor,
        handoff: ManualHandoff,
        poll_sec: float = DEFAULT_POLL_SEC,
        handoff_timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        token: Optional[ShutdownToken] = None,
    ) -> None:
        self.locator = locator
        self.executor = executor
        self.handoff = handoff
        self.poll_sec = poll_sec
        self.handoff_timeout_sec = handoff_timeout_sec
        self.token = token

    def run(self, descriptor: str) -> ClickResult:
        result = ClickResult(descriptor=descriptor)
        move = result.history.append

        move(ClickState.SEARCHING)
        try:
            element = self.locator.poll(descriptor, self.poll_sec)
        except LocatorMiss as miss:
            log.warning(f"Tee time {descriptor!r} not found: {miss}")
            move(ClickState.NOT_FOUND)
        else:
            move(ClickState.FOUND)
            move(ClickState.ATTEMPTING)
            result.activation = self.executor.activate(element)
            if result.activation.succeeded:
                move(ClickState.SUCCEEDED)

        if result.state is not ClickState.SUCCEEDED:
            move(ClickState.ESCALATED)
            try:
                result.escalation_outcome = self.handoff.engage(descriptor, self.handoff_timeout_sec, self.token)
            except EscalationTimeout as exc:
                log.error(f"{exc}; giving up on this booking attempt.")
                result.escalation_outcome = "timeout"

        move(ClickState.DONE)
        log.info(f"Tee-time click finished: {' -> '.join(s.name for s in result.history)}")
        return result
