"""Hand a failed click to whoever is watching the browser window."""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.remote.webelement import WebElement

from .errors import EscalationTimeout
from .locator import ElementLocator
from .overlay import OverlayGuard
from .shutdown import ShutdownToken

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 60.0
POLL_SEC = 0.25
HIGHLIGHT_CLASS = "rtj-handoff-target"
STYLE_ID = "rtj-handoff-style"

_STYLE_JS = """/* rtj:handoff-style */
if (!document.getElementById(arguments[0])) {
  const style = document.createElement('style');
  style.id = arguments[0];
  style.textContent = `
    @keyframes rtjPulse {
      0%% { outline-color: rgba(255, 0, 80, 1); box-shadow: 0 0 0 0 rgba(255, 0, 80, .7); }
      70%% { outline-color: rgba(255, 0, 80, .4); box-shadow: 0 0 0 14px rgba(255, 0, 80, 0); }
      100%% { outline-color: rgba(255, 0, 80, 1); box-shadow: 0 0 0 0 rgba(255, 0, 80, 0); }
    }
    .%(cls)s { outline: 4px solid rgba(255, 0, 80, 1) !important; outline-offset: 2px;
               animation: rtjPulse 1s infinite; }`;
  (document.head || document.documentElement).appendChild(style);
}
return true;
""" % {"cls": HIGHLIGHT_CLASS}

_MARK_JS = "/* rtj:handoff-mark */ arguments[0].classList.add(arguments[1]);"
_UNMARK_JS = """/* rtj:handoff-unmark */
document.querySelectorAll('.' + arguments[0]).forEach(el => el.classList.remove(arguments[0]));
"""
_DOC_TOKEN_JS = "/* rtj:handoff-doc */ if (arguments[0]) { window.__rtjHandoffDoc = arguments[0]; } return window.__rtjHandoffDoc || null;"


@dataclass
class ManualInterventionRequest:
    descriptor: str
    deadline: float
    highlighted: int
    baseline_url: str
    baseline_dialogs: int
    doc_token: str


class ManualHandoff:
    def __init__(
        self,
        driver: webdriver.Chrome,
        locator: ElementLocator,
        overlay: OverlayGuard,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        bell: bool = True,
    ) -> None:
        self.driver = driver
        self.locator = locator
        self.overlay = overlay
        self._clock = clock
        self._sleep = sleep
        self.bell = bell

    def engage(
        self,
        descriptor: str,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        token: Optional[ShutdownToken] = None,
    ) -> str:
        """Highlight candidates and wait for a human to finish the click.

        Returns ``"navigation"`` or ``"dialog"``, or ``"interrupted"`` once
        ``token`` is set; raises :class:`EscalationTimeout` when the window
        closes with none of these.
        """

        request = self._open_request(descriptor, timeout_sec)
        self._alert(request, timeout_sec)
        self.overlay.pause()
        try:
            while self._clock() < request.deadline:
                if token is not None and token.is_set:
                    log.info("Manual handoff abandoned: interrupt received.")
                    return "interrupted"
                outcome = self._resolution(request)
                if outcome:
                    log.info(f"Manual handoff resolved by {outcome}.")
                    return outcome
                self._sleep(POLL_SEC)
            raise EscalationTimeout(descriptor, timeout_sec)
        finally:
            self._unmark()
            self.overlay.resume()

    def _open_request(self, descriptor: str, timeout_sec: float) -> ManualInterventionRequest:
        candidates = self.locator.find_all(descriptor)
        highlighted = self._highlight(candidates)
        doc_token = f"handoff-{int(self._clock() * 1000)}"
        try:
            if self.driver.execute_script(_DOC_TOKEN_JS, doc_token) != doc_token:
                doc_token = ""
        except WebDriverException:
            doc_token = ""
        return ManualInterventionRequest(
            descriptor=descriptor,
            deadline=self._clock() + timeout_sec,
            highlighted=highlighted,
            baseline_url=self.driver.current_url,
            baseline_dialogs=self.overlay.dialog_count(),
            doc_token=doc_token,
        )

    def _highlight(self, candidates: List[WebElement]) -> int:
        if not candidates:
            return 0
        try:
            self.driver.execute_script(_STYLE_JS, STYLE_ID)
        except WebDriverException as exc:
            log.warning(f"Could not inject highlight style: {exc}")
            return 0
        marked = 0
        for el in candidates:
            try:
                self.driver.execute_script(_MARK_JS, el, HIGHLIGHT_CLASS)
                marked += 1
            except WebDriverException:
                continue
        return marked

    def _alert(self, request: ManualInterventionRequest, timeout_sec: float) -> None:
        if self.bell:
            sys.stdout.write("\a")
            sys.stdout.flush()
        log.warning(
            f"MANUAL ACTION NEEDED: click tee time {request.descriptor!r} in the browser "
            f"({request.highlighted} candidate(s) highlighted). Waiting up to {timeout_sec:.0f}s."
        )

    def _resolution(self, request: ManualInterventionRequest) -> str:
        try:
            if self.driver.current_url != request.baseline_url:
                return "navigation"
            if request.doc_token and self.driver.execute_script(_DOC_TOKEN_JS, None) != request.doc_token:
                return "navigation"
            if self.overlay.dialog_count() > request.baseline_dialogs:
                return "dialog"
        except WebDriverException as exc:
            log.debug(f"Handoff poll error (page in transition?): {exc}")
        return ""

    def _unmark(self) -> None:
        try:
            self.driver.execute_script(_UNMARK_JS, HIGHLIGHT_CLASS)
        except WebDriverException as exc:
            log.debug(f"Highlight cleanup skipped: {exc}")
