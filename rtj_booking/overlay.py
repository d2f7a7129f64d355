"""Keep Angular Material dialogs and backdrops from swallowing clicks.

Two modes share one in-page dismiss routine:

* proactive: a MutationObserver installed into every document before it
  loads, re-running the dismiss routine after each batch of DOM mutations;
* reactive: :meth:`OverlayGuard.clear`, a bounded retry called right before
  (and after) a critical click.

Neither mode caches anything; every check re-reads the live DOM.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException

from . import browser
from .errors import OverlayUnresolved

log = logging.getLogger(__name__)

DIALOG_SELECTOR = (
    "mat-dialog-container, .mat-mdc-dialog-container, .mat-dialog-container, "
    "[role='dialog'], [role='alertdialog'], .modal.show"
)
BACKDROP_SELECTOR = ".cdk-overlay-backdrop"
# mat-select and menu panels open over this one; it never belongs to a dialog.
TRANSPARENT_BACKDROP = "cdk-overlay-transparent-backdrop"
DISMISS_WORDS = ["close", "ok", "okay", "got it", "dismiss"]

DEFAULT_ATTEMPTS = 3
SETTLE_SEC = 0.25
OFF_ELEMENT_POINT = (2, 2)

_HELPERS_JS = """
const RTJ_DIALOGS = %(dialogs)r;
const RTJ_BACKDROP = %(backdrop)r;
const RTJ_TRANSPARENT = %(transparent)r;
const RTJ_WORDS = %(words)s;
const rtjNorm = s => (s || '').replace(/\\s+/g, ' ').trim().toLowerCase();
const rtjVisible = el => {
  if (!el || !el.isConnected) return false;
  const r = el.getBoundingClientRect();
  const st = window.getComputedStyle(el);
  return r.width > 0 && r.height > 0 && st.visibility !== 'hidden' && st.display !== 'none';
};
const rtjOpenDialogs = () => Array.from(document.querySelectorAll(RTJ_DIALOGS)).filter(rtjVisible);
const rtjBackdrops = () => Array.from(document.querySelectorAll(RTJ_BACKDROP))
  .filter(el => !el.classList.contains(RTJ_TRANSPARENT)).filter(rtjVisible);
function rtjDismissOverlays() {
  const dialogs = rtjOpenDialogs();
  if (!dialogs.length) return 'none';
  for (const dialog of dialogs) {
    const controls = Array.from(dialog.querySelectorAll('button, a, [role="button"]')).filter(rtjVisible);
    const hit = controls.find(c =>
      RTJ_WORDS.includes(rtjNorm(c.innerText || c.textContent)) ||
      rtjNorm(c.getAttribute('aria-label')).includes('close'));
    if (hit) { hit.click(); return 'button'; }
  }
  const backdrop = rtjBackdrops().pop();
  if (backdrop) { backdrop.click(); return 'backdrop'; }
  return 'stuck';
}
""" % {
    "dialogs": DIALOG_SELECTOR,
    "backdrop": BACKDROP_SELECTOR,
    "transparent": TRANSPARENT_BACKDROP,
    "words": "[" + ", ".join(f"'{w}'" for w in DISMISS_WORDS) + "]",
}

VISIBLE_JS = "/* rtj:overlay-visible */" + _HELPERS_JS + """
return rtjOpenDialogs().length > 0;
"""

DIALOG_COUNT_JS = "/* rtj:dialog-count */" + _HELPERS_JS + """
return rtjOpenDialogs().length;
"""

DISMISS_JS = "/* rtj:overlay-dismiss */" + _HELPERS_JS + """
return rtjDismissOverlays();
"""

OBSERVER_JS = "/* rtj:overlay-observer */(() => {\nif (window.__rtjOverlayGuard) return 'present';" + _HELPERS_JS + """
const guard = {paused: false, dismissed: 0, attached: 0, pending: false};
window.__rtjOverlayGuard = guard;
const run = () => {
  guard.pending = false;
  if (guard.paused) return;
  try {
    const outcome = rtjDismissOverlays();
    if (outcome === 'button' || outcome === 'backdrop') guard.dismissed += 1;
  } catch (e) { /* next mutation retries */ }
};
const observer = new MutationObserver(mutations => {
  for (const m of mutations) {
    for (const node of m.addedNodes) {
      if (node.nodeType === 1 &&
          (node.matches(RTJ_DIALOGS) || node.querySelector(RTJ_DIALOGS))) {
        guard.attached += 1;
      }
    }
  }
  if (!guard.pending) { guard.pending = true; setTimeout(run, 50); }
});
const start = () => observer.observe(document.documentElement, {childList: true, subtree: true});
if (document.documentElement) start();
else document.addEventListener('DOMContentLoaded', start, {once: true});
return 'installed';
})();
"""

PAUSE_JS = "/* rtj:overlay-pause */ if (window.__rtjOverlayGuard) window.__rtjOverlayGuard.paused = arguments[0];"
STATS_JS = "/* rtj:overlay-stats */ return window.__rtjOverlayGuard ? {dismissed: window.__rtjOverlayGuard.dismissed, attached: window.__rtjOverlayGuard.attached} : null;"


class OverlayGuard:
    def __init__(
        self,
        driver: webdriver.Chrome,
        attempts: int = DEFAULT_ATTEMPTS,
        settle_sec: float = SETTLE_SEC,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.driver = driver
        self.attempts = attempts
        self.settle_sec = settle_sec
        self._sleep = sleep

    # -- proactive --------------------------------------------------------------------
    def install(self) -> bool:
        """Register the observer for future documents and start it in this one."""
        registered = False
        try:
            self.driver.execute_cdp_cmd("Page.addScriptToEvaluateOnNewDocument", {"source": OBSERVER_JS})
            registered = True
        except WebDriverException as exc:
            log.warning(f"Overlay observer could not be registered for new documents: {exc}")
        self.ensure_running()
        if registered:
            log.info("Overlay guard installed (mutation observer active on every page).")
        return registered

    def ensure_running(self) -> bool:
        """Start the observer in the current document if it is not already there."""
        try:
            return self.driver.execute_script("return " + OBSERVER_JS) in ("installed", "present")
        except WebDriverException as exc:
            log.debug(f"Overlay observer not started: {exc}")
            return False

    def pause(self) -> None:
        self._set_paused(True)

    def resume(self) -> None:
        self._set_paused(False)

    def _set_paused(self, paused: bool) -> None:
        try:
            self.driver.execute_script(PAUSE_JS, paused)
        except WebDriverException as exc:
            log.debug(f"Could not {'pause' if paused else 'resume'} overlay observer: {exc}")

    def stats(self) -> Optional[dict]:
        try:
            return self.driver.execute_script(STATS_JS)
        except WebDriverException:
            return None

    # -- queries ----------------------------------------------------------------------
    def overlay_visible(self) -> bool:
        return bool(self.driver.execute_script(VISIBLE_JS))

    def dialog_count(self) -> int:
        try:
            return int(self.driver.execute_script(DIALOG_COUNT_JS) or 0)
        except WebDriverException:
            return 0

    # -- reactive ---------------------------------------------------------------------
    def clear(self, attempts: Optional[int] = None) -> bool:
        """Dismiss any open dialog. Returns True once none is left.

        No overlay at all is success and touches nothing. Never raises.
        """

        attempts = attempts or self.attempts
        last_err: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                if not self.overlay_visible():
                    return True
                self._dismiss_once(attempt)
                return True
            except (OverlayUnresolved, WebDriverException) as exc:
                last_err = exc
                log.debug(f"Overlay dismiss attempt {attempt}/{attempts} failed: {exc}")
        log.warning(f"OverlayUnresolved: overlay still present after {attempts} attempts ({last_err}).")
        return False

    def _dismiss_once(self, attempt: int) -> None:
        outcome = self.driver.execute_script(DISMISS_JS)
        self._sleep(self.settle_sec)
        if not self.overlay_visible():
            log.info(f"Overlay dismissed via {outcome} (attempt {attempt}).")
            return

        browser.press_escape(self.driver)
        browser.pointer_click_at(self.driver, *OFF_ELEMENT_POINT)
        self._sleep(self.settle_sec)
        if self.overlay_visible():
            raise OverlayUnresolved(f"overlay survived {outcome} + escape (attempt {attempt})")
        log.info(f"Overlay dismissed via escape/off-element click (attempt {attempt}).")
