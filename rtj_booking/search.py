"""Course filter and date selection on the tee-time search page."""

from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from selenium import webdriver
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from . import browser
from .config import COURSE_PANEL_WAIT_SEC, DATE_CELL_WAIT_SEC, RESULTS_WAIT_SEC, TEETIME_API_PATTERN
from .locator import collapse
from .overlay import OverlayGuard

log = logging.getLogger(__name__)

COURSE_SELECT = "#mat-select-2"
COURSE_PANEL = ".cdk-overlay-pane .mat-select-panel, .cdk-overlay-pane .mat-mdc-select-panel"
CALENDAR_FORWARD = "#Forward"
DAY_CELL = "span.day-background-upper.is-visible"
MONTH_STEP_PAUSE_SEC = 0.3

_COURSE_TOGGLE_JS = """/* rtj:course-toggle */
const panel = arguments[0];
const wanted = arguments[1];
const N = s => (s || '').replace(/\\s+/g, ' ').trim().toLowerCase();
const keep = label => wanted.length > 0 && wanted.some(t => N(label).includes(t));
const toClick = [];
for (const opt of panel.querySelectorAll('mat-option')) {
  const labelEl = opt.querySelector('.mat-option-text, .mdc-list-item__primary-text');
  const label = (labelEl ? labelEl.textContent : opt.textContent) || '';
  const selected = opt.classList.contains('mat-selected') || opt.getAttribute('aria-selected') === 'true';
  if ((selected && !keep(label)) || (!selected && keep(label))) toClick.push(opt);
}
const fire = el => ['mousedown', 'mouseup', 'click'].forEach(type =>
  el.dispatchEvent(new MouseEvent(type, {bubbles: true, cancelable: true, view: window})));
toClick.forEach(fire);
return toClick.length;
"""

_RESULTS_READY_JS = """/* rtj:results-ready */
if (document.readyState !== 'complete') return false;
const busy = document.querySelector(
  'mat-progress-spinner, mat-spinner, mat-progress-bar, .mat-progress-spinner, .loading, .spinner');
return !busy || busy.offsetParent === null;
"""


def results_ready(driver: webdriver.Chrome) -> bool:
    return bool(driver.execute_script(_RESULTS_READY_JS))


def wait_for_search_results(
    driver: webdriver.Chrome, watcher: Optional[browser.NetworkWatcher], timeout: float = RESULTS_WAIT_SEC
) -> Optional[str]:
    # Give the SPA a beat to start its request before the DOM check can pass on stale rows.
    time.sleep(0.2)
    how = browser.wait_for_results(driver, results_ready, watcher, TEETIME_API_PATTERN, timeout)
    if how:
        log.info(f"Search results settled ({how}).")
    return how


def _click(driver: webdriver.Chrome, element: WebElement) -> None:
    try:
        element.click()
    except ElementClickInterceptedException:
        driver.execute_script("arguments[0].click();", element)


# ------------------------------------------------------------------------------------
# COURSE FILTER
# ------------------------------------------------------------------------------------
def _toggle_options_individually(panel: WebElement, wanted: Sequence[str]) -> int:
    clicked = 0
    for option in panel.find_elements(By.TAG_NAME, "mat-option"):
        try:
            label = collapse(option.text)
            selected = "mat-selected" in (option.get_attribute("class") or "") or (
                option.get_attribute("aria-selected") == "true"
            )
            keep = any(t in label for t in wanted)
            if selected != keep:
                option.click()
                clicked += 1
        except StaleElementReferenceException:
            continue
    return clicked


def select_courses(
    driver: webdriver.Chrome,
    targets: Sequence[str],
    watcher: Optional[browser.NetworkWatcher] = None,
    overlay: Optional[OverlayGuard] = None,
    selector: str = COURSE_SELECT,
) -> int:
    """Leave exactly the courses matching ``targets`` selected. Returns options toggled.

    The overlay guard is paused while the panel is open.
    """

    if not targets:
        return 0
    if overlay is not None:
        overlay.pause()
    try:
        changed, mode = _apply_course_filter(driver, targets, watcher, selector)
    finally:
        if overlay is not None:
            overlay.resume()

    log.info(f"Course filter applied ({mode} mode, {changed} option(s) toggled): {', '.join(targets)}")
    if changed:
        wait_for_search_results(driver, watcher)
    return changed


def _apply_course_filter(
    driver: webdriver.Chrome,
    targets: Sequence[str],
    watcher: Optional[browser.NetworkWatcher],
    selector: str,
) -> Tuple[int, str]:
    wanted: List[str] = [collapse(t) for t in targets]
    combo = WebDriverWait(driver, COURSE_PANEL_WAIT_SEC).until(
        EC.presence_of_element_located((By.CSS_SELECTOR, selector))
    )
    if combo.get_attribute("aria-expanded") != "true":
        _click(driver, combo)

    panel = WebDriverWait(driver, COURSE_PANEL_WAIT_SEC).until(
        lambda d: (d.find_elements(By.CSS_SELECTOR, COURSE_PANEL) or [None])[-1]
    )
    if watcher is not None:
        watcher.mark()

    mode = "fast"
    try:
        changed = int(driver.execute_script(_COURSE_TOGGLE_JS, panel, wanted))
    except WebDriverException as exc:
        log.warning(f"Course toggle script failed ({exc}); clicking options one by one.")
        mode = "fallback"
        changed = _toggle_options_individually(panel, wanted)

    try:
        browser.press_escape(driver)
        if combo.get_attribute("aria-expanded") == "true":
            browser.pointer_click_at(driver, 2, 2)
    except WebDriverException as exc:
        log.debug(f"Course panel close: {exc}")
    return changed, mode


# ------------------------------------------------------------------------------------
# DATE
# ------------------------------------------------------------------------------------
def target_date(today: date, offset_days: int) -> date:
    return today + timedelta(days=offset_days)


def month_steps(today: date, target: date) -> int:
    return (target.year - today.year) * 12 + (target.month - today.month)


def _find_day_cell(driver: webdriver.Chrome, day: int):
    for cell in driver.find_elements(By.CSS_SELECTOR, DAY_CELL):
        try:
            if cell.text.strip() == str(day) and cell.is_displayed():
                return cell
        except StaleElementReferenceException:
            continue
    return False


def select_date_offset(
    driver: webdriver.Chrome,
    offset_days: int,
    overlay: OverlayGuard,
    watcher: Optional[browser.NetworkWatcher] = None,
    today: Optional[date] = None,
) -> date:
    """Pick today + ``offset_days`` in the search calendar and wait for results."""

    today = today or date.today()
    target = target_date(today, offset_days)

    for _ in range(month_steps(today, target)):
        forward = driver.find_elements(By.CSS_SELECTOR, CALENDAR_FORWARD)
        if forward and forward[0].is_displayed():
            _click(driver, forward[0])
            time.sleep(MONTH_STEP_PAUSE_SEC)

    try:
        cell = WebDriverWait(driver, DATE_CELL_WAIT_SEC).until(lambda d: _find_day_cell(d, target.day))
    except TimeoutException as exc:
        raise TimeoutException(f"calendar cell for {target.isoformat()} never appeared") from exc

    if watcher is not None:
        watcher.mark()
    _click(driver, cell)
    log.info(f"Date selected: {target.isoformat()}")
    wait_for_search_results(driver, watcher)
    overlay.clear()
    return target
