"""Find the tee-time tile for a time string such as ``"14:30"``.

Every strategy is a single non-waiting DOM query; polling over a longer
budget is :meth:`ElementLocator.poll`'s job.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, List, Optional, Sequence, Tuple

from selenium import webdriver
from selenium.common.exceptions import StaleElementReferenceException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement

from .errors import LocatorMiss

log = logging.getLogger(__name__)

TIME_ATTRIBUTES = ["data-time", "data-teetime", "data-tee-time"]
TIME_BEARING_XPATH = "//body//*[contains(text(), ':')]"

# Which candidate wins when "08:00" and "8:00" both render: "document" keeps DOM order.
PREFER_FORMAT = "document"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(.*)$")

_TEXT_MATCH_JS = """/* rtj:locate-text */
const want = arguments[0];
const norm = s => (s || '').replace(/\\s+/g, ' ').trim().toLowerCase()
  .replace(/(^|[^\\d])0(\\d:)/g, '$1$2');
const esc = want.replace(/[.*+?^${}()|[\\]\\\\]/g, '\\\\$&');
const pattern = new RegExp('(^|[^\\\\d])' + esc + '(?![\\\\d])');
const visible = el => {
  const r = el.getBoundingClientRect();
  const st = window.getComputedStyle(el);
  return r.width > 0 && r.height > 0 && st.visibility !== 'hidden' && st.display !== 'none';
};
const matches = Array.from(document.querySelectorAll('body *'))
  .filter(el => el.textContent && el.textContent.includes(':'))
  .filter(el => pattern.test(norm(el.textContent)))
  .filter(visible);
return matches.find(el => !matches.some(o => o !== el && el.contains(o))) || null;
"""


def collapse(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip()).lower()


def normalize_time(descriptor: str) -> str:
    """``" 08:00  AM"`` -> ``"8:00 am"``."""
    return re.sub(r"^0(\d)", r"\1", collapse(descriptor))


def time_variants(descriptor: str) -> Tuple[str, ...]:
    """Zero-padded and unpadded spellings of the descriptor, padded first."""
    normalized = normalize_time(descriptor)
    match = _TIME_RE.match(normalized)
    if not match:
        return (normalized,)
    hour, minute, rest = int(match.group(1)), match.group(2), match.group(3)
    padded = f"{hour:02d}:{minute}{rest}"
    unpadded = f"{hour}:{minute}{rest}"
    return (padded, unpadded) if padded != unpadded else (padded,)


def _attribute_selector(variants: Sequence[str]) -> str:
    parts = [f"[{attr}='{v}']" for v in variants for attr in TIME_ATTRIBUTES]
    parts.append(f"time[datetime$='T{variants[0]}']")
    parts.append(f"time[datetime$='T{variants[0]}:00']")
    return ", ".join(parts)


class ElementLocator:
    def __init__(
        self,
        driver: webdriver.Chrome,
        prefer: str = PREFER_FORMAT,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.driver = driver
        self.prefer = prefer
        self._clock = clock
        self._sleep = sleep

    # -- strategies -------------------------------------------------------------------
    def by_attribute(self, descriptor: str) -> List[WebElement]:
        variants = time_variants(descriptor)
        if not _TIME_RE.match(variants[0]):
            return []
        found = []
        for el in self.driver.find_elements(By.CSS_SELECTOR, _attribute_selector(variants)):
            try:
                if el.is_displayed():
                    found.append(el)
            except StaleElementReferenceException:
                continue
        return found

    def by_visible_text(self, descriptor: str) -> Optional[WebElement]:
        return self.driver.execute_script(_TEXT_MATCH_JS, normalize_time(descriptor))

    def by_scan(self, descriptor: str) -> List[WebElement]:
        variants = set(time_variants(descriptor))
        hits: List[Tuple[str, WebElement]] = []
        for el in self.driver.find_elements(By.XPATH, TIME_BEARING_XPATH):
            try:
                text = collapse(el.text)
            except StaleElementReferenceException:
                continue
            if text in variants:
                hits.append((text, el))
        return [el for _, el in self._order(hits, descriptor)]

    def _order(self, hits: List[Tuple[str, WebElement]], descriptor: str) -> List[Tuple[str, WebElement]]:
        if self.prefer == "document" or len(hits) < 2:
            return hits
        variants = time_variants(descriptor)
        wanted = variants[0] if self.prefer == "padded" else variants[-1]
        return sorted(hits, key=lambda hit: hit[0] != wanted)

    # -- public -----------------------------------------------------------------------
    def find(self, descriptor: str) -> Optional[WebElement]:
        """First match across strategies, or None. Never waits."""

        strategies = [
            ("attribute", lambda: next(iter(self.by_attribute(descriptor)), None)),
            ("text", lambda: self.by_visible_text(descriptor)),
            ("scan", lambda: next(iter(self.by_scan(descriptor)), None)),
        ]
        for name, strategy in strategies:
            try:
                element = strategy()
            except WebDriverException as exc:
                log.debug(f"Locator strategy {name} failed for {descriptor!r}: {exc}")
                continue
            if element is not None:
                log.info(f"Located {descriptor!r} via {name} match.")
                return element
        return None

    def find_all(self, descriptor: str) -> List[WebElement]:
        """Every candidate for ``descriptor`` (attribute and scan matches)."""

        found: List[WebElement] = []
        seen = set()
        for strategy in (self.by_attribute, self.by_scan):
            try:
                elements = strategy(descriptor)
            except WebDriverException as exc:
                log.debug(f"Candidate collection failed for {descriptor!r}: {exc}")
                continue
            for el in elements:
                if el.id not in seen:
                    seen.add(el.id)
                    found.append(el)
        return found

    def poll(self, descriptor: str, budget_sec: float, interval_sec: float = 0.25) -> WebElement:
        """Repeat :meth:`find` until something matches or the budget runs out."""

        start = self._clock()
        deadline = start + budget_sec
        while True:
            element = self.find(descriptor)
            if element is not None:
                return element
            if self._clock() >= deadline:
                raise LocatorMiss(descriptor, self._clock() - start)
            self._sleep(interval_sec)
