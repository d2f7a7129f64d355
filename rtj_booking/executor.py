"""Click a located element through progressively more direct means.

Tier 1 scrolls and hit-tests, tier 2 clears overlays and sends a real pointer
sequence, tier 3 presses the pointer at the element's coordinates. The caller
escalates to a human only when tiers 2 and 3 have both failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.remote.webelement import WebElement

from . import browser
from .errors import ActivationFailure
from .overlay import OverlayGuard

log = logging.getLogger(__name__)

# Fraction of the box height (from the top) used for the coordinate click;
# the lower half of a tile is mostly child widgets that stop propagation.
COORDINATE_Y_BIAS = 0.35


@dataclass
class ActivationResult:
    succeeded: bool
    tier: Optional[int] = None
    failures: List[ActivationFailure] = field(default_factory=list)

    @property
    def escalate(self) -> bool:
        return not self.succeeded


class InteractionExecutor:
    def __init__(self, driver: webdriver.Chrome, overlay: OverlayGuard) -> None:
        self.driver = driver
        self.overlay = overlay

    def activate(self, element: WebElement) -> ActivationResult:
        result = ActivationResult(succeeded=False)

        try:
            self._scroll_and_trial(element)
        except ActivationFailure as failure:
            result.failures.append(failure)
            log.info(f"Trial activation: {failure.reason}; clearing overlays before clicking.")

        for tier, attempt in ((2, self._pointer_click), (3, self._coordinate_click)):
            try:
                attempt(element)
            except ActivationFailure as failure:
                result.failures.append(failure)
                log.warning(f"Activation {failure}")
                continue
            result.succeeded = True
            result.tier = tier
            log.info(f"Element activated via tier {tier}.")
            # Activation often pops a confirmation dialog.
            self.overlay.clear()
            return result

        log.error(f"All automated activation tiers failed ({len(result.failures)} failures).")
        return result

    def _scroll_and_trial(self, element: WebElement) -> None:
        try:
            browser.scroll_into_view(self.driver, element)
            hittable = browser.is_hit_testable(self.driver, element)
        except WebDriverException as exc:
            raise ActivationFailure(1, f"scroll/trial error: {exc.__class__.__name__}") from exc
        if not hittable:
            raise ActivationFailure(1, "element is covered at its centre")

    def _pointer_click(self, element: WebElement) -> None:
        self.overlay.clear()
        try:
            browser.pointer_sequence(self.driver, element)
        except WebDriverException as exc:
            raise ActivationFailure(2, f"pointer sequence failed: {exc.__class__.__name__}") from exc

    def _coordinate_click(self, element: WebElement) -> None:
        try:
            box = browser.bounding_box(self.driver, element)
            if box is None:
                raise ActivationFailure(3, "element has no bounding box")
            x = box["x"] + box["width"] / 2
            y = box["y"] + box["height"] * COORDINATE_Y_BIAS
            log.info(f"Coordinate click at ({x:.0f}, {y:.0f}).")
            browser.pointer_click_at(self.driver, x, y)
        except WebDriverException as exc:
            raise ActivationFailure(3, f"coordinate click failed: {exc.__class__.__name__}") from exc
