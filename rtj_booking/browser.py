"""Chrome/Selenium plumbing shared by the booking steps.

Everything that talks to WebDriver at the level of "navigate", "wait",
"press a pointer" lives here so the engine modules can be tested with fakes.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import subprocess
import time
from typing import Callable, List, Optional, Tuple

from selenium import webdriver
from selenium.common.exceptions import (
    NoAlertPresentException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.actions.action_builder import ActionBuilder
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support.ui import WebDriverWait

from .config import PAGE_LOAD_TIMEOUT_SEC

log = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120 Safari/537.36"
)

# Images, fonts, source maps and trackers slow the SPA down without adding anything.
BLOCKED_URL_PATTERNS = [
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.gif",
    "*.woff",
    "*.woff2",
    "*.ttf",
    "*.map",
    "*google-analytics*",
    "*doubleclick*",
    "*hotjar*",
    "*gtag*",
]

CONSOLE_NOISE = re.compile(r"favicon|tracking|analytics", re.IGNORECASE)

POINTER_HOLD_SEC = 0.05


# ------------------------------------------------------------------------------------
# DRIVER
# ------------------------------------------------------------------------------------
def make_driver(headless: bool = True) -> webdriver.Chrome:
    """Start Chrome/Chromedriver with retries, network and console logging enabled."""

    opts = Options()
    if headless:
        opts.add_argument("--headless=new")
    opts.add_argument("--no-sandbox")
    opts.add_argument("--disable-dev-shm-usage")
    opts.add_argument("--disable-gpu")
    opts.add_argument("--window-size=1280,900")
    opts.add_argument(f"--user-agent={USER_AGENT}")
    opts.set_capability("goog:loggingPrefs", {"performance": "ALL", "browser": "ALL"})

    driver_path = shutil.which("chromedriver")
    service = Service(executable_path=driver_path) if driver_path else Service()

    last_err: Exception | None = None
    for attempt in range(1, 3):
        try:
            log.info(f"Launching Chrome (attempt {attempt}, {driver_path or 'auto-managed'} driver)")
            drv = webdriver.Chrome(options=opts, service=service)
            drv.set_page_load_timeout(PAGE_LOAD_TIMEOUT_SEC)
            drv.implicitly_wait(0)
            return drv
        except WebDriverException as exc:
            last_err = exc
            log.warning(f"Chrome launch failed (attempt {attempt}): {exc}")
            subprocess.run(["pkill", "-f", "chromedriver"], check=False)
            time.sleep(3)

    raise RuntimeError(f"Chrome/driver failed to start after retries: {last_err}")


def block_asset_requests(driver: webdriver.Chrome, patterns: Optional[List[str]] = None) -> bool:
    try:
        driver.execute_cdp_cmd("Network.enable", {})
        driver.execute_cdp_cmd("Network.setBlockedURLs", {"urls": patterns or BLOCKED_URL_PATTERNS})
        return True
    except WebDriverException as exc:
        log.warning(f"Could not install request blocking: {exc}")
        return False


def relay_console(driver: webdriver.Chrome) -> int:
    """Copy new browser console lines into the run log, skipping tracker noise."""

    try:
        entries = driver.get_log("browser")
    except WebDriverException:
        return 0
    relayed = 0
    for entry in entries:
        text = entry.get("message", "")
        if not text or CONSOLE_NOISE.search(text):
            continue
        level = entry.get("level", "INFO")
        if level == "SEVERE":
            log.warning(f"[BrowserLog] {text}")
        else:
            log.debug(f"[BrowserLog] {text}")
        relayed += 1
    return relayed


def safe_accept_alert(driver: webdriver.Chrome) -> Tuple[bool, str]:
    try:
        alert = driver.switch_to.alert
        text = alert.text
        alert.accept()
        log.info(f" -> ALERT dismissed: {text}")
        return True, text
    except NoAlertPresentException:
        return False, ""


# ------------------------------------------------------------------------------------
# WAITS
# ------------------------------------------------------------------------------------
def wait_ready(driver: webdriver.Chrome, timeout: float = 15) -> bool:
    end = time.time() + timeout
    while time.time() < end:
        try:
            if driver.execute_script("return document.readyState") == "complete":
                return True
        except WebDriverException:
            pass
        time.sleep(0.1)
    return False


def navigate(driver: webdriver.Chrome, url: str, timeout: float = 30) -> bool:
    driver.get(url)
    return wait_ready(driver, timeout=timeout)


def expect_navigation(driver: webdriver.Chrome, timeout: float = 30) -> Callable[[], bool]:
    """Snapshot the current document and return a waiter for it to be replaced.

    Call this *before* the triggering click; the returned callable then
    blocks until the URL changes or the old ``<html>`` element goes stale.
    """

    old_url = driver.current_url
    try:
        old_root = driver.find_element(By.TAG_NAME, "html")
    except WebDriverException:
        old_root = None

    def _navigated(drv) -> bool:
        if drv.current_url != old_url:
            return True
        if old_root is None:
            return False
        try:
            old_root.is_enabled()
            return False
        except StaleElementReferenceException:
            return True

    def wait() -> bool:
        try:
            WebDriverWait(driver, timeout, poll_frequency=0.05).until(_navigated)
        except TimeoutException:
            log.warning(f"No navigation observed within {timeout:.0f}s (still at {driver.current_url}).")
            return False
        wait_ready(driver, timeout=timeout)
        return True

    return wait


class NetworkWatcher:
    """Reads ``Network.responseReceived`` events from Chrome's performance log."""

    def __init__(self, driver: webdriver.Chrome) -> None:
        self.driver = driver
        self.seen: List[Tuple[str, int]] = []

    def drain(self) -> List[Tuple[str, int]]:
        try:
            entries = self.driver.get_log("performance")
        except WebDriverException:
            return []
        responses: List[Tuple[str, int]] = []
        for entry in entries:
            try:
                message = json.loads(entry.get("message", "{}")).get("message", {})
            except ValueError:
                continue
            if message.get("method") != "Network.responseReceived":
                continue
            response = message.get("params", {}).get("response", {})
            responses.append((response.get("url", ""), int(response.get("status", 0))))
        self.seen.extend(responses)
        return responses

    def mark(self) -> None:
        """Forget everything received so far; later matches must be new."""
        self.drain()
        self.seen = []

    def matched(self, pattern: str) -> Optional[Tuple[str, int]]:
        self.drain()
        regex = re.compile(pattern)
        for url, status in self.seen:
            if regex.search(url) and 200 <= status < 400:
                return url, status
        return None


def wait_for_results(
    driver: webdriver.Chrome,
    ready: Callable[[webdriver.Chrome], bool],
    watcher: Optional[NetworkWatcher],
    pattern: str,
    timeout: float,
    poll: float = 0.1,
) -> Optional[str]:
    """Block until the DOM predicate holds or a matching response arrives.

    Returns ``"dom"`` or ``"network"`` for whichever happened first, or None
    on timeout.
    """

    deadline = time.time() + timeout
    while time.time() < deadline:
        if watcher is not None and watcher.matched(pattern):
            return "network"
        try:
            if ready(driver):
                return "dom"
        except WebDriverException:
            pass
        time.sleep(poll)
    log.warning(f"Results did not settle within {timeout:.0f}s.")
    return None


# ------------------------------------------------------------------------------------
# GEOMETRY / POINTER
# ------------------------------------------------------------------------------------
_RECT_JS = """
const r = arguments[0].getBoundingClientRect();
return {x: r.left, y: r.top, width: r.width, height: r.height};
"""

_HIT_TEST_JS = """
const el = arguments[0];
const r = el.getBoundingClientRect();
if (r.width === 0 || r.height === 0) return false;
const hit = document.elementFromPoint(r.left + r.width / 2, r.top + r.height / 2);
return !!hit && (hit === el || el.contains(hit) || hit.contains(el));
"""


def scroll_into_view(driver: webdriver.Chrome, element: WebElement) -> None:
    driver.execute_script("arguments[0].scrollIntoView({block: 'center', inline: 'center'});", element)


def bounding_box(driver: webdriver.Chrome, element: WebElement) -> Optional[dict]:
    box = driver.execute_script(_RECT_JS, element)
    if not box or not box.get("width") or not box.get("height"):
        return None
    return box


def is_hit_testable(driver: webdriver.Chrome, element: WebElement) -> bool:
    return bool(driver.execute_script(_HIT_TEST_JS, element))


def pointer_sequence(driver: webdriver.Chrome, element: WebElement) -> None:
    """Real pointer move/down/up on the element via WebDriver input actions."""
    (
        ActionChains(driver)
        .move_to_element(element)
        .click_and_hold()
        .pause(POINTER_HOLD_SEC)
        .release()
        .perform()
    )


def pointer_click_at(driver: webdriver.Chrome, x: float, y: float) -> None:
    """Pointer move/down/up at viewport coordinates."""
    action = ActionBuilder(driver)
    action.pointer_action.move_to_location(int(x), int(y))
    action.pointer_action.pointer_down()
    action.pointer_action.pause(POINTER_HOLD_SEC)
    action.pointer_action.pointer_up()
    action.perform()


def press_escape(driver: webdriver.Chrome) -> None:
    ActionChains(driver).send_keys(Keys.ESCAPE).perform()
