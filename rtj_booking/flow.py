"""End-to-end run: timed login, search filters, tee-time click, cleanup."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from . import browser
from .clicker import TeeTimeClicker
from .config import (
    KEEP_OPEN_POLL_SEC,
    LOGIN_FIELD_WAIT_SEC,
    LOGIN_URL,
    NAVIGATION_WAIT_SEC,
    SEARCH_URL,
    Settings,
    load_settings,
)
from .errors import InvalidScheduleError
from .executor import InteractionExecutor
from .handoff import ManualHandoff
from .locator import ElementLocator
from .logs import setup_logging, snap_html, snap_png, zip_run_folder
from .overlay import OverlayGuard
from .scheduler import FireReport, PrecisionScheduler, ScheduledAction, parse_target_instant, to_epoch_ms
from .search import select_courses, select_date_offset
from .shutdown import ShutdownToken, install_signal_handlers

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BOOKING_FAILED = 1
EXIT_BAD_SCHEDULE = 2
EXIT_INTERRUPTED = 130

EMAIL_FIELD = (By.CSS_SELECTOR, "input[name='username']")
PASSWORD_FIELD = (By.CSS_SELECTOR, "input[type='password']")
NEXT_BUTTON = (By.XPATH, "//button[normalize-space()='Next'] | //button[@type='submit']")
LOGIN_BUTTON = (
    By.XPATH,
    "//button[normalize-space()='Login' or normalize-space()='Log In'] | //button[@type='submit']",
)


def build_schedule(settings: Settings) -> Optional[datetime]:
    """The login instant, or None for an immediate login. Raises InvalidScheduleError."""
    if not settings.login_time:
        return None
    return parse_target_instant(settings.login_time, settings.login_timezone)


def _fill(driver: webdriver.Chrome, locator, value: str):
    field = WebDriverWait(driver, LOGIN_FIELD_WAIT_SEC).until(EC.visibility_of_element_located(locator))
    field.clear()
    field.send_keys(value)
    return field


def login(
    driver: webdriver.Chrome,
    settings: Settings,
    instant: Optional[datetime],
    token: Optional[ShutdownToken] = None,
    scheduler: Optional[PrecisionScheduler] = None,
) -> Optional[FireReport]:
    log.info(f"Opening login page for {settings.email or '(no email configured)'}")
    browser.navigate(driver, LOGIN_URL, timeout=NAVIGATION_WAIT_SEC)

    _fill(driver, EMAIL_FIELD, settings.email)
    next_nav = browser.expect_navigation(driver, NAVIGATION_WAIT_SEC)
    WebDriverWait(driver, LOGIN_FIELD_WAIT_SEC).until(EC.element_to_be_clickable(NEXT_BUTTON)).click()
    next_nav()

    password = _fill(driver, PASSWORD_FIELD, settings.password)
    WebDriverWait(driver, 5).until(lambda _d: password.get_attribute("value"))
    login_button = WebDriverWait(driver, LOGIN_FIELD_WAIT_SEC).until(EC.element_to_be_clickable(LOGIN_BUTTON))
    log.info("Password entered; login button ready.")

    if instant is None:
        login_nav = browser.expect_navigation(driver, NAVIGATION_WAIT_SEC)
        login_button.click()
        login_nav()
        log.info("Logged in (no login time configured).")
        return None

    scheduler = scheduler or PrecisionScheduler()
    scheduled = ScheduledAction(
        target_epoch_ms=to_epoch_ms(instant),
        action=login_button.click,
        tolerance_ms=settings.skew_tolerance_ms,
        label="Login click",
    )
    return scheduler.fire(
        scheduled,
        arm=lambda: browser.expect_navigation(driver, NAVIGATION_WAIT_SEC),
        token=token,
    )


def _interrupted(token: ShutdownToken) -> bool:
    if token.is_set:
        log.info(f"Interrupt received (signal {token.signal_number}); stopping before the next step.")
    return token.is_set


def hold_open(driver: webdriver.Chrome, token: ShutdownToken) -> None:
    log.info("KEEP_OPEN is set: leaving the browser open (Ctrl+C to finish).")
    while not token.wait(KEEP_OPEN_POLL_SEC):
        try:
            if not driver.window_handles:
                break
        except WebDriverException:
            log.info("Browser window closed.")
            break


def run(settings: Settings, token: ShutdownToken, instant: Optional[datetime]) -> int:
    driver = browser.make_driver(headless=settings.headless)
    booked = False
    try:
        try:
            if settings.block_assets:
                browser.block_asset_requests(driver)
            overlay = OverlayGuard(driver)
            overlay.install()
            watcher = browser.NetworkWatcher(driver)

            login(driver, settings, instant, token)
            if _interrupted(token):
                return EXIT_INTERRUPTED

            browser.navigate(driver, SEARCH_URL, timeout=NAVIGATION_WAIT_SEC)
            log.info("On tee-time search page.")
            overlay.ensure_running()
            overlay.clear()

            select_courses(driver, settings.courses, watcher, overlay)
            select_date_offset(driver, settings.date_offset_days, overlay, watcher)
            browser.relay_console(driver)
            if _interrupted(token):
                return EXIT_INTERRUPTED

            if settings.tee_time:
                locator = ElementLocator(driver)
                clicker = TeeTimeClicker(
                    locator,
                    InteractionExecutor(driver, overlay),
                    ManualHandoff(driver, locator, overlay),
                    poll_sec=settings.tee_time_poll_sec,
                    handoff_timeout_sec=settings.handoff_timeout_sec,
                    token=token,
                )
                result = clicker.run(settings.tee_time)
                booked = result.succeeded
                browser.safe_accept_alert(driver)
                snap_png(driver, "after_teetime_click")
                stats = overlay.stats()
                if stats:
                    log.info(f"Overlay guard: {stats['dismissed']} dismissed, {stats['attached']} attached.")
            else:
                log.info("No TEE_TIME configured; stopping after the search filters.")
                booked = True
            if _interrupted(token):
                return EXIT_INTERRUPTED

            if settings.keep_open:
                hold_open(driver, token)
        except Exception as exc:  # noqa: BLE001 - capture evidence, then clean up
            if not token.is_set:
                log.exception(f"CRITICAL: booking run failed unexpectedly. REASON: {exc}")
            snap_png(driver, "error")
            snap_html(driver, "error")
            booked = False
            if settings.keep_open and not token.is_set:
                hold_open(driver, token)
    finally:
        try:
            driver.quit()
        except WebDriverException as exc:
            log.debug(f"driver.quit() failed: {exc}")
        log.info("--- Browser closed. ---")
        zip_run_folder()

    if token.is_set:
        log.info(f"Run interrupted; cleanup finished (booked={booked}).")
        return EXIT_INTERRUPTED
    log.info(f"Summary: booked={booked}")
    return EXIT_OK if booked else EXIT_BOOKING_FAILED


def main() -> int:
    settings = load_settings()
    token = install_signal_handlers()
    run_dir = setup_logging(settings.run_root, token)
    log.info("--- RTJ Tee-Time Bot Initialized ---")
    log.info(f"Run directory: {run_dir}")

    try:
        instant = build_schedule(settings)
    except InvalidScheduleError as exc:
        log.error(f"Invalid LOGIN_TIME_CST, aborting before opening the browser: {exc}")
        return EXIT_BAD_SCHEDULE

    if instant is not None:
        log.info(f"Target login instant: {instant.strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]} {instant.tzname()}")
    if settings.tee_time:
        log.info(f"Target tee time: {settings.tee_time} (+{settings.date_offset_days} days)")
    return run(settings, token, instant)
