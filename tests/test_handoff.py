import signal

import pytest
from selenium.webdriver.common.by import By

from rtj_booking.errors import EscalationTimeout
from rtj_booking.handoff import HIGHLIGHT_CLASS, ManualHandoff
from rtj_booking.locator import ElementLocator
from rtj_booking.shutdown import ShutdownToken

from conftest import FakeElement, StubOverlay


class _Window:
    """The page-side ``window.__rtjHandoffDoc`` slot; a new document clears it."""

    def __init__(self, driver):
        self.doc = None
        driver.on("rtj:handoff-doc", self._doc)

    def _doc(self, value):
        if value:
            self.doc = value
        return self.doc

    def reload(self):
        self.doc = None


def _handoff(driver, clock, overlay):
    locator = ElementLocator(driver, clock=clock.time, sleep=clock.sleep)
    return ManualHandoff(driver, locator, overlay, clock=clock.time, sleep=clock.sleep, bell=False)


def test_nothing_to_highlight_times_out_after_window(driver, clock, caplog):
    _Window(driver)
    overlay = StubOverlay()
    start = clock.time()

    with pytest.raises(EscalationTimeout):
        _handoff(driver, clock, overlay).engage("14:30", timeout_sec=60)

    assert 60 <= clock.time() - start < 61
    assert driver.ran("rtj:handoff-style") == 0
    assert driver.ran("rtj:handoff-mark") == 0
    assert driver.ran("rtj:handoff-unmark") == 1
    assert overlay.paused == [True, False]
    assert "MANUAL ACTION NEEDED" in caplog.text
    assert "0 candidate(s)" in caplog.text


def test_candidates_are_highlighted_once_each(driver, clock):
    _Window(driver)
    driver.default_elements[By.XPATH] = [FakeElement("14:30"), FakeElement("14:30")]
    overlay = StubOverlay()
    marked = []
    driver.on("rtj:handoff-mark", lambda el, cls: marked.append((el, cls)))

    with pytest.raises(EscalationTimeout):
        _handoff(driver, clock, overlay).engage("14:30", timeout_sec=1)

    assert driver.ran("rtj:handoff-style") == 1
    assert len(marked) == 2
    assert {cls for _, cls in marked} == {HIGHLIGHT_CLASS}


def test_operator_navigation_resolves_handoff(driver, clock):
    _Window(driver)
    overlay = StubOverlay()
    ticks = {"n": 0}

    def sleep(seconds):
        clock.sleep(seconds)
        ticks["n"] += 1
        if ticks["n"] == 12:
            driver.current_url = "https://rtjmembers.cps.golf/onlineresweb/booking-confirmation"

    locator = ElementLocator(driver)
    handoff = ManualHandoff(driver, locator, overlay, clock=clock.time, sleep=sleep, bell=False)

    assert handoff.engage("14:30", timeout_sec=60) == "navigation"
    assert ticks["n"] == 12
    assert overlay.paused == [True, False]
    assert driver.ran("rtj:handoff-unmark") == 1


def test_same_url_document_swap_counts_as_navigation(driver, clock):
    window = _Window(driver)
    overlay = StubOverlay()

    def sleep(seconds):
        clock.sleep(seconds)
        window.reload()

    handoff = ManualHandoff(driver, ElementLocator(driver), overlay, clock=clock.time, sleep=sleep, bell=False)
    assert handoff.engage("14:30", timeout_sec=60) == "navigation"


def test_new_dialog_resolves_handoff(driver, clock):
    _Window(driver)
    overlay = StubOverlay(dialogs=1)

    def sleep(seconds):
        clock.sleep(seconds)
        overlay.dialogs = 2

    handoff = ManualHandoff(driver, ElementLocator(driver), overlay, clock=clock.time, sleep=sleep, bell=False)
    assert handoff.engage("14:30", timeout_sec=60) == "dialog"
    # The proactive dismissal stays off while the operator is in charge.
    assert overlay.paused == [True, False]


def test_bell_is_written_to_stdout(driver, clock, capsys):
    _Window(driver)
    locator = ElementLocator(driver)
    handoff = ManualHandoff(driver, locator, StubOverlay(), clock=clock.time, sleep=clock.sleep, bell=True)

    with pytest.raises(EscalationTimeout):
        handoff.engage("14:30", timeout_sec=0.5)
    assert "\a" in capsys.readouterr().out


def test_interrupt_abandons_the_wait(driver, clock, caplog):
    _Window(driver)
    overlay = StubOverlay()
    token = ShutdownToken()
    ticks = {"n": 0}

    def sleep(seconds):
        clock.sleep(seconds)
        ticks["n"] += 1
        if ticks["n"] == 4:
            token.set(signal.SIGINT)

    handoff = ManualHandoff(driver, ElementLocator(driver), overlay, clock=clock.time, sleep=sleep, bell=False)

    assert handoff.engage("14:30", timeout_sec=60, token=token) == "interrupted"
    assert ticks["n"] == 4
    assert overlay.paused == [True, False]
    assert driver.ran("rtj:handoff-unmark") == 1
    assert "abandoned" in caplog.text
