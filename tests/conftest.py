import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from selenium.common.exceptions import NoSuchElementException, StaleElementReferenceException

_ids = itertools.count(1)


class FakeElement:
    """Just enough of a Selenium WebElement for the engine modules."""

    def __init__(self, text: str = "", attrs: Optional[Dict[str, str]] = None, displayed: bool = True):
        self.id = f"el-{next(_ids)}"
        self._text = text
        self.attrs = dict(attrs or {})
        self.displayed = displayed
        self.stale = False
        self.clicks = 0

    @property
    def text(self) -> str:
        if self.stale:
            raise StaleElementReferenceException("stale")
        return self._text

    def is_displayed(self) -> bool:
        if self.stale:
            raise StaleElementReferenceException("stale")
        return self.displayed

    def is_enabled(self) -> bool:
        return True

    def get_attribute(self, name: str):
        return self.attrs.get(name)

    def click(self) -> None:
        self.clicks += 1

    def __repr__(self) -> str:
        return f"FakeElement({self._text!r})"


class FakeDriver:
    """Routes ``execute_script`` calls by the ``rtj:*`` marker in the script text."""

    def __init__(self):
        self.current_url = "https://rtjmembers.cps.golf/onlineresweb/search-teetime"
        self.scripts: List[Tuple[str, tuple]] = []
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.elements: Dict[Tuple[str, str], list] = {}
        self.default_elements: Dict[str, list] = {}
        self.cdp: List[Tuple[str, dict]] = []
        self.queries: List[Tuple[str, str]] = []

    def on(self, marker: str, handler: Callable[..., Any]) -> None:
        self.handlers[marker] = handler

    def ran(self, marker: str) -> int:
        return sum(1 for script, _ in self.scripts if marker in script)

    def execute_script(self, script: str, *args: Any) -> Any:
        self.scripts.append((script, args))
        for marker, handler in self.handlers.items():
            if marker in script:
                return handler(*args)
        return None

    def execute_cdp_cmd(self, cmd: str, params: dict) -> dict:
        self.cdp.append((cmd, params))
        return {}

    def find_elements(self, by: str, selector: str) -> list:
        self.queries.append((by, selector))
        if (by, selector) in self.elements:
            return list(self.elements[(by, selector)])
        return list(self.default_elements.get(by, []))

    def find_element(self, by: str, selector: str):
        found = self.find_elements(by, selector)
        if not found:
            raise NoSuchElementException(f"{by}={selector}")
        return found[0]


class FakeClock:
    """Simulated wall clock; ``perf_counter`` ticks forward on every read so spins end."""

    def __init__(self, start: float = 1_760_000_000.0, spin_step: float = 0.0005):
        self.now = start
        self.spin_step = spin_step
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)

    def perf_counter(self) -> float:
        self.now += self.spin_step
        return self.now


class StubOverlay:
    def __init__(self, dialogs: int = 0):
        self.clears = 0
        self.paused: List[bool] = []
        self.dialogs = dialogs

    def clear(self, attempts=None) -> bool:
        self.clears += 1
        return True

    def pause(self) -> None:
        self.paused.append(True)

    def resume(self) -> None:
        self.paused.append(False)

    def dialog_count(self) -> int:
        return self.dialogs


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _quiet_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="rtj_booking")
    yield
