"""The in-page scripts run in a real headless Chrome against small Material-like pages.

Skipped when no local Chrome/chromedriver can be started.
"""

import time
from urllib.parse import quote

import pytest
from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.support.ui import WebDriverWait

from rtj_booking import browser
from rtj_booking.executor import InteractionExecutor
from rtj_booking.locator import ElementLocator
from rtj_booking.overlay import DISMISS_JS, OBSERVER_JS, OverlayGuard
from rtj_booking.search import select_courses

pytestmark = pytest.mark.browser

_STYLE = """
body { margin: 0; font-family: sans-serif; }
.cdk-overlay-container { position: fixed; top: 0; left: 0; width: 100%; height: 100%;
                         pointer-events: none; z-index: 1000; }
.cdk-overlay-backdrop { position: fixed; top: 0; left: 0; width: 100%; height: 100%;
                        pointer-events: auto; background: rgba(0, 0, 0, .32); }
.cdk-overlay-transparent-backdrop { background: transparent; }
.cdk-overlay-pane { position: absolute; top: 60px; left: 20px; width: 260px; pointer-events: auto; z-index: 1001; }
mat-dialog-container { display: block; position: fixed; top: 100px; left: 100px; width: 300px; height: 150px;
                       background: white; pointer-events: auto; z-index: 1002; }
mat-option { display: block; height: 30px; }
.tile { position: absolute; top: 300px; left: 300px; width: 200px; height: 60px; }
"""


@pytest.fixture(scope="module")
def chrome():
    opts = Options()
    opts.add_argument("--headless=new")
    opts.add_argument("--no-sandbox")
    opts.add_argument("--disable-dev-shm-usage")
    opts.add_argument("--window-size=1280,900")
    try:
        drv = webdriver.Chrome(options=opts)
    except (WebDriverException, OSError) as exc:
        pytest.skip(f"headless Chrome unavailable: {exc}")
    yield drv
    drv.quit()


def _load(drv, body):
    html = f"<!doctype html><html><head><style>{_STYLE}</style></head><body>{body}</body></html>"
    drv.get("data:text/html;charset=utf-8," + quote(html))


def _js(drv, expr):
    return drv.execute_script("return " + expr)


_CLOSABLE_DIALOG = """
<div class="cdk-overlay-container" id="overlays">
  <div class="cdk-overlay-backdrop cdk-overlay-dark-backdrop"></div>
  <mat-dialog-container><p>Course notice</p>
    <button onclick="document.getElementById('overlays').remove()">Close</button>
  </mat-dialog-container>
</div>
"""

_TILE = """<div class="tile" id="tile" onclick="this.dataset.clicks = (+this.dataset.clicks || 0) + 1">14:30</div>"""


# ---------------------------------------------------------------------------
# Dismiss routine
# ---------------------------------------------------------------------------


def test_select_backdrop_without_dialog_is_left_alone(chrome):
    _load(chrome, """
    <div class="cdk-overlay-container">
      <div class="cdk-overlay-backdrop cdk-overlay-transparent-backdrop"
           onclick="document.body.dataset.closed = 'yes'"></div>
      <div class="cdk-overlay-pane"><div class="mat-select-panel">
        <mat-option>Bear Lake 18</mat-option></div></div>
    </div>""")
    guard = OverlayGuard(chrome)

    assert chrome.execute_script(DISMISS_JS) == "none"
    assert guard.overlay_visible() is False
    assert guard.dialog_count() == 0
    assert guard.clear() is True
    assert _js(chrome, "document.body.dataset.closed || null") is None


def test_dialog_closed_through_its_button(chrome):
    _load(chrome, _CLOSABLE_DIALOG)
    guard = OverlayGuard(chrome)

    assert guard.dialog_count() == 1
    assert chrome.execute_script(DISMISS_JS) == "button"
    assert guard.overlay_visible() is False


def test_buttonless_dialog_closed_through_dark_backdrop_only(chrome):
    _load(chrome, """
    <div class="cdk-overlay-container" id="overlays">
      <div class="cdk-overlay-backdrop cdk-overlay-dark-backdrop"
           onclick="document.getElementById('overlays').remove()"></div>
      <mat-dialog-container><p>Loading your tee sheet</p></mat-dialog-container>
      <div class="cdk-overlay-backdrop cdk-overlay-transparent-backdrop"
           onclick="document.body.dataset.wrong = 'yes'"></div>
    </div>""")

    assert chrome.execute_script(DISMISS_JS) == "backdrop"
    assert OverlayGuard(chrome).overlay_visible() is False
    assert _js(chrome, "document.body.dataset.wrong || null") is None


# ---------------------------------------------------------------------------
# Mutation observer
# ---------------------------------------------------------------------------

_ATTACH_DIALOG_JS = """
const c = document.createElement('div');
c.className = 'cdk-overlay-container';
c.innerHTML = '<div class="cdk-overlay-backdrop cdk-overlay-transparent-backdrop"></div>' +
              '<mat-dialog-container><button>OK</button></mat-dialog-container>';
const dialog = c.querySelector('mat-dialog-container');
dialog.querySelector('button').onclick = () => dialog.remove();
document.body.appendChild(c);
"""

# A dark-backdrop promo whose button removes the whole overlay container.
_ATTACH_PROMO_JS = """
const c = document.createElement('div');
c.className = 'cdk-overlay-container';
c.innerHTML = '<div class="cdk-overlay-backdrop cdk-overlay-dark-backdrop"></div>' +
              '<mat-dialog-container><button aria-label="Close promo">x</button></mat-dialog-container>';
c.querySelector('button').onclick = () => c.remove();
document.body.appendChild(c);
"""


def test_observer_dismisses_attached_dialog_and_keeps_select_backdrop(chrome):
    _load(chrome, "<main>search</main>")
    guard = OverlayGuard(chrome)

    assert guard.ensure_running() is True
    assert chrome.execute_script("return " + OBSERVER_JS) == "present"

    chrome.execute_script(_ATTACH_DIALOG_JS)
    WebDriverWait(chrome, 3).until(lambda _d: not guard.overlay_visible())

    assert guard.stats() == {"dismissed": 1, "attached": 1}
    assert _js(chrome, "document.querySelectorAll('.cdk-overlay-transparent-backdrop').length") == 1


def test_paused_observer_leaves_dialog_for_the_operator(chrome):
    _load(chrome, "<main>search</main>")
    guard = OverlayGuard(chrome)
    guard.ensure_running()
    guard.pause()

    chrome.execute_script(_ATTACH_DIALOG_JS)
    time.sleep(0.3)

    assert guard.overlay_visible() is True
    assert guard.stats() == {"dismissed": 0, "attached": 1}

    guard.resume()
    assert guard.clear() is True
    assert guard.dialog_count() == 0


# ---------------------------------------------------------------------------
# Locator, hit test and activation
# ---------------------------------------------------------------------------


def test_text_match_returns_innermost_unpadded_or_padded_time(chrome):
    _load(chrome, """
    <table><tr>
      <td><span id="s18">18:00</span></td>
      <td><div class="slot"><span id="s8">08:00 AM</span><small>4 players</small></div></td>
    </tr></table>""")
    locator = ElementLocator(chrome)

    assert locator.by_visible_text("08:00").get_attribute("id") == "s8"
    assert locator.by_visible_text("8:00 am").get_attribute("id") == "s8"
    assert locator.by_visible_text("18:00").get_attribute("id") == "s18"
    assert locator.by_visible_text("06:30") is None


def test_covered_tile_is_cleared_then_clicked_once(chrome):
    _load(chrome, _TILE + _CLOSABLE_DIALOG)
    tile = chrome.find_element("id", "tile")
    assert browser.is_hit_testable(chrome, tile) is False

    result = InteractionExecutor(chrome, OverlayGuard(chrome)).activate(tile)

    assert result.succeeded and result.tier == 2
    assert [f.tier for f in result.failures] == [1]
    assert tile.get_attribute("data-clicks") == "1"
    assert browser.is_hit_testable(chrome, tile) is True


def test_dialog_popping_after_load_is_cleared_before_the_click(chrome):
    _load(chrome, _TILE + "<script>setTimeout(() => {" + _ATTACH_PROMO_JS + "}, 500);</script>")
    guard = OverlayGuard(chrome)
    guard.ensure_running()
    WebDriverWait(chrome, 3).until(lambda _d: (guard.stats() or {}).get("dismissed") == 1)

    tile = chrome.find_element("id", "tile")
    result = InteractionExecutor(chrome, guard).activate(tile)

    assert result.succeeded and result.tier == 2
    assert result.failures == []
    assert tile.get_attribute("data-clicks") == "1"
    assert guard.stats()["attached"] == 1


# ---------------------------------------------------------------------------
# Course filter
# ---------------------------------------------------------------------------

_COURSE_PAGE = """
<div id="mat-select-2" role="combobox" aria-expanded="false" style="width:200px;height:30px"
     onclick="openPanel()">Course</div>
<div class="cdk-overlay-container" id="overlays"></div>
<script>
const courses = [['Bear Lake 18', true], ['Grand National Links', false], ['Grand National Short Course', false]];
function closePanel() {
  document.querySelectorAll('.cdk-overlay-pane').forEach(p => {
    window.__selected = Array.from(p.querySelectorAll('mat-option.mat-selected')).map(o => o.textContent.trim());
  });
  document.getElementById('overlays').innerHTML = '';
  document.getElementById('mat-select-2').setAttribute('aria-expanded', 'false');
}
function openPanel() {
  const overlays = document.getElementById('overlays');
  const backdrop = document.createElement('div');
  backdrop.className = 'cdk-overlay-backdrop cdk-overlay-transparent-backdrop';
  backdrop.onclick = () => { window.__backdropClicked = true; closePanel(); };
  const pane = document.createElement('div');
  pane.className = 'cdk-overlay-pane';
  const panel = document.createElement('div');
  panel.className = 'mat-select-panel';
  for (const [label, selected] of courses) {
    const opt = document.createElement('mat-option');
    if (selected) opt.classList.add('mat-selected');
    opt.innerHTML = '<span class="mat-option-text">' + label + '</span>';
    opt.addEventListener('click', () => opt.classList.toggle('mat-selected'));
    panel.appendChild(opt);
  }
  pane.appendChild(panel);
  overlays.append(backdrop, pane);
  document.getElementById('mat-select-2').setAttribute('aria-expanded', 'true');
}
document.addEventListener('keydown', e => { if (e.key === 'Escape') closePanel(); });
</script>
"""


def test_observer_does_not_close_an_open_course_panel(chrome):
    _load(chrome, _COURSE_PAGE)
    guard = OverlayGuard(chrome)
    guard.ensure_running()

    chrome.execute_script("openPanel();")
    time.sleep(0.3)

    assert _js(chrome, "document.querySelectorAll('.mat-select-panel').length") == 1
    assert _js(chrome, "window.__backdropClicked || null") is None


def test_course_filter_toggles_only_what_differs(chrome):
    _load(chrome, _COURSE_PAGE)
    guard = OverlayGuard(chrome)
    guard.ensure_running()

    changed = select_courses(chrome, ["grand national links"], None, guard)

    assert changed == 2
    assert _js(chrome, "window.__selected") == ["Grand National Links"]
    assert _js(chrome, "window.__backdropClicked || null") is None
    assert _js(chrome, "window.__rtjOverlayGuard.paused") is False
