"""Per-run log directory, console/file logging and evidence snapshots."""

from __future__ import annotations

import logging
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from selenium import webdriver

from .shutdown import ShutdownLogFilter, ShutdownToken

log = logging.getLogger(__name__)

_RUN_DIR: Optional[Path] = None


def init_run_dir(run_root: Path) -> Path:
    global _RUN_DIR
    run_root.mkdir(parents=True, exist_ok=True)
    run_id = datetime.now().strftime("run_%Y-%m-%d_%H-%M-%S")
    _RUN_DIR = run_root / run_id
    _RUN_DIR.mkdir(parents=True, exist_ok=True)
    return _RUN_DIR


def run_dir() -> Path:
    if _RUN_DIR is None:
        raise RuntimeError("run directory not initialised; call setup_logging() first")
    return _RUN_DIR


def setup_logging(run_root: Path, token: Optional[ShutdownToken] = None) -> Path:
    """Log to ``<run dir>/run.log`` and the console. Returns the run directory."""

    directory = init_run_dir(run_root)
    logger = logging.getLogger("rtj_booking")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter("[%(asctime)s] %(message)s", datefmt="%H:%M:%S")
    fh = logging.FileHandler(directory / "run.log", encoding="utf-8")
    fh.setFormatter(fmt)
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    ch.setLevel(logging.INFO)
    for handler in (fh, ch):
        if token is not None:
            handler.addFilter(ShutdownLogFilter(token))
        logger.addHandler(handler)
    return directory


def snap_png(driver: webdriver.Chrome, name: str) -> Optional[Path]:
    path = run_dir() / f"{name}.png"
    try:
        driver.save_screenshot(str(path))
        log.info(f"Saved screenshot: {path}")
        return path
    except Exception as exc:  # noqa: BLE001 - logging for diagnostics
        log.warning(f"Failed to save screenshot ({name}): {exc}")
        return None


def snap_html(driver: webdriver.Chrome, name: str) -> Optional[Path]:
    path = run_dir() / f"{name}.html"
    try:
        path.write_text(driver.page_source, encoding="utf-8")
        log.info(f"Saved HTML snapshot: {path}")
        return path
    except Exception as exc:  # noqa: BLE001 - logging for diagnostics
        log.warning(f"Failed to save HTML ({name}): {exc}")
        return None


def zip_run_folder() -> Optional[Path]:
    directory = run_dir()
    zip_path = directory.with_suffix(".zip")
    try:
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in directory.rglob("*"):
                zf.write(path, arcname=path.relative_to(directory))
        log.info(f"Created evidence bundle: {zip_path}")
        return zip_path
    except Exception as exc:  # noqa: BLE001 - logging for diagnostics
        log.warning(f"Could not create ZIP: {exc}")
        return None
