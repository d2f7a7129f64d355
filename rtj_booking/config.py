"""Run configuration for the RTJ tee-time bot.

Credentials and targets come from the environment (optionally a ``.env`` file
in the working directory). Nothing here is validated beyond type coercion; the
login instant is checked by :func:`rtj_booking.scheduler.parse_target_instant`.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


# ------------------------------------------------------------------------------------
# URLS
# ------------------------------------------------------------------------------------
BASE_URL = "https://rtjmembers.cps.golf/onlineresweb"
LOGIN_URL = f"{BASE_URL}/auth/verify-email"
SEARCH_URL = f"{BASE_URL}/search-teetime"

# Tee-time search results come back from this API on every filter/date change.
TEETIME_API_PATTERN = r"/onlineapi/api/v\d+/onlinereservation/TeeTimes"

# ------------------------------------------------------------------------------------
# TIMING
# ------------------------------------------------------------------------------------
PAGE_LOAD_TIMEOUT_SEC = 60
LOGIN_FIELD_WAIT_SEC = 10
NAVIGATION_WAIT_SEC = 30
RESULTS_WAIT_SEC = 15
COURSE_PANEL_WAIT_SEC = 10
DATE_CELL_WAIT_SEC = 8
KEEP_OPEN_POLL_SEC = 1.0

LOGIN_TIMEZONE = "America/Chicago"
DEFAULT_DATE_OFFSET_DAYS = 14
DEFAULT_TEE_TIME_POLL_SEC = 8.0
DEFAULT_HANDOFF_TIMEOUT_SEC = 60.0
DEFAULT_SKEW_TOLERANCE_MS = 100


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_course_names(raw: Optional[str]) -> List[str]:
    """Split ``"Course A; Course B,Course C"`` into trimmed names."""
    if not raw:
        return []
    return [part.strip() for part in re.split(r"[;,]", raw) if part.strip()]


@dataclass(frozen=True)
class Settings:
    email: str = ""
    password: str = ""
    courses: List[str] = field(default_factory=list)
    tee_time: str = ""
    login_time: str = ""
    login_timezone: str = LOGIN_TIMEZONE
    headless: bool = True
    keep_open: bool = False
    block_assets: bool = True
    date_offset_days: int = DEFAULT_DATE_OFFSET_DAYS
    tee_time_poll_sec: float = DEFAULT_TEE_TIME_POLL_SEC
    handoff_timeout_sec: float = DEFAULT_HANDOFF_TIMEOUT_SEC
    skew_tolerance_ms: int = DEFAULT_SKEW_TOLERANCE_MS
    run_root: Path = field(default_factory=lambda: Path.home() / "rtjbot_logs")


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Read settings from the process environment after loading ``.env``."""

    load_dotenv(env_file)
    run_root_env = os.getenv("RTJ_RUN_ROOT")
    return Settings(
        email=os.getenv("RTJ_EMAIL", ""),
        password=os.getenv("RTJ_PASSWORD", ""),
        courses=parse_course_names(os.getenv("COURSE_NAME")),
        tee_time=os.getenv("TEE_TIME", "").strip(),
        login_time=os.getenv("LOGIN_TIME_CST", "").strip(),
        login_timezone=os.getenv("LOGIN_TZ", LOGIN_TIMEZONE).strip() or LOGIN_TIMEZONE,
        headless=_env_flag("HEADLESS", True),
        keep_open=_env_flag("KEEP_OPEN", False),
        block_assets=_env_flag("BLOCK_ASSETS", True),
        date_offset_days=_env_int("DATE_OFFSET_DAYS", DEFAULT_DATE_OFFSET_DAYS),
        tee_time_poll_sec=max(0.5, _env_float("TEE_TIME_POLL_SEC", DEFAULT_TEE_TIME_POLL_SEC)),
        handoff_timeout_sec=max(1.0, _env_float("HANDOFF_TIMEOUT_SEC", DEFAULT_HANDOFF_TIMEOUT_SEC)),
        skew_tolerance_ms=max(1, _env_int("SKEW_TOLERANCE_MS", DEFAULT_SKEW_TOLERANCE_MS)),
        run_root=Path(run_root_env).expanduser() if run_root_env else Path.home() / "rtjbot_logs",
    )
