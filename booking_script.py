"""RTJ tee-time booking bot.

Logs in to the RTJ members CPS Golf portal at a precisely scheduled instant,
filters the tee-time search to the configured courses and date, and clicks the
configured tee time, falling back to a highlighted manual handoff when the
automated click cannot land.

Configuration is read from the environment (or a ``.env`` file):
RTJ_EMAIL, RTJ_PASSWORD, COURSE_NAME, TEE_TIME, LOGIN_TIME_CST, HEADLESS,
KEEP_OPEN.
"""

from __future__ import annotations

import sys

from rtj_booking.flow import main


if __name__ == "__main__":
    sys.exit(main())
