import os
from typing import Optional
from zoneinfo import ZoneInfo


def _load_timezone(name: Optional[str]) -> Optional[ZoneInfo]:
    # unset means timestamps are compared in one implicit local zone
    if not name:
        return None
    return ZoneInfo(name)


TIMEZONE = _load_timezone(os.environ.get("WORKTIME_TIMEZONE"))
HOURS_LIMIT = float(os.environ.get("WORKTIME_HOURS_LIMIT", "40"))
LATE_TOLERANCE_MINUTES = int(os.environ.get("WORKTIME_LATE_TOLERANCE_MINUTES", "15"))
LOG_LEVEL = os.environ.get("WORKTIME_LOG_LEVEL", "INFO").upper()
