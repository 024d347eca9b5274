import time
from datetime import datetime, timezone
from typing import Callable

# Clock used for cooldown arithmetic. Injected into the wizard so tests can
# drive it tick by tick.
Clock = Callable[[], float]


def now_s() -> float:
    return time.time()


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_timestamp_ms(ts) -> int:
    """
    Normalize backend timestamps to epoch milliseconds (int).
    Accepts:
    - int/float: treated as epoch ms (or seconds if suspiciously small)
    - ISO-8601 string: parsed via datetime.fromisoformat (supports trailing 'Z')
    Returns 0 when the value is missing or unparseable.
    """
    try:
        if ts is None:
            return 0
        if isinstance(ts, (int, float)):
            v = int(ts)
            return v * 1000 if 0 < v < 10**12 else v
        if isinstance(ts, str):
            s = ts.strip()
            if not s:
                return 0
            if s.endswith("Z"):
                s = s[:-1] + "+00:00"
            dt = datetime.fromisoformat(s)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return int(dt.timestamp() * 1000)
    except (TypeError, ValueError):
        pass
    return 0
