"""
Observability Counters
----------------------
Best-effort Redis counters for the intake flow and a snapshot for
/admin/metrics. A counter write that fails is logged and dropped; the
wizard never waits on or fails because of metrics.
"""
from __future__ import annotations

from typing import Dict

from intake.observability.logging import log
from intake.store.redis_conn import get_redis
from intake.utils.time import now_ms

PREFIX = "metrics:intake:"

# Counter names (suffixes under PREFIX)
SESSIONS_STARTED = "sessions_started"
SESSIONS_START_FAILED = "sessions_start_failed"
ADVANCE_REFUSED = "advance_refused"
TRANSITION_FAILED = "transition_failed"
STATEMENT_VERIFIED = "statement:verified"
STATEMENT_STALE = "statement:stale"
STATEMENT_GENERIC = "statement:generic"
STATEMENT_SKIPPED = "statement_skipped"
OTP_ISSUED = "otp:issued"
OTP_ISSUE_FAILED = "otp:issue_failed"
OTP_VERIFIED = "otp:verified"
OTP_VERIFY_FAILED = "otp:verify_failed"
LOCK_CONTENDED = "lock_contended"


def step_reached(step: int) -> str:
    return f"step_reached:{int(step)}"


def outcome_counter(outcome: str) -> str:
    return f"outcome:{outcome}"


async def incr(name: str, amount: int = 1) -> None:
    try:
        r = get_redis()
        await r.incr(PREFIX + name, amount)
    except Exception as e:
        log(event="metrics_incr_failed", counter=name, errorType=type(e).__name__)


async def get_snapshot() -> dict:
    """All intake counters as {name: int}, plus the snapshot time."""
    r = get_redis()
    counters: Dict[str, int] = {}
    async for key in r.scan_iter(match=PREFIX + "*"):
        raw = await r.get(key)
        try:
            counters[key[len(PREFIX):]] = int(raw or 0)
        except (TypeError, ValueError):
            continue
    return {"counters": dict(sorted(counters.items())), "snapshotAtMs": now_ms()}
