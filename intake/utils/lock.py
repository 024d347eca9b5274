import uuid
from contextlib import asynccontextmanager

from intake.observability.logging import log
from intake.settings import settings
from intake.store.redis_conn import get_redis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class SessionBusyError(RuntimeError):
    def __init__(self, application_id: str):
        super().__init__(f"Session {application_id} is busy")
        self.applicationId = application_id


@asynccontextmanager
async def session_lock(application_id: str, ttl_ms: int = None):
    """
    Single writer per wizard session across workers.
    Fails fast: a second request while a transition is in flight gets
    SessionBusyError (HTTP 409), it does not queue behind the first.
    """
    r = get_redis()
    key = lock_key(application_id)
    token = uuid.uuid4().hex
    ttl = int(ttl_ms or settings.SESSION_LOCK_TTL_MS)

    acquired = await r.set(key, token, px=ttl, nx=True)
    if not acquired:
        log(event="session_lock_busy", applicationId=application_id)
        raise SessionBusyError(application_id)
    try:
        yield
    finally:
        # Release only if we still own it
        try:
            await r.eval(_RELEASE_SCRIPT, 1, key, token)
        except Exception as e:
            log(event="session_lock_release_failed", applicationId=application_id, errorType=type(e).__name__)


def lock_key(application_id: str) -> str:
    return f"lock:wizard:{application_id}"


async def is_locked(application_id: str) -> bool:
    r = get_redis()
    return bool(await r.exists(lock_key(application_id)))
