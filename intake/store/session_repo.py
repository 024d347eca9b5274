import json
import time
from dataclasses import asdict, fields as dc_fields
from typing import Optional, Type

from intake.observability.logging import log
from intake.settings import settings
from intake.store.models import (
    ApplicationDraft,
    ApplicationRecord,
    DocumentRef,
    OtpSession,
    StatementCheckResult,
    WizardSession,
)
from intake.store.redis_conn import get_redis

PREFIX = "wizard:"


def _key(application_id: str) -> str:
    return f"{PREFIX}{application_id}"


def _filter_kwargs(cls: Type, data: dict) -> dict:
    """
    Drop unknown fields so cls(**kwargs) never explodes on sessions written
    by an older or newer build.
    """
    allowed = {f.name for f in dc_fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in allowed}


def _build(cls: Type, data):
    if not isinstance(data, dict):
        return None
    return cls(**_filter_kwargs(cls, data))


def session_from_dict(data: dict) -> WizardSession:
    data = _filter_kwargs(WizardSession, data)

    draft = dict(data.get("draft") or {})
    draft["document"] = _build(DocumentRef, draft.get("document"))
    data["draft"] = ApplicationDraft(**_filter_kwargs(ApplicationDraft, draft))

    data["record"] = _build(ApplicationRecord, data.get("record"))
    data["statementResult"] = _build(StatementCheckResult, data.get("statementResult"))
    data["statementError"] = _build(StatementCheckResult, data.get("statementError"))
    data["otp"] = _build(OtpSession, data.get("otp")) or OtpSession()

    session = WizardSession(**data)
    # In-flight flags belong to the process that set them
    session.busy = False
    session.otp.verifying = False
    return session


def session_to_dict(session: WizardSession) -> dict:
    data = asdict(session)
    data["busy"] = False
    data["otp"]["verifying"] = False
    return data


async def load_session(application_id: str) -> Optional[WizardSession]:
    r = get_redis()
    raw = await r.get(_key(application_id))
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        log(event="session_corrupt", applicationId=application_id)
        return None
    return session_from_dict(data)


async def save_session(session: WizardSession) -> None:
    r = get_redis()
    session.lastUpdatedAtEpoch = int(time.time())
    await r.set(
        _key(session.applicationId),
        json.dumps(session_to_dict(session), ensure_ascii=False),
        ex=settings.SESSION_TTL_SEC,
    )


async def delete_session(application_id: str) -> None:
    r = get_redis()
    await r.delete(_key(application_id), f"{_key(application_id)}:document")


class RedisDocumentStore:
    """Statement bytes for the lifetime of a wizard session."""

    async def save(self, key: str, content: bytes) -> None:
        r = get_redis(decode_responses=False)
        await r.set(key, content, ex=settings.SESSION_TTL_SEC)

    async def load(self, key: str) -> Optional[bytes]:
        r = get_redis(decode_responses=False)
        return await r.get(key)

    async def delete(self, key: str) -> None:
        r = get_redis(decode_responses=False)
        await r.delete(key)
