from fastapi import APIRouter, Depends, HTTPException, Header
from intake.settings import settings
from intake.store.session_repo import load_session
from intake.utils.time import parse_timestamp_ms
import intake.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin(x_admin_key: str = Header(default="", alias="x-admin-key")):
    if not settings.ADMIN_RBAC_ENABLED:
        return
    # Secure default: if enabled but no key configured, reject all.
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Admin access disabled (no key configured)")
    if x_admin_key != settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid admin key")


@router.get("/session/{application_id}")
async def get_session_snapshot(application_id: str, _=Depends(require_admin)):
    """Compact, PII-free session snapshot for support dashboards."""
    s = await load_session(application_id)
    if s is None:
        raise HTTPException(status_code=404, detail="Wizard session not found")

    d = s.draft
    statement = s.statementResult or s.statementError
    record = s.record
    return {
        "applicationId": s.applicationId,
        "step": int(s.step),
        "outcome": s.outcome,
        "stepError": s.stepError,
        "filled": {
            "product": bool(d.amount and d.term),
            "clientData": bool(d.iin and d.phone),
            "document": d.document is not None,
            "otpDigits": len(d.otp or ""),
        },
        "statement": None if statement is None else {
            "success": statement.success,
            "kind": statement.kind,
            "errorCode": statement.errorCode,
            "checkedAt": statement.checkedAt,
        },
        "otp": {
            "issuedCount": int(s.otp.issuedCount or 0),
            "lastIssuedAt": s.otp.lastIssuedAt,
            "error": s.otpError,
        },
        "record": None if record is None else {
            "id": record.id,
            "shortId": record.shortId,
            "status": record.status,
            "updatedAtMs": parse_timestamp_ms(record.updatedAt),
        },
        "createdAtEpoch": s.createdAtEpoch,
        "lastUpdatedAtEpoch": s.lastUpdatedAtEpoch,
    }


@router.get("/metrics")
async def get_metrics(_=Depends(require_admin)):
    """Intake counters backed by Redis."""
    return await metrics.get_snapshot()
