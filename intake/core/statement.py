"""
Statement Verification Client
-----------------------------
Advisory check of an uploaded bank statement. The outcome never blocks the
wizard: every failure, including transport errors, becomes a
StatementCheckResult with a user-facing message.

Envelope classification:
  (a) success:true but an embedded business error (errorCode/errorMessage)
      -> failure
  (b) success:false -> failure
  (c) success:true, no embedded error -> success (score payload optional)
When a ScanQR list is present its first entry must carry Status "OK".

Failures are split into "stale" (date/period vocabulary) and "generic" for
messaging only. Technical failure and business error share one user path;
errorCode is kept on the result so they stay distinguishable in logs.
"""

import hashlib
import re
from typing import Any, Dict, List, Optional

from intake.backend.client import BackendError
from intake.core import messages
from intake.observability.logging import log
from intake.settings import settings
from intake.store.models import (
    DocumentRef,
    STATEMENT_GENERIC,
    STATEMENT_STALE,
    StatementCheckResult,
)
from intake.utils.time import now_ms

# Staleness vocabulary (English and Russian stems as returned by the bank side)
STALE_PATTERN = re.compile(
    r"\b(date|dated|period|outdated|expired|stale)\b|дат|период|устар|просроч|срок",
    re.IGNORECASE,
)

PDF_MAGIC = b"%PDF"
PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


def _first(d: Dict[str, Any], *keys) -> Any:
    for k in keys:
        v = d.get(k)
        if v not in (None, ""):
            return v
    return None


def document_constraint_error(
    filename: str,
    content_type: str,
    content: Optional[bytes],
    *,
    file_count: int = 1,
) -> Optional[str]:
    """Checked before any network call. None when the upload is acceptable."""
    if file_count != 1 or content is None:
        return messages.DOCUMENT_REQUIRED
    if len(content) == 0:
        return messages.DOCUMENT_EMPTY
    if len(content) > settings.STATEMENT_MAX_BYTES:
        return messages.DOCUMENT_TOO_LARGE.format(limit_mb=settings.STATEMENT_MAX_BYTES // (1024 * 1024))
    ct = (content_type or "").split(";")[0].strip().lower()
    name_ok = (filename or "").lower().endswith(".pdf")
    if ct not in PDF_CONTENT_TYPES and not name_ok:
        return messages.DOCUMENT_NOT_PDF
    if not content.startswith(PDF_MAGIC):
        return messages.DOCUMENT_NOT_PDF
    return None


def build_document_ref(filename: str, content_type: str, content: bytes, storage_key: str) -> DocumentRef:
    return DocumentRef(
        filename=filename or "statement.pdf",
        contentType=(content_type or "application/pdf").split(";")[0].strip(),
        size=len(content),
        sha256=hashlib.sha256(content).hexdigest(),
        storageKey=storage_key,
    )


def is_stale_message(text: Optional[str]) -> bool:
    return bool(text) and bool(STALE_PATTERN.search(str(text)))


def failure_result(text: Optional[str], *, error_code=None, sha256: str = "") -> StatementCheckResult:
    kind = STATEMENT_STALE if is_stale_message(text) else STATEMENT_GENERIC
    return StatementCheckResult(
        success=False,
        errorCode=None if error_code is None else str(error_code),
        errorMessage=text or None,
        kind=kind,
        message=messages.STATEMENT_STALE if kind == STATEMENT_STALE else messages.STATEMENT_GENERIC,
        documentSha256=sha256,
        checkedAt=now_ms(),
    )


def _scan_qr_ok(data: Dict[str, Any]) -> bool:
    scan: List[Any] = data.get("ScanQR") or data.get("scanQR") or []
    if not isinstance(scan, list) or not scan:
        return True
    first = scan[0] if isinstance(scan[0], dict) else {}
    return str(first.get("Status") or first.get("status") or "").upper() == "OK"


def classify_envelope(envelope: Dict[str, Any], *, sha256: str = "") -> StatementCheckResult:
    envelope = envelope if isinstance(envelope, dict) else {}
    data = envelope.get("data")
    data = data if isinstance(data, dict) else {}

    error_code = _first(data, "errorCode", "ErrorCode")
    error_message = _first(data, "errorMessage", "ErrorMessage")
    top_message = _first(envelope, "message", "error")

    if envelope.get("success") is not True:
        return failure_result(error_message or top_message, error_code=error_code or None, sha256=sha256)

    # A zero code or blank message means no error
    if error_code or error_message:
        return failure_result(error_message or top_message, error_code=error_code or None, sha256=sha256)

    if not _scan_qr_ok(data):
        return failure_result(error_message or top_message, sha256=sha256)

    score = _first(data, "score", "scoreRb")
    return StatementCheckResult(
        success=True,
        score=score if isinstance(score, dict) else ({"value": score} if score is not None else None),
        message=messages.STATEMENT_VERIFIED,
        documentSha256=sha256,
        checkedAt=now_ms(),
    )


class StatementVerifier:
    def __init__(self, client):
        self.client = client

    async def check(
        self,
        *,
        application_id: str,
        bank: str,
        iin: str,
        document: DocumentRef,
        content: bytes,
        cached: Optional[StatementCheckResult] = None,
    ) -> StatementCheckResult:
        """
        Run the check unless a successful result for this exact document is
        already cached. Never raises for backend failures.
        """
        if cached is not None and cached.success and cached.documentSha256 == document.sha256:
            log(event="statement_check_cached", applicationId=application_id, sha256=document.sha256[:12])
            return cached

        try:
            envelope = await self.client.check_statement(
                bank, iin, content, application_id, filename=document.filename
            )
        except BackendError as e:
            # Transport failures carry no backend wording; they are always generic
            result = failure_result(e.message if e.status else None, sha256=document.sha256)
            log(
                event="statement_check_error",
                applicationId=application_id,
                bank=bank,
                status=e.status,
                kind=result.kind,
            )
            return result

        result = classify_envelope(envelope, sha256=document.sha256)
        log(
            event="statement_check_result",
            applicationId=application_id,
            bank=bank,
            success=result.success,
            kind=result.kind,
            errorCode=result.errorCode,
        )
        return result
