"""
Application Record Wire Contract
-------------------------------
Goal: keep draft <-> wire translation exact and deterministic in both
directions. Draft field names are the form's names; wire names are the
backend's, and they do not always match (preferredPaymentDay on the form is
preferredPaymentDate on the record).

Each step owns a fixed set of wire fields. A merge-patch only ever carries
the fields of the steps being persisted, so nothing from an unreached step
leaks to the backend.
"""

from __future__ import annotations

from dataclasses import fields as dc_fields
from typing import Any, Dict, Optional

from intake.core.validators import normalize_phone, parse_amount, parse_int
from intake.settings import settings
from intake.store.models import ApplicationDraft, ApplicationRecord

# Draft productType <-> wire type/loanType
PRODUCT_TO_WIRE = {
    "credit": "CREDIT",
    "installment": "INSTALLMENT",
}
WIRE_TO_PRODUCT = {v: k for k, v in PRODUCT_TO_WIRE.items()}


# Draft fields owned by each step; only the current step's are editable
STEP_DRAFT_FIELDS = {
    1: ("productType", "term", "amount"),
    2: ("iin", "lastName", "firstName", "middleName", "phone", "preferredPaymentDay"),
    3: ("bank", "document"),
    4: ("otp",),
}

_RECORD_FIELDS = {f.name for f in dc_fields(ApplicationRecord)} - {"extra"}


def _as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v) if v.is_integer() else None
    if isinstance(v, str):
        return parse_amount(v)
    return None


def _clean(v: Any) -> str:
    return str(v or "").strip()


def product_fields_to_wire(draft: ApplicationDraft) -> Dict[str, Any]:
    wire_type = PRODUCT_TO_WIRE.get(draft.productType)
    return {
        "type": wire_type,
        "loanType": wire_type,
        "term": parse_int(draft.term),
        "amount": parse_amount(draft.amount),
        "redemptionMethod": settings.REDEMPTION_METHOD,
    }


def personal_fields_to_wire(draft: ApplicationDraft) -> Dict[str, Any]:
    out = {
        "iin": _clean(draft.iin),
        "lastName": _clean(draft.lastName),
        "firstName": _clean(draft.firstName),
        "phone": normalize_phone(draft.phone),
        "preferredPaymentDate": parse_int(draft.preferredPaymentDay),
    }
    # Middle name is optional; an empty one is not sent
    middle = _clean(draft.middleName)
    if middle:
        out["middleName"] = middle
    return out


def draft_to_patch(draft: ApplicationDraft, steps) -> Dict[str, Any]:
    """Merge-patch body for the given completed steps (1 and/or 2)."""
    patch: Dict[str, Any] = {}
    for step in sorted(set(steps)):
        if step == 1:
            patch.update(product_fields_to_wire(draft))
        elif step == 2:
            patch.update(personal_fields_to_wire(draft))
    return {k: v for k, v in patch.items() if v is not None}


def record_from_wire(data: Dict[str, Any]) -> ApplicationRecord:
    """Build a record snapshot; unknown keys go to .extra."""
    data = dict(data or {})
    known = {k: v for k, v in data.items() if k in _RECORD_FIELDS}
    extra = {k: v for k, v in data.items() if k not in _RECORD_FIELDS}

    for k in ("amount", "term", "preferredPaymentDate"):
        if k in known:
            known[k] = _as_int(known[k])
    if known.get("id") is not None:
        known["id"] = str(known["id"])
    if known.get("shortId") is not None:
        known["shortId"] = str(known["shortId"])
    known["status"] = str(known.get("status") or "")

    return ApplicationRecord(**known, extra=extra)


def record_to_draft_fields(record: ApplicationRecord) -> Dict[str, str]:
    """
    Reverse translation used to prefill the draft from the backend record.
    Only fields the record actually carries are returned.
    """
    out: Dict[str, str] = {}
    wire_type = record.type or record.loanType
    if wire_type and str(wire_type).upper() in WIRE_TO_PRODUCT:
        out["productType"] = WIRE_TO_PRODUCT[str(wire_type).upper()]
    if record.term is not None:
        out["term"] = str(record.term)
    if record.amount is not None:
        out["amount"] = str(record.amount)
    for k in ("iin", "lastName", "firstName", "middleName"):
        v = getattr(record, k)
        if v:
            out[k] = str(v)
    if record.phone:
        phone = normalize_phone(record.phone)
        if phone:
            out["phone"] = phone
    if record.preferredPaymentDate is not None:
        out["preferredPaymentDay"] = str(record.preferredPaymentDate)
    return out


def record_summary(record: Optional[ApplicationRecord]) -> Dict[str, Any]:
    """Fields rendered on the outcome step."""
    if record is None:
        return {}
    wire_type = record.type or record.loanType
    return {
        "id": record.id,
        "shortId": record.shortId,
        "status": record.status,
        "amount": record.amount,
        "term": record.term,
        "type": WIRE_TO_PRODUCT.get(str(wire_type or "").upper(), wire_type),
    }
