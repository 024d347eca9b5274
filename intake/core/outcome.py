from typing import Optional

from intake.store.models import OUTCOME_APPROVED, OUTCOME_PENDING, OUTCOME_REJECTED

# Backend decision statuses
BANK_APPROVED = "BANK_APPROVED"
BANK_REJECTED = "BANK_REJECTED"


def resolve_outcome(status: Optional[str]) -> str:
    """
    Map the backend decision status to an outcome variant.

    Anything that is not an explicit bank decision (in-flight statuses,
    BANK_OTHER_RESPONSE, unknown or future values, missing) is pending.
    """
    s = str(status or "").strip().upper()
    if s == BANK_APPROVED:
        return OUTCOME_APPROVED
    if s == BANK_REJECTED:
        return OUTCOME_REJECTED
    return OUTCOME_PENDING
