"""
Step Validators
---------------
Pure predicates over the draft, keyed by step number. Each returns a
field -> message mapping; an empty mapping means the step is valid.

The wizard recomputes these on every draft mutation (live affordances) and
only surfaces the text after a failed advance().
"""

import re
from typing import Callable, Dict, Optional

from intake.settings import settings, csv_list
from intake.store.models import ApplicationDraft

Errors = Dict[str, str]

_NON_DIGITS = re.compile(r"[^0-9]+")
# Grouping characters users paste into amount fields: spaces, NBSP, thin space
_AMOUNT_GROUPING = re.compile(r"[\s_']+")
# Longer digit runs are out of range for any field; int() refuses past ~4300 digits
MAX_NUMBER_DIGITS = 15


def digits_only(value) -> str:
    return _NON_DIGITS.sub("", str(value or ""))


def parse_amount(value) -> Optional[int]:
    """
    '150 000' -> 150000. Returns None for anything not a whole number.
    Digit runs too long to be an amount come back as AMOUNT_MAX + 1.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    s = _AMOUNT_GROUPING.sub("", str(value))
    if not s or not (s.isascii() and s.isdigit()):
        return None
    s = s.lstrip("0") or "0"
    if len(s) > MAX_NUMBER_DIGITS:
        return settings.AMOUNT_MAX + 1
    return int(s)


def parse_int(value) -> Optional[int]:
    s = str(value if value is not None else "").strip()
    if not s or not (s.isascii() and s.isdigit()):
        return None
    s = s.lstrip("0") or "0"
    if len(s) > MAX_NUMBER_DIGITS:
        return None
    return int(s)


def normalize_phone(value) -> Optional[str]:
    """
    Normalize masked input to '+<cc><national digits>'.
    Accepts '+7 (701) 234-56-78', '87012345678', '7012345678'.
    Returns None when the digits cannot form a full number.
    """
    cc = settings.PHONE_COUNTRY_CODE
    n = settings.PHONE_NATIONAL_DIGITS
    d = digits_only(value)
    if len(d) == n:
        return f"+{cc}{d}"
    if len(d) == n + len(cc) and d.startswith(cc):
        return f"+{d}"
    # Domestic trunk prefix ('8' for +7)
    if cc == "7" and len(d) == n + 1 and d.startswith("8"):
        return f"+{cc}{d[1:]}"
    return None


def _phone_pattern() -> re.Pattern:
    return re.compile(r"^\+%s[0-9]{%d}$" % (re.escape(settings.PHONE_COUNTRY_CODE), settings.PHONE_NATIONAL_DIGITS))


def validate_product_selection(draft: ApplicationDraft) -> Errors:
    errors: Errors = {}
    raw = str(draft.amount or "").strip()
    amount = parse_amount(raw)
    if not raw:
        errors["amount"] = "Enter the amount"
    elif amount is None:
        errors["amount"] = "Amount must be a whole number"
    elif amount < settings.AMOUNT_MIN:
        errors["amount"] = f"Minimum amount is {settings.AMOUNT_MIN}"
    elif amount > settings.AMOUNT_MAX:
        errors["amount"] = f"Maximum amount is {settings.AMOUNT_MAX}"

    if str(draft.term or "").strip() not in csv_list(settings.ALLOWED_TERMS):
        errors["term"] = "Choose a term"
    if draft.productType not in csv_list(settings.PRODUCT_TYPES):
        errors["productType"] = "Choose a product"
    return errors


def validate_client_data(draft: ApplicationDraft) -> Errors:
    errors: Errors = {}
    iin = str(draft.iin or "").strip()
    if not re.fullmatch(r"[0-9]{%d}" % settings.IIN_LENGTH, iin):
        errors["iin"] = f"IIN must be exactly {settings.IIN_LENGTH} digits"
    if not str(draft.lastName or "").strip():
        errors["lastName"] = "Enter your last name"
    if not str(draft.firstName or "").strip():
        errors["firstName"] = "Enter your first name"

    phone = normalize_phone(draft.phone)
    if phone is None or not _phone_pattern().match(phone):
        errors["phone"] = "Enter the full phone number"

    day = parse_int(draft.preferredPaymentDay)
    if day is None or not (settings.PAYMENT_DAY_MIN <= day <= settings.PAYMENT_DAY_MAX):
        errors["preferredPaymentDay"] = (
            f"Payment day must be between {settings.PAYMENT_DAY_MIN} and {settings.PAYMENT_DAY_MAX}"
        )
    return errors


def validate_document_upload(draft: ApplicationDraft) -> Errors:
    # Nothing is required here; the bank only matters for an attached statement
    if draft.document is not None and draft.bank not in csv_list(settings.STATEMENT_BANKS):
        return {"bank": "Choose the bank that issued the statement"}
    return {}


def validate_otp(draft: ApplicationDraft) -> Errors:
    if not is_complete_otp(draft.otp):
        return {"otp": f"Enter the {settings.OTP_LENGTH}-digit code"}
    return {}


def is_complete_otp(code) -> bool:
    return bool(re.fullmatch(r"[0-9]{%d}" % settings.OTP_LENGTH, str(code or "")))


VALIDATORS: Dict[int, Callable[[ApplicationDraft], Errors]] = {
    1: validate_product_selection,
    2: validate_client_data,
    3: validate_document_upload,
    4: validate_otp,
}


def validate_step(step: int, draft: ApplicationDraft) -> Errors:
    fn = VALIDATORS.get(int(step))
    if fn is None:
        return {}
    return fn(draft)
