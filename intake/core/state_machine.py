"""
Wizard states and pure transition planning.

The step pointer is an explicit tagged state. Each planner inspects the
session without mutating it and returns a Transition: where to go and which
effects must run (in order) before the pointer may move. The wizard owns
effect execution; nothing here performs I/O.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Optional, Tuple

from intake.core.otp import verify_block_reason
from intake.core.validators import validate_step


class Step(IntEnum):
    # Interaction Surface: product, term, amount
    PRODUCT_SELECTION = 1
    # Interaction Surface: IIN, names, phone, payment day
    CLIENT_DATA = 2
    # Interaction Surface: optional bank statement
    DOCUMENT_UPLOAD = 3
    # Interaction Surface: code entry, resend cooldown
    OTP_VERIFICATION = 4
    # Terminal: approved / pending / rejected
    OUTCOME = 5


TERMINAL_STEP = Step.OUTCOME

# back() is only offered one step from these
BACKWARD_STEPS = (Step.CLIENT_DATA, Step.DOCUMENT_UPLOAD)

# Effects
PERSIST_RECORD = "persist_record"
CHECK_STATEMENT = "check_statement"
SEND_OTP = "send_otp"
VERIFY_OTP = "verify_otp"
REFRESH_RECORD = "refresh_record"

# Failure of these refuses the transition
FATAL_EFFECTS = frozenset({PERSIST_RECORD, SEND_OTP, VERIFY_OTP})

# Refusal reasons
R_VALIDATION = "validation_failed"
R_NOT_AVAILABLE = "not_available_on_step"
R_DOCUMENT_ATTACHED = "document_attached"
R_NEEDS_CONFIRMATION = "confirmation_required"


@dataclass(frozen=True)
class Transition:
    next_step: Optional[int] = None
    effects: Tuple[str, ...] = ()
    errors: Dict[str, str] = field(default_factory=dict)
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.next_step is not None


def _refuse(reason: str, errors: Optional[Dict[str, str]] = None) -> Transition:
    return Transition(next_step=None, errors=dict(errors or {}), reason=reason)


def statement_check_needed(session) -> bool:
    """Document attached and neither a result nor an error recorded for it yet."""
    doc = session.draft.document
    if doc is None:
        return False
    return session.statementResult is None and session.statementError is None


def plan_advance(session) -> Transition:
    step = int(session.step)
    if step not in (Step.PRODUCT_SELECTION, Step.CLIENT_DATA, Step.DOCUMENT_UPLOAD):
        # Step 4 resolves through code entry; step 5 is terminal
        return _refuse(R_NOT_AVAILABLE)

    errors = validate_step(step, session.draft)
    if errors:
        return _refuse(R_VALIDATION, errors)

    if step == Step.PRODUCT_SELECTION:
        # Product fields ride along with the client-data patch
        return Transition(next_step=Step.CLIENT_DATA)

    if step == Step.CLIENT_DATA:
        return Transition(next_step=Step.DOCUMENT_UPLOAD, effects=(PERSIST_RECORD,))

    effects = (CHECK_STATEMENT, SEND_OTP) if statement_check_needed(session) else (SEND_OTP,)
    return Transition(next_step=Step.OTP_VERIFICATION, effects=effects)


def plan_skip(session, confirmed: bool) -> Transition:
    if int(session.step) != Step.DOCUMENT_UPLOAD:
        return _refuse(R_NOT_AVAILABLE)
    if session.draft.document is not None:
        return _refuse(R_DOCUMENT_ATTACHED)
    if not confirmed:
        return _refuse(R_NEEDS_CONFIRMATION)
    return Transition(next_step=Step.OTP_VERIFICATION, effects=(SEND_OTP,))


def plan_back(session) -> Transition:
    step = int(session.step)
    if step not in BACKWARD_STEPS:
        return _refuse(R_NOT_AVAILABLE)
    return Transition(next_step=step - 1)


def plan_code_entry(session) -> Transition:
    """
    Auto-verify watcher: on buffer mutation, verify iff the buffer is a full
    code, nothing is in flight and this exact value was not tried already.
    """
    if int(session.step) != Step.OTP_VERIFICATION:
        return _refuse(R_NOT_AVAILABLE)
    blocked = verify_block_reason(session.otp, session.draft.otp)
    if blocked:
        return _refuse(blocked)
    return Transition(next_step=Step.OUTCOME, effects=(VERIFY_OTP, REFRESH_RECORD))
