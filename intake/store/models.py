from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from intake.settings import settings

# Outcome variants (terminal classification after external decisioning)
OUTCOME_APPROVED = "approved"
OUTCOME_PENDING = "pending"
OUTCOME_REJECTED = "rejected"

# Statement failure kinds (messaging only, never blocking)
STATEMENT_STALE = "stale"
STATEMENT_GENERIC = "generic"


@dataclass
class DocumentRef:
    """Uploaded bank statement. Bytes live under storageKey, not in the draft."""
    filename: str = ""
    contentType: str = ""
    size: int = 0
    sha256: str = ""
    storageKey: str = ""


@dataclass
class ApplicationDraft:
    # Step 1: product selection
    productType: str = settings.DEFAULT_PRODUCT_TYPE  # credit / installment
    term: str = settings.DEFAULT_TERM
    amount: str = ""

    # Step 2: client data (raw user input; normalized on the way out)
    iin: str = ""
    lastName: str = ""
    firstName: str = ""
    middleName: str = ""
    phone: str = ""
    preferredPaymentDay: str = ""

    # Step 3: statement
    bank: str = settings.DEFAULT_STATEMENT_BANK  # kaspi / halyk
    document: Optional[DocumentRef] = None

    # Step 4: OTP buffer
    otp: str = ""


@dataclass
class ApplicationRecord:
    """Backend snapshot. Read-only to the wizard apart from merge-patch results."""
    id: str = ""
    shortId: Optional[str] = None
    status: str = ""
    amount: Optional[int] = None
    term: Optional[int] = None
    type: Optional[str] = None
    loanType: Optional[str] = None
    iin: Optional[str] = None
    lastName: Optional[str] = None
    firstName: Optional[str] = None
    middleName: Optional[str] = None
    phone: Optional[str] = None
    preferredPaymentDate: Optional[int] = None
    redemptionMethod: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    # Unknown wire keys are kept so a later refresh never loses them
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StatementCheckResult:
    success: bool = False
    errorCode: Optional[str] = None
    errorMessage: Optional[str] = None
    score: Optional[Dict[str, Any]] = None
    # None on success; "stale" / "generic" on failure
    kind: Optional[str] = None
    # User-facing guidance for failures
    message: Optional[str] = None
    documentSha256: str = ""
    checkedAt: Optional[int] = None


@dataclass
class OtpSession:
    cooldownSec: int = settings.OTP_RESEND_COOLDOWN_SEC
    # Epoch seconds of the last successful issuance (None = never issued)
    lastIssuedAt: Optional[float] = None
    # In-flight guard for verify(); transient, never persisted
    verifying: bool = False
    # Buffer value already sent to verify(); cleared when the buffer shrinks
    lastAttemptedCode: Optional[str] = None
    issuedCount: int = 0


@dataclass
class WizardSession:
    applicationId: str = ""

    # Step pointer: 1..5 (see core.state_machine.Step)
    step: int = 1

    draft: ApplicationDraft = field(default_factory=ApplicationDraft)
    record: Optional[ApplicationRecord] = None

    # Statement verification (advisory)
    statementResult: Optional[StatementCheckResult] = None
    statementError: Optional[StatementCheckResult] = None

    otp: OtpSession = field(default_factory=OtpSession)

    # Transient busy flag: one advance()/skip() in flight at a time
    busy: bool = False
    # Field errors are only surfaced after a failed advance()
    showErrors: bool = False
    # Retryable message for a refused transition (fatal effect failure)
    stepError: Optional[str] = None
    # Inline, retryable OTP verification error
    otpError: Optional[str] = None

    outcome: Optional[str] = None

    createdAtEpoch: Optional[int] = None
    lastUpdatedAtEpoch: Optional[int] = None
