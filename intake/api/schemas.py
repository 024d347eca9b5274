from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class DraftUpdate(BaseModel):
    # Unknown keys are rejected by the wizard with a field error, not here
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    productType: Optional[str] = None
    term: Optional[str] = None
    amount: Optional[str] = None
    iin: Optional[str] = None
    lastName: Optional[str] = None
    firstName: Optional[str] = None
    middleName: Optional[str] = None
    phone: Optional[str] = None
    preferredPaymentDay: Optional[str] = None
    bank: Optional[str] = None


class SkipRequest(BaseModel):
    confirmed: bool = False


class OtpRequest(BaseModel):
    code: str = ""


class DocumentView(BaseModel):
    filename: str
    size: int


class DraftView(BaseModel):
    productType: str = ""
    term: str = ""
    amount: str = ""
    iin: str = ""
    lastName: str = ""
    firstName: str = ""
    middleName: str = ""
    phone: str = ""
    preferredPaymentDay: str = ""
    bank: str = ""
    otp: str = ""
    document: Optional[DocumentView] = None


class StatementView(BaseModel):
    success: bool
    kind: Optional[str] = None
    message: Optional[str] = None


class OtpView(BaseModel):
    resendRemaining: int = 0
    canResend: bool = False
    verifying: bool = False
    error: Optional[str] = None


class WizardView(BaseModel):
    applicationId: str
    step: int
    busy: bool = False
    canAdvance: bool = False
    canBack: bool = False
    canSkip: bool = False
    errors: Dict[str, str] = {}
    stepError: Optional[str] = None
    draft: DraftView
    statement: Optional[StatementView] = None
    otp: OtpView
    outcome: Optional[str] = None
    record: Optional[Dict[str, Any]] = None


class ActionResponse(BaseModel):
    accepted: bool
    reason: str = ""
    message: Optional[str] = None
    needsConfirmation: bool = False
    errors: Dict[str, str] = {}
    view: WizardView
