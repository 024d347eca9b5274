"""
Application Intake State Machine
--------------------------------
Owns one WizardSession: the draft, the step pointer and the cached
collaborator results. Transitions are planned by core.state_machine and
their effects executed here, in order, awaited to completion.

Failure policy: every effect failure is caught where the effect runs and
turned into session state (stepError / otpError / statementError). Nothing
raised by a collaborator escapes advance(), skip(), back() or enter_otp().
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from intake.backend.client import BackendError
from intake.backend.contract import STEP_DRAFT_FIELDS, record_summary, record_to_draft_fields
from intake.core import messages
from intake.core import state_machine as sm
from intake.core.otp import R_VERIFY_IN_FLIGHT, OtpCoordinator, on_buffer_change
from intake.core.outcome import resolve_outcome
from intake.core.record_sync import RecordSynchronizer
from intake.core.statement import (
    StatementVerifier,
    build_document_ref,
    document_constraint_error,
    failure_result,
)
from intake.core.validators import digits_only, validate_step
from intake.observability.logging import log
from intake.settings import settings
from intake.store.models import WizardSession
from intake.utils.time import Clock, now_s

R_BUSY = "busy"
R_FIELD_NOT_EDITABLE = "field_not_editable"
R_DOCUMENT_REJECTED = "document_rejected"
R_COOLDOWN = "resend_cooldown"

# Draft fields changed through their own operations, never update_draft()
_DEDICATED_FIELDS = {"document", "otp"}

_FAILURE_MESSAGES = {
    sm.PERSIST_RECORD: messages.PERSIST_FAILED,
    sm.SEND_OTP: messages.OTP_ISSUE_FAILED,
    sm.VERIFY_OTP: messages.OTP_VERIFY_FAILED,
}


def document_storage_key(application_id: str) -> str:
    return f"wizard:{application_id}:document"


@dataclass
class StepOutcome:
    accepted: bool
    step: int
    errors: Dict[str, str] = field(default_factory=dict)
    message: Optional[str] = None
    needsConfirmation: bool = False
    reason: str = ""


class IntakeWizard:
    def __init__(self, session: WizardSession, client, *, documents, clock: Clock = now_s):
        self.session = session
        self.documents = documents
        self.records = RecordSynchronizer(client)
        self.statements = StatementVerifier(client)
        self.otp = OtpCoordinator(client, clock=clock)

    @classmethod
    async def start(cls, application_id: str, client, *, documents, clock: Clock = now_s) -> "IntakeWizard":
        """
        Open a wizard over an existing application record.
        Raises BackendError when the record cannot be fetched.
        """
        session = WizardSession(applicationId=application_id, createdAtEpoch=int(time.time()))
        wizard = cls(session, client, documents=documents, clock=clock)
        session.record = await wizard.records.load(application_id)

        # Prefill from whatever the record already carries (resumed applications)
        for k, v in record_to_draft_fields(session.record).items():
            setattr(session.draft, k, v)

        log(event="wizard_started", applicationId=application_id, status=session.record.status)
        return wizard

    # ------------------------------------------------------------------
    # Live affordances
    # ------------------------------------------------------------------

    @property
    def step(self) -> int:
        return int(self.session.step)

    def current_errors(self) -> Dict[str, str]:
        """Recomputed on every call; drives canAdvance while the user types."""
        return validate_step(self.step, self.session.draft)

    def visible_errors(self) -> Dict[str, str]:
        return self.current_errors() if self.session.showErrors else {}

    @property
    def can_advance(self) -> bool:
        if self.session.busy:
            return False
        if self.step not in (sm.Step.PRODUCT_SELECTION, sm.Step.CLIENT_DATA, sm.Step.DOCUMENT_UPLOAD):
            return False
        return not self.current_errors()

    @property
    def can_back(self) -> bool:
        return not self.session.busy and self.step in sm.BACKWARD_STEPS

    @property
    def can_skip(self) -> bool:
        return (
            not self.session.busy
            and self.step == sm.Step.DOCUMENT_UPLOAD
            and self.session.draft.document is None
        )

    def resend_remaining(self) -> int:
        return self.otp.remaining(self.session.otp)

    @property
    def can_resend(self) -> bool:
        return (
            self.step == sm.Step.OTP_VERIFICATION
            and not self.session.busy
            and not self.session.otp.verifying
            and self.otp.can_resend(self.session.otp)
        )

    # ------------------------------------------------------------------
    # Draft mutation
    # ------------------------------------------------------------------

    def _refused(self, reason: str, *, errors=None, message=None) -> StepOutcome:
        return StepOutcome(accepted=False, step=self.step, errors=dict(errors or {}), message=message, reason=reason)

    def update_draft(self, **fields: Any) -> StepOutcome:
        """Set fields owned by the current step. Other steps' fields stay untouched."""
        if self.session.busy:
            return self._refused(R_BUSY, message=messages.BUSY)

        editable = set(STEP_DRAFT_FIELDS.get(self.step, ())) - _DEDICATED_FIELDS
        not_editable = sorted(set(fields) - editable)
        if not_editable:
            return self._refused(
                R_FIELD_NOT_EDITABLE,
                errors={k: "Not editable on this step" for k in not_editable},
            )

        for k, v in fields.items():
            setattr(self.session.draft, k, "" if v is None else str(v))
        self.session.stepError = None
        return StepOutcome(accepted=True, step=self.step, errors=self.visible_errors())

    async def attach_document(
        self,
        filename: str,
        content_type: str,
        content: Optional[bytes],
        *,
        file_count: int = 1,
    ) -> StepOutcome:
        if self.session.busy:
            return self._refused(R_BUSY, message=messages.BUSY)
        if self.step != sm.Step.DOCUMENT_UPLOAD:
            return self._refused(sm.R_NOT_AVAILABLE)

        problem = document_constraint_error(filename, content_type, content, file_count=file_count)
        if problem:
            return self._refused(R_DOCUMENT_REJECTED, errors={"document": problem})

        # Replacing counts as removal + fresh upload
        if self.session.draft.document is not None:
            await self._drop_document()

        key = document_storage_key(self.session.applicationId)
        await self.documents.save(key, content)
        self.session.draft.document = build_document_ref(filename, content_type, content, key)
        log(
            event="document_attached",
            applicationId=self.session.applicationId,
            size=len(content),
            sha256=self.session.draft.document.sha256[:12],
        )
        return StepOutcome(accepted=True, step=self.step)

    async def remove_document(self) -> StepOutcome:
        if self.session.busy:
            return self._refused(R_BUSY, message=messages.BUSY)
        if self.step != sm.Step.DOCUMENT_UPLOAD:
            return self._refused(sm.R_NOT_AVAILABLE)
        await self._drop_document()
        return StepOutcome(accepted=True, step=self.step)

    async def _drop_document(self) -> None:
        doc = self.session.draft.document
        self.session.draft.document = None
        # A new upload gets an independent check
        self.session.statementResult = None
        self.session.statementError = None
        if doc is not None and doc.storageKey:
            await self.documents.delete(doc.storageKey)
        log(event="document_removed", applicationId=self.session.applicationId)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def advance(self) -> StepOutcome:
        if self.session.busy:
            return self._refused(R_BUSY, message=messages.BUSY)

        t = sm.plan_advance(self.session)
        if not t.allowed:
            if t.reason == sm.R_VALIDATION:
                self.session.showErrors = True
            log(
                event="advance_refused",
                applicationId=self.session.applicationId,
                step=self.step,
                reason=t.reason,
                fields=sorted(t.errors.keys()),
            )
            return self._refused(t.reason, errors=t.errors)
        return await self._run(t)

    async def skip(self, confirmed: bool = False) -> StepOutcome:
        if self.session.busy:
            return self._refused(R_BUSY, message=messages.BUSY)

        t = sm.plan_skip(self.session, confirmed)
        if t.reason == sm.R_NEEDS_CONFIRMATION:
            return StepOutcome(
                accepted=False,
                step=self.step,
                message=messages.SKIP_CONFIRMATION,
                needsConfirmation=True,
                reason=t.reason,
            )
        if not t.allowed:
            return self._refused(t.reason)
        log(event="statement_skipped", applicationId=self.session.applicationId)
        return await self._run(t)

    def back(self) -> StepOutcome:
        if self.session.busy or self.session.otp.verifying:
            return self._refused(R_BUSY, message=messages.BUSY)
        t = sm.plan_back(self.session)
        if not t.allowed:
            return self._refused(t.reason)
        prev = self.step
        self.session.step = int(t.next_step)
        self.session.showErrors = False
        self.session.stepError = None
        log(event="step_back", applicationId=self.session.applicationId, fromStep=prev, toStep=self.step)
        return StepOutcome(accepted=True, step=self.step)

    async def enter_otp(self, code: str) -> StepOutcome:
        """
        Buffer mutation for step 4. A complete, not yet attempted code fires
        verify() immediately; there is no separate submit.
        """
        if self.session.otp.verifying:
            return self._refused(R_VERIFY_IN_FLIGHT, message=messages.BUSY)
        if self.session.busy:
            return self._refused(R_BUSY, message=messages.BUSY)
        if self.step != sm.Step.OTP_VERIFICATION:
            return self._refused(sm.R_NOT_AVAILABLE)

        buffer = digits_only(code)[: settings.OTP_LENGTH]
        if buffer != self.session.draft.otp:
            self.session.otpError = None
        self.session.draft.otp = buffer
        on_buffer_change(self.session.otp, buffer)

        t = sm.plan_code_entry(self.session)
        if not t.allowed:
            return StepOutcome(accepted=True, step=self.step, reason=t.reason)
        return await self._run(t)

    async def resend_otp(self) -> StepOutcome:
        if self.session.busy or self.session.otp.verifying:
            return self._refused(R_BUSY, message=messages.BUSY)
        if self.step != sm.Step.OTP_VERIFICATION:
            return self._refused(sm.R_NOT_AVAILABLE)

        remaining = self.resend_remaining()
        if remaining > 0:
            return self._refused(R_COOLDOWN, message=messages.OTP_RESEND_COOLDOWN.format(seconds=remaining))

        self.session.busy = True
        try:
            ok = await self.otp.resend(self.session.applicationId, self.session.otp)
        finally:
            self.session.busy = False
        if not ok:
            self.session.otpError = messages.OTP_ISSUE_FAILED
            return self._refused(f"{sm.SEND_OTP}_failed", message=messages.OTP_ISSUE_FAILED)

        self.session.draft.otp = ""
        self.session.otpError = None
        return StepOutcome(accepted=True, step=self.step)

    async def _run(self, t: sm.Transition) -> StepOutcome:
        s = self.session
        s.busy = True
        s.stepError = None
        prev = self.step
        try:
            for effect in t.effects:
                ok = await self._execute(effect)
                if ok or effect not in sm.FATAL_EFFECTS:
                    continue
                message = _FAILURE_MESSAGES[effect]
                if effect == sm.VERIFY_OTP:
                    # Inline on the code field; buffer stays as typed
                    s.otpError = message
                else:
                    s.stepError = message
                log(event="transition_failed", applicationId=s.applicationId, step=prev, effect=effect)
                return self._refused(f"{effect}_failed", message=message)

            s.step = int(t.next_step)
            s.showErrors = False
            if s.step == sm.TERMINAL_STEP:
                s.outcome = resolve_outcome(s.record.status if s.record else None)
            log(
                event="step_advanced",
                applicationId=s.applicationId,
                fromStep=prev,
                toStep=s.step,
                effects=list(t.effects),
                outcome=s.outcome,
            )
            return StepOutcome(accepted=True, step=s.step)
        finally:
            s.busy = False

    async def _execute(self, effect: str) -> bool:
        s = self.session
        app_id = s.applicationId

        if effect == sm.PERSIST_RECORD:
            try:
                s.record = await self.records.persist(
                    app_id,
                    s.draft,
                    steps=(sm.Step.PRODUCT_SELECTION, sm.Step.CLIENT_DATA),
                    current=s.record,
                )
            except BackendError as e:
                log(event="record_persist_failed", applicationId=app_id, status=e.status, error=e.message[:300])
                return False
            return True

        if effect == sm.CHECK_STATEMENT:
            await self._check_statement()
            return True

        if effect == sm.SEND_OTP:
            return await self.otp.issue(app_id, s.otp)

        if effect == sm.VERIFY_OTP:
            return await self.otp.verify(app_id, s.otp, s.draft.otp)

        if effect == sm.REFRESH_RECORD:
            s.record = await self.records.refresh(app_id, s.record)
            return True

        raise ValueError(f"unknown effect: {effect}")

    async def _check_statement(self) -> None:
        """Advisory: whatever happens here, the transition continues."""
        s = self.session
        doc = s.draft.document
        try:
            content = await self.documents.load(doc.storageKey)
            if content is None:
                result = failure_result(None, sha256=doc.sha256)
            else:
                result = await self.statements.check(
                    application_id=s.applicationId,
                    bank=s.draft.bank,
                    iin=str(s.draft.iin or "").strip(),
                    document=doc,
                    content=content,
                    cached=s.statementResult,
                )
        except Exception as e:
            log(event="statement_check_exception", applicationId=s.applicationId, errorType=type(e).__name__)
            result = failure_result(None, sha256=doc.sha256)

        if result.success:
            s.statementResult = result
            s.statementError = None
        else:
            s.statementError = result

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        s = self.session
        d = s.draft
        doc = d.document
        statement = s.statementResult or s.statementError
        view = {
            "applicationId": s.applicationId,
            "step": self.step,
            "busy": bool(s.busy),
            "canAdvance": self.can_advance,
            "canBack": self.can_back,
            "canSkip": self.can_skip,
            "errors": self.visible_errors(),
            "stepError": s.stepError,
            "draft": {
                "productType": d.productType,
                "term": d.term,
                "amount": d.amount,
                "iin": d.iin,
                "lastName": d.lastName,
                "firstName": d.firstName,
                "middleName": d.middleName,
                "phone": d.phone,
                "preferredPaymentDay": d.preferredPaymentDay,
                "bank": d.bank,
                "otp": d.otp,
                "document": None if doc is None else {"filename": doc.filename, "size": doc.size},
            },
            "statement": None if statement is None else {
                "success": statement.success,
                "kind": statement.kind,
                "message": statement.message,
            },
            "otp": {
                "resendRemaining": self.resend_remaining(),
                "canResend": self.can_resend,
                "verifying": bool(s.otp.verifying),
                "error": s.otpError,
            },
            "outcome": s.outcome,
            "record": record_summary(s.record) if self.step == sm.TERMINAL_STEP else None,
        }
        return view
