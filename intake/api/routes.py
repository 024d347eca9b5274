from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from intake.api.auth import backend_token, require_api_key
from intake.api.schemas import ActionResponse, DraftUpdate, OtpRequest, SkipRequest, WizardView
from intake.backend.client import BackendClient, BackendError
from intake.core import state_machine as sm
from intake.core.wizard import IntakeWizard, StepOutcome
from intake.observability.logging import log
from intake.store.models import STATEMENT_STALE
from intake.settings import settings
from intake.store.session_repo import RedisDocumentStore, delete_session, load_session, save_session
from intake.utils.lock import is_locked, session_lock
import intake.observability.metrics as metrics

router = APIRouter(prefix="/wizard", tags=["wizard"], dependencies=[Depends(require_api_key)])

documents = RedisDocumentStore()


@asynccontextmanager
async def open_wizard(application_id: str, token: Optional[str]):
    """Lock, load, run, save. The session is written back only if the handler returns."""
    async with session_lock(application_id):
        session = await load_session(application_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Wizard session not found")
        async with BackendClient(token=token) as client:
            yield IntakeWizard(session, client, documents=documents)
        await save_session(session)


def _view(wizard: IntakeWizard) -> WizardView:
    return WizardView.model_validate(wizard.snapshot())


def _response(wizard: IntakeWizard, result: StepOutcome) -> ActionResponse:
    return ActionResponse(
        accepted=result.accepted,
        reason=result.reason,
        message=result.message,
        needsConfirmation=result.needsConfirmation,
        errors=result.errors,
        view=_view(wizard),
    )


async def _count(wizard: IntakeWizard, prev_step: int, result: StepOutcome) -> None:
    if not result.accepted:
        if result.reason == sm.R_VALIDATION:
            await metrics.incr(metrics.ADVANCE_REFUSED)
        elif result.reason == f"{sm.SEND_OTP}_failed":
            await metrics.incr(metrics.OTP_ISSUE_FAILED)
        elif result.reason == f"{sm.VERIFY_OTP}_failed":
            await metrics.incr(metrics.OTP_VERIFY_FAILED)
        if result.reason.endswith("_failed"):
            await metrics.incr(metrics.TRANSITION_FAILED)
        return

    if wizard.step <= prev_step:
        return
    s = wizard.session
    await metrics.incr(metrics.step_reached(wizard.step))

    if wizard.step == sm.Step.OTP_VERIFICATION:
        await metrics.incr(metrics.OTP_ISSUED)
        if s.draft.document is None:
            await metrics.incr(metrics.STATEMENT_SKIPPED)
        elif s.statementError is not None:
            stale = s.statementError.kind == STATEMENT_STALE
            await metrics.incr(metrics.STATEMENT_STALE if stale else metrics.STATEMENT_GENERIC)
        else:
            await metrics.incr(metrics.STATEMENT_VERIFIED)
    elif wizard.step == sm.TERMINAL_STEP:
        await metrics.incr(metrics.OTP_VERIFIED)
        await metrics.incr(metrics.outcome_counter(s.outcome))


@router.post("/{application_id}/start", response_model=WizardView)
async def start_wizard(application_id: str, token: Optional[str] = Depends(backend_token)):
    """Open a fresh wizard over the application. Any previous session is discarded."""
    async with session_lock(application_id):
        async with BackendClient(token=token) as client:
            try:
                wizard = await IntakeWizard.start(application_id, client, documents=documents)
            except BackendError:
                await metrics.incr(metrics.SESSIONS_START_FAILED)
                raise
        await delete_session(application_id)
        await save_session(wizard.session)
    await metrics.incr(metrics.SESSIONS_STARTED)
    await metrics.incr(metrics.step_reached(wizard.step))
    return _view(wizard)


@router.get("/{application_id}", response_model=WizardView)
async def get_wizard(application_id: str):
    session = await load_session(application_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    # Busy state lives in the lock, not in the stored session
    session.busy = await is_locked(application_id)
    wizard = IntakeWizard(session, None, documents=documents)
    return _view(wizard)


@router.patch("/{application_id}/draft", response_model=ActionResponse)
async def update_draft(application_id: str, body: DraftUpdate, token: Optional[str] = Depends(backend_token)):
    fields = body.model_dump(exclude_unset=True)
    async with open_wizard(application_id, token) as wizard:
        result = wizard.update_draft(**fields)
        return _response(wizard, result)


@router.post("/{application_id}/advance", response_model=ActionResponse)
async def advance(application_id: str, token: Optional[str] = Depends(backend_token)):
    async with open_wizard(application_id, token) as wizard:
        prev = wizard.step
        result = await wizard.advance()
        await _count(wizard, prev, result)
        return _response(wizard, result)


@router.post("/{application_id}/back", response_model=ActionResponse)
async def back(application_id: str, token: Optional[str] = Depends(backend_token)):
    async with open_wizard(application_id, token) as wizard:
        result = wizard.back()
        return _response(wizard, result)


@router.post("/{application_id}/skip", response_model=ActionResponse)
async def skip(application_id: str, body: SkipRequest, token: Optional[str] = Depends(backend_token)):
    async with open_wizard(application_id, token) as wizard:
        prev = wizard.step
        result = await wizard.skip(confirmed=body.confirmed)
        await _count(wizard, prev, result)
        return _response(wizard, result)


@router.post("/{application_id}/document", response_model=ActionResponse)
async def attach_document(
    application_id: str,
    file: List[UploadFile] = File(...),
    bank: Optional[str] = Form(None),
    token: Optional[str] = Depends(backend_token),
):
    upload = file[0]
    # One byte past the limit is enough for the size check to refuse it
    content = await upload.read(settings.STATEMENT_MAX_BYTES + 1)
    async with open_wizard(application_id, token) as wizard:
        if bank is not None:
            picked = wizard.update_draft(bank=bank)
            if not picked.accepted:
                return _response(wizard, picked)
        result = await wizard.attach_document(
            upload.filename or "",
            upload.content_type or "",
            content,
            file_count=len(file),
        )
        return _response(wizard, result)


@router.delete("/{application_id}/document", response_model=ActionResponse)
async def remove_document(application_id: str, token: Optional[str] = Depends(backend_token)):
    async with open_wizard(application_id, token) as wizard:
        result = await wizard.remove_document()
        return _response(wizard, result)


@router.put("/{application_id}/otp", response_model=ActionResponse)
async def enter_otp(application_id: str, body: OtpRequest, token: Optional[str] = Depends(backend_token)):
    async with open_wizard(application_id, token) as wizard:
        prev = wizard.step
        result = await wizard.enter_otp(body.code)
        await _count(wizard, prev, result)
        return _response(wizard, result)


@router.post("/{application_id}/otp/resend", response_model=ActionResponse)
async def resend_otp(application_id: str, token: Optional[str] = Depends(backend_token)):
    async with open_wizard(application_id, token) as wizard:
        result = await wizard.resend_otp()
        if result.accepted:
            await metrics.incr(metrics.OTP_ISSUED)
        else:
            await _count(wizard, wizard.step, result)
        return _response(wizard, result)


@router.delete("/{application_id}")
async def abandon(application_id: str):
    async with session_lock(application_id):
        await delete_session(application_id)
    log(event="wizard_abandoned", applicationId=application_id)
    return {"applicationId": application_id, "deleted": True}
