from intake.core import state_machine as sm
from intake.core.otp import R_ALREADY_ATTEMPTED, R_INCOMPLETE_CODE, R_VERIFY_IN_FLIGHT
from intake.store.models import ApplicationDraft, DocumentRef, StatementCheckResult, WizardSession


def _session(step, **draft):
    d = ApplicationDraft(
        productType="installment",
        term="6",
        amount="200000",
        iin="123456789012",
        lastName="Ivanova",
        firstName="Aigerim",
        phone="+77012345678",
        preferredPaymentDay="10",
    )
    for k, v in draft.items():
        setattr(d, k, v)
    return WizardSession(applicationId="app-1", step=step, draft=d)


def _doc():
    return DocumentRef(filename="s.pdf", contentType="application/pdf", size=10, sha256="abc", storageKey="k")


def test_step_one_advances_without_effects():
    t = sm.plan_advance(_session(1))
    assert t.allowed
    assert t.next_step == sm.Step.CLIENT_DATA
    assert t.effects == ()


def test_step_one_refused_with_field_errors():
    t = sm.plan_advance(_session(1, amount="5000"))
    assert not t.allowed
    assert t.reason == sm.R_VALIDATION
    assert "amount" in t.errors


def test_step_two_persists_record():
    t = sm.plan_advance(_session(2))
    assert t.next_step == sm.Step.DOCUMENT_UPLOAD
    assert t.effects == (sm.PERSIST_RECORD,)


def test_step_three_with_fresh_document_checks_then_issues():
    s = _session(3)
    s.draft.document = _doc()
    t = sm.plan_advance(s)
    assert t.effects == (sm.CHECK_STATEMENT, sm.SEND_OTP)


def test_step_three_reuses_recorded_check():
    s = _session(3)
    s.draft.document = _doc()
    s.statementError = StatementCheckResult(success=False, kind="generic")
    assert sm.plan_advance(s).effects == (sm.SEND_OTP,)


def test_step_three_without_document_only_issues():
    assert sm.plan_advance(_session(3)).effects == (sm.SEND_OTP,)


def test_advance_not_available_on_steps_four_and_five():
    assert sm.plan_advance(_session(4)).reason == sm.R_NOT_AVAILABLE
    assert sm.plan_advance(_session(5)).reason == sm.R_NOT_AVAILABLE


def test_skip_requires_confirmation_and_no_document():
    assert sm.plan_skip(_session(3), confirmed=False).reason == sm.R_NEEDS_CONFIRMATION
    t = sm.plan_skip(_session(3), confirmed=True)
    assert t.next_step == sm.Step.OTP_VERIFICATION
    assert t.effects == (sm.SEND_OTP,)

    s = _session(3)
    s.draft.document = _doc()
    assert sm.plan_skip(s, confirmed=True).reason == sm.R_DOCUMENT_ATTACHED
    assert sm.plan_skip(_session(2), confirmed=True).reason == sm.R_NOT_AVAILABLE


def test_back_only_from_two_and_three():
    assert sm.plan_back(_session(2)).next_step == sm.Step.PRODUCT_SELECTION
    assert sm.plan_back(_session(3)).next_step == sm.Step.CLIENT_DATA
    for step in (1, 4, 5):
        assert not sm.plan_back(_session(step)).allowed


def test_code_entry_fires_only_for_a_new_complete_code():
    s = _session(4, otp="12345")
    assert sm.plan_code_entry(s).reason == R_INCOMPLETE_CODE

    s.draft.otp = "123456"
    t = sm.plan_code_entry(s)
    assert t.next_step == sm.Step.OUTCOME
    assert t.effects == (sm.VERIFY_OTP, sm.REFRESH_RECORD)

    s.otp.verifying = True
    assert sm.plan_code_entry(s).reason == R_VERIFY_IN_FLIGHT

    s.otp.verifying = False
    s.otp.lastAttemptedCode = "123456"
    assert sm.plan_code_entry(s).reason == R_ALREADY_ATTEMPTED
