"""
OTP Coordinator
---------------
Issues and verifies one-time codes through the backend and keeps the resend
cooldown. Codes are delivered out-of-band; nothing here ever sees one except
the user-entered buffer passed to verify().

Cooldown is a monotonic countdown derived from the last successful issuance:
remaining = cooldownSec - elapsed, clamped at 0. Resend is enabled at 0.
"""

import math
from typing import Optional

from intake.backend.client import BackendError
from intake.core.validators import is_complete_otp
from intake.observability.logging import log
from intake.settings import settings
from intake.store.models import OtpSession
from intake.utils.time import Clock, now_s

R_INCOMPLETE_CODE = "incomplete_code"
R_VERIFY_IN_FLIGHT = "verify_in_flight"
R_ALREADY_ATTEMPTED = "code_already_attempted"


def verify_block_reason(otp: OtpSession, code: str) -> Optional[str]:
    """None when verify() may fire for this buffer value."""
    if not is_complete_otp(code):
        return R_INCOMPLETE_CODE
    if otp.verifying:
        return R_VERIFY_IN_FLIGHT
    if otp.lastAttemptedCode == code:
        return R_ALREADY_ATTEMPTED
    return None


def on_buffer_change(otp: OtpSession, code: str) -> None:
    # A shorter buffer means the user is retyping; the same six digits may fire again
    if not is_complete_otp(code):
        otp.lastAttemptedCode = None


class OtpCoordinator:
    def __init__(self, client, *, clock: Clock = now_s, cooldown_sec: Optional[int] = None):
        self.client = client
        self.clock = clock
        self.cooldown_sec = int(cooldown_sec if cooldown_sec is not None else settings.OTP_RESEND_COOLDOWN_SEC)

    def start_cooldown(self, otp: OtpSession) -> None:
        otp.cooldownSec = self.cooldown_sec
        otp.lastIssuedAt = self.clock()

    def remaining(self, otp: OtpSession) -> int:
        if otp.lastIssuedAt is None:
            return 0
        elapsed = self.clock() - float(otp.lastIssuedAt)
        # Clock skew backwards never extends the wait past a full cooldown
        elapsed = max(0.0, elapsed)
        return max(0, int(math.ceil(int(otp.cooldownSec) - elapsed)))

    def can_resend(self, otp: OtpSession) -> bool:
        return self.remaining(otp) == 0

    async def issue(self, application_id: str, otp: OtpSession) -> bool:
        """Request a new code. Success (re)starts the cooldown."""
        try:
            ok = await self.client.send_otp(application_id)
        except BackendError as e:
            log(event="otp_issue_failed", applicationId=application_id, status=e.status, error=e.message[:300])
            return False
        if not ok:
            log(event="otp_issue_rejected", applicationId=application_id)
            return False
        self.start_cooldown(otp)
        otp.issuedCount = int(otp.issuedCount or 0) + 1
        otp.lastAttemptedCode = None
        log(event="otp_issued", applicationId=application_id, issuedCount=otp.issuedCount)
        return True

    async def resend(self, application_id: str, otp: OtpSession) -> bool:
        if not self.can_resend(otp):
            log(event="otp_resend_refused_cooldown", applicationId=application_id, remaining=self.remaining(otp))
            return False
        return await self.issue(application_id, otp)

    async def verify(self, application_id: str, otp: OtpSession, code: str) -> bool:
        """
        Single in-flight verify per session. The caller checks
        verify_block_reason() first; the flag is re-checked here so a racing
        caller that skipped the check still cannot double-fire.
        """
        if otp.verifying:
            return False
        otp.verifying = True
        otp.lastAttemptedCode = code
        try:
            ok = await self.client.verify_otp(application_id, code)
        except BackendError as e:
            log(event="otp_verify_failed", applicationId=application_id, status=e.status, error=e.message[:300])
            ok = False
        finally:
            otp.verifying = False
        log(event="otp_verified" if ok else "otp_verify_rejected", applicationId=application_id)
        return bool(ok)
