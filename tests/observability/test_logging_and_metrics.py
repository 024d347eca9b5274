import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from intake.observability import metrics
from intake.observability.logging import log
from intake.settings import settings


def test_log_redacts_applicant_pii(capsys):
    with patch.object(settings, "ENABLE_PII_REDACTION", True):
        log("record_patch", applicationId="app-1", iin="123456789012", fields={"phone": "+77012345678", "term": 12})

    out = json.loads(capsys.readouterr().out.strip())
    assert out["event"] == "record_patch"
    assert out["applicationId"] == "app-1"
    assert out["iin"] == "[REDACTED:12chars]"
    assert out["fields"]["phone"] == "[REDACTED:12chars]"
    assert out["fields"]["term"] == 12


def test_log_passes_fields_through_when_redaction_disabled(capsys):
    with patch.object(settings, "ENABLE_PII_REDACTION", False):
        log("otp_issued", phone="+77012345678")
    out = json.loads(capsys.readouterr().out.strip())
    assert out["phone"] == "+77012345678"


def test_log_never_raises_on_unserializable_values(capsys):
    log("weird", value=object())
    assert "weird" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_incr_uses_prefixed_key():
    r = MagicMock()
    r.incr = AsyncMock()
    with patch("intake.observability.metrics.get_redis", return_value=r):
        await metrics.incr(metrics.step_reached(3))
    r.incr.assert_awaited_once_with("metrics:intake:step_reached:3", 1)


@pytest.mark.asyncio
async def test_incr_swallows_redis_failure():
    r = MagicMock()
    r.incr = AsyncMock(side_effect=ConnectionError("redis down"))
    with patch("intake.observability.metrics.get_redis", return_value=r):
        await metrics.incr(metrics.OTP_ISSUED)
