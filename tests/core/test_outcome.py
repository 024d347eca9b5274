import pytest

from intake.core.outcome import resolve_outcome
from intake.store.models import OUTCOME_APPROVED, OUTCOME_PENDING, OUTCOME_REJECTED


@pytest.mark.parametrize("status,expected", [
    ("BANK_APPROVED", OUTCOME_APPROVED),
    ("bank_approved ", OUTCOME_APPROVED),
    ("BANK_REJECTED", OUTCOME_REJECTED),
    ("BANK_OTHER_RESPONSE", OUTCOME_PENDING),
    ("IN_REVIEW", OUTCOME_PENDING),
    ("SOMETHING_NEW", OUTCOME_PENDING),
    ("", OUTCOME_PENDING),
    (None, OUTCOME_PENDING),
])
def test_status_mapping(status, expected):
    assert resolve_outcome(status) == expected
