import pytest

from intake.core.validators import (
    digits_only,
    is_complete_otp,
    normalize_phone,
    parse_amount,
    parse_int,
    validate_client_data,
    validate_document_upload,
    validate_product_selection,
    validate_step,
)
from intake.store.models import ApplicationDraft, DocumentRef


def _draft(**kw):
    d = ApplicationDraft(productType="credit", term="12", amount="150000")
    for k, v in kw.items():
        setattr(d, k, v)
    return d


def _client_draft(**kw):
    base = dict(
        iin="123456789012",
        lastName="Ivanova",
        firstName="Aigerim",
        phone="+77012345678",
        preferredPaymentDay="15",
    )
    base.update(kw)
    return _draft(**base)


@pytest.mark.parametrize("amount", ["10000", "3000000", "150 000", "1 500 000"])
def test_amount_within_inclusive_bounds(amount):
    assert validate_product_selection(_draft(amount=amount)) == {}


@pytest.mark.parametrize("amount,fragment", [
    ("9999", "Minimum"),
    ("5000", "Minimum"),
    ("3000001", "Maximum"),
    ("", "Enter"),
    ("12.5", "whole"),
    ("abc", "whole"),
])
def test_amount_out_of_range_or_malformed(amount, fragment):
    errors = validate_product_selection(_draft(amount=amount))
    assert set(errors) == {"amount"}
    assert fragment in errors["amount"]


def test_amount_rejects_non_ascii_digits():
    assert parse_amount("١٥٠٠٠٠") is None


def test_huge_digit_runs_are_out_of_range_not_a_crash():
    errors = validate_product_selection(_draft(amount="9" * 5000))
    assert errors["amount"].startswith("Maximum amount")
    assert parse_amount("0" * 5000 + "150000") == 150000
    assert parse_int("1" * 5000) is None
    assert parse_int("0" * 5000 + "15") == 15


def test_term_and_product_type_must_come_from_the_lists():
    errors = validate_product_selection(_draft(term="5", productType="mortgage"))
    assert set(errors) == {"term", "productType"}


def test_iin_exactly_twelve_digits():
    assert "iin" not in validate_client_data(_client_draft(iin="123456789012"))
    for bad in ("12345678901", "1234567890123", "12345678901a", ""):
        assert "iin" in validate_client_data(_client_draft(iin=bad))


def test_names_required_middle_name_optional():
    errors = validate_client_data(_client_draft(lastName=" ", firstName="", middleName=""))
    assert set(errors) == {"lastName", "firstName"}


@pytest.mark.parametrize("raw", ["+7 (701) 234-56-78", "87012345678", "7012345678", "77012345678"])
def test_phone_normalization(raw):
    assert normalize_phone(raw) == "+77012345678"


def test_partial_phone_is_an_error():
    errors = validate_client_data(_client_draft(phone="+7 (701) 234-56"))
    assert set(errors) == {"phone"}


@pytest.mark.parametrize("day,ok", [("1", True), ("28", True), ("0", False), ("29", False), ("x", False)])
def test_payment_day_bounds(day, ok):
    errors = validate_client_data(_client_draft(preferredPaymentDay=day))
    assert ("preferredPaymentDay" not in errors) is ok


def test_statement_step_has_no_required_fields():
    assert validate_document_upload(_draft(bank="")) == {}
    assert validate_document_upload(_draft(bank="unknown")) == {}


def test_attached_statement_needs_a_known_bank():
    doc = DocumentRef(filename="statement.pdf", contentType="application/pdf", size=10, sha256="abc", storageKey="k")
    assert validate_document_upload(_draft(bank="kaspi", document=doc)) == {}
    assert set(validate_document_upload(_draft(bank="", document=doc))) == {"bank"}
    assert set(validate_document_upload(_draft(bank="unknown", document=doc))) == {"bank"}


def test_otp_completeness():
    assert is_complete_otp("123456")
    assert not is_complete_otp("12345")
    assert not is_complete_otp("1234567")
    assert not is_complete_otp("12345a")


def test_validate_step_dispatch():
    assert validate_step(5, ApplicationDraft()) == {}
    assert "otp" in validate_step(4, ApplicationDraft(otp="12"))


def test_digits_only():
    assert digits_only("+7 (701) 234") == "7701234"
    assert digits_only(None) == ""
