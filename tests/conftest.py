import pytest
from unittest.mock import AsyncMock

from intake.core.wizard import IntakeWizard

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n"

VALID_PRODUCT = {"productType": "credit", "term": "12", "amount": "150000"}
VALID_CLIENT = {
    "iin": "123456789012",
    "lastName": "Ivanova",
    "firstName": "Aigerim",
    "middleName": "",
    "phone": "+7 (701) 234-56-78",
    "preferredPaymentDay": "15",
}


class ManualClock:
    """Seconds-resolution clock the tests advance by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def tick(self, seconds: float = 1.0) -> None:
        self.t += seconds


class InMemoryDocumentStore:
    def __init__(self):
        self.blobs = {}

    async def save(self, key, content):
        self.blobs[key] = bytes(content)

    async def load(self, key):
        return self.blobs.get(key)

    async def delete(self, key):
        self.blobs.pop(key, None)


class FakeBackend:
    """Stateful stand-in for BackendClient; every call is an AsyncMock."""

    def __init__(self, record=None):
        self.record = {"id": "app-1", "shortId": "A-0001", "status": "DRAFT"}
        self.record.update(record or {})
        self.statement_envelope = {"success": True, "data": {"score": {"value": 712}}}

        self.get_application = AsyncMock(side_effect=self._get)
        self.update_application = AsyncMock(side_effect=self._update)
        self.check_statement = AsyncMock(side_effect=self._check)
        self.send_otp = AsyncMock(return_value=True)
        self.verify_otp = AsyncMock(return_value=True)

    def _get(self, application_id):
        return dict(self.record)

    def _update(self, application_id, fields):
        self.record.update(fields)
        return dict(self.record)

    def _check(self, bank, iin, document, application_id, **kwargs):
        return self.statement_envelope


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def documents():
    return InMemoryDocumentStore()


@pytest.fixture
def pdf_bytes():
    return PDF_BYTES


@pytest.fixture
def product_fields():
    return dict(VALID_PRODUCT)


@pytest.fixture
def client_fields():
    return dict(VALID_CLIENT)


@pytest.fixture
def make_wizard(backend, documents, clock):
    async def _make(application_id="app-1"):
        return await IntakeWizard.start(application_id, backend, documents=documents, clock=clock)
    return _make


@pytest.fixture
def wizard_at(make_wizard):
    """Drive a fresh wizard to the given step along the happy path (skipping the statement)."""
    async def _at(step):
        w = await make_wizard()
        if step >= 2:
            w.update_draft(**VALID_PRODUCT)
            assert (await w.advance()).accepted
        if step >= 3:
            w.update_draft(**VALID_CLIENT)
            assert (await w.advance()).accepted
        if step >= 4:
            assert (await w.skip(confirmed=True)).accepted
        return w
    return _at
