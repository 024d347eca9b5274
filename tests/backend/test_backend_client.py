import json

import httpx
import pytest

from intake.backend.client import BackendClient, BackendError


def _client(handler, token="abc"):
    return BackendClient("http://backend.test", token=token, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_get_application_unwraps_data_and_sends_bearer():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("authorization")
        seen["path"] = request.url.path
        return httpx.Response(200, json={"data": {"id": "app-1", "status": "DRAFT"}})

    async with _client(handler) as client:
        data = await client.get_application("app-1")

    assert data == {"id": "app-1", "status": "DRAFT"}
    assert seen == {"auth": "Bearer abc", "path": "/applications/app-1"}


@pytest.mark.asyncio
async def test_token_already_prefixed_is_not_doubled():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={})

    async with _client(handler, token="Bearer xyz") as client:
        await client.get_application("app-1")
    assert seen["auth"] == "Bearer xyz"


@pytest.mark.asyncio
async def test_no_token_no_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={})

    async with _client(handler, token=None) as client:
        await client.get_application("app-1")
    assert seen["auth"] is None


@pytest.mark.asyncio
async def test_update_application_is_a_patch_with_json_body():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "app-1", "amount": 150000})

    async with _client(handler) as client:
        data = await client.update_application("app-1", {"amount": 150000})

    assert seen == {"method": "PATCH", "body": {"amount": 150000}}
    assert data["amount"] == 150000


@pytest.mark.asyncio
async def test_non_2xx_raises_with_backend_message():
    def handler(request):
        return httpx.Response(422, json={"message": "IIN is invalid"})

    async with _client(handler) as client:
        with pytest.raises(BackendError) as exc:
            await client.update_application("app-1", {})

    assert exc.value.status == 422
    assert exc.value.message == "IIN is invalid"


@pytest.mark.asyncio
async def test_non_2xx_without_json_uses_default_message():
    def handler(request):
        return httpx.Response(500, text="<html>oops</html>")

    async with _client(handler) as client:
        with pytest.raises(BackendError) as exc:
            await client.get_application("app-1")

    assert exc.value.message == "Something went wrong"


@pytest.mark.asyncio
async def test_transport_error_has_status_zero():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(BackendError) as exc:
            await client.send_otp("app-1")

    assert exc.value.status == 0


@pytest.mark.asyncio
async def test_check_statement_posts_multipart_and_returns_failure_envelope():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["content_type"] = request.headers.get("content-type", "")
        seen["body"] = request.content
        return httpx.Response(400, json={"success": False, "message": "wrong date"})

    async with _client(handler) as client:
        envelope = await client.check_statement("kaspi", "123456789012", b"%PDF-1.4", "app-1", filename="s.pdf")

    assert envelope == {"success": False, "message": "wrong date"}
    assert seen["path"] == "/applications/check-statement/kaspi"
    assert seen["content_type"].startswith("multipart/form-data")
    assert b"123456789012" in seen["body"]
    assert b"%PDF-1.4" in seen["body"]


@pytest.mark.asyncio
async def test_check_statement_non_json_failure_raises():
    def handler(request):
        return httpx.Response(502, text="Bad gateway")

    async with _client(handler) as client:
        with pytest.raises(BackendError):
            await client.check_statement("halyk", "1", b"%PDF", "app-1")


@pytest.mark.asyncio
async def test_otp_success_flags():
    calls = []

    def handler(request):
        calls.append((request.url.path, request.content))
        if request.url.path.endswith("/send-otp"):
            return httpx.Response(204)
        return httpx.Response(200, json={"success": False})

    async with _client(handler) as client:
        assert await client.send_otp("app-1") is True
        assert await client.verify_otp("app-1", "123456") is False

    assert calls[1][0] == "/applications/app-1/verify-otp"
    assert json.loads(calls[1][1]) == {"code": "123456"}
