import time
from typing import Any, Dict, Optional

import httpx

from intake.observability.logging import log
from intake.settings import settings

DEFAULT_ERROR_MESSAGE = "Something went wrong"


class BackendError(Exception):
    """Non-2xx response or transport failure from the lending backend."""

    def __init__(self, message: str, status: int = 500, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data


def _unwrap(body: Any) -> Any:
    # Some endpoints wrap the payload in {"data": {...}}
    if isinstance(body, dict) and set(body.keys()) == {"data"}:
        return body["data"]
    return body


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _error_from_response(resp: httpx.Response) -> BackendError:
    data = _json_or_none(resp)
    message = DEFAULT_ERROR_MESSAGE
    if isinstance(data, dict) and data.get("message"):
        message = str(data.get("message"))
    return BackendError(message, status=int(resp.status_code), data=data)


class BackendClient:
    """
    Async client for the lending backend.

    The bearer token comes from the inbound request and is injected per
    instance; the client never reads ambient session state.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.BACKEND_BASE_URL).rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.BACKEND_TIMEOUT_SEC,
            transport=transport,
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict:
        h = {"Accept": "application/json"}
        if self.token:
            token = self.token
            if not token.lower().startswith("bearer "):
                token = f"Bearer {token}"
            h["Authorization"] = token
        return h

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        start = time.time()
        try:
            resp = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            log(
                event="backend_transport_error",
                method=method,
                path=path,
                elapsedMs=int((time.time() - start) * 1000),
                errorType=type(e).__name__,
                error=str(e)[:300],
            )
            raise BackendError(f"{type(e).__name__}: {e}", status=0) from e
        log(
            event="backend_response",
            method=method,
            path=path,
            statusCode=int(resp.status_code),
            elapsedMs=int((time.time() - start) * 1000),
        )
        return resp

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        resp = await self._request(method, path, **kwargs)
        if not (200 <= resp.status_code < 300):
            raise _error_from_response(resp)
        return _unwrap(_json_or_none(resp))

    # --- Application records ---

    async def get_application(self, application_id: str) -> Dict[str, Any]:
        data = await self._call("GET", f"/applications/{application_id}")
        return data if isinstance(data, dict) else {}

    async def update_application(self, application_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge-patch; the backend answers with the fully merged record."""
        data = await self._call("PATCH", f"/applications/{application_id}", json=fields)
        return data if isinstance(data, dict) else {}

    # --- Statement analysis ---

    async def check_statement(
        self,
        bank: str,
        iin: str,
        document: bytes,
        application_id: str,
        *,
        filename: str = "statement.pdf",
    ) -> Dict[str, Any]:
        """
        POST the statement for analysis and return the raw envelope.

        A non-2xx response that still carries a JSON envelope is returned as-is
        so the caller can classify it; anything else raises BackendError.
        """
        resp = await self._request(
            "POST",
            f"/applications/check-statement/{bank}",
            data={"iin": iin, "applicationId": application_id},
            files={"statement": (filename, document, "application/pdf")},
            timeout=settings.STATEMENT_TIMEOUT_SEC,
        )
        body = _json_or_none(resp)
        if 200 <= resp.status_code < 300:
            return body if isinstance(body, dict) else {}
        if isinstance(body, dict):
            return body
        raise _error_from_response(resp)

    # --- OTP ---

    async def send_otp(self, application_id: str) -> bool:
        """Issue a code out-of-band. The code itself is never returned."""
        data = await self._call("POST", f"/applications/{application_id}/send-otp")
        return _success_flag(data)

    async def verify_otp(self, application_id: str, code: str) -> bool:
        data = await self._call("POST", f"/applications/{application_id}/verify-otp", json={"code": code})
        return _success_flag(data)


def _success_flag(data: Any) -> bool:
    # 2xx with no body counts as success; an explicit success:false does not
    if isinstance(data, dict) and "success" in data:
        return data.get("success") is True
    return True
