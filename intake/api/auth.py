from typing import Optional

from fastapi import Header, HTTPException
from intake.settings import settings


def require_api_key(x_api_key: str = Header(default="", alias="x-api-key")):
    """
    API key is optional.
    - If API_KEY env is empty: allow all requests.
    - If API_KEY env is set: require matching x-api-key header.
    """
    if not getattr(settings, "API_KEY", ""):
        return
    if x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def backend_token(authorization: str = Header(default="", alias="authorization")) -> Optional[str]:
    """The caller's bearer token, forwarded to the lending backend as-is."""
    token = (authorization or "").strip()
    return token or None
