from fastapi import Header, HTTPException, status

from claimdesk_api.core.settings import settings
from claimdesk_api.services.credentials import parse_bearer_token


async def require_console_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    if not settings.console_api_key:
        return

    if x_api_key != settings.console_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def operator_token(authorization: str | None = Header(None, alias="Authorization")) -> str | None:
    """Bearer token forwarded by the operator console, if any."""

    return parse_bearer_token(authorization)
