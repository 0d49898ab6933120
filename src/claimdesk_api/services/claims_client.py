"""HTTP client for the upstream claims and pricing API."""

from __future__ import annotations

from typing import Any, Mapping

import httpx
from loguru import logger
from pydantic import ValidationError

from claimdesk_api.core.settings import settings
from claimdesk_api.schemas.claims import (
    ApprovalPayload,
    ClaimSnapshot,
    GrantOption,
    PreviewRequest,
    PreviewResult,
    RejectPayload,
)
from claimdesk_api.services.credentials import CredentialProvider, require_token


class ClaimsApiError(RuntimeError):
    """Raised when the claims API rejects a call or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClaimsApiClient:
    """Thin async wrapper over the claims API endpoints used by the approval flow.

    The caller owns ``client``; this class never closes it.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def _send(
        self,
        method: str,
        path: str,
        *,
        token: str,
        action: str,
        json: Mapping[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=json, headers=self._headers(token))
        except httpx.HTTPError as exc:
            logger.warning("Claims API request failed", action=action, path=path, error=str(exc))
            raise ClaimsApiError(f"Failed to {action}: {exc}") from exc
        if response.is_success:
            return response
        logger.warning(
            "Claims API returned an error",
            action=action,
            path=path,
            status_code=response.status_code,
        )
        raise ClaimsApiError(
            f"Failed to {action}: {response.status_code} {response.text}",
            status_code=response.status_code,
        )

    @staticmethod
    def _json(response: httpx.Response, *, action: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ClaimsApiError(f"Failed to {action}: response was not JSON") from exc

    async def preview_claim(self, claim_id: str, request: PreviewRequest, *, token: str) -> PreviewResult:
        response = await self._send(
            "POST",
            f"/claims/{claim_id}/preview",
            token=token,
            action="preview claim",
            json=request.to_wire(),
        )
        try:
            return PreviewResult.model_validate(self._json(response, action="preview claim"))
        except ValidationError as exc:
            raise ClaimsApiError(f"Failed to preview claim: unexpected response ({exc.error_count()} errors)") from exc

    async def approve_claim(self, claim_id: str, payload: ApprovalPayload, *, token: str) -> None:
        await self._send(
            "POST",
            f"/claims/{claim_id}/approve",
            token=token,
            action="approve claim",
            json=payload.to_wire(),
        )

    async def reject_claim(self, claim_id: str, payload: RejectPayload, *, token: str) -> None:
        await self._send(
            "POST",
            f"/claims/{claim_id}/reject",
            token=token,
            action="reject claim",
            json=payload.to_wire(),
        )

    async def fetch_claim(self, claim_id: str, *, token: str) -> ClaimSnapshot:
        response = await self._send("GET", f"/claims/{claim_id}", token=token, action="fetch claim details")
        try:
            return ClaimSnapshot.model_validate(self._json(response, action="fetch claim details"))
        except ValidationError as exc:
            raise ClaimsApiError(f"Failed to fetch claim details: unexpected response ({exc.error_count()} errors)") from exc

    async def fetch_grant_options(self, assigned_offer_id: str, *, token: str) -> list[GrantOption]:
        response = await self._send(
            "GET",
            f"/offers/{assigned_offer_id}/grant-options",
            token=token,
            action="fetch grant options",
        )
        body = self._json(response, action="fetch grant options")
        if not isinstance(body, list):
            return []
        options: list[GrantOption] = []
        for entry in body:
            try:
                options.append(GrantOption.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping malformed grant option", assigned_offer_id=assigned_offer_id)
        return options


class ClaimsGateway:
    """Binds a ``ClaimsApiClient`` to a credential provider.

    Every call resolves the token first; when it is missing the call fails
    with ``NotAuthenticatedError`` and no request is sent.
    """

    def __init__(self, client: ClaimsApiClient, credentials: CredentialProvider) -> None:
        self._client = client
        self._credentials = credentials

    async def preview(self, claim_id: str, request: PreviewRequest) -> PreviewResult:
        token = await require_token(self._credentials)
        return await self._client.preview_claim(claim_id, request, token=token)

    async def approve(self, claim_id: str, payload: ApprovalPayload) -> None:
        token = await require_token(self._credentials)
        await self._client.approve_claim(claim_id, payload, token=token)

    async def reject(self, claim_id: str, payload: RejectPayload) -> None:
        token = await require_token(self._credentials)
        await self._client.reject_claim(claim_id, payload, token=token)

    async def fetch_claim(self, claim_id: str) -> ClaimSnapshot:
        token = await require_token(self._credentials)
        return await self._client.fetch_claim(claim_id, token=token)

    async def fetch_grant_options(self, assigned_offer_id: str) -> list[GrantOption]:
        token = await require_token(self._credentials)
        return await self._client.fetch_grant_options(assigned_offer_id, token=token)


def build_http_client(*, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.claims_api_base_url,
        timeout=settings.claims_api_timeout_seconds,
        transport=transport,
    )


__all__ = ["ClaimsApiClient", "ClaimsApiError", "ClaimsGateway", "build_http_client"]
