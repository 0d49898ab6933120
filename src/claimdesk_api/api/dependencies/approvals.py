"""Application-scoped collaborators for the approval endpoints."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from claimdesk_api.services.approvals import ApprovalSessionRegistry
from claimdesk_api.services.claims_client import ClaimsApiClient


def get_session_registry(request: Request) -> ApprovalSessionRegistry:
    registry = getattr(request.app.state, "approval_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Approval sessions are not available",
        )
    return registry


def get_claims_api_client(request: Request) -> ClaimsApiClient:
    client = getattr(request.app.state, "claims_api_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Claims API client is not configured",
        )
    return client
