"""Operator console endpoints for claim approval sessions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from loguru import logger

from claimdesk_api.api.dependencies.approvals import get_claims_api_client, get_session_registry
from claimdesk_api.api.dependencies.security import operator_token
from claimdesk_api.core.settings import settings
from claimdesk_api.domain.claims import CartItem, ItemKind, ItemRef, make_item_ref
from claimdesk_api.schemas.approvals import (
    AddCartItemRequest,
    AddGrantRequest,
    ApprovalGateRequest,
    ApprovalGateResponse,
    ApprovalSessionSnapshot,
    BillTotalRequest,
    GrantAddResponse,
    GrantQuantityRequest,
    ItemSearchResponse,
    NoteRequest,
    OpenApprovalSessionRequest,
    PickerItemView,
    RejectClaimRequest,
    UpdateCartRowRequest,
)
from claimdesk_api.schemas.claims import GrantOption
from claimdesk_api.services.approvals import (
    ApprovalFlowError,
    ApprovalSession,
    ApprovalSessionRegistry,
    CartRowNotFoundError,
    GrantLineNotFoundError,
    InvalidQuantityError,
    PickerFetchers,
    PickerKind,
    PolicyGateClosedError,
    PreviewInputsInvalidError,
    SessionNotFoundError,
    evaluate_policy_gate,
    make_local_fetcher,
    picker_fetchers_from_offer,
)
from claimdesk_api.services.claims_client import ClaimsApiClient, ClaimsApiError, ClaimsGateway
from claimdesk_api.services.credentials import NotAuthenticatedError, StaticTokenProvider

router = APIRouter(tags=["Approvals"])

_HANDLED_ERRORS = (ApprovalFlowError, ClaimsApiError, NotAuthenticatedError)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, PreviewInputsInvalidError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": str(exc),
                "issues": [
                    {"field": issue.field, "code": issue.code, "message": issue.message}
                    for issue in exc.report.issues
                ],
            },
        )
    if isinstance(exc, NotAuthenticatedError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if isinstance(exc, ClaimsApiError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, (SessionNotFoundError, CartRowNotFoundError, GrantLineNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidQuantityError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, PolicyGateClosedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.reason)
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


async def _active_session(
    session_id: str,
    registry: ApprovalSessionRegistry = Depends(get_session_registry),
    token: str | None = Depends(operator_token),
) -> ApprovalSession:
    try:
        session = registry.get(session_id)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    if session.credentials is not None:
        session.credentials.update(token)
    return session


def _grant_ref(item_type: str, item_id: str) -> ItemRef:
    try:
        return make_item_ref(item_type, item_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unsupported grant item: {item_type}/{item_id}") from exc


def _use_grant_options(fetchers: PickerFetchers, options: list[GrantOption]) -> None:
    products = [option.to_picker_item() for option in options if option.item_type is ItemKind.PRODUCT]
    bundles = [option.to_picker_item() for option in options if option.item_type is ItemKind.BUNDLE]
    fetchers.grant_products = make_local_fetcher(products)
    fetchers.grant_bundles = make_local_fetcher(bundles)


@router.post("/approval-gate", response_model=ApprovalGateResponse, summary="Evaluate the approval gate")
async def evaluate_approval_gate(
    body: ApprovalGateRequest,
    registry: ApprovalSessionRegistry = Depends(get_session_registry),
) -> ApprovalGateResponse:
    busy = registry.is_claim_busy(body.claim_id) if body.claim_id else False
    decision = evaluate_policy_gate(
        can_approve=body.can_approve,
        claim_policy=body.claim_policy,
        expires_at=body.expires_at,
        busy=busy,
        disabled_reason=body.disabled_reason,
    )
    return ApprovalGateResponse.from_decision(decision)


@router.post(
    "/approval-sessions",
    response_model=ApprovalSessionSnapshot,
    status_code=status.HTTP_201_CREATED,
    summary="Open an approval session for a claim",
)
async def open_approval_session(
    body: OpenApprovalSessionRequest,
    registry: ApprovalSessionRegistry = Depends(get_session_registry),
    client: ClaimsApiClient = Depends(get_claims_api_client),
    token: str | None = Depends(operator_token),
) -> ApprovalSessionSnapshot:
    credentials = StaticTokenProvider(token)
    gateway = ClaimsGateway(client, credentials)
    try:
        snapshot = body.claim or await gateway.fetch_claim(body.claim_id)
        if snapshot.id != body.claim_id:
            raise HTTPException(status_code=400, detail="Claim payload does not match claimId")
        claim = snapshot.to_claim()
        decision = registry.gate_for(
            claim,
            claim_policy=body.claim_policy,
            can_approve=body.can_approve,
            disabled_reason=body.disabled_reason,
        )

        fetchers = picker_fetchers_from_offer(body.scope_items, body.grant_items)
        if decision.enabled and claim.approval_pick_limit > 0 and body.grant_items is None:
            options = await gateway.fetch_grant_options(claim.assigned_offer_id)
            _use_grant_options(fetchers, options)

        session = registry.open(
            claim,
            gateway,
            decision=decision,
            fetchers=fetchers,
            debounce_seconds=settings.item_search_debounce_ms / 1000,
            credentials=credentials,
        )
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc

    logger.info("Approval session created", session_id=session.id, claim_id=claim.id)
    return ApprovalSessionSnapshot.from_session(session)


@router.get("/approval-sessions/{session_id}", response_model=ApprovalSessionSnapshot)
async def get_approval_session(session: ApprovalSession = Depends(_active_session)) -> ApprovalSessionSnapshot:
    return ApprovalSessionSnapshot.from_session(session)


@router.delete("/approval-sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_approval_session(
    session_id: str,
    registry: ApprovalSessionRegistry = Depends(get_session_registry),
) -> Response:
    if not registry.close(session_id):
        raise HTTPException(status_code=404, detail=f"Approval session {session_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/approval-sessions/{session_id}/cart/items", response_model=ApprovalSessionSnapshot)
async def add_cart_item(
    body: AddCartItemRequest,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    item = CartItem(
        ref=make_item_ref(body.item_type, body.id),
        title=body.title,
        subtitle=body.subtitle,
        image_url=body.image_url,
    )
    try:
        session.add_cart_item(item)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.patch("/approval-sessions/{session_id}/cart/rows/{row_id}", response_model=ApprovalSessionSnapshot)
async def update_cart_row(
    row_id: str,
    body: UpdateCartRowRequest,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    try:
        changes: dict[str, object] = {"qty": body.qty}
        if "unit_price" in body.model_fields_set:
            changes["unit_price"] = body.unit_price
        session.update_cart_row(row_id, **changes)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.delete("/approval-sessions/{session_id}/cart/rows/{row_id}", response_model=ApprovalSessionSnapshot)
async def remove_cart_row(
    row_id: str,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    try:
        session.remove_row(row_id)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.put("/approval-sessions/{session_id}/bill-total", response_model=ApprovalSessionSnapshot)
async def set_bill_total(
    body: BillTotalRequest,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    try:
        session.set_bill_total(body.bill_total)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.put("/approval-sessions/{session_id}/note", response_model=ApprovalSessionSnapshot)
async def set_note(
    body: NoteRequest,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    try:
        session.set_note(body.note)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.post("/approval-sessions/{session_id}/grants", response_model=GrantAddResponse)
async def add_grant(
    body: AddGrantRequest,
    session: ApprovalSession = Depends(_active_session),
) -> GrantAddResponse:
    try:
        added = session.add_grant(make_item_ref(body.item_type, body.id), default_qty=body.default_qty)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return GrantAddResponse(added=added, session=ApprovalSessionSnapshot.from_session(session))


@router.patch(
    "/approval-sessions/{session_id}/grants/{item_type}/{item_id}",
    response_model=ApprovalSessionSnapshot,
)
async def update_grant(
    item_type: str,
    item_id: str,
    body: GrantQuantityRequest,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    ref = _grant_ref(item_type, item_id)
    try:
        session.set_grant_qty(ref, body.qty)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.delete(
    "/approval-sessions/{session_id}/grants/{item_type}/{item_id}",
    response_model=ApprovalSessionSnapshot,
)
async def remove_grant(
    item_type: str,
    item_id: str,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    ref = _grant_ref(item_type, item_id)
    try:
        removed = session.remove_grant(ref)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    if not removed:
        raise HTTPException(status_code=404, detail=f"{ref.kind.value.title()} {ref.id} is not selected")
    return ApprovalSessionSnapshot.from_session(session)


@router.get("/approval-sessions/{session_id}/search/{picker}", response_model=ItemSearchResponse)
async def search_items(
    picker: PickerKind,
    q: str = Query("", max_length=200),
    session: ApprovalSession = Depends(_active_session),
) -> ItemSearchResponse:
    try:
        items = await session.search(picker, q)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    if items is None:
        return ItemSearchResponse(picker=picker, query=q, superseded=True)
    return ItemSearchResponse(
        picker=picker,
        query=q,
        items=[PickerItemView.from_item(item) for item in items],
    )


@router.post("/approval-sessions/{session_id}/preview", response_model=ApprovalSessionSnapshot)
async def request_preview(session: ApprovalSession = Depends(_active_session)) -> ApprovalSessionSnapshot:
    """Request a redemption preview; upstream failures land in the ``FAILED`` preview state."""

    try:
        await session.request_preview()
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.post("/approval-sessions/{session_id}/approve", response_model=ApprovalSessionSnapshot)
async def approve_claim(session: ApprovalSession = Depends(_active_session)) -> ApprovalSessionSnapshot:
    try:
        await session.approve()
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)


@router.post("/approval-sessions/{session_id}/reject", response_model=ApprovalSessionSnapshot)
async def reject_claim(
    body: RejectClaimRequest | None = None,
    session: ApprovalSession = Depends(_active_session),
) -> ApprovalSessionSnapshot:
    try:
        await session.reject(body.reason if body else None)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    return ApprovalSessionSnapshot.from_session(session)
