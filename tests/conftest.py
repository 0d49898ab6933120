import asyncio
import os
import sys
from decimal import Decimal
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

os.environ.setdefault("OTEL_TRACES_EXPORTER", "none")


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from claimdesk_api.app import create_app  # noqa: E402
from claimdesk_api.core.settings import settings  # noqa: E402
from claimdesk_api.domain.claims import (  # noqa: E402
    BundleRef,
    Claim,
    EligibleGrantItem,
    ExistingGrant,
    ProductRef,
    RedemptionType,
    ScopeKind,
)
from claimdesk_api.observability.approvals import get_approval_store  # noqa: E402
from claimdesk_api.schemas.claims import PreviewResult  # noqa: E402
from claimdesk_api.services.approvals import ApprovalSessionRegistry  # noqa: E402
from claimdesk_api.services.claims_client import ClaimsApiClient, build_http_client  # noqa: E402


class StubClaimsGateway:
    """Records every upstream call; ``hold`` pauses calls until it is set."""

    def __init__(self, result: PreviewResult | None = None) -> None:
        self.result = result or PreviewResult(eligible_subtotal=Decimal("0"), can_approve=True)
        self.preview_calls: list = []
        self.approve_calls: list = []
        self.reject_calls: list = []
        self.preview_error: Exception | None = None
        self.approve_error: Exception | None = None
        self.reject_error: Exception | None = None
        self.hold: asyncio.Event | None = None

    async def _maybe_wait(self) -> None:
        if self.hold is not None:
            await self.hold.wait()

    async def preview(self, claim_id, request):
        self.preview_calls.append((claim_id, request))
        await self._maybe_wait()
        if self.preview_error is not None:
            raise self.preview_error
        return self.result

    async def approve(self, claim_id, payload):
        self.approve_calls.append((claim_id, payload))
        await self._maybe_wait()
        if self.approve_error is not None:
            raise self.approve_error

    async def reject(self, claim_id, payload):
        self.reject_calls.append((claim_id, payload))
        await self._maybe_wait()
        if self.reject_error is not None:
            raise self.reject_error


@pytest.fixture
def approval_store():
    store = get_approval_store()
    store.reset()
    try:
        yield store
    finally:
        store.reset()


@pytest.fixture
def stub_gateway() -> StubClaimsGateway:
    return StubClaimsGateway()


@pytest.fixture
def make_claim():
    def factory(**overrides) -> Claim:
        values = {
            "id": "claim-1",
            "assigned_offer_id": "offer-1",
            "redemption_type": RedemptionType.PERCENTAGE_DISCOUNT,
            "scope_kind": ScopeKind.ANY,
        }
        values.update(overrides)
        for key in ("existing_grants", "eligible_grant_items"):
            if key in values:
                values[key] = tuple(values[key])
        return Claim(**values)

    return factory


@pytest.fixture
def grant_claim(make_claim):
    return make_claim(
        redemption_type=RedemptionType.GRANT,
        approval_pick_limit=2,
        eligible_grant_items=[
            EligibleGrantItem(ref=ProductRef("prod-a"), default_qty=2),
            EligibleGrantItem(ref=ProductRef("prod-b")),
            EligibleGrantItem(ref=BundleRef("bundle-c")),
        ],
        existing_grants=[ExistingGrant(ref=ProductRef("prod-a"), quantity=1)],
    )


class UpstreamRecorder:
    """Minimal claims API double for ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}

    def add(self, method: str, path: str, response: httpx.Response) -> None:
        self.routes[(method, path)] = response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest_asyncio.fixture
async def console_app(upstream, approval_store):
    previous_debounce = settings.item_search_debounce_ms
    settings.item_search_debounce_ms = 0

    app = create_app()
    http_client = build_http_client(transport=httpx.MockTransport(upstream))
    registry = ApprovalSessionRegistry(max_sessions=10, idle_seconds=60, store=approval_store)
    app.state.claims_api_client = ClaimsApiClient(http_client)
    app.state.approval_registry = registry

    try:
        yield app
    finally:
        registry.close_all()
        await http_client.aclose()
        settings.item_search_debounce_ms = previous_debounce


@pytest_asyncio.fixture
async def console_client(console_app):
    transport = httpx.ASGITransport(app=console_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
