import json

import httpx
import pytest

AUTH = {"Authorization": "Bearer op-token"}

DISCOUNT_CLAIM = {
    "id": "claim-1",
    "assignedOfferId": "offer-1",
    "redemptionType": "PERCENTAGE_DISCOUNT",
    "scopeKind": "ANY",
}


async def _open(client, *, claim=None, claim_id="claim-1", policy="MANUAL", **extra) -> httpx.Response:
    body = {"claimId": claim_id, "claimPolicy": policy, **extra}
    if claim is not None:
        body["claim"] = claim
    return await client.post("/api/v1/approval-sessions", json=body, headers=AUTH)


@pytest.mark.asyncio
async def test_discount_claim_preview_then_approve(console_client, upstream) -> None:
    upstream.add(
        "POST",
        "/claims/claim-1/preview",
        httpx.Response(
            200,
            json={
                "eligibleSubtotal": 100,
                "applied": {"percent": 10, "value": 10},
                "finalTotal": 90,
                "canApprove": True,
            },
        ),
    )
    upstream.add("POST", "/claims/claim-1/approve", httpx.Response(200, json={"status": "APPROVED"}))

    opened = await _open(console_client, claim=DISCOUNT_CLAIM)
    assert opened.status_code == 201
    session = opened.json()
    assert session["preview"]["state"] == "NO_PREVIEW"
    assert session["approval"]["canApprove"] is False
    base = f"/api/v1/approval-sessions/{session['id']}"

    updated = await console_client.put(f"{base}/bill-total", json={"billTotal": 100}, headers=AUTH)
    assert updated.json()["validation"]["inputsValid"] is True
    await console_client.put(f"{base}/note", json={"note": "paid cash"}, headers=AUTH)

    previewed = await console_client.post(f"{base}/preview", headers=AUTH)
    assert previewed.status_code == 200
    snapshot = previewed.json()
    assert snapshot["preview"]["state"] == "READY"
    assert snapshot["approval"]["canApprove"] is True
    assert snapshot["approval"]["redemptionValue"] == "10.00"

    approved = await console_client.post(f"{base}/approve", headers=AUTH)
    assert approved.status_code == 200
    assert approved.json()["active"] is False
    assert approved.json()["completedAction"] == "approved"

    preview_request, approve_request = upstream.requests
    assert json.loads(preview_request.content) == {"redemptionType": "PERCENTAGE_DISCOUNT", "billTotal": 100.0}
    assert approve_request.headers["Authorization"] == "Bearer op-token"
    assert json.loads(approve_request.content) == {"redemptionValue": "10.00", "note": "paid cash"}

    gone = await console_client.get(base, headers=AUTH)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_online_claim_is_refused(console_client, upstream) -> None:
    response = await _open(console_client, claim=DISCOUNT_CLAIM, policy="ONLINE")

    assert response.status_code == 403
    assert response.json()["detail"] == "Only manual/BOTH claims can be approved in person"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_gate_endpoint_reports_reason(console_client) -> None:
    response = await console_client.post(
        "/api/v1/approval-gate",
        json={"claimPolicy": "BOTH", "canApprove": True, "expiresAt": "2000-01-01T00:00:00Z"},
    )

    assert response.status_code == 200
    assert response.json() == {"enabled": False, "reason": "This claim has expired"}


@pytest.mark.asyncio
async def test_invalid_inputs_return_issues_without_upstream_call(console_client, upstream) -> None:
    session = (await _open(console_client, claim=DISCOUNT_CLAIM)).json()

    response = await console_client.post(f"/api/v1/approval-sessions/{session['id']}/preview", headers=AUTH)

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert [issue["code"] for issue in detail["issues"]] == ["bill_total_required"]
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_approve_before_preview_conflicts(console_client, upstream) -> None:
    session = (await _open(console_client, claim=DISCOUNT_CLAIM)).json()

    response = await console_client.post(f"/api/v1/approval-sessions/{session['id']}/approve", headers=AUTH)

    assert response.status_code == 409
    assert response.json()["detail"] == "Request a preview before approving"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_missing_token_fails_preview_and_approve(console_client, upstream) -> None:
    upstream.add("POST", "/claims/claim-1/preview", httpx.Response(200, json={"canApprove": True}))
    session = (await _open(console_client, claim=DISCOUNT_CLAIM)).json()
    base = f"/api/v1/approval-sessions/{session['id']}"
    await console_client.put(f"{base}/bill-total", json={"billTotal": 20}, headers=AUTH)

    unauthenticated = await console_client.post(f"{base}/preview")
    assert unauthenticated.status_code == 200
    assert unauthenticated.json()["preview"] == {"state": "FAILED", "result": None, "message": "Not authenticated"}

    ready = await console_client.post(f"{base}/preview", headers=AUTH)
    assert ready.json()["preview"]["state"] == "READY"

    refused = await console_client.post(f"{base}/approve")
    assert refused.status_code == 401
    assert [request.url.path for request in upstream.requests] == ["/claims/claim-1/preview"]


@pytest.mark.asyncio
async def test_upstream_failures_surface(console_client, upstream) -> None:
    upstream.add("POST", "/claims/claim-1/preview", httpx.Response(500, text="boom"))
    session = (await _open(console_client, claim=DISCOUNT_CLAIM)).json()
    base = f"/api/v1/approval-sessions/{session['id']}"
    await console_client.put(f"{base}/bill-total", json={"billTotal": 20}, headers=AUTH)

    failed = await console_client.post(f"{base}/preview", headers=AUTH)
    assert failed.json()["preview"]["state"] == "FAILED"
    assert failed.json()["preview"]["message"] == "Failed to preview claim: 500 boom"

    upstream.add("POST", "/claims/claim-1/preview", httpx.Response(200, json={"canApprove": True}))
    upstream.add("POST", "/claims/claim-1/approve", httpx.Response(409, text="already approved"))
    await console_client.post(f"{base}/preview", headers=AUTH)

    rejected = await console_client.post(f"{base}/approve", headers=AUTH)
    assert rejected.status_code == 502
    assert rejected.json()["detail"] == "Failed to approve claim: 409 already approved"

    still_open = await console_client.get(base, headers=AUTH)
    assert still_open.status_code == 200
    assert still_open.json()["active"] is True


@pytest.mark.asyncio
async def test_list_scope_cart_editing(console_client) -> None:
    claim = {**DISCOUNT_CLAIM, "scopeKind": "LIST"}
    session = (await _open(console_client, claim=claim)).json()
    base = f"/api/v1/approval-sessions/{session['id']}"
    item = {"itemType": "PRODUCT", "id": "p-1", "title": "Espresso"}

    await console_client.post(f"{base}/cart/items", json=item, headers=AUTH)
    snapshot = (await console_client.post(f"{base}/cart/items", json=item, headers=AUTH)).json()
    row = snapshot["cart"][0]
    assert row["qty"] == 2
    assert snapshot["validation"]["inputsValid"] is True

    priced = await console_client.patch(f"{base}/cart/rows/{row['id']}", json={"unitPrice": "5.50"}, headers=AUTH)
    assert priced.json()["cart"][0]["lineTotal"] == "11.00"
    assert priced.json()["purchaseTotal"] == "11.00"

    cleared = await console_client.patch(f"{base}/cart/rows/{row['id']}", json={"unitPrice": None}, headers=AUTH)
    assert cleared.json()["cart"][0]["unitPrice"] is None

    negative = await console_client.patch(f"{base}/cart/rows/{row['id']}", json={"qty": -1}, headers=AUTH)
    assert negative.status_code == 400

    removed = await console_client.delete(f"{base}/cart/rows/{row['id']}", headers=AUTH)
    assert removed.json()["cart"] == []
    assert removed.json()["validation"]["inputsValid"] is False

    missing = await console_client.delete(f"{base}/cart/rows/{row['id']}", headers=AUTH)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_grant_claim_fetched_from_upstream(console_client, upstream) -> None:
    upstream.add(
        "GET",
        "/claims/claim-2",
        httpx.Response(
            200,
            json={
                "id": "claim-2",
                "assignedOfferId": "offer-2",
                "redemptionType": "GRANT",
                "scopeKind": "ANY",
                "grantPickLimit": 1,
                "grants": [],
            },
        ),
    )
    upstream.add(
        "GET",
        "/offers/offer-2/grant-options",
        httpx.Response(
            200,
            json=[
                {"itemType": "PRODUCT", "id": "p-9", "title": "Muffin", "defaultQty": 2},
                {"itemType": "BUNDLE", "id": "b-9", "title": "Snack box"},
            ],
        ),
    )

    opened = await _open(console_client, claim_id="claim-2")
    assert opened.status_code == 201
    session = opened.json()
    assert session["grants"]["mode"] == "PICK"
    base = f"/api/v1/approval-sessions/{session['id']}"

    search = await console_client.get(f"{base}/search/grant-products", params={"q": "muf"}, headers=AUTH)
    assert search.status_code == 200
    assert search.json()["items"] == [
        {"id": "p-9", "title": "Muffin", "subtitle": None, "imageUrl": None, "defaultQty": 2}
    ]

    added = await console_client.post(
        f"{base}/grants", json={"itemType": "PRODUCT", "id": "p-9", "defaultQty": 2}, headers=AUTH
    )
    assert added.json()["added"] is True
    assert added.json()["session"]["grants"]["lines"][0]["qty"] == 2

    full = await console_client.post(f"{base}/grants", json={"itemType": "BUNDLE", "id": "b-9"}, headers=AUTH)
    assert full.json()["added"] is False

    changed = await console_client.patch(f"{base}/grants/PRODUCT/p-9", json={"qty": 3}, headers=AUTH)
    assert changed.json()["grants"]["lines"][0]["qty"] == 3

    zero = await console_client.patch(f"{base}/grants/PRODUCT/p-9", json={"qty": 0}, headers=AUTH)
    assert zero.status_code == 400

    unknown = await console_client.patch(f"{base}/grants/VOUCHER/p-9", json={"qty": 1}, headers=AUTH)
    assert unknown.status_code == 400

    removed = await console_client.delete(f"{base}/grants/PRODUCT/p-9", headers=AUTH)
    assert removed.json()["grants"]["lines"] == []
    again = await console_client.delete(f"{base}/grants/PRODUCT/p-9", headers=AUTH)
    assert again.status_code == 404

    assert [request.url.path for request in upstream.requests] == ["/claims/claim-2", "/offers/offer-2/grant-options"]


@pytest.mark.asyncio
async def test_reject_and_close(console_client, upstream) -> None:
    upstream.add("POST", "/claims/claim-1/reject", httpx.Response(200, json={}))
    first = (await _open(console_client, claim=DISCOUNT_CLAIM)).json()
    second = (await _open(console_client, claim={**DISCOUNT_CLAIM, "id": "claim-3"}, claim_id="claim-3")).json()

    rejected = await console_client.post(
        f"/api/v1/approval-sessions/{first['id']}/reject", json={"reason": "receipt missing"}, headers=AUTH
    )
    assert rejected.json()["completedAction"] == "rejected"
    assert json.loads(upstream.requests[0].content) == {"reason": "receipt missing"}

    closed = await console_client.delete(f"/api/v1/approval-sessions/{second['id']}")
    assert closed.status_code == 204
    assert (await console_client.delete(f"/api/v1/approval-sessions/{second['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_mismatched_inline_claim_is_rejected(console_client) -> None:
    response = await _open(console_client, claim=DISCOUNT_CLAIM, claim_id="claim-other")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_grant_options_do_not_restrict_claim_without_allow_list(console_client, upstream) -> None:
    upstream.add(
        "GET",
        "/offers/offer-9/grant-options",
        httpx.Response(200, json=[{"itemType": "PRODUCT", "id": "p-other", "title": "Scone"}]),
    )
    claim = {
        "id": "claim-9",
        "assignedOfferId": "offer-9",
        "redemptionType": "GRANT",
        "scopeKind": "ANY",
        "grantPickLimit": 1,
        "grants": [{"itemType": "PRODUCT", "id": "p-existing"}],
    }

    opened = await _open(console_client, claim=claim, claim_id="claim-9")
    assert opened.status_code == 201
    body = opened.json()

    assert body["grants"]["lines"][0]["id"] == "p-existing"
    assert body["grants"]["lines"][0]["eligible"] is True
    assert body["validation"]["allEligible"] is True

    search = await console_client.get(
        f"/api/v1/approval-sessions/{body['id']}/search/grant-products", headers=AUTH
    )
    assert [item["id"] for item in search.json()["items"]] == ["p-other"]


@pytest.mark.asyncio
async def test_rejected_row_update_leaves_row_untouched(console_client) -> None:
    session = (await _open(console_client, claim={**DISCOUNT_CLAIM, "scopeKind": "LIST"})).json()
    base = f"/api/v1/approval-sessions/{session['id']}"
    added = await console_client.post(
        f"{base}/cart/items", json={"itemType": "PRODUCT", "id": "p-1", "title": "Espresso"}, headers=AUTH
    )
    row_id = added.json()["cart"][0]["id"]

    response = await console_client.patch(
        f"{base}/cart/rows/{row_id}", json={"qty": 5, "unitPrice": "-1"}, headers=AUTH
    )
    assert response.status_code == 400

    row = (await console_client.get(base, headers=AUTH)).json()["cart"][0]
    assert row["qty"] == 1
    assert row["unitPrice"] is None
