import httpx
import pytest
import respx
from loguru import logger

from pcard_approvals.core.config import settings
from pcard_approvals.models.purchase_request import RequestStatus
from pcard_approvals.services import form_recognizer
from pcard_approvals.services.form_recognizer import ExtractedReceipt

WEBHOOK = "https://example.com/webhook"


def draft_json(**overrides):
    draft = {
        "cardholder_name": "Jane Doe",
        "p_card_name": "JANE DOE",
        "expense_date": "2026-10-15",
        "vendor_name": "Staples",
        "vendor_location": "Online",
        "purchase_amount": 100.0,
        "tax_amount": 8.25,
        "shipping_amount": 0.0,
        "business_purpose": "Team supplies",
        "detailed_description": "Notebooks and pens for the onboarding kit",
        "category": "Office Supplies",
    }
    draft.update(overrides)
    return draft


def submit(client, **overrides):
    return client.post("/requests", json={
        "requester_id": "user-1",
        "signature_url": "sig://jane",
        "draft": draft_json(**overrides),
    })


@pytest.fixture(autouse=True)
def no_webhook(monkeypatch):
    monkeypatch.setattr(settings, "teams_webhook_url", None)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_validate_endpoint(client):
    r = client.post("/requests/validate", json={
        "total_amount": 2000,
        "category": "Office Supplies",
        "po_bypass_reason": "time_sensitivity",
    })
    assert r.status_code == 200
    data = r.json()
    assert data["is_valid"] is True
    assert data["approval_tier"] == "$1,500 - $5,000: Merrill Raman + Ryan Greene"
    assert [a["name"] for a in data["required_approvers"]] == ["Merrill Raman", "Ryan Greene"]
    po = next(i for i in data["checklist"] if i["id"] == "po_ruled_out")
    assert po["message"] == "PO bypassed: Purchase required immediately"


def test_validate_rejects_malformed_body(client):
    r = client.post("/requests/validate", json={"category": "Office Supplies"})
    assert r.status_code == 422


def test_approval_tier_endpoint(client):
    r = client.get("/requests/approval-tier", params={"amount": 100001})
    assert r.status_code == 200
    data = r.json()
    assert data["approval_tier"] == "Over $100,000: Merrill Raman + Ryan Greene + CEO"
    assert [a["order"] for a in data["required_approvers"]] == [1, 2, 3]


def test_step_check(client):
    r = client.post("/requests/steps/3/check", json={"draft": draft_json(purchase_amount=900)})
    assert r.status_code == 200
    assert r.json()["can_proceed"] is False

    r = client.post("/requests/steps/5/check", json={"draft": draft_json(), "signature_url": "sig"})
    assert r.json()["can_proceed"] is True


def test_step_check_unknown_step(client):
    r = client.post("/requests/steps/9/check", json={"draft": draft_json()})
    assert r.status_code == 404


def test_submit_small_request_self_approved(client):
    r = submit(client)
    assert r.status_code == 201
    data = r.json()
    assert data["request"]["status"] == "approved"
    assert data["approval_tier"] == "No approval required"
    assert data["notification"] is None


def test_submit_large_request_skips_teams_without_webhook(client):
    r = submit(client, purchase_amount=1200, po_bypass_reason="vendor_limitations")
    assert r.status_code == 201
    data = r.json()
    assert data["request"]["status"] == "pending"
    assert data["notification"]["status"] == "skipped"


@respx.mock
def test_submit_posts_adaptive_card(client, monkeypatch):
    monkeypatch.setattr(settings, "teams_webhook_url", WEBHOOK)
    route = respx.post(WEBHOOK).mock(return_value=httpx.Response(200))

    r = submit(client, purchase_amount=3000, po_bypass_reason="time_sensitivity")

    assert r.status_code == 201
    assert r.json()["notification"] == {"status": "sent", "http_status": 200}
    assert route.called
    body = route.calls.last.request.content.decode()
    assert "Merrill Raman" in body
    assert "Ryan Greene" in body
    assert "/review" in body


@respx.mock
def test_submit_survives_teams_outage(client, monkeypatch):
    monkeypatch.setattr(settings, "teams_webhook_url", WEBHOOK)
    respx.post(WEBHOOK).mock(side_effect=httpx.ConnectError("unreachable"))

    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="WARNING")
    try:
        r = submit(client, purchase_amount=3000, po_bypass_reason="time_sensitivity")
    finally:
        logger.remove(sink_id)

    assert r.status_code == 201
    assert r.json()["notification"]["status"] == "failed"
    warning = next(rec for rec in records if rec["message"] == "Failed to notify approvers")
    assert warning["extra"]["request_id"] == r.json()["request"]["id"]
    assert "unreachable" in warning["extra"]["error"]


def test_submit_policy_violation(client):
    r = submit(client, category="Gift Cards")
    assert r.status_code == 400
    assert "Step 2" in r.json()["detail"]


def test_submit_without_signature(client):
    r = client.post("/requests", json={"requester_id": "user-1", "draft": draft_json()})
    assert r.status_code == 400


def test_list_and_get_requests(client):
    small = submit(client).json()["request"]
    submit(client, purchase_amount=900, po_bypass_reason="other")

    r = client.get("/requests")
    assert r.json()["total"] == 2

    r = client.get("/requests", params={"status": "pending"})
    assert r.json()["total"] == 1

    r = client.get(f"/requests/{small['id']}")
    assert r.status_code == 200
    assert r.json()["vendor_name"] == "Staples"


def test_get_unknown_request(client):
    assert client.get("/requests/missing").status_code == 404
    assert client.get("/requests/missing/review").status_code == 404
    assert client.get("/requests/missing/signatures").status_code == 404


def test_usage_endpoint(client):
    submit(client)
    r = client.get("/requests/usage/user-1")
    assert r.status_code == 200
    assert r.json()["current_usage"] == pytest.approx(108.25)
    assert r.json()["would_exceed_limit"] is False

    r = client.get("/requests/usage/user-1", params={"amount": 4950})
    assert r.status_code == 200
    assert r.json()["would_exceed_limit"] is True
    assert r.json()["over_limit_amount"] == pytest.approx(58.25)

    assert client.get("/requests/usage/user-1", params={"amount": -5}).status_code == 422


def test_submit_reports_going_over_monthly_limit(client, monkeypatch):
    monkeypatch.setattr(settings, "pcard_monthly_limit", 1000.0)
    submit(client, purchase_amount=800, po_bypass_reason="other")

    r = submit(client, purchase_amount=300, po_bypass_reason="other")

    assert r.status_code == 201
    usage = r.json()["usage"]
    assert usage["current_usage"] == pytest.approx(808.25)
    assert usage["would_exceed_limit"] is True
    assert usage["over_limit_amount"] == pytest.approx(116.5)


def test_submit_rejects_negative_amounts(client):
    r = submit(client, purchase_amount=1000, shipping_amount=-600)
    assert r.status_code == 422


def test_approval_flow(client, store):
    request_id = submit(client, purchase_amount=2000, po_bypass_reason="time_sensitivity").json()["request"]["id"]

    r = client.post(f"/requests/{request_id}/approve", json={
        "approver_email": "merrill.raman@company.com",
        "signature_url": "sig://merrill",
    })
    assert r.status_code == 200
    assert r.json()["request"]["status"] == "pending"

    r = client.post(f"/requests/{request_id}/approve", json={
        "approver_email": "ryan.greene@company.com",
        "signature_url": "sig://ryan",
    })
    assert r.status_code == 200
    assert r.json()["request"]["status"] == "approved"

    r = client.get(f"/requests/{request_id}/signatures")
    assert [s["approver_name"] for s in r.json()] == ["Merrill Raman", "Ryan Greene"]
    assert store.get_request(request_id).status == RequestStatus.APPROVED


def test_reject_requires_comments(client):
    request_id = submit(client, purchase_amount=800, po_bypass_reason="other").json()["request"]["id"]

    r = client.post(f"/requests/{request_id}/reject", json={
        "approver_email": "merrill.raman@company.com",
        "signature_url": "sig://merrill",
    })
    assert r.status_code == 409
    assert r.json()["detail"] == "Comments are required when rejecting a request."

    r = client.post(f"/requests/{request_id}/reject", json={
        "approver_email": "merrill.raman@company.com",
        "signature_url": "sig://merrill",
        "comments": "Buy through the preferred vendor",
    })
    assert r.status_code == 200
    assert r.json()["request"]["status"] == "rejected"
    assert r.json()["request"]["rejection_reason"] == "Buy through the preferred vendor"


def test_review_endpoint(client):
    request_id = submit(client, purchase_amount=1600, po_bypass_reason="other").json()["request"]["id"]

    r = client.get(f"/requests/{request_id}/review")
    assert r.status_code == 200
    data = r.json()
    assert data["approval_tier"] == "$1,500 - $5,000: Merrill Raman + Ryan Greene"
    assert data["validation"]["is_valid"] is True
    assert data["signatures"] == []


def test_receipt_upload_without_document_intelligence(client, monkeypatch):
    monkeypatch.setattr(form_recognizer, "is_configured", lambda: False)
    request_id = submit(client).json()["request"]["id"]

    r = client.post(
        f"/requests/{request_id}/receipts",
        files={"file": ("receipt.jpg", b"fake-image-bytes", "image/jpeg")},
    )

    assert r.status_code == 201
    data = r.json()
    assert data["receipt"]["ai_verification_status"] == "pending"
    assert data["verification"]["api_configured"] is False
    assert data["verification"]["analysis"]["recommendation"] == "review"


def test_receipt_upload_and_cached_analysis(client, monkeypatch):
    monkeypatch.setattr(form_recognizer, "is_configured", lambda: True)
    monkeypatch.setattr(form_recognizer, "extract_receipt_fields", lambda file_bytes: ExtractedReceipt(
        vendor="Staples", total=108.25, transaction_date="2026-10-15", confidence=0.95,
    ))
    request_id = submit(client).json()["request"]["id"]

    r = client.post(
        f"/requests/{request_id}/receipts",
        files={"file": ("receipt.jpg", b"fake-image-bytes", "image/jpeg")},
    )
    assert r.status_code == 201
    receipt = r.json()["receipt"]
    assert receipt["ai_verification_status"] == "verified"

    r = client.post(
        f"/receipts/{receipt['id']}/analyze",
        files={"file": ("receipt.jpg", b"fake-image-bytes", "image/jpeg")},
    )
    assert r.status_code == 200
    assert r.json()["verification"]["cached"] is True

    r = client.get(f"/receipts/{receipt['id']}/analysis")
    assert r.status_code == 200
    assert r.json()["recommendation"] == "approve"

    r = client.get(f"/requests/{request_id}/receipts")
    assert [x["id"] for x in r.json()] == [receipt["id"]]


def test_empty_receipt_rejected(client):
    request_id = submit(client).json()["request"]["id"]
    r = client.post(
        f"/requests/{request_id}/receipts",
        files={"file": ("receipt.jpg", b"", "image/jpeg")},
    )
    assert r.status_code == 422


def test_receipt_for_unknown_request(client):
    r = client.post("/requests/missing/receipts", files={"file": ("r.jpg", b"x", "image/jpeg")})
    assert r.status_code == 404


def test_missing_analysis(client):
    assert client.get("/receipts/unknown/analysis").status_code == 404


def test_receipt_status(client, monkeypatch):
    monkeypatch.setattr(settings, "az_di_endpoint", None)
    monkeypatch.setattr(settings, "az_di_api_key", None)
    r = client.get("/receipts/status")
    assert r.json() == {"configured": False, "endpoint_prefix": None}


def test_form_options(client):
    r = client.get("/requests/form-options")
    assert r.status_code == 200
    data = r.json()
    assert "Gift Cards" in data["categories"]
    assert "Gift Cards" in data["prohibited_categories"]
    assert {"value": "time_sensitivity", "label": "Purchase required immediately"} in data["po_bypass_reasons"]
    assert data["no_approval_threshold"] == 500


def test_clear_cached_analysis(client, monkeypatch):
    monkeypatch.setattr(form_recognizer, "is_configured", lambda: True)
    monkeypatch.setattr(form_recognizer, "extract_receipt_fields", lambda file_bytes: ExtractedReceipt(
        vendor="Staples", total=108.25, transaction_date="2026-10-15", confidence=0.95,
    ))
    request_id = submit(client).json()["request"]["id"]
    receipt_id = client.post(
        f"/requests/{request_id}/receipts",
        files={"file": ("receipt.jpg", b"fake-image-bytes", "image/jpeg")},
    ).json()["receipt"]["id"]

    assert client.delete(f"/receipts/{receipt_id}/analysis").status_code == 204
    assert client.get(f"/receipts/{receipt_id}/analysis").status_code == 404
    assert client.delete(f"/receipts/{receipt_id}/analysis").status_code == 404

    r = client.post(
        f"/receipts/{receipt_id}/analyze",
        files={"file": ("receipt.jpg", b"fake-image-bytes", "image/jpeg")},
    )
    assert r.json()["verification"]["cached"] is False
