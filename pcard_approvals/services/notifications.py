import json
import httpx
from ..core.config import settings
from ..models.purchase_request import PurchaseRequest
from .approval_tiers import RequiredApprover

# Approval request notification: post an Adaptive Card to a Teams Incoming Webhook.
# Approvers act on the request through the review page linked from the card.

ADAPTIVE_CARD_TEMPLATE = {
    "type": "message",
    "attachments": [{
        "contentType": "application/vnd.microsoft.card.adaptive",
        "content": {
            "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
            "type": "AdaptiveCard",
            "version": "1.4",
            "body": [
                {"type": "TextBlock", "weight": "Bolder", "size": "Medium", "text": "P-Card Approval Request"},
                {"type": "FactSet", "facts": []},
                {"type": "TextBlock", "wrap": True, "text": ""}
            ],
            "actions": [
                {"type": "Action.OpenUrl", "title": "Review", "url": "https://example.com/review"}
            ]
        }
    }]
}


async def post_approval_card(
    request: PurchaseRequest,
    approvers: list[RequiredApprover],
    tier_label: str,
) -> dict:
    if not settings.teams_webhook_url:
        return {"status": "skipped", "reason": "TEAMS_WEBHOOK_URL not set"}

    base_url = settings.api_base_url

    card = json.loads(json.dumps(ADAPTIVE_CARD_TEMPLATE))
    content = card["attachments"][0]["content"]
    facts = content["body"][1]["facts"]
    facts.append({"title": "Cardholder", "value": request.cardholder_name})
    facts.append({"title": "Vendor", "value": request.vendor_name})
    facts.append({"title": "Category", "value": request.category})
    facts.append({"title": "Total", "value": f"{request.currency} {request.total_amount:,.2f}"})
    facts.append({"title": "Approval tier", "value": tier_label})
    if request.business_purpose:
        facts.append({"title": "Purpose", "value": request.business_purpose})

    content["body"][2]["text"] = "Required approvers: " + ", ".join(
        f"{a.order}. {a.name} ({a.title})" for a in approvers
    )

    content["actions"] = [
        {
            "type": "Action.OpenUrl",
            "title": "Review",
            "url": f"{base_url}/requests/{request.id}/review"
        }
    ]

    async with httpx.AsyncClient(timeout=10) as client:
        r = await client.post(settings.teams_webhook_url, json=card)
        return {"status": "sent", "http_status": r.status_code}
