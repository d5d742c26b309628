"""
P-Card purchase request policy checklist.

Evaluates a request against the P-Card policy and returns a checklist of
rule results plus the approver chain for its amount. The same evaluation
runs while the employee fills in the form, when the request is submitted,
and read-only when an approver reviews it, so it must stay pure: no I/O,
no exceptions, identical input gives an identical result.

"Valid" means "not policy-violating". Pending approval items never block
validity; collecting the approvers' signatures is tracked separately on
the persisted request.
"""

from loguru import logger
from pydantic import BaseModel

from ..models.checklist import ChecklistItem, ChecklistItemId
from .approval_tiers import ApprovalTierTable, RequiredApprover, get_approval_tiers


PROHIBITED_CATEGORIES = [
    "Technology Hardware",
    "Travel - Air",
    "Travel - Rail",
    "Gift Cards",
]

BYPASS_REASON_LABELS = {
    "vendor_limitations": "Vendor does not accept POs or does not have wire capabilities",
    "time_sensitivity": "Purchase required immediately",
    "other": "Other reason (see explanation)",
}


class ValidationInput(BaseModel):
    """Request attributes the checklist depends on"""
    total_amount: float
    category: str = ""
    is_software_subscription: bool = False
    it_license_confirmed: bool = False
    is_preferred_vendor: bool = False
    po_bypass_reason: str | None = None
    po_bypass_explanation: str | None = None  # accepted, content not checked


class ValidationResult(BaseModel):
    is_valid: bool
    checklist: list[ChecklistItem]
    required_approvers: list[RequiredApprover]


def format_bypass_reason(reason: str) -> str:
    """Human label for a PO bypass reason code; unknown codes pass through."""
    return BYPASS_REASON_LABELS.get(reason, reason)


def _join_names(names: list[str]) -> str:
    if len(names) <= 1:
        return "".join(names)
    if len(names) == 2:
        return f"{names[0]} and {names[1]}"
    return ", ".join(names[:-1]) + f", and {names[-1]}"


class PurchaseRequestValidator:
    """
    Builds the policy checklist for a purchase request.

    Rules, in display order:
    1. amount_under_500 (advisory)
    2. po_ruled_out (required, only above the no-approval threshold)
    3. not_split_transaction (required, always passes: no automated detection)
    4. not_prohibited (required)
    5. software_license_check (advisory, software subscriptions at or under the threshold)
    6. approval_501_1499 / approval_1500_plus (required, always pending)
    7. preferred_vendor (advisory)

    Only a failing required item makes the request invalid.
    """

    def __init__(self, tiers: ApprovalTierTable = None, prohibited_categories: list[str] = None):
        self.tiers = tiers or get_approval_tiers()
        self.prohibited_categories = (
            prohibited_categories if prohibited_categories is not None else PROHIBITED_CATEGORIES
        )

    def evaluate(self, data: ValidationInput) -> ValidationResult:
        total = data.total_amount
        threshold = self.tiers.no_approval_threshold
        tier = self.tiers.tier_for(total)
        required_approvers = self.tiers.get_required_approvers(total)
        checklist: list[ChecklistItem] = []

        within_limit = total <= threshold
        checklist.append(ChecklistItem(
            id=ChecklistItemId.AMOUNT_UNDER_500,
            question="Is the total amount, including tax and shipping, $500 or less?",
            status="pass" if within_limit else "warning",
            message=(
                "Amount is within the standard limit"
                if within_limit
                else "Amount exceeds $500, approval required before charging"
            ),
            required=False,
        ))

        if not within_limit:
            reason = data.po_bypass_reason
            checklist.append(ChecklistItem(
                id=ChecklistItemId.PO_RULED_OUT,
                question=(
                    "Has the Purchase Order (PO) system been ruled out due to vendor "
                    "or system limitations?"
                ),
                status="pass" if reason else "fail",
                message=(
                    f"PO bypassed: {format_bypass_reason(reason)}"
                    if reason
                    else "You must provide a reason for not using the PO system"
                ),
                required=True,
            ))

        # Policy statement only; split transactions are not detected here
        checklist.append(ChecklistItem(
            id=ChecklistItemId.NOT_SPLIT_TRANSACTION,
            question=(
                'Is this a single, complete purchase rather than a "split" transaction '
                "designed to stay under the $500 limit?"
            ),
            status="pass",
            message="This is a single complete purchase",
            required=True,
        ))

        # Exact, case-sensitive match; unknown categories are allowed
        is_prohibited = data.category in self.prohibited_categories
        checklist.append(ChecklistItem(
            id=ChecklistItemId.NOT_PROHIBITED,
            question=(
                "Is the item a prohibited category, such as technology hardware "
                "(laptops/phones), travel (air/rail), or a gift card?"
            ),
            status="fail" if is_prohibited else "pass",
            message=(
                f'"{data.category}" is a prohibited category and cannot be purchased on P-Card'
                if is_prohibited
                else "Category is allowed"
            ),
            required=True,
        ))

        if data.is_software_subscription and within_limit:
            checklist.append(ChecklistItem(
                id=ChecklistItemId.SOFTWARE_LICENSE_CHECK,
                question=(
                    "If this is a software subscription under $500, have you confirmed with "
                    "the IT Business Partner or Procurement that an enterprise license "
                    "doesn't already exist?"
                ),
                status="pass" if data.it_license_confirmed else "warning",
                message=(
                    "Confirmed no enterprise license exists"
                    if data.it_license_confirmed
                    else "Please confirm with IT that an enterprise license is not available"
                ),
                required=False,
            ))

        if tier.checklist_item is not None and required_approvers:
            checklist.append(self._approval_item(tier.checklist_item, required_approvers))

        checklist.append(ChecklistItem(
            id=ChecklistItemId.PREFERRED_VENDOR,
            question=(
                "Are you using a preferred vendor to ensure the company is getting "
                "competitive pricing?"
            ),
            status="pass" if data.is_preferred_vendor else "warning",
            message=(
                "Using a preferred vendor"
                if data.is_preferred_vendor
                else "Consider using a preferred vendor for better pricing"
            ),
            required=False,
        ))

        is_valid = not any(item.status == "fail" and item.required for item in checklist)

        logger.debug(
            "Purchase request checklist evaluated",
            total_amount=total,
            category=data.category,
            is_valid=is_valid,
            failing=[item.id.value for item in checklist if item.status == "fail"],
        )

        return ValidationResult(
            is_valid=is_valid,
            checklist=checklist,
            required_approvers=required_approvers,
        )

    @staticmethod
    def _approval_item(item_id: ChecklistItemId, approvers: list[RequiredApprover]) -> ChecklistItem:
        # Approval state lives on the persisted request, so these are always pending
        if item_id == ChecklistItemId.APPROVAL_501_1499:
            first = approvers[0]
            return ChecklistItem(
                id=item_id,
                question=(
                    "If the purchase is between $501 and $1,499, do you have a signed "
                    "Exception Approval Form from Merrill Raman?"
                ),
                status="pending",
                message=f"Requires approval from {first.name} ({first.title})",
                required=True,
            )

        return ChecklistItem(
            id=item_id,
            question=(
                "If the purchase is $1,500 or higher, do you have the additional required "
                "signatures from Ryan Greene (and potentially the CEO if over $100k)?"
            ),
            status="pending",
            message="Requires approval from " + _join_names([a.name for a in approvers]),
            required=True,
        )


def validate_purchase_request(data: ValidationInput | dict, tiers: ApprovalTierTable = None) -> ValidationResult:
    """
    Evaluate a purchase request against the P-Card policy.

    Args:
        data: ValidationInput or a dict with the same keys
        tiers: Approval tier table (defaults to the configured table)

    Returns:
        ValidationResult with is_valid, checklist and required_approvers
    """
    if isinstance(data, dict):
        data = ValidationInput(**data)
    return PurchaseRequestValidator(tiers).evaluate(data)
