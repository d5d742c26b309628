"""
Unit tests for the purchase request policy checklist.
"""

import pytest

from pcard_approvals.models.checklist import ChecklistItemId
from pcard_approvals.services.validation import (
    PurchaseRequestValidator,
    ValidationInput,
    format_bypass_reason,
    validate_purchase_request,
)


def make_input(**overrides) -> dict:
    data = {
        "total_amount": 100,
        "category": "Office Supplies",
        "is_software_subscription": False,
        "it_license_confirmed": False,
        "is_preferred_vendor": False,
        "po_bypass_reason": None,
        "po_bypass_explanation": None,
    }
    data.update(overrides)
    return data


def item(result, item_id):
    matches = [i for i in result.checklist if i.id == item_id]
    return matches[0] if matches else None


class TestSmallPurchases:

    def test_under_500_is_valid(self):
        result = validate_purchase_request(make_input())

        assert result.is_valid is True
        assert not any(i.status == "fail" and i.required for i in result.checklist)
        assert result.required_approvers == []

    def test_under_500_has_no_po_or_approval_items(self):
        result = validate_purchase_request(make_input())

        ids = [i.id for i in result.checklist]
        assert ids == [
            ChecklistItemId.AMOUNT_UNDER_500,
            ChecklistItemId.NOT_SPLIT_TRANSACTION,
            ChecklistItemId.NOT_PROHIBITED,
            ChecklistItemId.PREFERRED_VENDOR,
        ]

    def test_amount_item_passes_at_500(self):
        result = validate_purchase_request(make_input(total_amount=500))

        amount = item(result, ChecklistItemId.AMOUNT_UNDER_500)
        assert amount.status == "pass"
        assert amount.required is False
        assert amount.message == "Amount is within the standard limit"


class TestPOBypass:

    def test_over_500_without_reason_is_invalid(self):
        result = validate_purchase_request(make_input(total_amount=600))

        po = item(result, ChecklistItemId.PO_RULED_OUT)
        assert po.status == "fail"
        assert po.required is True
        assert po.message == "You must provide a reason for not using the PO system"
        assert result.is_valid is False

    def test_amount_item_warns_over_500(self):
        result = validate_purchase_request(make_input(total_amount=600))

        amount = item(result, ChecklistItemId.AMOUNT_UNDER_500)
        assert amount.status == "warning"
        assert amount.message == "Amount exceeds $500, approval required before charging"

    def test_empty_reason_counts_as_missing(self):
        result = validate_purchase_request(make_input(total_amount=600, po_bypass_reason=""))
        assert item(result, ChecklistItemId.PO_RULED_OUT).status == "fail"

    @pytest.mark.parametrize("reason,label", [
        ("vendor_limitations", "Vendor does not accept POs or does not have wire capabilities"),
        ("time_sensitivity", "Purchase required immediately"),
        ("other", "Other reason (see explanation)"),
        ("supplier_portal_down", "supplier_portal_down"),
    ])
    def test_reason_labels(self, reason, label):
        result = validate_purchase_request(make_input(total_amount=600, po_bypass_reason=reason))

        po = item(result, ChecklistItemId.PO_RULED_OUT)
        assert po.status == "pass"
        assert po.message == f"PO bypassed: {label}"
        assert format_bypass_reason(reason) == label

    def test_explanation_content_not_checked(self):
        result = validate_purchase_request(make_input(
            total_amount=600, po_bypass_reason="other", po_bypass_explanation=""
        ))
        assert result.is_valid is True


class TestProhibitedCategories:

    @pytest.mark.parametrize("category", [
        "Technology Hardware", "Travel - Air", "Travel - Rail", "Gift Cards",
    ])
    def test_prohibited_category_fails(self, category):
        result = validate_purchase_request(make_input(category=category))

        prohibited = item(result, ChecklistItemId.NOT_PROHIBITED)
        assert prohibited.status == "fail"
        assert prohibited.message == f'"{category}" is a prohibited category and cannot be purchased on P-Card'
        assert result.is_valid is False

    def test_gift_cards_fail_regardless_of_other_fields(self):
        result = validate_purchase_request(make_input(
            total_amount=2000,
            category="Gift Cards",
            po_bypass_reason="time_sensitivity",
            is_preferred_vendor=True,
        ))
        assert item(result, ChecklistItemId.NOT_PROHIBITED).status == "fail"
        assert result.is_valid is False

    def test_match_is_case_sensitive(self):
        result = validate_purchase_request(make_input(category="gift cards"))
        assert item(result, ChecklistItemId.NOT_PROHIBITED).status == "pass"

    def test_unknown_category_is_allowed(self):
        result = validate_purchase_request(make_input(category="Submarines"))

        prohibited = item(result, ChecklistItemId.NOT_PROHIBITED)
        assert prohibited.status == "pass"
        assert prohibited.message == "Category is allowed"

    def test_custom_prohibited_list(self):
        validator = PurchaseRequestValidator(prohibited_categories=["Alcohol"])
        result = validator.evaluate(ValidationInput(**make_input(category="Alcohol")))
        assert result.is_valid is False


class TestSoftwareLicense:

    def test_unconfirmed_license_warns(self):
        result = validate_purchase_request(make_input(is_software_subscription=True))

        license_item = item(result, ChecklistItemId.SOFTWARE_LICENSE_CHECK)
        assert license_item.status == "warning"
        assert license_item.required is False
        assert result.is_valid is True

    def test_confirmed_license_passes(self):
        result = validate_purchase_request(make_input(
            is_software_subscription=True, it_license_confirmed=True
        ))
        assert item(result, ChecklistItemId.SOFTWARE_LICENSE_CHECK).status == "pass"

    def test_not_checked_over_500(self):
        result = validate_purchase_request(make_input(
            total_amount=800, is_software_subscription=True, po_bypass_reason="other"
        ))
        assert item(result, ChecklistItemId.SOFTWARE_LICENSE_CHECK) is None


class TestApprovalItems:

    @pytest.mark.parametrize("total,item_id,approvers", [
        (500.01, ChecklistItemId.APPROVAL_501_1499, ["Merrill Raman"]),
        (500.50, ChecklistItemId.APPROVAL_501_1499, ["Merrill Raman"]),
        (1499.50, ChecklistItemId.APPROVAL_1500_PLUS, ["Merrill Raman", "Ryan Greene"]),
        (100000.01, ChecklistItemId.APPROVAL_1500_PLUS, ["Merrill Raman", "Ryan Greene", "CEO"]),
    ])
    def test_fractional_totals(self, total, item_id, approvers):
        result = validate_purchase_request(make_input(total_amount=total, po_bypass_reason="other"))

        assert item(result, item_id).status == "pending"
        assert [a.name for a in result.required_approvers] == approvers
        other = (
            ChecklistItemId.APPROVAL_1500_PLUS if item_id == ChecklistItemId.APPROVAL_501_1499
            else ChecklistItemId.APPROVAL_501_1499
        )
        assert item(result, other) is None

    def test_501_to_1499_needs_department_head(self):
        result = validate_purchase_request(make_input(total_amount=501, po_bypass_reason="other"))

        approval = item(result, ChecklistItemId.APPROVAL_501_1499)
        assert approval.status == "pending"
        assert approval.required is True
        assert approval.message == "Requires approval from Merrill Raman (Department Head)"
        assert item(result, ChecklistItemId.APPROVAL_1500_PLUS) is None
        assert [a.name for a in result.required_approvers] == ["Merrill Raman"]

    def test_2000_with_reason_is_valid_but_pending(self):
        result = validate_purchase_request(make_input(
            total_amount=2000, po_bypass_reason="time_sensitivity"
        ))

        approval = item(result, ChecklistItemId.APPROVAL_1500_PLUS)
        assert approval.status == "pending"
        assert approval.message == "Requires approval from Merrill Raman and Ryan Greene"
        assert result.is_valid is True
        assert [(a.name, a.order) for a in result.required_approvers] == [
            ("Merrill Raman", 1),
            ("Ryan Greene", 2),
        ]

    def test_over_100k_adds_ceo(self):
        result = validate_purchase_request(make_input(
            total_amount=100001, po_bypass_reason="vendor_limitations"
        ))

        approval = item(result, ChecklistItemId.APPROVAL_1500_PLUS)
        assert approval.message == "Requires approval from Merrill Raman, Ryan Greene, and CEO"
        assert [a.order for a in result.required_approvers] == [1, 2, 3]

    def test_checklist_order_over_threshold(self):
        result = validate_purchase_request(make_input(total_amount=1500, po_bypass_reason="other"))

        assert [i.id.value for i in result.checklist] == [
            "amount_under_500",
            "po_ruled_out",
            "not_split_transaction",
            "not_prohibited",
            "approval_1500_plus",
            "preferred_vendor",
        ]


class TestAdvisoryItems:

    def test_split_transaction_always_passes(self):
        for amount in (10, 499, 5000):
            result = validate_purchase_request(make_input(total_amount=amount, po_bypass_reason="other"))
            split = item(result, ChecklistItemId.NOT_SPLIT_TRANSACTION)
            assert split.status == "pass"
            assert split.required is True

    def test_preferred_vendor(self):
        result = validate_purchase_request(make_input(is_preferred_vendor=True))
        assert item(result, ChecklistItemId.PREFERRED_VENDOR).status == "pass"

        result = validate_purchase_request(make_input(is_preferred_vendor=False))
        vendor = item(result, ChecklistItemId.PREFERRED_VENDOR)
        assert vendor.status == "warning"
        assert vendor.message == "Consider using a preferred vendor for better pricing"

    def test_warnings_never_block(self):
        result = validate_purchase_request(make_input(
            total_amount=700,
            po_bypass_reason="other",
            is_preferred_vendor=False,
        ))
        assert any(i.status == "warning" for i in result.checklist)
        assert any(i.status == "pending" for i in result.checklist)
        assert result.is_valid is True


class TestDeterminism:

    def test_same_input_gives_equal_result(self):
        data = make_input(total_amount=2500, po_bypass_reason="vendor_limitations", category="Gift Cards")

        first = validate_purchase_request(data)
        second = validate_purchase_request(data)

        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_accepts_model_or_dict(self):
        data = make_input(total_amount=900, po_bypass_reason="other")
        assert validate_purchase_request(data) == validate_purchase_request(ValidationInput(**data))

    def test_negative_amount_is_not_rejected(self):
        result = validate_purchase_request(make_input(total_amount=-20))
        assert result.is_valid is True
        assert item(result, ChecklistItemId.AMOUNT_UNDER_500).status == "pass"
