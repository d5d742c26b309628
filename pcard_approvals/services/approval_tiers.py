"""
Approval tier table for P-Card purchases.

One ordered table of amount brackets is the single source of truth for
both the human-readable tier label and the ordered approver chain. The
built-in table reproduces the company's current approver directory; deployments
can replace it with a JSON file (APPROVAL_TIERS_FILE) loaded at startup.
"""

import json
from pathlib import Path
from typing import Optional
from loguru import logger
from pydantic import BaseModel, model_validator

from ..models.checklist import ChecklistItemId


class RequiredApprover(BaseModel):
    name: str
    title: str
    email: str
    order: int


class ApprovalTier(BaseModel):
    """A bracket of amounts up to and including max_amount (None = unbounded)"""
    max_amount: float | None
    label: str
    approvers: list[RequiredApprover] = []
    checklist_item: ChecklistItemId | None = None


MERRILL_RAMAN = RequiredApprover(
    name="Merrill Raman",
    title="Department Head",
    email="merrill.raman@company.com",
    order=1,
)
RYAN_GREENE = RequiredApprover(
    name="Ryan Greene",
    title="Finance Director",
    email="ryan.greene@company.com",
    order=2,
)
CEO = RequiredApprover(
    name="CEO",
    title="Chief Executive Officer",
    email="ceo@company.com",
    order=3,
)


class ApprovalTierTable(BaseModel):
    """
    Ordered approval tiers, lowest bracket first.

    The first tier is the no-approval bracket; its max_amount is the
    self-approval threshold used by the checklist and by submission.
    Only the last tier may be unbounded.
    """
    tiers: list[ApprovalTier]

    @model_validator(mode="after")
    def _check_ordering(self):
        if not self.tiers:
            raise ValueError("Approval tier table must define at least one tier")

        bounds = [tier.max_amount for tier in self.tiers]
        if bounds[0] is None:
            raise ValueError("The no-approval tier must have a max_amount")
        if any(b is None for b in bounds[:-1]):
            raise ValueError("Only the last approval tier may be unbounded")

        finite = [b for b in bounds if b is not None]
        if finite != sorted(finite):
            raise ValueError("Approval tiers must be ordered by max_amount")
        return self

    @property
    def no_approval_threshold(self) -> float:
        return self.tiers[0].max_amount

    def tier_for(self, amount: float) -> ApprovalTier:
        for tier in self.tiers:
            if tier.max_amount is None or amount <= tier.max_amount:
                return tier
        # Table is bounded and amount exceeds every bracket
        return self.tiers[-1]

    def get_approval_tier(self, amount: float) -> str:
        return self.tier_for(amount).label

    def get_required_approvers(self, amount: float) -> list[RequiredApprover]:
        approvers = self.tier_for(amount).approvers
        return [a.model_copy() for a in sorted(approvers, key=lambda a: a.order)]

    def directory(self) -> list[RequiredApprover]:
        """Every distinct approver across all tiers, keyed by email"""
        seen = {}
        for tier in self.tiers:
            for approver in tier.approvers:
                seen.setdefault(approver.email.lower(), approver)
        return list(seen.values())

    def find_approver(self, email: str) -> Optional[RequiredApprover]:
        if not email:
            return None
        for approver in self.directory():
            if approver.email.lower() == email.strip().lower():
                return approver
        return None


DEFAULT_APPROVAL_TIERS = ApprovalTierTable(tiers=[
    ApprovalTier(
        max_amount=500,
        label="No approval required",
    ),
    ApprovalTier(
        max_amount=1499,
        label="$501 - $1,499: Merrill Raman only",
        approvers=[MERRILL_RAMAN],
        checklist_item=ChecklistItemId.APPROVAL_501_1499,
    ),
    # The next two labels differ but share one approver set; both are kept as-is
    ApprovalTier(
        max_amount=5000,
        label="$1,500 - $5,000: Merrill Raman + Ryan Greene",
        approvers=[MERRILL_RAMAN, RYAN_GREENE],
        checklist_item=ChecklistItemId.APPROVAL_1500_PLUS,
    ),
    ApprovalTier(
        max_amount=100000,
        label="$5,001 - $100,000: Merrill Raman + Ryan Greene",
        approvers=[MERRILL_RAMAN, RYAN_GREENE],
        checklist_item=ChecklistItemId.APPROVAL_1500_PLUS,
    ),
    ApprovalTier(
        max_amount=None,
        label="Over $100,000: Merrill Raman + Ryan Greene + CEO",
        approvers=[MERRILL_RAMAN, RYAN_GREENE, CEO],
        checklist_item=ChecklistItemId.APPROVAL_1500_PLUS,
    ),
])


def load_approval_tiers(path: str | None = None) -> ApprovalTierTable:
    """
    Load the approval tier table.

    Args:
        path: JSON file with a top-level "tiers" list. Defaults to the
              APPROVAL_TIERS_FILE setting; the built-in table is used
              when neither is set.

    Returns:
        ApprovalTierTable

    Raises:
        FileNotFoundError: configured file does not exist
        pydantic.ValidationError: file contents are not a valid table
    """
    if path is None:
        from ..core.config import settings
        path = settings.approval_tiers_file

    if not path:
        return DEFAULT_APPROVAL_TIERS

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    table = ApprovalTierTable.model_validate(raw)
    logger.info("Loaded approval tier table", path=path, tiers=len(table.tiers))
    return table


_approval_tiers: ApprovalTierTable | None = None


def get_approval_tiers() -> ApprovalTierTable:
    """Process-wide tier table, loaded on first use"""
    global _approval_tiers
    if _approval_tiers is None:
        _approval_tiers = load_approval_tiers()
    return _approval_tiers


def get_approval_tier(amount: float) -> str:
    """Human-readable approval tier label for a total amount."""
    return get_approval_tiers().get_approval_tier(amount)


def get_required_approvers(amount: float) -> list[RequiredApprover]:
    """Ordered approver chain for a total amount."""
    return get_approval_tiers().get_required_approvers(amount)
