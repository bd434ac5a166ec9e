"""
Distribution Calculator

Pure allocation math: no storage, no clock, no logging. Given the gross
income and the period's expense total it returns the same Allocation
every time.

DESIGN DECISION: Percentages are held in basis points so a per-head
share such as 7.5% stays integer arithmetic. Every share is floored;
whatever flooring leaves over is reported as `rounding_loss` and is
credited to no bucket.
"""

from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field

from fundledger.errors import InsufficientRemainder, InvalidAmount, PrerequisiteMissing
from fundledger.models.ledger import (
    EMERGENCY_FUND_ID,
    SAVINGS_FUND_ID,
    Allocation,
    AllocationLine,
    BalanceKind,
    participant_id,
)


class BucketShare(BaseModel):
    """
    One slice of the remainder.

    When `split_across_roster` is set the slice is divided evenly between
    the participants instead of being credited to `bucket_id`.
    """
    model_config = ConfigDict(frozen=True)

    bucket_id: str
    label: str
    kind: BalanceKind
    basis_points: int = Field(gt=0, le=10_000)
    split_across_roster: bool = False


class DistributionPolicy(BaseModel):
    """A named, fixed set of shares that sum to at most 100%."""
    model_config = ConfigDict(frozen=True)

    name: str
    shares: tuple[BucketShare, ...]

    def model_post_init(self, __context) -> None:
        total = sum(share.basis_points for share in self.shares)
        if total > 10_000:
            raise ValueError(f"Policy {self.name} allocates {total / 100}% of the remainder")


REMAINDER_SPLIT = DistributionPolicy(
    name="remainder_split",
    shares=(
        BucketShare(
            bucket_id="executive_pay",
            label="Executive Pay",
            kind=BalanceKind.PARTICIPANT,
            basis_points=4_000,
            split_across_roster=True,
        ),
        BucketShare(
            bucket_id=EMERGENCY_FUND_ID,
            label="Emergency Fund",
            kind=BalanceKind.EMERGENCY_FUND,
            basis_points=3_000,
        ),
        BucketShare(
            bucket_id=SAVINGS_FUND_ID,
            label="Savings Fund",
            kind=BalanceKind.SAVINGS_FUND,
            basis_points=3_000,
        ),
    ),
)

CATEGORY_SPLIT = DistributionPolicy(
    name="category_split",
    shares=(
        BucketShare(bucket_id="operations", label="Operations", kind=BalanceKind.CATEGORY, basis_points=4_000),
        BucketShare(bucket_id="reserve", label="Reserve", kind=BalanceKind.CATEGORY, basis_points=1_000),
        BucketShare(bucket_id="leisure", label="Leisure", kind=BalanceKind.CATEGORY, basis_points=1_000),
        BucketShare(
            bucket_id="executive_pay",
            label="Executive Pay",
            kind=BalanceKind.PARTICIPANT,
            basis_points=3_000,
            split_across_roster=True,
        ),
    ),
)

POLICIES: dict[str, DistributionPolicy] = {
    REMAINDER_SPLIT.name: REMAINDER_SPLIT,
    CATEGORY_SPLIT.name: CATEGORY_SPLIT,
}


def get_policy(name: str) -> DistributionPolicy:
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown distribution policy: {name}") from None


def bucket_targets(policy: DistributionPolicy, roster: Sequence[str]) -> dict[str, tuple[str, BalanceKind]]:
    """Every balance id the policy can credit, mapped to (label, kind)."""
    targets = {}
    for share in policy.shares:
        if share.split_across_roster:
            for name in roster:
                targets[participant_id(name)] = (name, BalanceKind.PARTICIPANT)
        else:
            targets[share.bucket_id] = (share.label, share.kind)
    return targets


def distribute(
    gross_income: int,
    period_expense_total: int,
    policy: DistributionPolicy = REMAINDER_SPLIT,
    roster: Sequence[str] = (),
) -> Allocation:
    """
    Split what is left of an income after the period's expenses.

    Raises:
        InvalidAmount: Negative or non-integer inputs
        PrerequisiteMissing: No expense recorded in the period
        InsufficientRemainder: Expenses consume the whole income
    """
    for value in (gross_income, period_expense_total):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidAmount(f"Amounts must be non-negative integers, got {value!r}")

    if period_expense_total <= 0:
        raise PrerequisiteMissing()

    remainder = gross_income - period_expense_total
    if remainder <= 0:
        raise InsufficientRemainder(gross_income, period_expense_total)

    lines: list[AllocationLine] = []
    for share in policy.shares:
        amount = remainder * share.basis_points // 10_000

        if not share.split_across_roster:
            lines.append(AllocationLine(
                bucket_id=share.bucket_id,
                label=share.label,
                kind=share.kind,
                amount=amount,
            ))
            continue

        if not roster:
            raise ValueError(f"Policy {policy.name} needs a roster for {share.label}")
        # Inner remainder is dropped, not handed to anyone
        per_head = amount // len(roster)
        for name in roster:
            lines.append(AllocationLine(
                bucket_id=participant_id(name),
                label=name,
                kind=BalanceKind.PARTICIPANT,
                amount=per_head,
            ))

    allocated = sum(line.amount for line in lines)
    return Allocation(
        policy=policy.name,
        gross_amount=gross_income,
        period_expense_total=period_expense_total,
        remainder=remainder,
        lines=tuple(lines),
        rounding_loss=remainder - allocated,
    )
