"""
Tests for the distribution calculator.

The calculator is pure, so these run without storage or an event loop.
"""

import pytest

from fundledger.errors import InsufficientRemainder, InvalidAmount, PrerequisiteMissing
from fundledger.ledger import (
    CATEGORY_SPLIT,
    REMAINDER_SPLIT,
    BucketShare,
    DistributionPolicy,
    bucket_targets,
    distribute,
    get_policy,
)
from fundledger.models import BalanceKind


ROSTER = ["Firdaus", "Faza", "Rafah", "Haikal"]


class TestRemainderSplit:
    """Tests for the default 40/30/30 policy."""

    def test_exact_split(self):
        """Expense 200000 and income 2000000 split without loss."""
        allocation = distribute(2_000_000, 200_000, REMAINDER_SPLIT, ROSTER)

        assert allocation.remainder == 1_800_000
        assert allocation.amount_for("emergency_fund") == 540_000
        assert allocation.amount_for("savings_fund") == 540_000
        per_head = [allocation.amount_for(name.lower()) for name in ROSTER]
        assert per_head == [180_000] * 4
        assert sum(per_head) == 720_000
        assert allocation.rounding_loss == 0
        assert allocation.total_allocated == allocation.remainder

    def test_rounding_loss_is_reported(self):
        """Floored shares leave a small unallocated remainder."""
        allocation = distribute(1_000_001, 1, REMAINDER_SPLIT, ROSTER)

        # 40% of 1000000 is 400000, 100000 each
        assert allocation.amount_for("firdaus") == 100_000
        assert allocation.amount_for("emergency_fund") == 300_000
        assert allocation.rounding_loss == 0

        allocation = distribute(1_010, 1, REMAINDER_SPLIT, ROSTER)
        # remainder 1009: 403 -> 100 each, 302, 302
        assert allocation.amount_for("haikal") == 100
        assert allocation.amount_for("savings_fund") == 302
        assert allocation.total_allocated == 1_004
        assert allocation.rounding_loss == 5

    def test_allocation_never_exceeds_remainder(self):
        """Sum of lines stays within the remainder for awkward amounts."""
        for gross in (7, 13, 99_999, 123_457, 10_000_001):
            allocation = distribute(gross, 1, REMAINDER_SPLIT, ROSTER)
            assert allocation.total_allocated <= allocation.remainder
            assert allocation.total_allocated + allocation.rounding_loss == allocation.remainder

    def test_is_deterministic(self):
        """Same inputs give the same allocation."""
        first = distribute(3_333_333, 111_111, REMAINDER_SPLIT, ROSTER)
        second = distribute(3_333_333, 111_111, REMAINDER_SPLIT, ROSTER)
        assert first == second


class TestCategorySplit:
    """Tests for the category policy with a per-head executive share."""

    def test_per_head_is_seven_and_a_half_percent(self):
        """30% across four people is 7.5% each."""
        allocation = distribute(1_100_000, 100_000, CATEGORY_SPLIT, ROSTER)

        assert allocation.amount_for("operations") == 400_000
        assert allocation.amount_for("reserve") == 100_000
        assert allocation.amount_for("leisure") == 100_000
        assert allocation.amount_for("rafah") == 75_000
        assert allocation.amount_for("executive_pay") == 0
        assert allocation.total_allocated == 900_000
        assert allocation.rounding_loss == 100_000

    def test_bucket_targets(self):
        """Targets cover the categories and every participant."""
        targets = bucket_targets(CATEGORY_SPLIT, ROSTER)
        assert set(targets) == {"operations", "reserve", "leisure", "firdaus", "faza", "rafah", "haikal"}
        assert targets["faza"] == ("Faza", BalanceKind.PARTICIPANT)


class TestDistributionErrors:
    """Tests for rejected inputs."""

    def test_no_expense_is_prerequisite_missing(self):
        with pytest.raises(PrerequisiteMissing):
            distribute(100_000, 0, REMAINDER_SPLIT, ROSTER)

    @pytest.mark.parametrize("gross,expense", [(200_000, 200_000), (100_000, 250_000)])
    def test_expenses_consuming_income(self, gross, expense):
        with pytest.raises(InsufficientRemainder) as exc_info:
            distribute(gross, expense, REMAINDER_SPLIT, ROSTER)
        assert exc_info.value.period_expense_total == expense

    @pytest.mark.parametrize("value", [-1, 1.5, "100", True])
    def test_malformed_amounts(self, value):
        with pytest.raises(InvalidAmount):
            distribute(value, 1, REMAINDER_SPLIT, ROSTER)

    def test_split_share_needs_roster(self):
        with pytest.raises(ValueError):
            distribute(1_000, 1, REMAINDER_SPLIT, [])


class TestPolicies:
    """Tests for policy definitions."""

    def test_lookup_by_name(self):
        assert get_policy("remainder_split") is REMAINDER_SPLIT
        assert get_policy("category_split") is CATEGORY_SPLIT

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            get_policy("merged")

    def test_over_allocating_policy_is_rejected(self):
        """A policy may not hand out more than the whole remainder."""
        with pytest.raises(ValueError):
            DistributionPolicy(
                name="too_generous",
                shares=(
                    BucketShare(bucket_id="a", label="A", kind=BalanceKind.CATEGORY, basis_points=6_000),
                    BucketShare(bucket_id="b", label="B", kind=BalanceKind.CATEGORY, basis_points=5_000),
                ),
            )
