"""Ledger package: distribution math and the transactional engine."""

from fundledger.ledger.distribution import (
    CATEGORY_SPLIT,
    POLICIES,
    REMAINDER_SPLIT,
    BucketShare,
    DistributionPolicy,
    bucket_targets,
    distribute,
    get_policy,
)
from fundledger.ledger.engine import LedgerEngine, accounting_period

__all__ = [
    "CATEGORY_SPLIT",
    "POLICIES",
    "REMAINDER_SPLIT",
    "BucketShare",
    "DistributionPolicy",
    "LedgerEngine",
    "accounting_period",
    "bucket_targets",
    "distribute",
    "get_policy",
]
