"""Read-only query package."""

from fundledger.queries.executor import LedgerQueries

__all__ = ["LedgerQueries"]
