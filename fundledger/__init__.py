"""
Fund Ledger - Source Package

The shared-finance core of the team dashboard: income distribution,
operating expenses, withdrawals and the balance ledger behind them.

DESIGN PRINCIPLES:
1. Money is an integer in the smallest currency unit
2. Every mutation is one atomic transaction
3. Fail closed - a rejected operation leaves no trace in the balances
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Fund Ledger Team"
