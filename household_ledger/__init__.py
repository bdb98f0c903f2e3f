"""
Household Ledger - Source Package

Reconciliation and recurring-obligation engine for a household
personal-finance tracker.

DESIGN PRINCIPLES:
1. Money is integer cents, always
2. Multi-record writes are one batch or nothing
3. No balance without a registered opening balance
4. Failures are returned, never thrown across the core boundary
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Ledger Team"
