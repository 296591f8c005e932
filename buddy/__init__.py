"""
Buddy - Personal Finance Tracker

Tracks expenses, incomes, account balances and investments per month, and
uses hosted language models to categorize bank transactions.

DESIGN PRINCIPLES:
1. AI suggests → Human reviews → Validator verifies → System saves
2. Fail early, fail visibly
3. Every mutation is auditable
4. Storage layer is swappable (local file or Google Sheets)
"""

__version__ = "1.0.0"
__author__ = "Buddy Team"
