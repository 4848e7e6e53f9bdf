"""
Payledger - Source Package

Ledger transaction engine for account-to-account transfers entered by
form, QR code or NFC tap, plus spend/income statistics over the ledger.

DESIGN PRINCIPLES:
1. Money is integer minor units, never floats
2. Validate before mutating, fail visibly after
3. Every settlement reaches a terminal status
4. Balance writes are conditional on the value read
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Payledger Team"
