"""
Credit Note Console - Source Package

A business-administration console for issuing credit notes to
trading partners.

DESIGN PRINCIPLES:
1. Identical input → byte-identical document
2. A document number is never issued twice
3. Money is Decimal end to end, rounded exactly once
4. Every issuance (and every burnt number) is auditable
5. Storage and dispatch layers are swappable
"""

__version__ = "1.0.0"
__author__ = "Credit Note Console Team"
