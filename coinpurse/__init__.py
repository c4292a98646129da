"""
Coinpurse - Source Package

A personal finance tracker: income and expenses in several currencies,
per-category budgets with email alerts, and a live Bitcoin price that
keeps SATS amounts comparable with fiat ones.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. One rate snapshot per answer
3. Price providers fail; the tracker keeps working on the last good price
4. A saved transaction is never undone by what happens after the save
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Coinpurse Team"
