"""
Waterfall - Source Package

Deterministic money allocation for envelope-style budgeting.
A fixed amount of money (integer cents) is walked through an ordered
list of rules and split across accounts, budget categories and
savings goals.

DESIGN PRINCIPLES:
1. Resolve is pure: rules + snapshot in, results out
2. Apply is separate and additive
3. No silent corrections to the user's configuration
4. Every preview and execution is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Waterfall Team"
