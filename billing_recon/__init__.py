"""Utility-billing reconciliation and credit-flow derivation engine."""

__version__ = "0.1.0"
