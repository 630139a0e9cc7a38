"""Reconciliation rules configuration."""
