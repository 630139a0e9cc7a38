"""Reconciliation services: consumption, allocation, credit flow and billing stores."""
