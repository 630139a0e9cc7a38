"""Command-line entry points for reconciliation and credit history comparison."""
