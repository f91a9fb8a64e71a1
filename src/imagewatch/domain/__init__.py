"""Registry reconciliation domain."""
