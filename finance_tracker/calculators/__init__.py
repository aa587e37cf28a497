"""Pure schedule and loan math. No database access."""
