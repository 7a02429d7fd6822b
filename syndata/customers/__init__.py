"""Customer accounts (admin console)."""
