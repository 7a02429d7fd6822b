"""Admin access control."""
