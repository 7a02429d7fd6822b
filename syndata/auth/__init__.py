"""Authentication - users, tokens, sessions."""
