"""Object storage for project buckets."""
