"""Projects - team-scoped containers for jobs and datasets."""
