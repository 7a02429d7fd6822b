"""Data generation jobs - lifecycle, progress, dispatch."""
