"""Synthetic data generation platform API."""
