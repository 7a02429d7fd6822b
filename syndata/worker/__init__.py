"""Celery worker."""
