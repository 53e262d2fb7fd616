"""Celery worker tasks."""
