"""Celery workers and scheduled tasks."""
