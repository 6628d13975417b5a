"""Notifications app package.

Stores in-app notifications about swap activity and optionally delivers
them by email through a Celery task.
"""
