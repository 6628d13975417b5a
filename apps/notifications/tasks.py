"""Celery tasks for notification delivery."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .models import Notification
from .services import send_email_notification

logger = logging.getLogger(__name__)


@shared_task(name="notifications.send_notification_email")
def send_notification_email(notification_id: int) -> bool:
    """Send the email copy of an in-app notification."""

    try:
        notification = Notification.objects.select_related("user").get(pk=notification_id)
    except Notification.DoesNotExist:
        logger.warning("Notification %s vanished before its email was sent", notification_id)
        return False

    if not notification.user.email:
        return False

    return send_email_notification(
        recipient_email=notification.user.email,
        subject=notification.title,
        message=notification.message,
    )
