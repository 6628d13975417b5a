"""Notification services: in-app notifications and email delivery."""

from __future__ import annotations

import logging
from typing import Iterable

from django.conf import settings  # type: ignore
from django.contrib.auth import get_user_model  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.db import transaction  # type: ignore

from .models import Notification

logger = logging.getLogger(__name__)


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(recipient_email: str, subject: str, message: str) -> bool:
    """
    Send one plain-text email.

    Returns:
        bool: True if the email was sent
    """
    try:
        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            fail_silently=False,
        )
        logger.info("Email sent to %s: %s", recipient_email, subject)
        return True

    except Exception as e:
        logger.error("Failed to send email to %s: %s", recipient_email, e, exc_info=True)
        return False


# ============================================================================
# IN-APP NOTIFICATIONS
# ============================================================================

class NotificationService:
    """
    Creates in-app notifications and queues their email copies.

    ``email`` defaults to ``SWAPS["NOTIFY_BY_EMAIL"]``.
    """

    def __init__(self, email: bool | None = None):
        if email is None:
            from apps.swaps.conf import notify_by_email

            email = notify_by_email()
        self.email = email

    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        *,
        kind: str = "general",
        payload: dict | None = None,
    ) -> Notification | None:
        """Create a notification for ``user_id``; unknown users are skipped."""
        if not get_user_model().objects.filter(pk=user_id).exists():
            logger.warning("Skipping notification %r for unknown user %s", kind, user_id)
            return None

        notification = Notification.objects.create(
            user_id=user_id,
            kind=kind,
            title=title,
            message=message,
            payload=payload or {},
        )
        logger.info("In-app notification %s created for user %s: %s", notification.pk, user_id, title)

        if self.email:
            from .tasks import send_notification_email

            transaction.on_commit(lambda: send_notification_email.delay(notification.pk))
        return notification

    def notify_many(
        self,
        user_ids: Iterable[int],
        title: str,
        message: str,
        *,
        kind: str = "general",
        payload: dict | None = None,
        exclude: Iterable[int] = (),
    ) -> list[Notification]:
        """Notify each distinct user once."""
        skipped = set(exclude)
        created = []
        for user_id in dict.fromkeys(user_ids):
            if user_id in skipped:
                continue
            notification = self.notify(user_id, title, message, kind=kind, payload=payload)
            if notification is not None:
                created.append(notification)
        return created
