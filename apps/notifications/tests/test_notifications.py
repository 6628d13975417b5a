"""Notification service, email delivery task and API."""

from __future__ import annotations

import pytest
from django.core import mail
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from apps.notifications.models import Notification
from apps.notifications.services import NotificationService
from apps.notifications.tasks import send_notification_email

pytestmark = pytest.mark.django_db


@pytest.fixture
def service():
    return NotificationService(email=False)


def test_notify_creates_in_app_notification(service, owner):
    notification = service.notify(
        owner.id, "New proposal", "Someone made an offer", kind="proposal_submitted", payload={"swap_id": "x"}
    )

    assert notification.user == owner
    assert notification.kind == "proposal_submitted"
    assert notification.payload == {"swap_id": "x"}
    assert not notification.is_read


def test_unknown_user_is_skipped(service):
    assert service.notify(987654, "Lost", "Nobody home") is None
    assert not Notification.objects.exists()


def test_notify_many_dedupes_and_excludes(service, owner, proposer, bidder):
    created = service.notify_many(
        [owner.id, proposer.id, owner.id, bidder.id],
        "Swap accepted",
        "The swap moved to accepted",
        kind="swap_status",
        exclude=[bidder.id],
    )

    assert [n.user_id for n in created] == [owner.id, proposer.id]


def test_email_copy_is_sent_after_commit(owner, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        NotificationService(email=True).notify(owner.id, "Swap completed", "Enjoy your stay")

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == [owner.email]
    assert mail.outbox[0].subject == "Swap completed"


def test_email_task_handles_missing_notification():
    assert send_notification_email(424242) is False
    assert mail.outbox == []


def test_email_task_skips_users_without_address(service, make_user):
    user = make_user(email="")
    notification = service.notify(user.id, "Hello", "No inbox")

    assert send_notification_email(notification.pk) is False


def test_user_sees_and_marks_own_notifications(service, owner, proposer):
    mine = service.notify(owner.id, "Mine", "For the owner")
    service.notify(proposer.id, "Theirs", "For the proposer")
    client = APIClient()
    client.force_authenticate(owner)

    listing = client.get(reverse("notification-list"))
    assert listing.status_code == status.HTTP_200_OK
    assert [item["id"] for item in listing.data] == [mine.id]

    response = client.post(reverse("notification-mark-read", args=[mine.id]))
    assert response.status_code == status.HTTP_200_OK
    mine.refresh_from_db()
    assert mine.is_read


def test_mark_all_read(service, owner):
    service.notify(owner.id, "One", "First")
    service.notify(owner.id, "Two", "Second")
    client = APIClient()
    client.force_authenticate(owner)

    response = client.post(reverse("notification-mark-all-read"))

    assert response.data == {"updated": 2}
    assert not Notification.objects.filter(user=owner, is_read=False).exists()
