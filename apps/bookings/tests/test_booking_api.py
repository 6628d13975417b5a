"""Integration tests for booking listing endpoints."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking

User = get_user_model()


class BookingAPITests(APITestCase):
    """Covers listing, browsing and withdrawing bookings."""

    def setUp(self) -> None:
        self.owner = User.objects.create_user(username="owner", email="owner@example.com", password="OwnerPass123")
        self.guest = User.objects.create_user(username="guest", email="guest@example.com", password="GuestPass123")
        self.client.force_authenticate(self.owner)
        self.list_url = reverse("booking-list")

    def _payload(self, check_in: date, check_out: date, **overrides) -> dict:
        payload = {
            "title": "Canal house in Amsterdam",
            "booking_type": "vacation_rental",
            "city": "Amsterdam",
            "country": "Netherlands",
            "check_in": str(check_in),
            "check_out": str(check_out),
            "original_price": "900.00",
            "swap_value": "850.00",
            "currency": "eur",
            "capacity": 4,
            "amenities": ["wifi", "bikes"],
        }
        payload.update(overrides)
        return payload

    def test_owner_can_list_booking(self) -> None:
        check_in = date.today() + timedelta(days=30)

        response = self.client.post(self.list_url, self._payload(check_in, check_in + timedelta(days=5)), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        booking = Booking.objects.get(pk=response.data["id"])
        self.assertEqual(booking.owner, self.owner)
        self.assertEqual(booking.currency, "EUR")
        self.assertEqual(booking.swap_value, Decimal("850.00"))
        self.assertEqual(response.data["starts_on"], str(check_in))
        self.assertEqual(response.data["status"], "available")

    def test_event_booking_uses_event_date(self) -> None:
        event_date = date.today() + timedelta(days=45)
        payload = {
            "title": "Two tickets, front row",
            "booking_type": "concert",
            "city": "Berlin",
            "country": "Germany",
            "event_date": str(event_date),
            "original_price": "300.00",
            "swap_value": "280.00",
        }

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["starts_on"], str(event_date))
        self.assertEqual(response.data["currency"], "USD")

    def test_checkout_must_follow_checkin(self) -> None:
        check_in = date.today() + timedelta(days=10)

        response = self.client.post(self.list_url, self._payload(check_in, check_in), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "INVALID_PAYLOAD")
        self.assertFalse(Booking.objects.exists())

    def test_listing_shows_available_and_own_bookings(self) -> None:
        check_in = date.today() + timedelta(days=20)
        self.client.post(self.list_url, self._payload(check_in, check_in + timedelta(days=2)), format="json")
        removed = Booking.objects.create(
            owner=self.guest,
            title="Withdrawn",
            booking_type=Booking.Type.HOTEL,
            city="Rome",
            country="Italy",
            check_in=check_in,
            check_out=check_in + timedelta(days=1),
            status=Booking.Status.REMOVED,
        )

        response = self.client.get(self.list_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        ids = {item["id"] for item in response.data}
        self.assertNotIn(str(removed.id), ids)
        self.assertEqual(len(ids), 1)

    def test_owner_can_remove_booking(self) -> None:
        check_in = date.today() + timedelta(days=15)
        created = self.client.post(
            self.list_url, self._payload(check_in, check_in + timedelta(days=2)), format="json"
        ).data

        response = self.client.post(reverse("booking-remove", args=[created["id"]]))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "removed")

    def test_only_owner_can_remove_booking(self) -> None:
        check_in = date.today() + timedelta(days=15)
        created = self.client.post(
            self.list_url, self._payload(check_in, check_in + timedelta(days=2)), format="json"
        ).data
        self.client.force_authenticate(self.guest)

        response = self.client.post(reverse("booking-remove", args=[created["id"]]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, response.data)
        self.assertEqual(response.data["error"]["code"], "NOT_BOOKING_OWNER")

    def test_booking_behind_open_swap_cannot_be_removed(self) -> None:
        check_in = date.today() + timedelta(days=40)
        created = self.client.post(
            self.list_url, self._payload(check_in, check_in + timedelta(days=3)), format="json"
        ).data
        swap_response = self.client.post(
            reverse("swap-list"),
            {
                "source_booking_id": created["id"],
                "title": "Amsterdam for anything",
                "payment_types": {"booking_exchange": True},
                "acceptance_strategy": {"type": "first_match"},
                "expiration_date": (timezone.now() + timedelta(days=10)).isoformat(),
            },
            format="json",
        )
        self.assertEqual(swap_response.status_code, status.HTTP_201_CREATED, swap_response.data)

        response = self.client.post(reverse("booking-remove", args=[created["id"]]))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(response.data["error"]["code"], "BOOKING_IN_OPEN_SWAP")
        self.assertEqual(Booking.objects.get(pk=created["id"]).status, Booking.Status.AVAILABLE)
