"""Integration tests for the swap, proposal and auction API endpoints."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.swaps.models import Swap, SwapAuction, SwapProposal

User = get_user_model()


class SwapAPITestCase(APITestCase):
    """Users, bookings and helpers shared by the swap API tests."""

    def setUp(self) -> None:
        self.owner = User.objects.create_user(username="owner", email="owner@example.com", password="OwnerPass123")
        self.guest = User.objects.create_user(username="guest", email="guest@example.com", password="GuestPass123")
        self.other = User.objects.create_user(username="other", email="other@example.com", password="OtherPass123")
        self.admin = User.objects.create_superuser(
            username="admin", email="admin@example.com", password="AdminPass123"
        )
        self.booking = self._booking(self.owner)
        self.client.force_authenticate(self.owner)

    def _booking(self, user, days_ahead: int = 60, currency: str = "EUR") -> Booking:
        check_in = date.today() + timedelta(days=days_ahead)
        return Booking.objects.create(
            owner=user,
            title=f"Porto riverside stay for {user.username}",
            booking_type=Booking.Type.HOTEL,
            city="Porto",
            country="Portugal",
            check_in=check_in,
            check_out=check_in + timedelta(days=4),
            original_price=Decimal("800.00"),
            swap_value=Decimal("700.00"),
            currency=currency,
        )

    def _swap_payload(self, booking: Booking, **overrides) -> dict:
        payload = {
            "source_booking_id": str(booking.id),
            "title": "Porto for Madrid",
            "payment_types": {"booking_exchange": True, "cash_payment": True, "minimum_cash_amount": "100.00"},
            "acceptance_strategy": {"type": "first_match"},
            "expiration_date": (timezone.now() + timedelta(days=20)).isoformat(),
        }
        payload.update(overrides)
        return payload

    def _create_swap(self, booking: Booking | None = None, **overrides) -> dict:
        response = self.client.post(
            reverse("swap-list"), self._swap_payload(booking or self.booking, **overrides), format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data

    def _propose(self, swap_id, user, amount: str = "250.00"):
        self.client.force_authenticate(user)
        response = self.client.post(
            reverse("swap-proposals", args=[swap_id]),
            {
                "proposal_type": "cash",
                "cash_amount": amount,
                "payment_method_id": "pm_card",
                "message": "Happy to pay for this stay",
            },
            format="json",
        )
        self.client.force_authenticate(self.owner)
        return response


class SwapCreationTests(SwapAPITestCase):
    def test_owner_lists_booking_for_swap(self) -> None:
        data = self._create_swap()

        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["display_status"], "pending")
        self.assertEqual(data["owner_id"], self.owner.id)
        self.assertEqual(data["payment_types"]["currency"], "EUR")
        self.assertEqual(data["payment_types"]["minimum_cash_amount"], "100.00")
        self.assertEqual(data["source_booking"]["id"], str(self.booking.id))
        self.assertIsNone(data["auction"])

    def test_auction_swap_is_displayed_active(self) -> None:
        end_date = timezone.now() + timedelta(days=5)
        data = self._create_swap(
            acceptance_strategy={"type": "auction", "end_date": end_date.isoformat()},
            auction_settings={"minimum_cash_offer": "150.00"},
        )

        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["display_status"], "active")
        self.assertEqual(data["acceptance_strategy"]["type"], "auction")
        self.assertEqual(data["auction"]["status"], SwapAuction.Status.ACTIVE)

    def test_last_minute_auction_is_refused_with_its_kind(self) -> None:
        booking = self._booking(self.owner, days_ahead=3)
        response = self.client.post(
            reverse("swap-list"),
            self._swap_payload(
                booking,
                acceptance_strategy={
                    "type": "auction",
                    "end_date": (timezone.now() + timedelta(days=1)).isoformat(),
                },
            ),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["error"]["kind"], "validation_failed")
        self.assertEqual(response.data["error"]["code"], "LAST_MINUTE_RESTRICTION")
        self.assertEqual(response.data["error"]["details"]["required_strategy"], "first_match")
        self.assertFalse(Swap.objects.exists())

    def test_malformed_payload_uses_error_envelope(self) -> None:
        payload = self._swap_payload(self.booking)
        del payload["title"]

        response = self.client.post(reverse("swap-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "INVALID_PAYLOAD")
        self.assertIn("title", response.data["error"]["details"])

    def test_cannot_list_someone_elses_booking(self) -> None:
        booking = self._booking(self.guest)

        response = self.client.post(reverse("swap-list"), self._swap_payload(booking), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "BOOKING_NOT_ELIGIBLE")

    def test_booking_backs_one_open_swap(self) -> None:
        self._create_swap()

        response = self.client.post(reverse("swap-list"), self._swap_payload(self.booking), format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(response.data["error"]["code"], "BOOKING_IN_OPEN_SWAP")

    def test_anonymous_requests_are_rejected(self) -> None:
        self.client.force_authenticate(None)

        response = self.client.get(reverse("swap-list"))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_owner_cancels_swap(self) -> None:
        swap = self._create_swap()

        response = self.client.post(reverse("swap-cancel", args=[swap["id"]]))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "cancelled")

    def test_only_owner_cancels_swap(self) -> None:
        swap = self._create_swap()
        self.client.force_authenticate(self.guest)

        response = self.client.post(reverse("swap-cancel", args=[swap["id"]]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, response.data)
        self.assertEqual(response.data["error"]["kind"], "authorization_denied")
        self.assertEqual(response.data["error"]["code"], "NOT_SWAP_OWNER")


class ProposalAPITests(SwapAPITestCase):
    def setUp(self) -> None:
        super().setUp()
        self.swap = self._create_swap()

    def test_cash_proposal_defaults_to_swap_currency(self) -> None:
        response = self._propose(self.swap["id"], self.guest)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["currency"], "EUR")
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["proposer_id"], self.guest.id)

    def test_cash_below_minimum_is_refused(self) -> None:
        response = self._propose(self.swap["id"], self.guest, amount="50.00")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "CASH_AMOUNT_BELOW_MINIMUM")

    def test_owner_cannot_propose(self) -> None:
        response = self._propose(self.swap["id"], self.owner)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, response.data)
        self.assertEqual(response.data["error"]["code"], "SELF_PROPOSAL_NOT_ALLOWED")

    def test_mixed_offer_fields_are_refused(self) -> None:
        self.client.force_authenticate(self.guest)

        response = self.client.post(
            reverse("swap-proposals", args=[self.swap["id"]]),
            {
                "proposal_type": "booking",
                "booking_id": str(self._booking(self.guest).id),
                "cash_amount": "200.00",
                "message": "Both?",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "INVALID_PAYLOAD")

    def test_proposal_visibility(self) -> None:
        self._propose(self.swap["id"], self.guest)
        self._propose(self.swap["id"], self.other, amount="300.00")
        url = reverse("swap-proposals", args=[self.swap["id"]])

        self.assertEqual(len(self.client.get(url).data), 2)

        self.client.force_authenticate(self.guest)
        visible = self.client.get(url).data
        self.assertEqual([item["proposer_id"] for item in visible], [self.guest.id])

    def test_accept_matches_swap(self) -> None:
        accepted = self._propose(self.swap["id"], self.guest).data
        other = self._propose(self.swap["id"], self.other, amount="300.00").data

        response = self.client.post(
            reverse("proposal-accept", args=[accepted["id"]]), {"swap_id": self.swap["id"]}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["swap"]["status"], "accepted")
        self.assertEqual(response.data["proposal"]["status"], "accepted")
        self.assertEqual(SwapProposal.objects.get(pk=other["id"]).status, SwapProposal.Status.REJECTED)

        again = self.client.post(reverse("proposal-accept", args=[other["id"]]), {}, format="json")
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT, again.data)
        self.assertEqual(again.data["error"]["kind"], "conflict")

    def test_accept_checks_swap_consistency(self) -> None:
        proposal = self._propose(self.swap["id"], self.guest).data
        unrelated = self._create_swap(self._booking(self.owner))

        response = self.client.post(
            reverse("proposal-accept", args=[proposal["id"]]), {"swap_id": unrelated["id"]}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "PROPOSAL_SWAP_MISMATCH")

    def test_reject_and_close(self) -> None:
        proposal = self._propose(self.swap["id"], self.guest).data

        response = self.client.post(
            reverse("proposal-reject", args=[proposal["id"]]),
            {"reason": "Dates do not work", "close_swap": True},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["proposal"]["rejection_reason"], "Dates do not work")
        self.assertEqual(response.data["swap"]["status"], "rejected")

    def test_proposal_details_for_proposer(self) -> None:
        proposal = self._propose(self.swap["id"], self.guest).data
        self.client.force_authenticate(self.guest)

        response = self.client.get(reverse("proposal-details", args=[proposal["id"]]))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertFalse(response.data["can_accept"])
        self.assertEqual(response.data["proposal"]["offer"]["type"], "cash")
        self.assertEqual(response.data["swap_status"], "pending")

    def test_received_proposals_listing(self) -> None:
        self._propose(self.swap["id"], self.guest)

        response = self.client.get(reverse("proposal-list"))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(len(response.data), 1)


class CompletionAPITests(SwapAPITestCase):
    def setUp(self) -> None:
        super().setUp()
        self.swap = self._create_swap()
        proposal = self._propose(self.swap["id"], self.guest).data
        self.client.post(reverse("proposal-accept", args=[proposal["id"]]), {}, format="json")
        self.url = reverse("swap-complete", args=[self.swap["id"]])

    def test_completion_is_admin_only(self) -> None:
        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_confirmed_exchange_completes_swap(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(self.url, {"confirmation_reference": "tx-991"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["swap"]["status"], "completed")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.SWAPPED)

    def test_failed_exchange_is_reported_as_bad_gateway(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            self.url, {"succeeded": False, "failure_reason": "card declined"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY, response.data)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["error"]["code"], "EXCHANGE_CONFIRMATION_FAILED")
        self.assertEqual(response.data["swap"]["status"], "accepted")

    def test_integrity_endpoint(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.get(reverse("swap-integrity", args=[self.swap["id"]]))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["is_valid"])
        self.assertEqual(response.data["scenario"], "swap_only")

    def test_malformed_identifier_is_a_validation_error(self) -> None:
        self.client.force_authenticate(self.admin)

        url = reverse("swap-integrity", args=[self.swap["id"]])

        response = self.client.get(url, {"proposal_id": "not-a-uuid"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "INVALID_ID")
        self.assertEqual(response.data["error"]["kind"], "validation_failed")
