"""Persistence models for swaps, auctions, proposals and targeting links.

Rows are mapped to and from the domain aggregates by
:mod:`apps.swaps.repositories`; the models themselves only carry the
database-level guarantees (constraints and indexes).
"""

from __future__ import annotations

import uuid

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Swap(models.Model):
    """A booking listed for exchange or cash offers."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        ACCEPTED = "accepted", _("Accepted")
        REJECTED = "rejected", _("Rejected")
        CANCELLED = "cancelled", _("Cancelled")
        EXPIRED = "expired", _("Expired")
        COMPLETED = "completed", _("Completed")

    class Strategy(models.TextChoices):
        FIRST_MATCH = "first_match", _("First match")
        AUCTION = "auction", _("Auction")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source_booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="swaps",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="swaps",
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    # Payment type preference
    accepts_booking_exchange = models.BooleanField(default=True)
    accepts_cash = models.BooleanField(default=False)
    minimum_cash_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    preferred_cash_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default="USD")

    acceptance_strategy = models.CharField(
        max_length=16, choices=Strategy.choices, default=Strategy.FIRST_MATCH
    )
    auto_select_highest = models.BooleanField(default=False)
    preferences = models.JSONField(default=dict, blank=True)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    expires_at = models.DateTimeField()
    proposed_at = models.DateTimeField(default=timezone.now)
    responded_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    accepted_proposal_id = models.UUIDField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(accepts_booking_exchange=True) | models.Q(accepts_cash=True),
                name="swap_accepts_some_payment",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "expires_at"], name="swap_status_expiry_idx"),
            models.Index(fields=["owner", "status"], name="swap_owner_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.status})"

    @property
    def is_auction(self) -> bool:
        return self.acceptance_strategy == self.Strategy.AUCTION


class SwapAuction(models.Model):
    """Auction settings and state for a swap using the auction strategy."""

    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        ENDED = "ended", _("Ended")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    swap = models.OneToOneField(Swap, on_delete=models.CASCADE, related_name="auction")
    end_date = models.DateTimeField()
    allow_booking_proposals = models.BooleanField(default=True)
    allow_cash_proposals = models.BooleanField(default=True)
    minimum_cash_offer = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    auto_select_after_hours = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.ACTIVE)
    winner_proposal_id = models.UUIDField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["status", "end_date"], name="auction_status_end_idx"),
        ]

    def __str__(self) -> str:
        return f"Auction for {self.swap_id} ({self.status})"


class SwapProposal(models.Model):
    """An offer submitted against a swap."""

    class Type(models.TextChoices):
        BOOKING = "booking", _("Booking exchange")
        CASH = "cash", _("Cash offer")

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        ACCEPTED = "accepted", _("Accepted")
        REJECTED = "rejected", _("Rejected")
        EXPIRED = "expired", _("Expired")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    swap = models.ForeignKey(Swap, on_delete=models.CASCADE, related_name="proposals")
    proposer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="swap_proposals",
    )
    proposal_type = models.CharField(max_length=8, choices=Type.choices)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="offered_in_proposals",
    )
    cash_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, blank=True)
    payment_method_id = models.CharField(max_length=128, blank=True)
    escrow_agreement = models.BooleanField(default=False)
    message = models.TextField()
    conditions = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.PENDING)
    rejection_reason = models.CharField(max_length=255, blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)
    auction = models.ForeignKey(
        SwapAuction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="proposals",
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(proposal_type="booking", booking__isnull=False, cash_amount__isnull=True)
                    | models.Q(proposal_type="cash", booking__isnull=True, cash_amount__isnull=False)
                ),
                name="proposal_offer_matches_type",
            ),
            models.UniqueConstraint(
                fields=["swap", "proposer"],
                condition=models.Q(status="pending"),
                name="one_pending_proposal_per_proposer",
            ),
        ]
        indexes = [
            models.Index(fields=["swap", "status"], name="proposal_swap_status_idx"),
            models.Index(fields=["proposer", "status"], name="proposal_proposer_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.get_proposal_type_display()} on {self.swap_id} ({self.status})"


class SwapTargeting(models.Model):
    """Directed edge: ``source_swap`` proposed against ``target_swap``."""

    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        ACCEPTED = "accepted", _("Accepted")
        REJECTED = "rejected", _("Rejected")
        CANCELLED = "cancelled", _("Cancelled")
        EXPIRED = "expired", _("Expired")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source_swap = models.ForeignKey(Swap, on_delete=models.CASCADE, related_name="outgoing_targets")
    target_swap = models.ForeignKey(Swap, on_delete=models.CASCADE, related_name="incoming_targets")
    proposal = models.OneToOneField(SwapProposal, on_delete=models.CASCADE, related_name="targeting")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE)
    ended_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["source_swap"],
                condition=models.Q(status="active"),
                name="one_active_target_per_source",
            ),
        ]
        indexes = [
            models.Index(fields=["target_swap", "status"], name="targeting_target_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.source_swap_id} -> {self.target_swap_id} ({self.status})"
