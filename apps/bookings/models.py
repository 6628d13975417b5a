"""Booking listing models for the swap marketplace."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.exceptions import ValidationError  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import DateRange, Money

from .domain.entities import Booking as BookingEntity
from .domain.entities import BookingStatus, BookingType, Location


class Booking(models.Model):
    """A hotel stay, ticket or rental that its owner offers for exchange."""

    class Type(models.TextChoices):
        HOTEL = "hotel", _("Hotel")
        VACATION_RENTAL = "vacation_rental", _("Vacation rental")
        RESORT = "resort", _("Resort")
        HOSTEL = "hostel", _("Hostel")
        BNB = "bnb", _("Bed & breakfast")
        EVENT = "event", _("Event")
        CONCERT = "concert", _("Concert")
        SPORTS = "sports", _("Sports")
        THEATER = "theater", _("Theater")
        FLIGHT = "flight", _("Flight")
        RENTAL = "rental", _("Rental")

    class Status(models.TextChoices):
        AVAILABLE = "available", _("Available")
        SWAPPED = "swapped", _("Swapped")
        REMOVED = "removed", _("Removed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listed_bookings",
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    booking_type = models.CharField(max_length=32, choices=Type.choices)
    city = models.CharField(max_length=120)
    country = models.CharField(max_length=120)
    check_in = models.DateField(null=True, blank=True)
    check_out = models.DateField(null=True, blank=True)
    event_date = models.DateField(null=True, blank=True)
    original_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    swap_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="USD")
    capacity = models.PositiveSmallIntegerField(default=1)
    amenities = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.AVAILABLE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(check_in__isnull=True, check_out__isnull=True)
                    | models.Q(check_out__gt=models.F("check_in"))
                ),
                name="booking_valid_stay_dates",
            ),
            models.CheckConstraint(
                condition=models.Q(check_in__isnull=False) | models.Q(event_date__isnull=False),
                name="booking_has_date",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "status"], name="booking_owner_status_idx"),
            models.Index(fields=["booking_type", "city"], name="booking_type_city_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.get_status_display()})"

    def clean(self) -> None:
        if bool(self.check_in) != bool(self.check_out):
            raise ValidationError(_("Check-in and check-out must be provided together."))
        if self.check_in and self.check_out and self.check_in >= self.check_out:
            raise ValidationError(_("Check-out must be after check-in."))
        if not self.check_in and not self.event_date:
            raise ValidationError(_("A booking needs stay dates or an event date."))

    @property
    def starts_on(self):
        return self.check_in or self.event_date

    def to_entity(self) -> BookingEntity:
        dates = None
        if self.check_in and self.check_out:
            dates = DateRange(self.check_in, self.check_out)
        return BookingEntity(
            id=self.id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            owner_id=self.owner_id,
            title=self.title,
            description=self.description,
            booking_type=BookingType(self.booking_type),
            location=Location(self.city, self.country),
            dates=dates,
            event_date=self.event_date,
            original_price=Money(self.original_price, self.currency),
            swap_value=Money(self.swap_value, self.currency),
            capacity=self.capacity,
            amenities=list(self.amenities or []),
            status=BookingStatus(self.status),
        )

    def apply_entity(self, entity: BookingEntity) -> None:
        """Copy the mutable state of a domain booking back onto the row."""
        self.status = entity.status.value
