"""Domain services for booking listings."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from django.db import transaction  # type: ignore

from shared.domain.exceptions import AuthorizationDenied, Conflict, NotFound, ValidationFailed
from shared.domain.value_objects import DateRange, Money

from .domain.entities import Booking as BookingEntity
from .domain.entities import BookingType, Location
from .models import Booking

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from django.contrib.auth.models import AbstractBaseUser

logger = structlog.get_logger(__name__)


def build_entity(owner_id: int, data: dict) -> BookingEntity:
    """Validate listing data against the domain rules before it is stored."""

    currency = data.get("currency", "USD")
    dates = None
    if data.get("check_in") and data.get("check_out"):
        try:
            dates = DateRange(data["check_in"], data["check_out"])
        except ValueError as exc:
            raise ValidationFailed(str(exc), code="INVALID_BOOKING") from exc
    return BookingEntity(
        owner_id=owner_id,
        title=data["title"],
        description=data.get("description", ""),
        booking_type=BookingType(data["booking_type"]),
        location=Location(data["city"], data["country"]),
        dates=dates,
        event_date=data.get("event_date"),
        original_price=Money(data.get("original_price", 0), currency),
        swap_value=Money(data.get("swap_value", 0), currency),
        capacity=data.get("capacity", 1),
        amenities=list(data.get("amenities", [])),
    )


@transaction.atomic
def list_booking(owner: "AbstractBaseUser", data: dict) -> Booking:
    """Create a booking listing for ``owner``."""

    entity = build_entity(owner.pk, data)
    booking = Booking.objects.create(
        id=entity.id,
        owner=owner,
        title=entity.title,
        description=entity.description,
        booking_type=entity.booking_type.value,
        city=entity.location.city,
        country=entity.location.country,
        check_in=entity.dates.start_date if entity.dates else None,
        check_out=entity.dates.end_date if entity.dates else None,
        event_date=entity.event_date,
        original_price=entity.original_price.amount,
        swap_value=entity.swap_value.amount,
        currency=entity.currency,
        capacity=entity.capacity,
        amenities=entity.amenities,
        status=entity.status.value,
    )
    logger.info("booking.listed", booking_id=str(booking.id), owner_id=owner.pk)
    return booking


@transaction.atomic
def remove_booking(booking_id, actor_id: int) -> Booking:
    """Withdraw a booking (AVAILABLE -> REMOVED).

    A booking backing an open swap cannot be removed; the swap has to be
    cancelled first.
    """

    from apps.swaps.models import Swap  # Local import to prevent circular dependency

    try:
        booking = Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFound(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")

    if booking.owner_id != actor_id:
        raise AuthorizationDenied("Only the owner can remove a booking", code="NOT_BOOKING_OWNER")

    if Swap.objects.filter(source_booking=booking, status=Swap.Status.PENDING).exists():
        raise Conflict(
            "Booking backs an open swap; cancel the swap first",
            code="BOOKING_IN_OPEN_SWAP",
        )

    entity = booking.to_entity()
    entity.remove()
    booking.apply_entity(entity)
    booking.save(update_fields=["status", "updated_at"])
    logger.info("booking.removed", booking_id=str(booking.id))
    return booking
