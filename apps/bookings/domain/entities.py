"""
Booking Domain Entities

A booking is the item a user lists for exchange: a hotel stay, a rental,
a concert ticket, a flight. Bookings are created when a user lists them and
afterwards only change status:
- AVAILABLE -> SWAPPED (the swap it took part in completed)
- AVAILABLE -> REMOVED (owner withdrew it)
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from shared.domain.base import Aggregate, ValueObject
from shared.domain.exceptions import Conflict, ValidationFailed
from shared.domain.value_objects import Money, DateRange


class BookingType(Enum):
    HOTEL = 'hotel'
    VACATION_RENTAL = 'vacation_rental'
    RESORT = 'resort'
    HOSTEL = 'hostel'
    BNB = 'bnb'
    EVENT = 'event'
    CONCERT = 'concert'
    SPORTS = 'sports'
    THEATER = 'theater'
    FLIGHT = 'flight'
    RENTAL = 'rental'

    @property
    def is_stay(self) -> bool:
        """Stays are described by a check-in/check-out range"""
        return self in STAY_TYPES


STAY_TYPES = frozenset({
    BookingType.HOTEL,
    BookingType.VACATION_RENTAL,
    BookingType.RESORT,
    BookingType.HOSTEL,
    BookingType.BNB,
    BookingType.RENTAL,
})


class BookingStatus(Enum):
    AVAILABLE = 'available'
    SWAPPED = 'swapped'
    REMOVED = 'removed'


@dataclass(frozen=True)
class Location(ValueObject):
    city: str
    country: str

    def __post_init__(self):
        if not self.city or not self.country:
            raise ValueError("Location requires both city and country")

    def __str__(self):
        return f"{self.city}, {self.country}"


@dataclass(kw_only=True, eq=False)
class Booking(Aggregate):
    """
    Booking Aggregate Root

    Key invariants:
    - A booking has either a date range or an event date
    - Swap value and original price share one currency
    - Capacity is at least 1
    """

    owner_id: int
    title: str
    booking_type: BookingType
    location: Location
    original_price: Money
    swap_value: Money
    description: str = ''
    dates: DateRange | None = None
    event_date: date | None = None
    capacity: int = 1
    amenities: list[str] = field(default_factory=list)
    status: BookingStatus = BookingStatus.AVAILABLE

    def __post_init__(self):
        if not self.title:
            raise ValidationFailed("Booking title is required", code='INVALID_BOOKING')
        if self.dates is None and self.event_date is None:
            raise ValidationFailed(
                "Booking needs a check-in/check-out range or an event date",
                code='INVALID_BOOKING',
            )
        if self.capacity < 1:
            raise ValidationFailed("Capacity must be at least 1", code='INVALID_BOOKING')
        if self.original_price.currency != self.swap_value.currency:
            raise ValidationFailed(
                "Original price and swap value must use the same currency",
                code='INVALID_BOOKING',
            )

    @property
    def currency(self) -> str:
        return self.swap_value.currency

    @property
    def starts_on(self) -> date:
        """Check-in date for stays, event date otherwise"""
        if self.dates is not None:
            return self.dates.start_date
        return self.event_date

    def is_available(self) -> bool:
        return self.status == BookingStatus.AVAILABLE

    def is_owned_by(self, user_id: int) -> bool:
        return self.owner_id == user_id

    def mark_swapped(self):
        """AVAILABLE -> SWAPPED, driven by swap completion"""
        if self.status != BookingStatus.AVAILABLE:
            raise Conflict(
                f"Cannot mark booking {self.id} as swapped from status {self.status.value}",
                code='BOOKING_NOT_AVAILABLE',
            )
        self.status = BookingStatus.SWAPPED

    def remove(self):
        """AVAILABLE -> REMOVED, owner withdrew the listing"""
        if self.status != BookingStatus.AVAILABLE:
            raise Conflict(
                f"Cannot remove booking {self.id} with status {self.status.value}",
                code='BOOKING_NOT_AVAILABLE',
            )
        self.status = BookingStatus.REMOVED

    def __str__(self):
        return f"Booking {self.title} ({self.status.value})"
