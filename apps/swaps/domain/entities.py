"""
Swap Domain Entities

Core business entities for the swap domain:
- Swap: aggregate representing a booking listed for exchange
- SwapStatus: FSM states for the swap lifecycle
- PaymentTypePreference: which kinds of offers the owner accepts
- FirstMatchStrategy / AuctionStrategy: acceptance strategy variants
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Iterable, Union
from uuid import UUID

from shared.domain.base import Aggregate, ValueObject, utcnow
from shared.domain.exceptions import ValidationFailed
from shared.domain.value_objects import Money

from apps.swaps.domain.errors import (
    InvalidAuctionSettings,
    InvalidPaymentTypes,
    InvalidTransition,
    LastMinuteRestriction,
    NotSwapOwner,
    SwapNotAvailable,
)
from apps.swaps.domain.events import SwapCreated, SwapStatusChanged

LAST_MINUTE_WINDOW = timedelta(days=7)

ACTIVE_DISPLAY_STATUS = 'active'


class SwapStatus(Enum):
    """
    Swap Status Finite State Machine

    State transitions:
    - PENDING -> ACCEPTED (owner accepted a proposal or picked an auction winner)
    - PENDING -> REJECTED (owner closed the listing while rejecting a proposal)
    - PENDING -> CANCELLED (owner withdrew the listing)
    - PENDING -> EXPIRED (expiration date passed, evaluated lazily)
    - ACCEPTED -> COMPLETED (exchange confirmed by the payment/transfer callback)

    'active' is not a state: it is how a PENDING swap with an open auction
    is displayed.
    """
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'
    COMPLETED = 'completed'

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    SwapStatus.COMPLETED,
    SwapStatus.REJECTED,
    SwapStatus.CANCELLED,
    SwapStatus.EXPIRED,
})

ALLOWED_TRANSITIONS = {
    SwapStatus.PENDING: frozenset({
        SwapStatus.ACCEPTED,
        SwapStatus.REJECTED,
        SwapStatus.CANCELLED,
        SwapStatus.EXPIRED,
    }),
    SwapStatus.ACCEPTED: frozenset({SwapStatus.COMPLETED}),
}


@dataclass(frozen=True)
class PaymentTypePreference(ValueObject):
    """
    Which offers the owner is willing to consider

    Invariant: at least one of booking_exchange / cash_payment is True.
    """
    booking_exchange: bool
    cash_payment: bool
    currency: str = 'USD'
    minimum_cash_amount: Decimal | None = None
    preferred_cash_amount: Decimal | None = None

    def __post_init__(self):
        if not (self.booking_exchange or self.cash_payment):
            raise InvalidPaymentTypes(
                "At least one of booking exchange or cash payment must be enabled"
            )
        if self.minimum_cash_amount is not None and self.minimum_cash_amount <= 0:
            raise InvalidPaymentTypes("Minimum cash amount must be greater than 0")
        if (
            self.minimum_cash_amount is not None
            and self.preferred_cash_amount is not None
            and self.preferred_cash_amount < self.minimum_cash_amount
        ):
            raise InvalidPaymentTypes("Preferred cash amount cannot be below the minimum")

    def accepts(self, proposal_type: str) -> bool:
        if proposal_type == 'booking':
            return self.booking_exchange
        if proposal_type == 'cash':
            return self.cash_payment
        return False

    @property
    def minimum_cash(self) -> Money | None:
        if self.minimum_cash_amount is None:
            return None
        return Money(self.minimum_cash_amount, self.currency)


@dataclass(frozen=True)
class FirstMatchStrategy(ValueObject):
    """Owner may accept any single proposal as soon as it arrives"""
    kind: ClassVar[str] = 'first_match'


@dataclass(frozen=True)
class AuctionStrategy(ValueObject):
    """Proposals are collected until end_date, then a winner is picked"""
    end_date: datetime
    auto_select_highest: bool = False
    kind: ClassVar[str] = 'auction'


AcceptanceStrategy = Union[FirstMatchStrategy, AuctionStrategy]


def _start_of_day(day: date, tz) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz or timezone.utc)


def is_last_minute(starts_on: date, now: datetime, window: timedelta = LAST_MINUTE_WINDOW) -> bool:
    """Booking starts within the last-minute window"""
    return _start_of_day(starts_on, now.tzinfo) - now < window


def validate_acceptance_strategy(
    strategy: AcceptanceStrategy,
    starts_on: date,
    now: datetime,
    window: timedelta = LAST_MINUTE_WINDOW,
):
    """
    Check an acceptance strategy against the booking start date

    Rules for auctions:
    - last-minute bookings (start within the window) must use first_match
    - the auction must end in the future
    - the auction must end at least one window before the booking starts

    Raises:
        LastMinuteRestriction: booking starts too soon for an auction
        InvalidAuctionSettings: end date out of range
    """
    if isinstance(strategy, FirstMatchStrategy):
        return

    if is_last_minute(starts_on, now, window):
        raise LastMinuteRestriction(
            f"Auctions are not available for bookings starting within {window.days} days; "
            f"use first_match instead",
            details={'required_strategy': FirstMatchStrategy.kind, 'starts_on': starts_on.isoformat()},
        )

    if strategy.end_date <= now:
        raise InvalidAuctionSettings("Auction end date must be in the future")

    latest_end = _start_of_day(starts_on, now.tzinfo) - window
    if strategy.end_date > latest_end:
        raise InvalidAuctionSettings(
            f"Auction must end at least {window.days} days before the booking starts",
            details={'latest_end_date': latest_end.isoformat()},
        )


@dataclass
class SwapTimeline:
    proposed_at: datetime
    responded_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(kw_only=True, eq=False)
class Swap(Aggregate):
    """
    Swap Aggregate Root

    A listing of a source booking that other users may propose against.

    Key invariants:
    - Payment types accept at least one kind of offer
    - Auctions end at least a week before the source booking starts
    - Only the owner drives manual transitions
    - Every transition stamps the timeline and emits SwapStatusChanged
    - Expiry is a pure function of the clock, applied on read or transition
    """

    source_booking_id: UUID
    owner_id: int
    title: str
    payment_types: PaymentTypePreference
    strategy: AcceptanceStrategy
    expires_at: datetime
    description: str = ''
    preferences: dict = field(default_factory=dict)
    status: SwapStatus = SwapStatus.PENDING
    timeline: SwapTimeline = field(default_factory=lambda: SwapTimeline(proposed_at=utcnow()))
    accepted_proposal_id: UUID | None = None
    version: int = 0

    @classmethod
    def create(
        cls,
        *,
        source_booking_id: UUID,
        owner_id: int,
        title: str,
        payment_types: PaymentTypePreference,
        strategy: AcceptanceStrategy,
        expires_at: datetime,
        starts_on: date,
        now: datetime,
        description: str = '',
        preferences: dict | None = None,
        window: timedelta = LAST_MINUTE_WINDOW,
    ) -> 'Swap':
        """
        List a booking for swapping

        Events: SwapCreated
        """
        if not title:
            raise ValidationFailed("Swap title is required", code='INVALID_SWAP')
        validate_acceptance_strategy(strategy, starts_on, now, window)
        if expires_at <= now:
            raise ValidationFailed("Expiration date must be in the future", code='INVALID_EXPIRATION')
        if isinstance(strategy, AuctionStrategy) and expires_at < strategy.end_date:
            raise InvalidAuctionSettings("Swap cannot expire before its auction ends")

        swap = cls(
            source_booking_id=source_booking_id,
            owner_id=owner_id,
            title=title,
            description=description,
            payment_types=payment_types,
            strategy=strategy,
            expires_at=expires_at,
            preferences=dict(preferences or {}),
            timeline=SwapTimeline(proposed_at=now),
            created_at=now,
            updated_at=now,
        )
        swap.add_event(SwapCreated(
            aggregate_id=swap.id,
            swap_id=swap.id,
            owner_id=owner_id,
            source_booking_id=source_booking_id,
            strategy=strategy.kind,
        ))
        return swap

    @property
    def is_auction(self) -> bool:
        return isinstance(self.strategy, AuctionStrategy)

    def is_owned_by(self, user_id: int | None) -> bool:
        return user_id is not None and self.owner_id == user_id

    def is_expired(self, now: datetime) -> bool:
        """Pending swap whose expiration date has passed"""
        return self.status == SwapStatus.PENDING and now > self.expires_at

    def effective_status(self, now: datetime) -> SwapStatus:
        """Status with lazy expiry applied, without mutating the swap"""
        if self.is_expired(now):
            return SwapStatus.EXPIRED
        return self.status

    def display_status(self, now: datetime, auction_open: bool = False) -> str:
        status = self.effective_status(now)
        if status == SwapStatus.PENDING and auction_open:
            return ACTIVE_DISPLAY_STATUS
        return status.value

    def accepts_proposals(self, now: datetime) -> bool:
        return self.effective_status(now) == SwapStatus.PENDING

    def ensure_accepting_proposals(self, now: datetime):
        if not self.accepts_proposals(now):
            status = self.effective_status(now)
            raise SwapNotAvailable(
                f"Swap {self.id} is {status.value} and no longer accepts proposals",
                details={'swap_id': str(self.id), 'status': status.value},
            )

    def _require_owner(self, actor_id: int | None, action: str):
        if not self.is_owned_by(actor_id):
            raise NotSwapOwner(f"Only the swap owner can {action} this swap")

    def _transition(
        self,
        new_status: SwapStatus,
        at: datetime,
        party_ids: Iterable[int] = (),
    ):
        if new_status not in ALLOWED_TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransition(
                f"Cannot move swap from {self.status.value} to {new_status.value}",
                details={'from': self.status.value, 'to': new_status.value},
            )

        old_status = self.status
        self.status = new_status
        if new_status == SwapStatus.COMPLETED:
            self.timeline.completed_at = at
        else:
            self.timeline.responded_at = at
        self.touch(at)

        parties = set(party_ids)
        parties.add(self.owner_id)
        self.add_event(SwapStatusChanged(
            aggregate_id=self.id,
            swap_id=self.id,
            owner_id=self.owner_id,
            old_status=old_status.value,
            new_status=new_status.value,
            timestamp=at,
            party_ids=tuple(sorted(parties)),
        ))

    def accept(
        self,
        proposal_id: UUID,
        actor_id: int | None,
        now: datetime,
        party_ids: Iterable[int] = (),
    ):
        """
        Accept a proposal (PENDING -> ACCEPTED)

        actor_id=None marks a system transition (auction auto-selection or
        the counterpart side of a matched exchange).
        Events: SwapStatusChanged
        """
        if actor_id is not None:
            self._require_owner(actor_id, 'accept proposals on')
        self.ensure_accepting_proposals(now)
        self.accepted_proposal_id = proposal_id
        self._transition(SwapStatus.ACCEPTED, now, party_ids)

    def reject(self, actor_id: int, now: datetime, party_ids: Iterable[int] = ()):
        """
        Close the listing as rejected (PENDING -> REJECTED)

        Events: SwapStatusChanged
        """
        self._require_owner(actor_id, 'reject')
        self.ensure_accepting_proposals(now)
        self._transition(SwapStatus.REJECTED, now, party_ids)

    def cancel(self, actor_id: int, now: datetime, party_ids: Iterable[int] = ()):
        """
        Withdraw the listing (PENDING -> CANCELLED)

        Outstanding proposals are rejected by the caller.
        Events: SwapStatusChanged
        """
        self._require_owner(actor_id, 'cancel')
        self.refresh_expiry(now, party_ids)
        self._transition(SwapStatus.CANCELLED, now, party_ids)

    def refresh_expiry(self, now: datetime, party_ids: Iterable[int] = ()) -> bool:
        """
        Apply lazy expiry (PENDING -> EXPIRED)

        The transition is stamped with the expiration instant, not with the
        time it happened to be observed.
        Returns True when the swap expired during this call.
        Events: SwapStatusChanged
        """
        if not self.is_expired(now):
            return False
        self._transition(SwapStatus.EXPIRED, self.expires_at, party_ids)
        return True

    def complete(self, now: datetime, party_ids: Iterable[int] = ()):
        """
        Record the confirmed exchange (ACCEPTED -> COMPLETED)

        Events: SwapStatusChanged
        """
        self._transition(SwapStatus.COMPLETED, now, party_ids)

    def __str__(self):
        return f"Swap {self.title} ({self.status.value})"

    def __repr__(self):
        return (
            f"Swap(id={self.id}, owner_id={self.owner_id}, status={self.status.value}, "
            f"strategy={self.strategy.kind})"
        )
