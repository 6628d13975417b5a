"""
Proposal Domain

A proposal is an offer submitted against a swap. The offer is a tagged
variant (BookingOffer | CashOffer), so cash fields on a booking proposal
simply cannot be expressed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Union
from uuid import UUID

from shared.domain.base import Aggregate, ValueObject
from shared.domain.value_objects import Money

from apps.swaps.domain.errors import (
    BookingNotEligible,
    CashAmountBelowMinimum,
    CurrencyMismatch,
    InvalidMessage,
    InvalidTransition,
    PaymentMethodRequired,
    ProposalTypeNotAccepted,
    SelfProposalNotAllowed,
    SwapNotAvailable,
)
from apps.swaps.domain.events import (
    ProposalAccepted,
    ProposalExpired,
    ProposalRejected,
    ProposalSubmitted,
)

if TYPE_CHECKING:
    from apps.bookings.domain.entities import Booking
    from apps.swaps.domain.auction import Auction
    from apps.swaps.domain.entities import Swap

MAX_MESSAGE_LENGTH = 1000

SUPERSEDED_REASON = 'superseded by a newer proposal'
SWAP_ACCEPTED_OTHER_REASON = 'swap accepted another proposal'
SWAP_CLOSED_REASON = 'swap closed by owner'
SWAP_CANCELLED_REASON = 'swap cancelled by owner'
SOURCE_SWAP_ACCEPTED_REASON = 'offering swap accepted another proposal'


class ProposalStatus(Enum):
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'

    @property
    def is_terminal(self) -> bool:
        return self != ProposalStatus.PENDING


@dataclass(frozen=True)
class BookingOffer(ValueObject):
    """Offer one of the proposer's own bookings in exchange"""
    booking_id: UUID
    kind: ClassVar[str] = 'booking'


@dataclass(frozen=True)
class CashOffer(ValueObject):
    """
    Offer a cash amount

    Holds the submitted values as-is; validate_submission decides whether
    they are acceptable for a given swap.
    """
    amount: Decimal
    currency: str
    payment_method_id: str | None = None
    escrow_agreement: bool = False
    kind: ClassVar[str] = 'cash'

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)


Offer = Union[BookingOffer, CashOffer]


@dataclass(kw_only=True, eq=False)
class Proposal(Aggregate):
    """
    Proposal Aggregate

    Exactly one terminal transition (accepted, rejected or expired);
    afterwards the proposal is immutable.
    """

    swap_id: UUID
    proposer_id: int
    offer: Offer
    message: str
    conditions: list[str] = field(default_factory=list)
    status: ProposalStatus = ProposalStatus.PENDING
    responded_at: datetime | None = None
    rejection_reason: str = ''
    auction_id: UUID | None = None

    @classmethod
    def submit(
        cls,
        *,
        swap: 'Swap',
        proposer_id: int,
        offer: Offer,
        message: str,
        conditions: list[str] | None = None,
        now: datetime,
        auction_id: UUID | None = None,
    ) -> 'Proposal':
        """
        Create a pending proposal (call validate_submission first)

        Events: ProposalSubmitted
        """
        proposal = cls(
            swap_id=swap.id,
            proposer_id=proposer_id,
            offer=offer,
            message=message.strip(),
            conditions=[c for c in (conditions or []) if c],
            auction_id=auction_id,
            created_at=now,
            updated_at=now,
        )
        proposal.add_event(ProposalSubmitted(
            aggregate_id=proposal.id,
            proposal_id=proposal.id,
            swap_id=swap.id,
            proposer_id=proposer_id,
            owner_id=swap.owner_id,
            proposal_type=offer.kind,
        ))
        return proposal

    @property
    def proposal_type(self) -> str:
        return self.offer.kind

    @property
    def is_cash(self) -> bool:
        return isinstance(self.offer, CashOffer)

    @property
    def is_booking(self) -> bool:
        return isinstance(self.offer, BookingOffer)

    @property
    def is_pending(self) -> bool:
        return self.status == ProposalStatus.PENDING

    @property
    def cash_amount(self) -> Money | None:
        return self.offer.money if self.is_cash else None

    def _finish(self, status: ProposalStatus, now: datetime):
        if not self.is_pending:
            raise InvalidTransition(
                f"Proposal {self.id} is already {self.status.value}",
                details={'proposal_id': str(self.id), 'status': self.status.value},
            )
        self.status = status
        self.responded_at = now
        self.touch(now)

    def accept(self, now: datetime, automatic: bool = False):
        """Events: ProposalAccepted"""
        self._finish(ProposalStatus.ACCEPTED, now)
        self.add_event(ProposalAccepted(
            aggregate_id=self.id,
            proposal_id=self.id,
            swap_id=self.swap_id,
            proposer_id=self.proposer_id,
            automatic=automatic,
        ))

    def reject(self, reason: str, now: datetime):
        """Events: ProposalRejected"""
        self._finish(ProposalStatus.REJECTED, now)
        self.rejection_reason = reason
        self.add_event(ProposalRejected(
            aggregate_id=self.id,
            proposal_id=self.id,
            swap_id=self.swap_id,
            proposer_id=self.proposer_id,
            reason=reason,
        ))

    def expire(self, now: datetime):
        """Events: ProposalExpired"""
        self._finish(ProposalStatus.EXPIRED, now)
        self.add_event(ProposalExpired(
            aggregate_id=self.id,
            proposal_id=self.id,
            swap_id=self.swap_id,
            proposer_id=self.proposer_id,
        ))

    def __repr__(self):
        return (
            f"Proposal(id={self.id}, swap_id={self.swap_id}, type={self.proposal_type}, "
            f"status={self.status.value})"
        )


def minimum_cash_for(swap: 'Swap', auction: 'Auction | None' = None) -> Decimal | None:
    """Strictest minimum of the swap preference and the auction settings"""
    minimums = [swap.payment_types.minimum_cash_amount]
    if auction is not None:
        minimums.append(auction.settings.minimum_cash_offer)
    minimums = [m for m in minimums if m is not None]
    return max(minimums) if minimums else None


def validate_submission(
    *,
    swap: 'Swap | None',
    proposer_id: int,
    offer: Offer,
    message: str,
    now: datetime,
    auction: 'Auction | None' = None,
    offered_booking: 'Booking | None' = None,
    booking_committed: bool = False,
    max_message_length: int = MAX_MESSAGE_LENGTH,
):
    """
    Validate a proposal before it is created

    Rules are checked in a fixed order and the first violation is raised:
    1. swap exists and accepts proposals        -> SwapNotAvailable
    2. proposer is not the owner                -> SelfProposalNotAllowed
    3. swap accepts this proposal type          -> ProposalTypeNotAccepted
    4. booking offer: proposer's available booking, not already promised
       to an accepted swap                     -> BookingNotEligible
    5. cash offer: positive, same currency, at or above the minimum,
       with a payment method  -> CashAmountBelowMinimum / CurrencyMismatch /
       PaymentMethodRequired
    6. message non-empty and within the limit   -> InvalidMessage
    """
    if swap is None:
        raise SwapNotAvailable("Swap does not exist or is no longer available")
    swap.ensure_accepting_proposals(now)
    if auction is not None and not auction.is_open(now):
        raise SwapNotAvailable(
            "Auction has ended and no longer accepts proposals",
            details={'swap_id': str(swap.id), 'auction_id': str(auction.id)},
        )

    if swap.is_owned_by(proposer_id):
        raise SelfProposalNotAllowed("You cannot make a proposal on your own swap")

    accepted = swap.payment_types.accepts(offer.kind)
    if auction is not None:
        accepted = accepted and auction.settings.allows(offer.kind)
    if not accepted:
        raise ProposalTypeNotAccepted(
            f"This swap does not accept {offer.kind} proposals",
            details={'proposal_type': offer.kind},
        )

    if isinstance(offer, BookingOffer):
        if (
            offered_booking is None
            or not offered_booking.is_owned_by(proposer_id)
            or not offered_booking.is_available()
            or booking_committed
        ):
            raise BookingNotEligible(
                "Offered booking must be one of your available bookings",
                details={'booking_id': str(offer.booking_id)},
            )
    else:
        _validate_cash(swap, offer, auction)

    text = (message or '').strip()
    if not text:
        raise InvalidMessage("Message is required")
    if len(text) > max_message_length:
        raise InvalidMessage(
            f"Message cannot exceed {max_message_length} characters",
            details={'max_length': max_message_length, 'length': len(text)},
        )


def _validate_cash(swap: 'Swap', offer: CashOffer, auction: 'Auction | None'):
    if offer.amount is None or offer.amount <= 0:
        raise CashAmountBelowMinimum("Cash amount must be greater than 0")

    currency = swap.payment_types.currency
    if offer.currency != currency:
        raise CurrencyMismatch(
            f"Cash offers for this swap must be in {currency}",
            details={'expected': currency, 'received': offer.currency},
        )

    minimum = minimum_cash_for(swap, auction)
    if minimum is not None and offer.amount < minimum:
        raise CashAmountBelowMinimum(
            f"Cash amount must be at least {Money(minimum, currency)}",
            details={'minimum': str(minimum), 'currency': currency},
        )

    if not offer.payment_method_id:
        raise PaymentMethodRequired("A payment method is required for cash offers")
