"""
Auction Domain

An auction is the alternate acceptance strategy of a swap: proposals are
collected until the end date, after which the owner (or auto-selection)
picks exactly one winner. Winner selection mutates the swap, the auction and
every proposal in memory; the caller persists all of them in one
transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID

from shared.domain.base import Aggregate, ValueObject
from shared.domain.value_objects import Money

from apps.swaps.domain.entities import Swap
from apps.swaps.domain.errors import (
    AuctionStillActive,
    InvalidAuctionSettings,
    InvalidTransition,
    NotSwapOwner,
    ProposalNotFound,
    SwapNotAvailable,
)
from apps.swaps.domain.events import AuctionEnded, AuctionWinnerSelected
from apps.swaps.domain.proposals import BookingOffer, Proposal

AUCTION_LOST_REASON = 'auction closed - different winner selected'


class AuctionStatus(Enum):
    ACTIVE = 'active'
    ENDED = 'ended'


@dataclass(frozen=True)
class AuctionSettings(ValueObject):
    end_date: datetime
    allow_booking_proposals: bool = True
    allow_cash_proposals: bool = True
    minimum_cash_offer: Decimal | None = None
    auto_select_after_hours: int | None = None

    def __post_init__(self):
        if not (self.allow_booking_proposals or self.allow_cash_proposals):
            raise InvalidAuctionSettings("At least one proposal type must be allowed")
        if self.minimum_cash_offer is not None and self.minimum_cash_offer <= 0:
            raise InvalidAuctionSettings("Minimum cash offer must be greater than 0")
        if self.auto_select_after_hours is not None and self.auto_select_after_hours < 1:
            raise InvalidAuctionSettings("Auto-select window must be at least 1 hour")

    def allows(self, proposal_type: str) -> bool:
        if proposal_type == 'booking':
            return self.allow_booking_proposals
        if proposal_type == 'cash':
            return self.allow_cash_proposals
        return False


@dataclass(kw_only=True, eq=False)
class Auction(Aggregate):
    """
    Auction Aggregate

    Status is ACTIVE until the end date passes (evaluated lazily) or the
    owner closes it early. At most one winner is ever recorded.
    """

    swap_id: UUID
    owner_id: int
    settings: AuctionSettings
    proposal_ids: list[UUID] = field(default_factory=list)
    status: AuctionStatus = AuctionStatus.ACTIVE
    winner_proposal_id: UUID | None = None
    ended_at: datetime | None = None

    @property
    def end_date(self) -> datetime:
        return self.settings.end_date

    def is_open(self, now: datetime) -> bool:
        return self.status == AuctionStatus.ACTIVE and now < self.end_date

    def _end(self, at: datetime, early: bool):
        self.status = AuctionStatus.ENDED
        self.ended_at = at
        self.touch(at)
        self.add_event(AuctionEnded(
            aggregate_id=self.id,
            auction_id=self.id,
            swap_id=self.swap_id,
            owner_id=self.owner_id,
            proposal_count=len(self.proposal_ids),
            early=early,
        ))

    def refresh(self, now: datetime) -> bool:
        """End the auction if its end date has passed; True if it ended now"""
        if self.status == AuctionStatus.ACTIVE and now >= self.end_date:
            self._end(self.end_date, early=False)
            return True
        return False

    def add_proposal(self, proposal_id: UUID, now: datetime):
        self.refresh(now)
        if self.status != AuctionStatus.ACTIVE:
            raise SwapNotAvailable(
                "Auction has ended and no longer accepts proposals",
                details={'auction_id': str(self.id)},
            )
        if proposal_id not in self.proposal_ids:
            self.proposal_ids.append(proposal_id)
            self.touch(now)

    def close_early(self, actor_id: int, pending_count: int, now: datetime):
        """
        Owner ends the auction before its end date

        Only allowed while no competing proposals remain, i.e. at most one
        proposal is still pending.
        """
        if self.owner_id != actor_id:
            raise NotSwapOwner("Only the swap owner can close the auction")
        self.refresh(now)
        if self.status != AuctionStatus.ACTIVE:
            raise InvalidTransition(
                "Auction has already ended",
                details={'auction_id': str(self.id)},
            )
        if pending_count > 1:
            raise AuctionStillActive(
                "Auction can only be closed early when no competing proposals remain",
                details={'pending_proposals': pending_count},
            )
        self._end(now, early=True)

    def auto_select_due_at(self, auto_select_highest: bool) -> datetime | None:
        """When the highest cash offer gets selected without the owner"""
        if auto_select_highest:
            return self.end_date
        if self.settings.auto_select_after_hours:
            return self.end_date + timedelta(hours=self.settings.auto_select_after_hours)
        return None

    def record_winner(self, proposal_id: UUID, now: datetime, automatic: bool = False):
        if self.winner_proposal_id is not None:
            raise InvalidTransition(
                "Auction winner has already been selected",
                details={'winner_proposal_id': str(self.winner_proposal_id)},
            )
        self.winner_proposal_id = proposal_id
        self.touch(now)
        self.add_event(AuctionWinnerSelected(
            aggregate_id=self.id,
            auction_id=self.id,
            swap_id=self.swap_id,
            proposal_id=proposal_id,
            automatic=automatic,
        ))


def select_winner(
    swap: Swap,
    auction: Auction,
    proposals: Iterable[Proposal],
    proposal_id: UUID,
    actor_id: int | None,
    now: datetime,
    automatic: bool = False,
) -> Swap:
    """
    Pick the auction winner

    Guards: actor owns the swap (skipped for automatic selection), the
    auction has ended, no winner was chosen before, and the proposal belongs
    to this auction and is pending.

    The winner becomes accepted, every other pending proposal of the auction
    is rejected and the swap moves to accepted. All guards run before the
    first mutation.
    """
    proposals = list(proposals)

    if not automatic and not swap.is_owned_by(actor_id):
        raise NotSwapOwner("Only the swap owner can select the auction winner")

    auction.refresh(now)
    if auction.status == AuctionStatus.ACTIVE:
        raise AuctionStillActive(
            "Auction is still collecting proposals",
            details={'end_date': auction.end_date.isoformat()},
        )
    if auction.winner_proposal_id is not None:
        raise InvalidTransition(
            "Auction winner has already been selected",
            details={'winner_proposal_id': str(auction.winner_proposal_id)},
        )

    winner = next(
        (p for p in proposals if p.id == proposal_id and p.id in auction.proposal_ids),
        None,
    )
    if winner is None:
        raise ProposalNotFound(
            f"Proposal {proposal_id} is not part of this auction",
            details={'proposal_id': str(proposal_id), 'auction_id': str(auction.id)},
        )
    if not winner.is_pending:
        raise InvalidTransition(
            f"Proposal {proposal_id} is {winner.status.value}",
            details={'proposal_id': str(proposal_id), 'status': winner.status.value},
        )

    competing = [p for p in proposals if p.id in auction.proposal_ids]
    swap.accept(
        winner.id,
        None if automatic else actor_id,
        now,
        party_ids=[p.proposer_id for p in competing],
    )
    winner.accept(now, automatic=automatic)
    for proposal in competing:
        if proposal.id != winner.id and proposal.is_pending:
            proposal.reject(AUCTION_LOST_REASON, now)
    auction.record_winner(winner.id, now, automatic=automatic)
    return swap


def rank_cash_proposals(proposals: Iterable[Proposal]) -> list[Proposal]:
    """Pending cash proposals by amount, highest first; earlier wins a tie"""
    cash = [p for p in proposals if p.is_cash and p.is_pending]
    cash.sort(key=lambda p: p.created_at)
    cash.sort(key=lambda p: p.offer.amount, reverse=True)
    return cash


@dataclass
class BookingComparison:
    proposal: Proposal
    offered_value: Money | None
    value_difference: Decimal | None


@dataclass
class ProposalComparison:
    cash_ranking: list[Proposal]
    booking_proposals: list[BookingComparison]
    highest_cash_offer: Money | None
    recommended_proposal_id: UUID | None


def compare_proposals(
    proposals: Sequence[Proposal],
    source_value: Money | None = None,
    booking_values: dict[UUID, Money] | None = None,
) -> ProposalComparison:
    """
    Advisory comparison for the owner

    Cash proposals are ranked by amount. Booking proposals are listed in
    arrival order with the signed difference between the offered booking's
    swap value and the source booking's value; the difference is never
    used to block or rank.
    """
    booking_values = booking_values or {}
    ranked = rank_cash_proposals(proposals)

    bookings = []
    for proposal in sorted(proposals, key=lambda p: p.created_at):
        if not (isinstance(proposal.offer, BookingOffer) and proposal.is_pending):
            continue
        offered = booking_values.get(proposal.offer.booking_id)
        difference = None
        if offered is not None and source_value is not None and offered.currency == source_value.currency:
            difference = offered.difference(source_value)
        bookings.append(BookingComparison(proposal, offered, difference))

    recommended = None
    if ranked:
        recommended = ranked[0].id
    elif bookings:
        recommended = bookings[0].proposal.id

    return ProposalComparison(
        cash_ranking=ranked,
        booking_proposals=bookings,
        highest_cash_offer=ranked[0].offer.money if ranked else None,
        recommended_proposal_id=recommended,
    )


def settle_auction(
    swap: Swap,
    auction: Auction,
    proposals: Iterable[Proposal],
    now: datetime,
) -> Proposal | None:
    """
    Apply lazy auction state

    Ends the auction once its end date passed and, when auto-selection is
    configured and due, picks the highest pending cash proposal. Without
    cash proposals nothing happens and the owner has to act. Auto-selection
    never fires after the swap has expired.

    Returns the auto-selected proposal, if any.
    """
    proposals = list(proposals)
    auction.refresh(now)
    if auction.status != AuctionStatus.ENDED or auction.winner_proposal_id is not None:
        return None

    due_at = auction.auto_select_due_at(getattr(swap.strategy, 'auto_select_highest', False))
    if due_at is None or now < due_at or due_at > swap.expires_at:
        return None
    if not swap.accepts_proposals(due_at):
        return None

    ranked = rank_cash_proposals(p for p in proposals if p.id in auction.proposal_ids)
    if not ranked:
        return None

    winner = ranked[0]
    select_winner(swap, auction, proposals, winner.id, None, due_at, automatic=True)
    return winner
