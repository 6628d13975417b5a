"""
Swap Queries

Read-side use cases. Lazy state (auction end, auto-selection, expiry) is
applied in memory so answers match what the next command would see, but
nothing is written here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from django.utils import timezone  # type: ignore

from shared.domain.exceptions import AuthorizationDenied
from shared.domain.value_objects import Money

from apps.bookings.models import Booking as BookingModel
from apps.swaps.application.command_handlers import SwapRepositories
from apps.swaps.domain.auction import Auction, AuctionStatus, ProposalComparison, compare_proposals, settle_auction
from apps.swaps.domain.entities import Swap
from apps.swaps.domain.errors import NotSwapOwner
from apps.swaps.domain.proposals import BookingOffer, Proposal
from apps.swaps.domain.targeting import Targeting


@dataclass
class ProposalDetails:
    proposal: Proposal
    swap: Swap
    can_accept: bool
    can_reject: bool
    restrictions: list[str] = field(default_factory=list)
    targeting: Targeting | None = None


@dataclass
class TargetingView:
    swap_id: UUID
    outgoing: Targeting | None
    incoming: list[Targeting]


@dataclass
class SwapSnapshot:
    swap: Swap
    auction: Auction | None
    proposals: list[Proposal]


def _snapshot(repos: SwapRepositories, swap_id: UUID, now: datetime) -> SwapSnapshot:
    swap = repos.swaps.get(swap_id)
    auction = repos.auctions.for_swap(swap_id) if swap.is_auction else None
    proposals = repos.proposals.for_swap(swap_id)
    if auction is not None:
        settle_auction(swap, auction, proposals, now)
    if swap.refresh_expiry(now):
        for proposal in proposals:
            if proposal.is_pending:
                proposal.expire(swap.expires_at)
    return SwapSnapshot(swap, auction, proposals)


def get_proposal_details(
    proposal_id: UUID,
    viewer_id: int,
    now: datetime | None = None,
    repos: SwapRepositories | None = None,
) -> ProposalDetails:
    """
    Proposal with what the viewer may do with it

    Only the swap owner and the proposer may look at a proposal.
    ``restrictions`` lists why accept / reject are unavailable.
    """
    repos = repos or SwapRepositories()
    now = now or timezone.now()

    stored = repos.proposals.get(proposal_id)
    snapshot = _snapshot(repos, stored.swap_id, now)
    swap = snapshot.swap
    proposal = next(p for p in snapshot.proposals if p.id == proposal_id)

    is_owner = swap.is_owned_by(viewer_id)
    if not is_owner and proposal.proposer_id != viewer_id:
        raise AuthorizationDenied(
            "Only the swap owner and the proposer can view this proposal",
            code='NOT_A_PARTY',
        )

    restrictions = []
    if not is_owner:
        restrictions.append("Only the swap owner can respond to proposals")
    if not proposal.is_pending:
        restrictions.append(f"Proposal is already {proposal.status.value}")
    if not swap.accepts_proposals(now):
        restrictions.append(f"Swap is {swap.effective_status(now).value}")
    can_reject = not restrictions

    auction = snapshot.auction
    if auction is not None and auction.status == AuctionStatus.ACTIVE:
        restrictions.append("Auction is still collecting proposals; select a winner after it ends")

    return ProposalDetails(
        proposal=proposal,
        swap=swap,
        can_accept=not restrictions,
        can_reject=can_reject,
        restrictions=restrictions,
        targeting=repos.targeting.for_proposal(proposal_id),
    )


def get_targeting_view(swap_id: UUID, repos: SwapRepositories | None = None) -> TargetingView:
    """Outgoing and incoming links of a swap, read from the one edge table"""
    repos = repos or SwapRepositories()
    repos.swaps.get(swap_id)
    return TargetingView(
        swap_id=swap_id,
        outgoing=repos.targeting.active_for_source(swap_id),
        incoming=repos.targeting.active_incoming(swap_id),
    )


def compare_auction_proposals(
    auction_id: UUID,
    viewer_id: int,
    now: datetime | None = None,
    repos: SwapRepositories | None = None,
) -> ProposalComparison:
    repos = repos or SwapRepositories()
    now = now or timezone.now()

    auction = repos.auctions.get(auction_id)
    if auction.owner_id != viewer_id:
        raise NotSwapOwner("Only the swap owner can compare auction proposals")

    snapshot = _snapshot(repos, auction.swap_id, now)
    proposals = [p for p in snapshot.proposals if p.id in auction.proposal_ids]

    booking_ids = {snapshot.swap.source_booking_id}
    booking_ids.update(p.offer.booking_id for p in proposals if isinstance(p.offer, BookingOffer))
    values = {
        row.id: Money(row.swap_value, row.currency)
        for row in BookingModel.objects.filter(pk__in=booking_ids)
    }

    return compare_proposals(
        proposals,
        source_value=values.get(snapshot.swap.source_booking_id),
        booking_values=values,
    )
