"""
Swap Event Handlers

Subscribers to swap domain events, run after commit by the message bus.
They turn events into notifications for every party holding a reference to
the swap, so no transition happens silently.
"""

from __future__ import annotations

import structlog

from apps.notifications.services import NotificationService
from apps.swaps.domain.events import (
    AuctionEnded,
    AuctionWinnerSelected,
    ProposalAccepted,
    ProposalExpired,
    ProposalRejected,
    ProposalSubmitted,
    SwapCreated,
    SwapStatusChanged,
    TargetingCancelled,
    TargetingCreated,
)

logger = structlog.get_logger(__name__)


def status_push_payload(event: SwapStatusChanged) -> dict:
    """Real-time payload consumed by clients to update swap state"""
    return {
        "swap_id": str(event.swap_id),
        "new_status": event.new_status,
        "old_status": event.old_status,
        "timestamp": event.timestamp.isoformat(),
    }


def on_swap_created(event: SwapCreated) -> None:
    NotificationService().notify(
        event.owner_id,
        "Swap listed",
        "Your booking is now listed for swapping.",
        kind="swap_created",
        payload={"swap_id": str(event.swap_id), "strategy": event.strategy},
    )


def on_swap_status_changed(event: SwapStatusChanged) -> None:
    logger.info(
        "swap.status_changed",
        swap_id=str(event.swap_id),
        old_status=event.old_status,
        new_status=event.new_status,
    )
    NotificationService().notify_many(
        event.party_ids or (event.owner_id,),
        "Swap status changed",
        f"Swap is now {event.new_status}.",
        kind="swap_status",
        payload=status_push_payload(event),
    )


def on_proposal_submitted(event: ProposalSubmitted) -> None:
    NotificationService().notify(
        event.owner_id,
        "New proposal",
        f"You received a new {event.proposal_type} proposal.",
        kind="proposal_submitted",
        payload={"swap_id": str(event.swap_id), "proposal_id": str(event.proposal_id)},
    )


def on_proposal_accepted(event: ProposalAccepted) -> None:
    NotificationService().notify(
        event.proposer_id,
        "Proposal accepted",
        "Your proposal was accepted.",
        kind="proposal_accepted",
        payload={
            "swap_id": str(event.swap_id),
            "proposal_id": str(event.proposal_id),
            "automatic": event.automatic,
        },
    )


def on_proposal_rejected(event: ProposalRejected) -> None:
    NotificationService().notify(
        event.proposer_id,
        "Proposal rejected",
        f"Your proposal was rejected: {event.reason}.",
        kind="proposal_rejected",
        payload={
            "swap_id": str(event.swap_id),
            "proposal_id": str(event.proposal_id),
            "reason": event.reason,
        },
    )


def on_proposal_expired(event: ProposalExpired) -> None:
    NotificationService().notify(
        event.proposer_id,
        "Proposal expired",
        "The swap expired before your proposal was answered.",
        kind="proposal_expired",
        payload={"swap_id": str(event.swap_id), "proposal_id": str(event.proposal_id)},
    )


def on_auction_ended(event: AuctionEnded) -> None:
    if event.early:
        return
    NotificationService().notify(
        event.owner_id,
        "Auction ended",
        f"Your auction ended with {event.proposal_count} proposal(s). Select a winner.",
        kind="auction_ended",
        payload={"swap_id": str(event.swap_id), "auction_id": str(event.auction_id)},
    )


def on_auction_winner_selected(event: AuctionWinnerSelected) -> None:
    logger.info(
        "auction.winner_recorded",
        auction_id=str(event.auction_id),
        proposal_id=str(event.proposal_id),
        automatic=event.automatic,
    )


def on_targeting_created(event: TargetingCreated) -> None:
    NotificationService().notify(
        event.target_owner_id,
        "New incoming target",
        "Another swap is now targeting yours.",
        kind="targeting_created",
        payload={
            "targeting_id": str(event.targeting_id),
            "source_swap_id": str(event.source_swap_id),
            "target_swap_id": str(event.target_swap_id),
        },
    )


def on_targeting_cancelled(event: TargetingCancelled) -> None:
    NotificationService().notify(
        event.target_owner_id,
        "Incoming target removed",
        f"A swap stopped targeting yours: {event.reason}.",
        kind="targeting_cancelled",
        payload={
            "targeting_id": str(event.targeting_id),
            "source_swap_id": str(event.source_swap_id),
            "target_swap_id": str(event.target_swap_id),
            "reason": event.reason,
        },
    )


EVENT_HANDLERS = {
    SwapCreated: [on_swap_created],
    SwapStatusChanged: [on_swap_status_changed],
    ProposalSubmitted: [on_proposal_submitted],
    ProposalAccepted: [on_proposal_accepted],
    ProposalRejected: [on_proposal_rejected],
    ProposalExpired: [on_proposal_expired],
    AuctionEnded: [on_auction_ended],
    AuctionWinnerSelected: [on_auction_winner_selected],
    TargetingCreated: [on_targeting_created],
    TargetingCancelled: [on_targeting_cancelled],
}
