"""
Swap Domain Events

Events that represent things that have happened in the swap domain.
They are published after successful transaction commits and carry the
user ids of the parties to notify, so handlers need no extra lookups.
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from shared.domain.base import DomainEvent


# ===== Swap Events =====

@dataclass(kw_only=True)
class SwapCreated(DomainEvent):
    """
    Event: A booking was listed for swapping

    Triggers:
    - Confirmation to the owner
    """
    swap_id: UUID
    owner_id: int
    source_booking_id: UUID
    strategy: str


@dataclass(kw_only=True)
class SwapStatusChanged(DomainEvent):
    """
    Event: Swap moved to a new lifecycle status

    This is the real-time push payload: every party holding a reference
    to the swap receives {new_status, timestamp}.
    """
    swap_id: UUID
    owner_id: int
    old_status: str
    new_status: str
    timestamp: datetime
    party_ids: tuple[int, ...] = field(default_factory=tuple)


# ===== Proposal Events =====

@dataclass(kw_only=True)
class ProposalSubmitted(DomainEvent):
    """
    Event: A proposal was submitted against a swap

    Triggers:
    - Notify the swap owner
    """
    proposal_id: UUID
    swap_id: UUID
    proposer_id: int
    owner_id: int
    proposal_type: str


@dataclass(kw_only=True)
class ProposalAccepted(DomainEvent):
    """Event: Proposal accepted (manually, as auction winner or automatically)"""
    proposal_id: UUID
    swap_id: UUID
    proposer_id: int
    automatic: bool = False


@dataclass(kw_only=True)
class ProposalRejected(DomainEvent):
    """Event: Proposal rejected, superseded or withdrawn"""
    proposal_id: UUID
    swap_id: UUID
    proposer_id: int
    reason: str


@dataclass(kw_only=True)
class ProposalExpired(DomainEvent):
    """Event: Proposal expired together with its swap"""
    proposal_id: UUID
    swap_id: UUID
    proposer_id: int


# ===== Auction Events =====

@dataclass(kw_only=True)
class AuctionEnded(DomainEvent):
    """
    Event: Auction stopped collecting proposals

    Triggers:
    - Ask the owner to pick a winner
    """
    auction_id: UUID
    swap_id: UUID
    owner_id: int
    proposal_count: int
    early: bool = False


@dataclass(kw_only=True)
class AuctionWinnerSelected(DomainEvent):
    """Event: Auction winner chosen by the owner or by auto-selection"""
    auction_id: UUID
    swap_id: UUID
    proposal_id: UUID
    automatic: bool = False


# ===== Targeting Events =====

@dataclass(kw_only=True)
class TargetingCreated(DomainEvent):
    """
    Event: Source swap now targets another swap

    Triggers:
    - Target owner sees a new incoming target
    """
    targeting_id: UUID
    source_swap_id: UUID
    target_swap_id: UUID
    proposal_id: UUID
    target_owner_id: int


@dataclass(kw_only=True)
class TargetingCancelled(DomainEvent):
    """
    Event: Targeting relationship ended without an exchange

    Triggers:
    - Target owner's incoming list shrinks
    """
    targeting_id: UUID
    source_swap_id: UUID
    target_swap_id: UUID
    proposal_id: UUID
    target_owner_id: int
    reason: str
