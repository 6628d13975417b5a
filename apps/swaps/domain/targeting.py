"""
Targeting Domain

A targeting link is one directed edge: source swap -> target swap, created
by a booking proposal. The source owner sees it as outgoing, the target
owner as incoming; both views are computed from the same edge.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from shared.domain.base import Aggregate

from apps.swaps.domain.errors import InvalidTransition
from apps.swaps.domain.events import TargetingCancelled, TargetingCreated

TARGETING_CANCELLED_REASON = 'targeting cancelled by proposer'
RETARGETED_REASON = 'proposer retargeted to a different swap'


class TargetingStatus(Enum):
    ACTIVE = 'active'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'


ENDED_WITHOUT_EXCHANGE = frozenset({
    TargetingStatus.REJECTED,
    TargetingStatus.CANCELLED,
    TargetingStatus.EXPIRED,
})


@dataclass(kw_only=True, eq=False)
class Targeting(Aggregate):
    source_swap_id: UUID
    target_swap_id: UUID
    proposal_id: UUID
    target_owner_id: int
    status: TargetingStatus = TargetingStatus.ACTIVE
    ended_at: datetime | None = None

    @classmethod
    def create(
        cls,
        *,
        source_swap_id: UUID,
        target_swap_id: UUID,
        proposal_id: UUID,
        target_owner_id: int,
        now: datetime,
    ) -> 'Targeting':
        """Events: TargetingCreated"""
        link = cls(
            source_swap_id=source_swap_id,
            target_swap_id=target_swap_id,
            proposal_id=proposal_id,
            target_owner_id=target_owner_id,
            created_at=now,
            updated_at=now,
        )
        link.add_event(TargetingCreated(
            aggregate_id=link.id,
            targeting_id=link.id,
            source_swap_id=source_swap_id,
            target_swap_id=target_swap_id,
            proposal_id=proposal_id,
            target_owner_id=target_owner_id,
        ))
        return link

    @property
    def is_active(self) -> bool:
        return self.status == TargetingStatus.ACTIVE

    def _close(self, status: TargetingStatus, now: datetime):
        if not self.is_active:
            raise InvalidTransition(
                f"Targeting {self.id} is already {self.status.value}",
                details={'targeting_id': str(self.id), 'status': self.status.value},
            )
        self.status = status
        self.ended_at = now
        self.touch(now)

    def _announce_end(self, reason: str):
        self.add_event(TargetingCancelled(
            aggregate_id=self.id,
            targeting_id=self.id,
            source_swap_id=self.source_swap_id,
            target_swap_id=self.target_swap_id,
            proposal_id=self.proposal_id,
            target_owner_id=self.target_owner_id,
            reason=reason,
        ))

    def cancel(self, reason: str, now: datetime) -> bool:
        """
        Remove the link without an exchange

        Idempotent: returns False when the link already ended without an
        exchange. An accepted link cannot be cancelled.
        Events: TargetingCancelled
        """
        if self.status in ENDED_WITHOUT_EXCHANGE:
            return False
        self._close(TargetingStatus.CANCELLED, now)
        self._announce_end(reason)
        return True

    def mark_rejected(self, reason: str, now: datetime):
        """Target owner rejected the proposal. Events: TargetingCancelled"""
        self._close(TargetingStatus.REJECTED, now)
        self._announce_end(reason)

    def mark_expired(self, now: datetime):
        self._close(TargetingStatus.EXPIRED, now)
        self._announce_end('swap expired')

    def mark_accepted(self, now: datetime):
        self._close(TargetingStatus.ACCEPTED, now)
