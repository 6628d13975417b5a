"""
Swap Repositories

Load domain aggregates from ORM rows and write their state back.

- ``lock=True`` reads rows with SELECT ... FOR UPDATE.
- Several swaps are always locked in primary-key order so two commands
  touching the same pair cannot deadlock.
- Swap writes compare the ``version`` column; a stale aggregate raises
  ConcurrentModification instead of overwriting a newer state.
"""

from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from django.db import IntegrityError  # type: ignore
from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.entities import Booking as BookingEntity
from apps.bookings.models import Booking as BookingModel
from apps.swaps.domain.auction import Auction, AuctionSettings, AuctionStatus
from apps.swaps.domain.entities import (
    AuctionStrategy,
    FirstMatchStrategy,
    PaymentTypePreference,
    Swap,
    SwapStatus,
    SwapTimeline,
)
from apps.swaps.domain.errors import (
    AuctionNotFound,
    ConcurrentModification,
    ProposalNotFound,
    SwapNotFound,
    TargetingNotFound,
)
from apps.swaps.domain.proposals import BookingOffer, CashOffer, Proposal, ProposalStatus
from apps.swaps.domain.targeting import Targeting, TargetingStatus
from apps.swaps.models import Swap as SwapModel
from apps.swaps.models import SwapAuction, SwapProposal, SwapTargeting

logger = logging.getLogger(__name__)


class SwapRepository:
    """Swap aggregates backed by ``swaps.Swap`` rows"""

    def _to_entity(self, row: SwapModel) -> Swap:
        if row.acceptance_strategy == SwapModel.Strategy.AUCTION:
            end_date = (
                SwapAuction.objects.filter(swap_id=row.id).values_list("end_date", flat=True).first()
            )
            strategy = AuctionStrategy(end_date=end_date, auto_select_highest=row.auto_select_highest)
        else:
            strategy = FirstMatchStrategy()

        return Swap(
            id=row.id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            source_booking_id=row.source_booking_id,
            owner_id=row.owner_id,
            title=row.title,
            description=row.description,
            payment_types=PaymentTypePreference(
                booking_exchange=row.accepts_booking_exchange,
                cash_payment=row.accepts_cash,
                currency=row.currency,
                minimum_cash_amount=row.minimum_cash_amount,
                preferred_cash_amount=row.preferred_cash_amount,
            ),
            strategy=strategy,
            expires_at=row.expires_at,
            preferences=dict(row.preferences or {}),
            status=SwapStatus(row.status),
            timeline=SwapTimeline(
                proposed_at=row.proposed_at,
                responded_at=row.responded_at,
                completed_at=row.completed_at,
            ),
            accepted_proposal_id=row.accepted_proposal_id,
            version=row.version,
        )

    def _fields(self, swap: Swap) -> dict:
        strategy = swap.strategy
        return {
            "title": swap.title,
            "description": swap.description,
            "accepts_booking_exchange": swap.payment_types.booking_exchange,
            "accepts_cash": swap.payment_types.cash_payment,
            "minimum_cash_amount": swap.payment_types.minimum_cash_amount,
            "preferred_cash_amount": swap.payment_types.preferred_cash_amount,
            "currency": swap.payment_types.currency,
            "acceptance_strategy": strategy.kind,
            "auto_select_highest": getattr(strategy, "auto_select_highest", False),
            "preferences": swap.preferences,
            "status": swap.status.value,
            "expires_at": swap.expires_at,
            "proposed_at": swap.timeline.proposed_at,
            "responded_at": swap.timeline.responded_at,
            "completed_at": swap.timeline.completed_at,
            "accepted_proposal_id": swap.accepted_proposal_id,
            "updated_at": swap.updated_at,
        }

    def find(self, swap_id: UUID, lock: bool = False) -> Swap | None:
        queryset = SwapModel.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        row = queryset.filter(pk=swap_id).first()
        return self._to_entity(row) if row else None

    def get(self, swap_id: UUID, lock: bool = False) -> Swap:
        swap = self.find(swap_id, lock=lock)
        if swap is None:
            raise SwapNotFound(f"Swap {swap_id} not found", details={"swap_id": str(swap_id)})
        return swap

    def get_many(self, swap_ids: Iterable[UUID], lock: bool = False) -> dict[UUID, Swap]:
        """Load several swaps, locking them in primary-key order"""
        wanted = sorted(set(swap_ids), key=str)
        queryset = SwapModel.objects.filter(pk__in=wanted).order_by("pk")
        if lock:
            queryset = queryset.select_for_update()
        swaps = {row.id: self._to_entity(row) for row in queryset}
        missing = [swap_id for swap_id in wanted if swap_id not in swaps]
        if missing:
            raise SwapNotFound(
                f"Swap {missing[0]} not found",
                details={"swap_id": str(missing[0])},
            )
        return swaps

    def open_swap_for_booking(self, booking_id: UUID) -> UUID | None:
        return (
            SwapModel.objects.filter(source_booking_id=booking_id, status=SwapModel.Status.PENDING)
            .values_list("id", flat=True)
            .first()
        )

    def booking_committed(self, booking_id: UUID) -> bool:
        """
        True while an accepted, not yet completed swap promises the booking

        Either as its source booking or as the offer of its accepted proposal.
        """
        accepted = SwapModel.objects.filter(status=SwapModel.Status.ACCEPTED)
        return (
            accepted.filter(source_booking_id=booking_id).exists()
            or accepted.filter(
                accepted_proposal_id__in=SwapProposal.objects.filter(booking_id=booking_id).values("id")
            ).exists()
        )

    def add(self, swap: Swap) -> None:
        SwapModel.objects.create(
            id=swap.id,
            source_booking_id=swap.source_booking_id,
            owner_id=swap.owner_id,
            created_at=swap.created_at,
            version=swap.version,
            **self._fields(swap),
        )

    def save(self, swap: Swap) -> None:
        updated = SwapModel.objects.filter(pk=swap.id, version=swap.version).update(
            version=F("version") + 1,
            **self._fields(swap),
        )
        if not updated:
            logger.warning("Stale write rejected for swap %s (version %s)", swap.id, swap.version)
            raise ConcurrentModification(
                f"Swap {swap.id} was modified concurrently, reload and retry",
                details={"swap_id": str(swap.id)},
            )
        swap.version += 1


class AuctionRepository:
    """Auction aggregates backed by ``swaps.SwapAuction`` rows"""

    def _to_entity(self, row: SwapAuction) -> Auction:
        proposal_ids = list(
            SwapProposal.objects.filter(auction_id=row.id)
            .order_by("created_at")
            .values_list("id", flat=True)
        )
        return Auction(
            id=row.id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            swap_id=row.swap_id,
            owner_id=row.swap.owner_id,
            settings=AuctionSettings(
                end_date=row.end_date,
                allow_booking_proposals=row.allow_booking_proposals,
                allow_cash_proposals=row.allow_cash_proposals,
                minimum_cash_offer=row.minimum_cash_offer,
                auto_select_after_hours=row.auto_select_after_hours,
            ),
            proposal_ids=proposal_ids,
            status=AuctionStatus(row.status),
            winner_proposal_id=row.winner_proposal_id,
            ended_at=row.ended_at,
        )

    def _query(self, lock: bool):
        queryset = SwapAuction.objects.select_related("swap")
        if lock:
            queryset = queryset.select_for_update(of=("self",))
        return queryset

    def get(self, auction_id: UUID, lock: bool = False) -> Auction:
        row = self._query(lock).filter(pk=auction_id).first()
        if row is None:
            raise AuctionNotFound(
                f"Auction {auction_id} not found",
                details={"auction_id": str(auction_id)},
            )
        return self._to_entity(row)

    def swap_id_for(self, auction_id: UUID) -> UUID:
        swap_id = SwapAuction.objects.filter(pk=auction_id).values_list("swap_id", flat=True).first()
        if swap_id is None:
            raise AuctionNotFound(
                f"Auction {auction_id} not found",
                details={"auction_id": str(auction_id)},
            )
        return swap_id

    def for_swap(self, swap_id: UUID, lock: bool = False) -> Auction | None:
        row = self._query(lock).filter(swap_id=swap_id).first()
        return self._to_entity(row) if row else None

    def add(self, auction: Auction) -> None:
        settings = auction.settings
        SwapAuction.objects.create(
            id=auction.id,
            swap_id=auction.swap_id,
            end_date=settings.end_date,
            allow_booking_proposals=settings.allow_booking_proposals,
            allow_cash_proposals=settings.allow_cash_proposals,
            minimum_cash_offer=settings.minimum_cash_offer,
            auto_select_after_hours=settings.auto_select_after_hours,
            status=auction.status.value,
            created_at=auction.created_at,
            updated_at=auction.updated_at,
        )

    def save(self, auction: Auction) -> None:
        SwapAuction.objects.filter(pk=auction.id).update(
            status=auction.status.value,
            winner_proposal_id=auction.winner_proposal_id,
            ended_at=auction.ended_at,
            updated_at=auction.updated_at,
        )


class ProposalRepository:
    """Proposal aggregates backed by ``swaps.SwapProposal`` rows"""

    def _to_entity(self, row: SwapProposal) -> Proposal:
        if row.proposal_type == SwapProposal.Type.BOOKING:
            offer = BookingOffer(booking_id=row.booking_id)
        else:
            offer = CashOffer(
                amount=row.cash_amount,
                currency=row.currency,
                payment_method_id=row.payment_method_id or None,
                escrow_agreement=row.escrow_agreement,
            )
        return Proposal(
            id=row.id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            swap_id=row.swap_id,
            proposer_id=row.proposer_id,
            offer=offer,
            message=row.message,
            conditions=list(row.conditions or []),
            status=ProposalStatus(row.status),
            responded_at=row.responded_at,
            rejection_reason=row.rejection_reason,
            auction_id=row.auction_id,
        )

    def find(self, proposal_id: UUID, lock: bool = False) -> Proposal | None:
        queryset = SwapProposal.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        row = queryset.filter(pk=proposal_id).first()
        return self._to_entity(row) if row else None

    def get(self, proposal_id: UUID, lock: bool = False) -> Proposal:
        proposal = self.find(proposal_id, lock=lock)
        if proposal is None:
            raise ProposalNotFound(
                f"Proposal {proposal_id} not found",
                details={"proposal_id": str(proposal_id)},
            )
        return proposal

    def for_swap(self, swap_id: UUID, lock: bool = False) -> list[Proposal]:
        queryset = SwapProposal.objects.filter(swap_id=swap_id).order_by("created_at")
        if lock:
            queryset = queryset.select_for_update()
        return [self._to_entity(row) for row in queryset]

    def add(self, proposal: Proposal) -> None:
        offer = proposal.offer
        fields = {
            "proposal_type": offer.kind,
            "message": proposal.message,
            "conditions": proposal.conditions,
            "status": proposal.status.value,
            "auction_id": proposal.auction_id,
            "created_at": proposal.created_at,
            "updated_at": proposal.updated_at,
        }
        if isinstance(offer, BookingOffer):
            fields["booking_id"] = offer.booking_id
        else:
            fields.update(
                cash_amount=offer.amount,
                currency=offer.currency,
                payment_method_id=offer.payment_method_id or "",
                escrow_agreement=offer.escrow_agreement,
            )
        try:
            SwapProposal.objects.create(
                id=proposal.id,
                swap_id=proposal.swap_id,
                proposer_id=proposal.proposer_id,
                **fields,
            )
        except IntegrityError as exc:
            raise ConcurrentModification(
                "Another pending proposal from this proposer was stored concurrently",
                details={"swap_id": str(proposal.swap_id)},
            ) from exc

    def save(self, proposal: Proposal) -> None:
        SwapProposal.objects.filter(pk=proposal.id).update(
            status=proposal.status.value,
            rejection_reason=proposal.rejection_reason,
            responded_at=proposal.responded_at,
            auction_id=proposal.auction_id,
            updated_at=proposal.updated_at,
        )


class TargetingRepository:
    """Targeting links backed by ``swaps.SwapTargeting`` rows"""

    def _to_entity(self, row: SwapTargeting) -> Targeting:
        return Targeting(
            id=row.id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            source_swap_id=row.source_swap_id,
            target_swap_id=row.target_swap_id,
            proposal_id=row.proposal_id,
            target_owner_id=row.target_swap.owner_id,
            status=TargetingStatus(row.status),
            ended_at=row.ended_at,
        )

    def _query(self, lock: bool = False):
        queryset = SwapTargeting.objects.select_related("target_swap")
        if lock:
            queryset = queryset.select_for_update(of=("self",))
        return queryset

    def get(self, targeting_id: UUID, lock: bool = False) -> Targeting:
        row = self._query(lock).filter(pk=targeting_id).first()
        if row is None:
            raise TargetingNotFound(
                f"Targeting {targeting_id} not found",
                details={"targeting_id": str(targeting_id)},
            )
        return self._to_entity(row)

    def active_for_source(self, source_swap_id: UUID, lock: bool = False) -> Targeting | None:
        row = (
            self._query(lock)
            .filter(source_swap_id=source_swap_id, status=SwapTargeting.Status.ACTIVE)
            .first()
        )
        return self._to_entity(row) if row else None

    def active_incoming(self, target_swap_id: UUID, lock: bool = False) -> list[Targeting]:
        queryset = self._query(lock).filter(
            target_swap_id=target_swap_id,
            status=SwapTargeting.Status.ACTIVE,
        ).order_by("created_at")
        return [self._to_entity(row) for row in queryset]

    def for_proposal(self, proposal_id: UUID) -> Targeting | None:
        row = self._query().filter(proposal_id=proposal_id).first()
        return self._to_entity(row) if row else None

    def add(self, link: Targeting) -> None:
        try:
            SwapTargeting.objects.create(
                id=link.id,
                source_swap_id=link.source_swap_id,
                target_swap_id=link.target_swap_id,
                proposal_id=link.proposal_id,
                status=link.status.value,
                created_at=link.created_at,
                updated_at=link.updated_at,
            )
        except IntegrityError as exc:
            raise ConcurrentModification(
                "Source swap already targets another swap",
                details={"source_swap_id": str(link.source_swap_id)},
            ) from exc

    def save(self, link: Targeting) -> None:
        SwapTargeting.objects.filter(pk=link.id).update(
            status=link.status.value,
            ended_at=link.ended_at,
            updated_at=link.updated_at,
        )


class BookingRepository:
    """Booking entities as seen from the swap context"""

    def find(self, booking_id: UUID, lock: bool = False) -> BookingEntity | None:
        queryset = BookingModel.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        row = queryset.filter(pk=booking_id).first()
        return row.to_entity() if row else None

    def save(self, booking: BookingEntity) -> None:
        BookingModel.objects.filter(pk=booking.id).update(
            status=booking.status.value,
            updated_at=timezone.now(),
        )
