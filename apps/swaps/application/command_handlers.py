"""
Swap Command Handlers

These are the use cases for the swap domain.
They orchestrate domain operations within transactions.

Commands:
- CreateSwap: List a booking for swapping
- SubmitProposal: Offer a booking or cash against a swap
- AcceptProposal: Owner accepts a proposal (first match or auction winner)
- RejectProposal: Owner rejects a proposal, optionally closing the swap
- SelectWinner: Owner picks the winner of an ended auction
- CloseAuctionEarly: Owner ends an auction without competing proposals
- CancelSwap: Owner withdraws the listing
- CompleteSwap: Exchange confirmation callback
- Retarget: Point a source swap at a different target swap
- CancelTargeting: Withdraw the proposal behind a targeting link

Every handler follows the same strategy:
1. Persist lazy state (auction end, auto-selection, expiry) on its own
2. Open one transaction (DjangoUnitOfWork)
3. Lock every swap involved, in primary-key order (SELECT FOR UPDATE)
4. Apply the transition to the in-memory aggregates
5. Save everything; swap rows are checked against their version
6. Publish the collected events after commit
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable
from uuid import UUID

import structlog
from django.utils import timezone  # type: ignore

from shared.application.uow import DjangoUnitOfWork
from shared.domain.exceptions import Conflict, ExternalDependencyFailure, NotFound, ValidationFailed

from apps.bookings.domain.entities import Booking
from apps.swaps.conf import last_minute_window, max_message_length
from apps.swaps.domain.auction import Auction, AuctionSettings, select_winner, settle_auction
from apps.swaps.domain.entities import (
    AuctionStrategy,
    FirstMatchStrategy,
    PaymentTypePreference,
    Swap,
    SwapStatus,
)
from apps.swaps.domain.errors import (
    AuctionNotFound,
    BookingNotEligible,
    InvalidAuctionSettings,
    InvalidTransition,
    NotSwapOwner,
    SwapNotFound,
    TargetingNotFound,
)
from apps.swaps.domain.proposals import (
    SOURCE_SWAP_ACCEPTED_REASON,
    SUPERSEDED_REASON,
    SWAP_ACCEPTED_OTHER_REASON,
    SWAP_CANCELLED_REASON,
    SWAP_CLOSED_REASON,
    BookingOffer,
    Offer,
    Proposal,
    ProposalStatus,
    validate_submission,
)
from apps.swaps.domain.targeting import (
    RETARGETED_REASON,
    TARGETING_CANCELLED_REASON,
    Targeting,
    TargetingStatus,
)
from apps.swaps.integrity import validate_swap_references
from apps.swaps.repositories import (
    AuctionRepository,
    BookingRepository,
    ProposalRepository,
    SwapRepository,
    TargetingRepository,
)

logger = structlog.get_logger(__name__)

DEFAULT_REJECTION_REASON = 'rejected by owner'


# ===== Commands =====

@dataclass
class CreateSwap:
    """
    Command to list a booking for swapping

    payment_types: {booking_exchange, cash_payment, minimum_cash_amount?,
    preferred_cash_amount?}
    acceptance_strategy: {type: first_match} or
    {type: auction, end_date, auto_select_highest}
    """
    owner_id: int
    source_booking_id: UUID
    title: str
    expiration_date: datetime
    payment_types: dict
    acceptance_strategy: dict
    description: str = ''
    auction_settings: dict | None = None
    swap_preferences: dict = field(default_factory=dict)


@dataclass
class SubmitProposal:
    swap_id: UUID
    proposer_id: int
    offer: Offer
    message: str
    conditions: list[str] = field(default_factory=list)


@dataclass
class AcceptProposal:
    """swap_id / target_id are optional consistency checks sent by clients"""
    proposal_id: UUID
    actor_id: int
    swap_id: UUID | None = None
    target_id: UUID | None = None


@dataclass
class RejectProposal:
    proposal_id: UUID
    actor_id: int
    reason: str = ''
    close_swap: bool = False
    swap_id: UUID | None = None
    target_id: UUID | None = None


@dataclass
class SelectWinner:
    auction_id: UUID
    proposal_id: UUID
    actor_id: int


@dataclass
class CloseAuctionEarly:
    auction_id: UUID
    actor_id: int


@dataclass
class CancelSwap:
    swap_id: UUID
    actor_id: int


@dataclass
class CompleteSwap:
    """Confirmation callback from the payment / booking-transfer collaborator"""
    swap_id: UUID
    confirmation_reference: str = ''
    succeeded: bool = True
    failure_reason: str = ''


@dataclass
class Retarget:
    source_swap_id: UUID
    new_target_swap_id: UUID
    actor_id: int
    message: str | None = None
    conditions: list[str] | None = None


@dataclass
class CancelTargeting:
    source_swap_id: UUID
    targeting_id: UUID
    actor_id: int


@dataclass
class CompletionResult:
    """Outcome of CompleteSwap; ``error`` is set when the exchange must be retried"""
    swap: Swap
    error: dict | None = None

    @property
    def success(self) -> bool:
        return self.error is None


# ===== Loading and persistence =====

@dataclass
class SwapRepositories:
    swaps: SwapRepository = field(default_factory=SwapRepository)
    auctions: AuctionRepository = field(default_factory=AuctionRepository)
    proposals: ProposalRepository = field(default_factory=ProposalRepository)
    targeting: TargetingRepository = field(default_factory=TargetingRepository)
    bookings: BookingRepository = field(default_factory=BookingRepository)


@dataclass
class SwapState:
    """A locked swap together with everything that hangs off it"""
    swap: Swap
    auction: Auction | None
    proposals: list[Proposal]
    incoming: list[Targeting]
    outgoing: Targeting | None

    def proposal(self, proposal_id: UUID) -> Proposal | None:
        return next((p for p in self.proposals if p.id == proposal_id), None)

    def pending(self) -> list[Proposal]:
        return [p for p in self.proposals if p.is_pending]

    def pending_from(self, proposer_id: int) -> Proposal | None:
        return next((p for p in self.pending() if p.proposer_id == proposer_id), None)

    def incoming_for(self, proposal_id: UUID) -> Targeting | None:
        return next((link for link in self.incoming if link.proposal_id == proposal_id), None)

    def party_ids(self) -> list[int]:
        """Everyone holding a reference to the swap"""
        return [self.swap.owner_id] + [p.proposer_id for p in self.proposals]


class SwapSession:
    """
    Swaps loaded under lock for one command

    Links are kept in an identity map, so the same edge seen as the
    outgoing link of one swap and the incoming link of another is one
    object.
    """

    def __init__(self, repos: SwapRepositories, now: datetime):
        self.repos = repos
        self.now = now
        self.states: dict[UUID, SwapState] = {}
        self.settled = False
        self.new_proposals: list[Proposal] = []
        self.new_links: list[Targeting] = []
        self.bookings: list[Booking] = []
        # proposals on swaps outside the session, ended by release_outgoing
        self.detached: list[Proposal] = []
        self._links: dict[UUID, Targeting] = {}

    def _link(self, link: Targeting | None) -> Targeting | None:
        if link is None:
            return None
        return self._links.setdefault(link.id, link)

    def load(self, *swap_ids: UUID) -> list[SwapState]:
        repos = self.repos
        swaps = repos.swaps.get_many(swap_ids, lock=True)
        for swap_id in sorted(swaps, key=str):
            swap = swaps[swap_id]
            state = SwapState(
                swap=swap,
                auction=repos.auctions.for_swap(swap_id, lock=True) if swap.is_auction else None,
                proposals=repos.proposals.for_swap(swap_id, lock=True),
                incoming=[self._link(link) for link in repos.targeting.active_incoming(swap_id, lock=True)],
                outgoing=self._link(repos.targeting.active_for_source(swap_id, lock=True)),
            )
            self.states[swap_id] = state
        for swap_id in sorted(swaps, key=str):
            self._settle(self.states[swap_id])
        return [self.states[swap_id] for swap_id in swap_ids]

    def _settle(self, state: SwapState):
        swap = state.swap
        if state.auction is not None:
            status_before = state.auction.status
            winner = settle_auction(swap, state.auction, state.proposals, self.now)
            if winner is not None:
                logger.info(
                    "auction.auto_selected",
                    auction_id=str(state.auction.id),
                    proposal_id=str(winner.id),
                )
                self.release_outgoing(state, SOURCE_SWAP_ACCEPTED_REASON)
            if winner is not None or state.auction.status != status_before:
                self.settled = True

        if swap.refresh_expiry(self.now, state.party_ids()):
            for proposal in state.pending():
                proposal.expire(swap.expires_at)
            logger.info("swap.expired", swap_id=str(swap.id), expired_at=swap.expires_at.isoformat())
            self.settled = True

    def find_proposal(self, proposal_id: UUID) -> Proposal | None:
        for state in self.states.values():
            proposal = state.proposal(proposal_id)
            if proposal is not None:
                return proposal
        return None

    def release_outgoing(self, source: SwapState, reason: str) -> Targeting | None:
        """
        Cancel the source swap's active link and reject its proposal

        Both happen in the same transaction, so the link never outlives the
        proposal or the other way round. When the target swap is not part of
        the session its proposal row is locked and rejected on its own.
        """
        link = source.outgoing
        if link is None or not link.is_active:
            return None
        link.cancel(reason, self.now)
        target = self.states.get(link.target_swap_id)
        if target is not None:
            proposal = target.proposal(link.proposal_id)
        else:
            proposal = self.repos.proposals.find(link.proposal_id, lock=True)
            if proposal is not None:
                self.detached.append(proposal)
        if proposal is not None and proposal.is_pending:
            proposal.reject(reason, self.now)
        source.outgoing = None
        return link

    def withdraw_previous(self, state: SwapState, proposer_id: int) -> Proposal | None:
        """Reject the proposer's current pending proposal on this swap"""
        previous = state.pending_from(proposer_id)
        if previous is None:
            return None
        link = state.incoming_for(previous.id)
        if link is not None and link.is_active:
            link.cancel(SUPERSEDED_REASON, self.now)
        previous.reject(SUPERSEDED_REASON, self.now)
        return previous

    def submit(
        self,
        state: SwapState,
        proposer_id: int,
        offer: Offer,
        message: str,
        conditions: list[str],
        source: SwapState | None = None,
    ) -> tuple[Proposal, Targeting | None]:
        """Create the proposal (validated by the caller) and its targeting link"""
        self.withdraw_previous(state, proposer_id)
        proposal = Proposal.submit(
            swap=state.swap,
            proposer_id=proposer_id,
            offer=offer,
            message=message,
            conditions=conditions,
            now=self.now,
            auction_id=state.auction.id if state.auction else None,
        )
        if state.auction is not None:
            state.auction.add_proposal(proposal.id, self.now)
        self.new_proposals.append(proposal)

        link = None
        if source is not None:
            self.release_outgoing(source, RETARGETED_REASON)
            link = Targeting.create(
                source_swap_id=source.swap.id,
                target_swap_id=state.swap.id,
                proposal_id=proposal.id,
                target_owner_id=state.swap.owner_id,
                now=self.now,
            )
            source.outgoing = link
            self.new_links.append(link)
        return proposal, link

    def match_counterpart(self, state: SwapState, proposal: Proposal) -> Swap | None:
        """
        Accept the source swap of a booking exchange as well

        The counterpart is only matched while it still accepts proposals;
        its own pending proposals are rejected.
        """
        link = state.incoming_for(proposal.id)
        if link is None:
            return None
        source = self.states.get(link.source_swap_id)
        if source is None or not source.swap.accepts_proposals(self.now):
            return None
        source.swap.accept(
            proposal.id,
            None,
            self.now,
            party_ids=source.party_ids() + [state.swap.owner_id],
        )
        for other in source.pending():
            other.reject(SWAP_ACCEPTED_OTHER_REASON, self.now)
        return source.swap

    def _sync_links(self, state: SwapState):
        """Incoming links follow the terminal status of their proposals"""
        for link in state.incoming:
            if not link.is_active:
                continue
            proposal = state.proposal(link.proposal_id)
            if proposal is None or proposal.is_pending:
                continue
            if proposal.status == ProposalStatus.ACCEPTED:
                link.mark_accepted(self.now)
            elif proposal.status == ProposalStatus.REJECTED:
                link.mark_rejected(proposal.rejection_reason, self.now)
            else:
                link.mark_expired(self.now)

    def commit(self, uow: DjangoUnitOfWork):
        repos = self.repos
        states = [self.states[key] for key in sorted(self.states, key=str)]
        for state in states:
            self._sync_links(state)

        for state in states:
            repos.swaps.save(state.swap)
            if state.auction is not None:
                repos.auctions.save(state.auction)
        # Deactivate links and proposals before inserting their replacements
        for link in self._links.values():
            repos.targeting.save(link)
        for state in states:
            for proposal in state.proposals:
                repos.proposals.save(proposal)
        for proposal in self.detached:
            repos.proposals.save(proposal)
        for proposal in self.new_proposals:
            repos.proposals.add(proposal)
        for link in self.new_links:
            repos.targeting.add(link)
        for booking in self.bookings:
            repos.bookings.save(booking)

        aggregates: list[Any] = []
        for state in states:
            aggregates.append(state.swap)
            if state.auction is not None:
                aggregates.append(state.auction)
            aggregates.extend(state.proposals)
        aggregates.extend(self.new_proposals)
        aggregates.extend(self.detached)
        aggregates.extend(self._links.values())
        aggregates.extend(self.new_links)
        uow.collect_events(*aggregates)


# ===== Command Handlers =====

class SwapCommandHandler:
    """
    Base for swap handlers

    ``clock`` returns the current time; tests inject a fixed one.
    """

    def __init__(self, repos: SwapRepositories | None = None, clock: Callable[[], datetime] | None = None):
        self.repos = repos or SwapRepositories()
        self.clock = clock or timezone.now

    def settle(self, swap_ids: Iterable[UUID], now: datetime):
        """Persist lazy transitions before the command runs"""
        with DjangoUnitOfWork() as uow:
            session = SwapSession(self.repos, now)
            session.load(*swap_ids)
            if session.settled:
                session.commit(uow)

    def open_session(self, now: datetime, *swap_ids: UUID) -> SwapSession:
        session = SwapSession(self.repos, now)
        session.load(*swap_ids)
        return session

    def _swap_ids_for_acceptance(self, swap_id: UUID, link: Targeting | None) -> set[UUID]:
        """The accepting swap, the counterpart it may match and its own target"""
        swap_ids = {swap_id}
        if link is not None and link.is_active and link.target_swap_id == swap_id:
            swap_ids.add(link.source_swap_id)
        outgoing = self.repos.targeting.active_for_source(swap_id)
        if outgoing is not None:
            swap_ids.add(outgoing.target_swap_id)
        return swap_ids

    def _ensure_offer_free(self, proposal: Proposal):
        """
        A booking offer is only accepted while nothing else holds its booking

        Runs after the in-memory acceptance; raising rolls the whole command back.
        """
        offer = proposal.offer
        if not isinstance(offer, BookingOffer):
            return
        booking = self.repos.bookings.find(offer.booking_id, lock=True)
        if booking is None or not booking.is_available() or self.repos.swaps.booking_committed(booking.id):
            raise BookingNotEligible(
                "Offered booking is no longer available for an exchange",
                details={'booking_id': str(offer.booking_id), 'proposal_id': str(proposal.id)},
            )

    def _load_proposal_refs(self, proposal_id: UUID, swap_id: UUID | None, target_id: UUID | None):
        """Read-only lookup of the proposal and its link, before locking"""
        proposal = self.repos.proposals.get(proposal_id)
        if swap_id is not None and swap_id != proposal.swap_id:
            raise ValidationFailed(
                "Proposal does not belong to this swap",
                code='PROPOSAL_SWAP_MISMATCH',
                details={'proposal_id': str(proposal_id), 'swap_id': str(swap_id)},
            )
        link = self.repos.targeting.for_proposal(proposal_id)
        if target_id is not None and (link is None or link.id != target_id):
            raise ValidationFailed(
                "Targeting link does not belong to this proposal",
                code='TARGETING_MISMATCH',
                details={'proposal_id': str(proposal_id), 'target_id': str(target_id)},
            )
        return proposal, link

    def __call__(self, command):
        return self.handle(command)


class CreateSwapHandler(SwapCommandHandler):
    """
    Handler for CreateSwap command

    The source booking must belong to the owner, be available and not
    already back an open swap. The booking currency becomes the swap
    currency.
    """

    def handle(self, command: CreateSwap) -> Swap:
        now = self.clock()
        logger.info("swap.create_requested", owner_id=command.owner_id, booking_id=str(command.source_booking_id))

        with DjangoUnitOfWork() as uow:
            booking = self.repos.bookings.find(command.source_booking_id, lock=True)
            if booking is None:
                raise NotFound(
                    f"Booking {command.source_booking_id} not found",
                    code='BOOKING_NOT_FOUND',
                )
            if not booking.is_owned_by(command.owner_id):
                raise BookingNotEligible("You can only list your own bookings")
            if not booking.is_available() or self.repos.swaps.booking_committed(booking.id):
                raise BookingNotEligible(
                    "Booking is not available for swapping",
                    details={'booking_id': str(booking.id), 'status': booking.status.value},
                )
            if self.repos.swaps.open_swap_for_booking(booking.id):
                raise Conflict(
                    "Booking already backs an open swap",
                    code='BOOKING_IN_OPEN_SWAP',
                    details={'booking_id': str(booking.id)},
                )

            payment_types = self._payment_types(command.payment_types, booking.currency)
            strategy, auction_settings = self._strategy(command)

            swap = Swap.create(
                source_booking_id=booking.id,
                owner_id=command.owner_id,
                title=command.title,
                description=command.description,
                payment_types=payment_types,
                strategy=strategy,
                expires_at=command.expiration_date,
                starts_on=booking.starts_on,
                now=now,
                preferences=command.swap_preferences,
                window=last_minute_window(),
            )
            self.repos.swaps.add(swap)

            if auction_settings is not None:
                auction = Auction(
                    swap_id=swap.id,
                    owner_id=swap.owner_id,
                    settings=auction_settings,
                    created_at=now,
                    updated_at=now,
                )
                self.repos.auctions.add(auction)

            uow.collect_events(swap)

        logger.info("swap.created", swap_id=str(swap.id), strategy=strategy.kind)
        return swap

    def _payment_types(self, data: dict, currency: str) -> PaymentTypePreference:
        def amount(key):
            value = data.get(key)
            return Decimal(str(value)) if value not in (None, '') else None

        return PaymentTypePreference(
            booking_exchange=bool(data.get('booking_exchange')),
            cash_payment=bool(data.get('cash_payment')),
            currency=currency,
            minimum_cash_amount=amount('minimum_cash_amount'),
            preferred_cash_amount=amount('preferred_cash_amount'),
        )

    def _strategy(self, command: CreateSwap):
        data = command.acceptance_strategy or {}
        kind = data.get('type', FirstMatchStrategy.kind)
        if kind == FirstMatchStrategy.kind:
            return FirstMatchStrategy(), None
        if kind != AuctionStrategy.kind:
            raise ValidationFailed(
                f"Unknown acceptance strategy: {kind}",
                code='INVALID_STRATEGY',
            )

        end_date = data.get('end_date')
        if end_date is None:
            raise InvalidAuctionSettings("Auction end date is required")
        strategy = AuctionStrategy(
            end_date=end_date,
            auto_select_highest=bool(data.get('auto_select_highest', False)),
        )

        settings = dict(command.auction_settings or {})
        if settings.get('end_date') not in (None, end_date):
            raise InvalidAuctionSettings("Auction settings end date must match the acceptance strategy")
        minimum = settings.get('minimum_cash_offer')
        auction_settings = AuctionSettings(
            end_date=end_date,
            allow_booking_proposals=settings.get('allow_booking_proposals', True),
            allow_cash_proposals=settings.get('allow_cash_proposals', True),
            minimum_cash_offer=Decimal(str(minimum)) if minimum is not None else None,
            auto_select_after_hours=settings.get('auto_select_after_hours'),
        )
        return strategy, auction_settings


class SubmitProposalHandler(SwapCommandHandler):
    """
    Handler for SubmitProposal command

    Validation runs against the locked swap, so a concurrent acceptance,
    cancellation or auction close turns into SwapNotAvailable.

    A resubmission supersedes the proposer's previous pending proposal.
    A booking offer whose booking backs one of the proposer's open swaps
    becomes a targeting link from that swap; its previous link is cancelled
    first.
    """

    def handle(self, command: SubmitProposal) -> Proposal:
        now = self.clock()
        repos = self.repos

        if repos.swaps.find(command.swap_id) is None:
            validate_submission(
                swap=None,
                proposer_id=command.proposer_id,
                offer=command.offer,
                message=command.message,
                now=now,
            )

        source_swap_id = None
        swap_ids = {command.swap_id}
        if isinstance(command.offer, BookingOffer):
            source_swap_id = repos.swaps.open_swap_for_booking(command.offer.booking_id)
            if source_swap_id == command.swap_id:
                source_swap_id = None
            if source_swap_id is not None:
                swap_ids.add(source_swap_id)
                current = repos.targeting.active_for_source(source_swap_id)
                if current is not None:
                    swap_ids.add(current.target_swap_id)

        self.settle(swap_ids, now)

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, *swap_ids)
            state = session.states[command.swap_id]

            offered_booking = None
            committed = False
            if isinstance(command.offer, BookingOffer):
                offered_booking = repos.bookings.find(command.offer.booking_id)
                committed = repos.swaps.booking_committed(command.offer.booking_id)

            validate_submission(
                swap=state.swap,
                proposer_id=command.proposer_id,
                offer=command.offer,
                message=command.message,
                now=now,
                auction=state.auction,
                offered_booking=offered_booking,
                booking_committed=committed,
                max_message_length=max_message_length(),
            )

            source = session.states.get(source_swap_id) if source_swap_id else None
            if source is not None and not (
                source.swap.is_owned_by(command.proposer_id) and source.swap.accepts_proposals(now)
            ):
                source = None

            proposal, link = session.submit(
                state,
                command.proposer_id,
                command.offer,
                command.message,
                command.conditions,
                source=source,
            )
            session.commit(uow)

        logger.info(
            "proposal.submitted",
            proposal_id=str(proposal.id),
            swap_id=str(command.swap_id),
            proposal_type=proposal.proposal_type,
            targeting_id=str(link.id) if link else None,
        )
        return proposal


class AcceptProposalHandler(SwapCommandHandler):
    """
    Handler for AcceptProposal command

    First match: the proposal and the swap become accepted and every other
    pending proposal is rejected with "swap accepted another proposal".
    Auction swaps go through winner selection.
    A booking exchange with a targeting link also matches the source swap.
    """

    def handle(self, command: AcceptProposal) -> Swap:
        now = self.clock()
        proposal, link = self._load_proposal_refs(command.proposal_id, command.swap_id, command.target_id)
        swap_ids = self._swap_ids_for_acceptance(proposal.swap_id, link)

        self.settle(swap_ids, now)

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, *swap_ids)
            state = session.states[proposal.swap_id]
            swap = state.swap
            proposal = state.proposal(command.proposal_id)

            if state.auction is not None:
                select_winner(swap, state.auction, state.proposals, proposal.id, command.actor_id, now)
            else:
                if not swap.is_owned_by(command.actor_id):
                    raise NotSwapOwner("Only the swap owner can accept proposals")
                swap.ensure_accepting_proposals(now)
                if not proposal.is_pending:
                    raise InvalidTransition(
                        f"Proposal {proposal.id} is {proposal.status.value}",
                        details={'proposal_id': str(proposal.id), 'status': proposal.status.value},
                    )
                others = [p for p in state.pending() if p.id != proposal.id]
                swap.accept(proposal.id, command.actor_id, now, party_ids=state.party_ids())
                proposal.accept(now)
                for other in others:
                    other.reject(SWAP_ACCEPTED_OTHER_REASON, now)

            self._ensure_offer_free(proposal)
            session.release_outgoing(state, SOURCE_SWAP_ACCEPTED_REASON)
            counterpart = session.match_counterpart(state, proposal)
            session.commit(uow)

        logger.info(
            "proposal.accepted",
            proposal_id=str(proposal.id),
            swap_id=str(swap.id),
            counterpart_swap_id=str(counterpart.id) if counterpart else None,
        )
        return swap


class RejectProposalHandler(SwapCommandHandler):
    """
    Handler for RejectProposal command

    Other proposals stay pending unless close_swap is set, in which case the
    swap itself moves to rejected and takes them along.
    """

    def handle(self, command: RejectProposal) -> Proposal:
        now = self.clock()
        proposal, _ = self._load_proposal_refs(command.proposal_id, command.swap_id, command.target_id)

        self.settle([proposal.swap_id], now)

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, proposal.swap_id)
            state = session.states[proposal.swap_id]
            swap = state.swap
            proposal = state.proposal(command.proposal_id)

            if not swap.is_owned_by(command.actor_id):
                raise NotSwapOwner("Only the swap owner can reject proposals")
            swap.ensure_accepting_proposals(now)
            if not proposal.is_pending:
                raise InvalidTransition(
                    f"Proposal {proposal.id} is {proposal.status.value}",
                    details={'proposal_id': str(proposal.id), 'status': proposal.status.value},
                )

            proposal.reject((command.reason or '').strip() or DEFAULT_REJECTION_REASON, now)
            if command.close_swap:
                swap.reject(command.actor_id, now, party_ids=state.party_ids())
                for other in state.pending():
                    other.reject(SWAP_CLOSED_REASON, now)

            session.commit(uow)

        logger.info(
            "proposal.rejected",
            proposal_id=str(proposal.id),
            swap_id=str(swap.id),
            swap_closed=command.close_swap,
        )
        return proposal


class SelectWinnerHandler(SwapCommandHandler):
    """
    Handler for SelectWinner command

    Winner accepted, losers rejected and swap accepted are written in one
    transaction while the swap row is locked, so no proposal can join the
    auction while the winner is being selected.
    """

    def handle(self, command: SelectWinner) -> Swap:
        now = self.clock()
        swap_id = self.repos.auctions.swap_id_for(command.auction_id)
        link = self.repos.targeting.for_proposal(command.proposal_id)
        swap_ids = self._swap_ids_for_acceptance(swap_id, link)

        self.settle(swap_ids, now)

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, *swap_ids)
            state = session.states[swap_id]
            if state.auction is None or state.auction.id != command.auction_id:
                raise AuctionNotFound(f"Auction {command.auction_id} not found")

            select_winner(state.swap, state.auction, state.proposals, command.proposal_id, command.actor_id, now)
            winner = state.proposal(command.proposal_id)
            self._ensure_offer_free(winner)
            session.release_outgoing(state, SOURCE_SWAP_ACCEPTED_REASON)
            session.match_counterpart(state, winner)
            session.commit(uow)

        logger.info(
            "auction.winner_selected",
            auction_id=str(command.auction_id),
            proposal_id=str(command.proposal_id),
        )
        return state.swap


class CloseAuctionEarlyHandler(SwapCommandHandler):
    """Handler for CloseAuctionEarly command"""

    def handle(self, command: CloseAuctionEarly) -> Auction:
        now = self.clock()
        swap_id = self.repos.auctions.swap_id_for(command.auction_id)
        self.settle([swap_id], now)

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, swap_id)
            state = session.states[swap_id]
            auction = state.auction
            if auction is None or auction.id != command.auction_id:
                raise AuctionNotFound(f"Auction {command.auction_id} not found")

            if not state.swap.is_owned_by(command.actor_id):
                raise NotSwapOwner("Only the swap owner can close the auction")
            state.swap.ensure_accepting_proposals(now)
            auction.close_early(command.actor_id, len(state.pending()), now)
            session.commit(uow)

        logger.info("auction.closed_early", auction_id=str(auction.id))
        return auction


class CancelSwapHandler(SwapCommandHandler):
    """
    Handler for CancelSwap command

    Rejects every outstanding incoming proposal and withdraws the swap's own
    outgoing proposal together with its targeting link.
    """

    def handle(self, command: CancelSwap) -> Swap:
        now = self.clock()
        swap_ids = {command.swap_id}
        outgoing = self.repos.targeting.active_for_source(command.swap_id)
        if outgoing is not None:
            swap_ids.add(outgoing.target_swap_id)

        self.settle(swap_ids, now)

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, *swap_ids)
            state = session.states[command.swap_id]
            swap = state.swap

            swap.cancel(command.actor_id, now, party_ids=state.party_ids())
            for proposal in state.pending():
                proposal.reject(SWAP_CANCELLED_REASON, now)
            session.release_outgoing(state, SWAP_CANCELLED_REASON)
            session.commit(uow)

        logger.info("swap.cancelled", swap_id=str(swap.id))
        return swap


def _ensure_completable(swap: Swap):
    if swap.status != SwapStatus.ACCEPTED:
        raise InvalidTransition(
            f"Cannot complete swap from status {swap.status.value}",
            details={'from': swap.status.value, 'to': SwapStatus.COMPLETED.value},
        )


class CompleteSwapHandler(SwapCommandHandler):
    """
    Handler for CompleteSwap command

    The exchange itself happens outside this service; this handler only
    records its confirmation. A failed confirmation or a failed reference
    check leaves the swap accepted and returns the error for a retry.
    """

    def handle(self, command: CompleteSwap) -> CompletionResult:
        now = self.clock()
        swap = self.repos.swaps.get(command.swap_id)
        _ensure_completable(swap)

        # A matched counterpart points at the proposal made on the other swap
        checked_swap_id = swap.id
        if swap.accepted_proposal_id is not None:
            accepted = self.repos.proposals.find(swap.accepted_proposal_id)
            if accepted is not None:
                checked_swap_id = accepted.swap_id
        check = validate_swap_references(checked_swap_id, swap.accepted_proposal_id)
        if check.error:
            failure = ExternalDependencyFailure(
                "Could not verify swap references, retry later",
                code='REFERENCE_CHECK_FAILED',
                details={'swap_id': str(swap.id), 'reason': check.error},
            )
            return CompletionResult(swap=swap, error=failure.to_dict())
        if not check.is_valid:
            raise Conflict(
                "Swap references are inconsistent",
                code='INVALID_REFERENCES',
                details={'errors': check.errors},
            )

        if not command.succeeded:
            failure = ExternalDependencyFailure(
                command.failure_reason or "Exchange confirmation failed",
                code='EXCHANGE_CONFIRMATION_FAILED',
                details={
                    'swap_id': str(swap.id),
                    'confirmation_reference': command.confirmation_reference,
                },
            )
            logger.warning(
                "swap.completion_failed",
                swap_id=str(swap.id),
                reason=failure.message,
                confirmation_reference=command.confirmation_reference,
            )
            return CompletionResult(swap=swap, error=failure.to_dict())

        swap_ids = {swap.id}
        link = None
        if swap.accepted_proposal_id is not None:
            link = self.repos.targeting.for_proposal(swap.accepted_proposal_id)
        if link is not None and link.status == TargetingStatus.ACCEPTED:
            swap_ids.update({link.source_swap_id, link.target_swap_id})

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, *swap_ids)
            state = session.states[swap.id]
            swap = state.swap
            _ensure_completable(swap)

            proposal = session.find_proposal(swap.accepted_proposal_id)
            parties = state.party_ids()
            booking_ids = [swap.source_booking_id]
            if proposal is not None and isinstance(proposal.offer, BookingOffer):
                booking_ids.append(proposal.offer.booking_id)
                parties.append(proposal.proposer_id)

            swap.complete(now, party_ids=parties)
            for other in session.states.values():
                counterpart = other.swap
                if (
                    counterpart.id != swap.id
                    and counterpart.status == SwapStatus.ACCEPTED
                    and counterpart.accepted_proposal_id == swap.accepted_proposal_id
                ):
                    counterpart.complete(now, party_ids=other.party_ids() + [swap.owner_id])
                    booking_ids.append(counterpart.source_booking_id)

            for booking_id in dict.fromkeys(booking_ids):
                booking = self.repos.bookings.find(booking_id, lock=True)
                if booking is not None and booking.is_available():
                    booking.mark_swapped()
                    session.bookings.append(booking)

            session.commit(uow)

        logger.info(
            "swap.completed",
            swap_id=str(swap.id),
            confirmation_reference=command.confirmation_reference,
        )
        return CompletionResult(swap=swap)


class RetargetHandler(SwapCommandHandler):
    """
    Handler for Retarget command

    The source swap's current link (and its proposal) is cancelled and a
    new booking proposal is submitted against the new target. Retargeting
    to the current target returns the existing link.
    """

    def handle(self, command: Retarget) -> Targeting:
        now = self.clock()
        repos = self.repos

        if command.new_target_swap_id == command.source_swap_id:
            raise ValidationFailed("A swap cannot target itself", code='INVALID_TARGET')

        source_swap = repos.swaps.get(command.source_swap_id)
        if not source_swap.is_owned_by(command.actor_id):
            raise NotSwapOwner("Only the owner of the source swap can retarget it")
        if repos.swaps.find(command.new_target_swap_id) is None:
            raise SwapNotFound(f"Swap {command.new_target_swap_id} not found")

        current = repos.targeting.active_for_source(command.source_swap_id)
        if current is not None and current.target_swap_id == command.new_target_swap_id:
            return current

        swap_ids = {command.source_swap_id, command.new_target_swap_id}
        if current is not None:
            swap_ids.add(current.target_swap_id)

        self.settle(swap_ids, now)

        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, *swap_ids)
            source = session.states[command.source_swap_id]
            target = session.states[command.new_target_swap_id]
            source.swap.ensure_accepting_proposals(now)

            previous = None
            if source.outgoing is not None:
                previous_target = session.states.get(source.outgoing.target_swap_id)
                if previous_target is not None:
                    previous = previous_target.proposal(source.outgoing.proposal_id)

            message = command.message or (previous.message if previous else '') or (
                f"Proposing {source.swap.title} in exchange"
            )
            conditions = command.conditions
            if conditions is None:
                conditions = list(previous.conditions) if previous else []

            offer = BookingOffer(booking_id=source.swap.source_booking_id)
            validate_submission(
                swap=target.swap,
                proposer_id=command.actor_id,
                offer=offer,
                message=message,
                now=now,
                auction=target.auction,
                offered_booking=repos.bookings.find(offer.booking_id),
                booking_committed=repos.swaps.booking_committed(offer.booking_id),
                max_message_length=max_message_length(),
            )

            _, link = session.submit(target, command.actor_id, offer, message, conditions, source=source)
            session.commit(uow)

        logger.info(
            "targeting.retargeted",
            source_swap_id=str(command.source_swap_id),
            target_swap_id=str(command.new_target_swap_id),
            targeting_id=str(link.id),
        )
        return link


class CancelTargetingHandler(SwapCommandHandler):
    """
    Handler for CancelTargeting command

    The link and its proposal end together; the proposal is rejected with
    "targeting cancelled by proposer". Cancelling a link that already ended
    is a no-op.
    """

    def handle(self, command: CancelTargeting) -> Targeting:
        now = self.clock()
        repos = self.repos

        link = repos.targeting.get(command.targeting_id)
        if link.source_swap_id != command.source_swap_id:
            raise TargetingNotFound(
                f"Targeting {command.targeting_id} does not start at swap {command.source_swap_id}",
                details={'targeting_id': str(command.targeting_id)},
            )
        source_swap = repos.swaps.get(command.source_swap_id)
        if not source_swap.is_owned_by(command.actor_id):
            raise NotSwapOwner("Only the owner of the source swap can cancel its targeting")
        if link.status == TargetingStatus.ACCEPTED:
            raise InvalidTransition(
                "Targeting already led to an accepted exchange",
                details={'targeting_id': str(link.id)},
            )
        if not link.is_active:
            return link

        swap_ids = {link.source_swap_id, link.target_swap_id}
        with DjangoUnitOfWork() as uow:
            session = self.open_session(now, *swap_ids)
            source = session.states[link.source_swap_id]
            if source.outgoing is None or source.outgoing.id != link.id:
                # Ended concurrently or by lazy expiry while loading
                session.commit(uow)
                return repos.targeting.get(command.targeting_id)

            link = session.release_outgoing(source, TARGETING_CANCELLED_REASON)
            session.commit(uow)

        logger.info("targeting.cancelled", targeting_id=str(link.id))
        return link


def build_handlers(repos: SwapRepositories | None = None, clock: Callable[[], datetime] | None = None) -> dict:
    """Command type -> handler instance"""
    repos = repos or SwapRepositories()
    return {
        CreateSwap: CreateSwapHandler(repos, clock),
        SubmitProposal: SubmitProposalHandler(repos, clock),
        AcceptProposal: AcceptProposalHandler(repos, clock),
        RejectProposal: RejectProposalHandler(repos, clock),
        SelectWinner: SelectWinnerHandler(repos, clock),
        CloseAuctionEarly: CloseAuctionEarlyHandler(repos, clock),
        CancelSwap: CancelSwapHandler(repos, clock),
        CompleteSwap: CompleteSwapHandler(repos, clock),
        Retarget: RetargetHandler(repos, clock),
        CancelTargeting: CancelTargetingHandler(repos, clock),
    }
