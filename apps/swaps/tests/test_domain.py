"""Unit tests for the swap, proposal, auction and targeting aggregates."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from shared.domain.value_objects import DateRange, Money

from apps.bookings.domain.entities import Booking, BookingType, Location
from apps.swaps.domain.auction import (
    AUCTION_LOST_REASON,
    Auction,
    AuctionSettings,
    AuctionStatus,
    compare_proposals,
    rank_cash_proposals,
    select_winner,
    settle_auction,
)
from apps.swaps.domain.entities import (
    AuctionStrategy,
    FirstMatchStrategy,
    PaymentTypePreference,
    Swap,
    SwapStatus,
    validate_acceptance_strategy,
)
from apps.swaps.domain.errors import (
    AuctionStillActive,
    BookingNotEligible,
    CashAmountBelowMinimum,
    CurrencyMismatch,
    InvalidAuctionSettings,
    InvalidMessage,
    InvalidPaymentTypes,
    InvalidTransition,
    LastMinuteRestriction,
    NotSwapOwner,
    PaymentMethodRequired,
    ProposalTypeNotAccepted,
    SelfProposalNotAllowed,
    SwapNotAvailable,
)
from apps.swaps.domain.events import SwapStatusChanged, TargetingCancelled
from apps.swaps.domain.proposals import (
    BookingOffer,
    CashOffer,
    Proposal,
    ProposalStatus,
    validate_submission,
)
from apps.swaps.domain.targeting import Targeting, TargetingStatus

NOW = datetime(2030, 3, 1, 12, 0, tzinfo=timezone.utc)
OWNER = 1
PROPOSER = 2
BIDDER = 3


def make_swap(*, cash=True, exchange=True, minimum=None, strategy=None, expires_in=timedelta(days=30)):
    return Swap.create(
        source_booking_id=uuid4(),
        owner_id=OWNER,
        title="Lisbon weekend",
        payment_types=PaymentTypePreference(
            booking_exchange=exchange,
            cash_payment=cash,
            minimum_cash_amount=minimum,
        ),
        strategy=strategy or FirstMatchStrategy(),
        expires_at=NOW + expires_in,
        starts_on=(NOW + timedelta(days=60)).date(),
        now=NOW,
    )


def make_auction(swap, **settings):
    settings.setdefault("end_date", swap.strategy.end_date)
    return Auction(swap_id=swap.id, owner_id=swap.owner_id, settings=AuctionSettings(**settings))


def cash_offer(amount, currency="USD", payment_method_id="pm_card"):
    return CashOffer(amount=Decimal(amount), currency=currency, payment_method_id=payment_method_id)


def make_proposal(swap, proposer_id=PROPOSER, offer=None, at=NOW, auction=None):
    proposal = Proposal.submit(
        swap=swap,
        proposer_id=proposer_id,
        offer=offer or cash_offer("100"),
        message="Interested",
        now=at,
        auction_id=auction.id if auction else None,
    )
    if auction is not None:
        auction.add_proposal(proposal.id, at)
    return proposal


def make_booking(owner_id=PROPOSER, **extra):
    fields = dict(
        owner_id=owner_id,
        title="Paris hotel",
        booking_type=BookingType.HOTEL,
        location=Location("Paris", "France"),
        original_price=Money(Decimal("400")),
        swap_value=Money(Decimal("450")),
        dates=DateRange(date(2030, 5, 1), date(2030, 5, 4)),
    )
    fields.update(extra)
    return Booking(**fields)


def status_events(aggregate):
    return [e for e in aggregate.events if isinstance(e, SwapStatusChanged)]


# ===== Payment types and strategy =====

def test_payment_types_require_one_kind():
    with pytest.raises(InvalidPaymentTypes):
        PaymentTypePreference(booking_exchange=False, cash_payment=False)


def test_preferred_amount_cannot_undercut_minimum():
    with pytest.raises(InvalidPaymentTypes):
        PaymentTypePreference(
            booking_exchange=False,
            cash_payment=True,
            minimum_cash_amount=Decimal("200"),
            preferred_cash_amount=Decimal("150"),
        )


def test_last_minute_booking_cannot_use_auction():
    starts_on = (NOW + timedelta(days=5)).date()
    strategy = AuctionStrategy(end_date=NOW + timedelta(days=1))

    with pytest.raises(LastMinuteRestriction) as exc:
        validate_acceptance_strategy(strategy, starts_on, NOW)

    assert exc.value.details["required_strategy"] == "first_match"


def test_last_minute_booking_can_use_first_match():
    validate_acceptance_strategy(FirstMatchStrategy(), (NOW + timedelta(days=2)).date(), NOW)


@pytest.mark.parametrize(
    "end_date",
    [NOW - timedelta(hours=1), NOW + timedelta(days=55)],
    ids=["in-the-past", "less-than-a-week-before-start"],
)
def test_auction_end_date_out_of_range(end_date):
    with pytest.raises(InvalidAuctionSettings):
        validate_acceptance_strategy(AuctionStrategy(end_date=end_date), (NOW + timedelta(days=60)).date(), NOW)


def test_swap_cannot_expire_before_its_auction_ends():
    with pytest.raises(InvalidAuctionSettings):
        make_swap(strategy=AuctionStrategy(end_date=NOW + timedelta(days=10)), expires_in=timedelta(days=5))


# ===== Swap lifecycle =====

def test_accept_stamps_timeline_and_notifies_parties():
    swap = make_swap()
    proposal_id = uuid4()

    swap.accept(proposal_id, OWNER, NOW, party_ids=[PROPOSER, BIDDER])

    assert swap.status == SwapStatus.ACCEPTED
    assert swap.accepted_proposal_id == proposal_id
    assert swap.timeline.responded_at == NOW
    event = status_events(swap)[-1]
    assert (event.old_status, event.new_status) == ("pending", "accepted")
    assert event.party_ids == (OWNER, PROPOSER, BIDDER)


def test_only_owner_can_cancel():
    swap = make_swap()

    with pytest.raises(NotSwapOwner):
        swap.cancel(PROPOSER, NOW)

    assert swap.status == SwapStatus.PENDING


def test_complete_requires_accepted_swap():
    swap = make_swap()

    with pytest.raises(InvalidTransition):
        swap.complete(NOW)


def test_terminal_swap_refuses_further_transitions():
    swap = make_swap()
    swap.cancel(OWNER, NOW)

    with pytest.raises(SwapNotAvailable):
        swap.accept(uuid4(), OWNER, NOW)


def test_lazy_expiry_is_stamped_with_expiration_instant():
    swap = make_swap(expires_in=timedelta(days=2))
    later = NOW + timedelta(days=5)

    assert swap.display_status(later) == "expired"
    assert swap.refresh_expiry(later) is True
    assert swap.status == SwapStatus.EXPIRED
    assert swap.timeline.responded_at == swap.expires_at
    assert swap.refresh_expiry(later) is False


def test_cancelling_an_expired_swap_is_a_conflict():
    swap = make_swap(expires_in=timedelta(days=1))

    with pytest.raises(InvalidTransition):
        swap.cancel(OWNER, NOW + timedelta(days=2))

    assert swap.status == SwapStatus.EXPIRED


def test_open_auction_is_displayed_as_active():
    swap = make_swap(strategy=AuctionStrategy(end_date=NOW + timedelta(days=3)))

    assert swap.display_status(NOW, auction_open=True) == "active"
    assert swap.status == SwapStatus.PENDING


# ===== Proposals =====

def test_proposal_has_exactly_one_terminal_transition():
    proposal = make_proposal(make_swap())
    proposal.reject("not interested", NOW)

    with pytest.raises(InvalidTransition):
        proposal.accept(NOW)

    assert proposal.status == ProposalStatus.REJECTED
    assert proposal.rejection_reason == "not interested"


class TestValidateSubmission:

    def validate(self, swap, offer, proposer_id=PROPOSER, message="Hello", **kwargs):
        validate_submission(
            swap=swap,
            proposer_id=proposer_id,
            offer=offer,
            message=message,
            now=kwargs.pop("now", NOW),
            **kwargs,
        )

    def test_missing_swap(self):
        with pytest.raises(SwapNotAvailable):
            self.validate(None, cash_offer("100"))

    def test_owner_cannot_propose(self):
        with pytest.raises(SelfProposalNotAllowed):
            self.validate(make_swap(), cash_offer("100"), proposer_id=OWNER)

    def test_availability_is_checked_before_ownership(self):
        swap = make_swap(expires_in=timedelta(days=1))

        with pytest.raises(SwapNotAvailable):
            self.validate(swap, cash_offer("100"), proposer_id=OWNER, now=NOW + timedelta(days=2))

    def test_type_not_accepted(self):
        with pytest.raises(ProposalTypeNotAccepted):
            self.validate(make_swap(cash=False), cash_offer("100"))

    def test_booking_must_be_proposers_and_available(self):
        swap = make_swap()
        offer = BookingOffer(booking_id=uuid4())

        with pytest.raises(BookingNotEligible):
            self.validate(swap, offer, offered_booking=make_booking(owner_id=BIDDER))
        with pytest.raises(BookingNotEligible):
            self.validate(swap, offer, offered_booking=None)

    def test_cash_below_minimum(self):
        swap = make_swap(minimum=Decimal("300"))

        with pytest.raises(CashAmountBelowMinimum) as exc:
            self.validate(swap, cash_offer("250"))

        assert exc.value.details["minimum"] == "300"

    def test_auction_minimum_wins_when_stricter(self):
        swap = make_swap(minimum=Decimal("100"), strategy=AuctionStrategy(end_date=NOW + timedelta(days=3)))
        auction = make_auction(swap, minimum_cash_offer=Decimal("400"))

        with pytest.raises(CashAmountBelowMinimum):
            self.validate(swap, cash_offer("350"), auction=auction)

    def test_currency_mismatch(self):
        with pytest.raises(CurrencyMismatch):
            self.validate(make_swap(), cash_offer("100", currency="EUR"))

    def test_payment_method_required(self):
        with pytest.raises(PaymentMethodRequired):
            self.validate(make_swap(), cash_offer("100", payment_method_id=None))

    @pytest.mark.parametrize("message", ["", "   ", "x" * 1001])
    def test_invalid_message(self, message):
        with pytest.raises(InvalidMessage):
            self.validate(make_swap(), cash_offer("100"), message=message)

    def test_message_at_limit_is_accepted(self):
        self.validate(make_swap(), cash_offer("100"), message="x" * 1000)

    def test_ended_auction_refuses_proposals(self):
        swap = make_swap(strategy=AuctionStrategy(end_date=NOW + timedelta(days=3)))
        auction = make_auction(swap)

        with pytest.raises(SwapNotAvailable):
            self.validate(swap, cash_offer("100"), auction=auction, now=NOW + timedelta(days=4))


# ===== Auctions =====

def auction_setup(**settings):
    swap = make_swap(strategy=AuctionStrategy(end_date=NOW + timedelta(days=3)))
    return swap, make_auction(swap, **settings)


def test_select_winner_requires_ended_auction():
    swap, auction = auction_setup()
    proposal = make_proposal(swap, auction=auction)

    with pytest.raises(AuctionStillActive):
        select_winner(swap, auction, [proposal], proposal.id, OWNER, NOW + timedelta(days=1))


def test_select_winner_accepts_one_and_rejects_the_rest():
    swap, auction = auction_setup()
    first = make_proposal(swap, PROPOSER, cash_offer("200"), auction=auction)
    second = make_proposal(swap, BIDDER, cash_offer("300"), auction=auction)
    after_end = NOW + timedelta(days=4)

    select_winner(swap, auction, [first, second], first.id, OWNER, after_end)

    assert swap.status == SwapStatus.ACCEPTED
    assert swap.accepted_proposal_id == first.id
    assert first.status == ProposalStatus.ACCEPTED
    assert second.status == ProposalStatus.REJECTED
    assert second.rejection_reason == AUCTION_LOST_REASON
    assert auction.winner_proposal_id == first.id


def test_select_winner_guards_run_before_mutation():
    swap, auction = auction_setup()
    proposal = make_proposal(swap, auction=auction)

    with pytest.raises(NotSwapOwner):
        select_winner(swap, auction, [proposal], proposal.id, BIDDER, NOW + timedelta(days=4))

    assert swap.status == SwapStatus.PENDING
    assert proposal.is_pending
    assert auction.winner_proposal_id is None


def test_close_early_refused_with_competing_proposals():
    swap, auction = auction_setup()
    make_proposal(swap, PROPOSER, auction=auction)
    make_proposal(swap, BIDDER, auction=auction)

    with pytest.raises(AuctionStillActive):
        auction.close_early(OWNER, pending_count=2, now=NOW)

    auction.close_early(OWNER, pending_count=1, now=NOW)
    assert auction.status == AuctionStatus.ENDED
    assert auction.ended_at == NOW


def test_auto_select_picks_highest_cash_offer():
    swap = make_swap(strategy=AuctionStrategy(end_date=NOW + timedelta(days=3), auto_select_highest=True))
    auction = make_auction(swap)
    low = make_proposal(swap, PROPOSER, cash_offer("200"), auction=auction)
    high = make_proposal(swap, BIDDER, cash_offer("450"), auction=auction)

    winner = settle_auction(swap, auction, [low, high], NOW + timedelta(days=5))

    assert winner is high
    assert swap.status == SwapStatus.ACCEPTED
    assert swap.timeline.responded_at == auction.end_date
    assert low.status == ProposalStatus.REJECTED


def test_auto_select_without_cash_offers_does_nothing():
    swap = make_swap(strategy=AuctionStrategy(end_date=NOW + timedelta(days=3), auto_select_highest=True))
    auction = make_auction(swap)
    booking = make_proposal(swap, offer=BookingOffer(booking_id=uuid4()), auction=auction)

    assert settle_auction(swap, auction, [booking], NOW + timedelta(days=5)) is None
    assert auction.status == AuctionStatus.ENDED
    assert swap.status == SwapStatus.PENDING
    assert booking.is_pending


def test_auto_select_after_hours_waits_for_the_window():
    swap, auction = auction_setup(auto_select_after_hours=24)
    proposal = make_proposal(swap, auction=auction)

    assert settle_auction(swap, auction, [proposal], NOW + timedelta(days=3, hours=12)) is None
    assert settle_auction(swap, auction, [proposal], NOW + timedelta(days=4, hours=1)) is proposal


def test_rank_and_compare_proposals():
    swap, auction = auction_setup()
    booking_id = uuid4()
    exchange = make_proposal(swap, PROPOSER, BookingOffer(booking_id=booking_id), auction=auction)
    low = make_proposal(swap, BIDDER, cash_offer("150"), NOW + timedelta(minutes=1), auction=auction)
    high = make_proposal(swap, 4, cash_offer("275"), NOW + timedelta(minutes=2), auction=auction)

    assert rank_cash_proposals([exchange, low, high]) == [high, low]

    comparison = compare_proposals(
        [exchange, low, high],
        source_value=Money(Decimal("500")),
        booking_values={booking_id: Money(Decimal("420"))},
    )
    assert comparison.highest_cash_offer == Money(Decimal("275"))
    assert comparison.recommended_proposal_id == high.id
    assert comparison.booking_proposals[0].value_difference == Decimal("-80")


# ===== Targeting =====

def make_link():
    return Targeting.create(
        source_swap_id=uuid4(),
        target_swap_id=uuid4(),
        proposal_id=uuid4(),
        target_owner_id=OWNER,
        now=NOW,
    )


def test_cancel_targeting_is_idempotent():
    link = make_link()

    assert link.cancel("targeting cancelled by proposer", NOW) is True
    assert link.cancel("targeting cancelled by proposer", NOW) is False
    assert link.status == TargetingStatus.CANCELLED
    assert len([e for e in link.events if isinstance(e, TargetingCancelled)]) == 1


def test_accepted_targeting_cannot_be_cancelled():
    link = make_link()
    link.mark_accepted(NOW)

    with pytest.raises(InvalidTransition):
        link.cancel("too late", NOW)
