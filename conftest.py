"""Shared pytest fixtures: users, bookings, swaps and a controllable clock."""

from __future__ import annotations

import itertools
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.bookings.models import Booking
from apps.swaps.application.command_handlers import CreateSwap, build_handlers

_sequence = itertools.count(1)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(timezone.now().replace(microsecond=0))


@pytest.fixture
def handlers(clock):
    return build_handlers(clock=clock)


@pytest.fixture
def dispatch(handlers):
    """Run a command through its handler with the frozen clock."""

    def _dispatch(command):
        return handlers[type(command)].handle(command)

    return _dispatch


@pytest.fixture
def make_user(django_user_model):
    def _make(**extra):
        n = next(_sequence)
        extra.setdefault("username", f"user{n}")
        extra.setdefault("email", f"user{n}@example.com")
        return django_user_model.objects.create_user(password="SwapPass123", **extra)

    return _make


@pytest.fixture
def owner(make_user):
    return make_user(username="owner")


@pytest.fixture
def proposer(make_user):
    return make_user(username="proposer")


@pytest.fixture
def bidder(make_user):
    return make_user(username="bidder")


@pytest.fixture
def make_booking(clock):
    def _make(user, *, days_ahead=60, currency="USD", swap_value="500.00", **extra):
        check_in = (clock() + timedelta(days=days_ahead)).date()
        fields = {
            "owner": user,
            "title": f"Stay #{next(_sequence)}",
            "booking_type": Booking.Type.HOTEL,
            "city": "Lisbon",
            "country": "Portugal",
            "check_in": check_in,
            "check_out": check_in + timedelta(days=3),
            "original_price": Decimal("600.00"),
            "swap_value": Decimal(swap_value),
            "currency": currency,
        }
        fields.update(extra)
        return Booking.objects.create(**fields)

    return _make


@pytest.fixture
def make_swap(dispatch, make_booking, clock):
    """List a booking for swapping through the CreateSwap handler."""

    def _make(
        user,
        booking=None,
        *,
        exchange=True,
        cash=False,
        minimum=None,
        auction=False,
        auction_ends_in=timedelta(days=3),
        auto_select_highest=False,
        auction_settings=None,
        expires_in=timedelta(days=30),
    ):
        booking = booking or make_booking(user)
        strategy = {"type": "first_match"}
        if auction:
            strategy = {
                "type": "auction",
                "end_date": clock() + auction_ends_in,
                "auto_select_highest": auto_select_highest,
            }
        return dispatch(
            CreateSwap(
                owner_id=user.id,
                source_booking_id=booking.id,
                title=f"Swap for {booking.title}",
                expiration_date=clock() + expires_in,
                payment_types={
                    "booking_exchange": exchange,
                    "cash_payment": cash,
                    "minimum_cash_amount": minimum,
                },
                acceptance_strategy=strategy,
                auction_settings=auction_settings if auction else None,
            )
        )

    return _make
