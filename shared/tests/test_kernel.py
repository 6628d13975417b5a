"""Shared kernel: money, message bus and the API error envelope."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest
from rest_framework import exceptions

from shared.application.message_bus import MessageBus
from shared.domain.base import DomainEvent
from shared.domain.exceptions import Conflict, ExternalDependencyFailure, NotFound
from shared.domain.value_objects import Money
from shared.infrastructure.exception_handler import domain_exception_handler


@dataclass(kw_only=True)
class Pinged(DomainEvent):
    target: str


@dataclass
class Ping:
    target: str


class TestMoney:
    def test_amount_is_normalised(self):
        assert Money(10, "EUR").amount == Decimal("10")

    def test_negative_amount_is_refused(self):
        with pytest.raises(ValueError):
            Money(Decimal("-1"), "EUR")

    def test_difference_may_be_negative(self):
        assert Money("420.00").difference(Money("500.00")) == Decimal("-80.00")

    def test_currencies_do_not_mix(self):
        with pytest.raises(ValueError):
            Money(1, "EUR") + Money(1, "USD")


class TestMessageBus:
    def test_one_handler_per_command(self):
        bus = MessageBus()
        bus.register_command_handler(Ping, lambda command: f"pong {command.target}")

        assert bus.handle_command(Ping("a")) == "pong a"
        with pytest.raises(ValueError):
            bus.register_command_handler(Ping, lambda command: None)

    def test_unregistered_command(self):
        with pytest.raises(ValueError):
            MessageBus().handle_command(Ping("a"))

    def test_failing_event_handler_does_not_stop_the_others(self):
        bus = MessageBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.register_event_handler(Pinged, broken)
        bus.register_event_handler(Pinged, seen.append)
        bus.register_event_handler(Pinged, seen.append)
        event = Pinged(target="b")

        bus.publish_events([event])

        assert seen == [event]


class TestExceptionHandler:
    @pytest.mark.parametrize(
        "error, status_code, kind",
        [
            (NotFound("gone"), 404, "not_found"),
            (Conflict("taken", code="SWAP_NOT_AVAILABLE"), 409, "conflict"),
            (ExternalDependencyFailure("down"), 502, "external_dependency_failure"),
        ],
    )
    def test_domain_errors_keep_their_kind(self, error, status_code, kind):
        response = domain_exception_handler(error, {"view": None})

        assert response.status_code == status_code
        assert response.data["success"] is False
        assert response.data["error"]["kind"] == kind
        assert response.data["error"]["code"] == error.code

    def test_serializer_errors_are_wrapped(self):
        response = domain_exception_handler(exceptions.ValidationError({"title": ["Required."]}), {"view": None})

        assert response.status_code == 400
        assert response.data["error"]["code"] == "INVALID_PAYLOAD"
        assert response.data["error"]["details"] == {"title": ["Required."]}

    def test_authentication_errors_keep_drf_shape(self):
        response = domain_exception_handler(exceptions.NotAuthenticated(), {"view": None})

        assert response.status_code == 401
        assert "detail" in response.data

    def test_unknown_errors_fall_through(self):
        assert domain_exception_handler(RuntimeError("boom"), {"view": None}) is None
