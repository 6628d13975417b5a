"""Reference validation around swaps and proposals."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from django.db import DatabaseError

from apps.swaps import integrity
from apps.swaps.application.command_handlers import AcceptProposal, CompleteSwap, SubmitProposal
from apps.swaps.domain.proposals import CashOffer
from apps.swaps.integrity import SWAP_ONLY, SWAP_WITH_PROPOSAL, validate_swap_references
from apps.swaps.models import Swap, SwapAuction

pytestmark = pytest.mark.django_db


def _broken_query(*args, **kwargs):
    raise DatabaseError("connection reset")


@pytest.fixture
def swap(make_swap, owner):
    return make_swap(owner, cash=True)


@pytest.fixture
def proposal(dispatch, swap, proposer):
    offer = CashOffer(amount=Decimal("250"), currency="USD", payment_method_id="pm_test")
    return dispatch(SubmitProposal(swap_id=swap.id, proposer_id=proposer.id, offer=offer, message="Offer"))


def test_consistent_swap_and_proposal(swap, proposal):
    result = validate_swap_references(swap.id, proposal.id)

    assert result.is_valid
    assert result.errors == []
    assert result.scenario == SWAP_WITH_PROPOSAL
    assert result.details["swap_status"] == "pending"
    assert result.details["proposal_status"] == "pending"
    assert result.details["active_auction_id"] is None


def test_missing_swap():
    missing = uuid.uuid4()

    result = validate_swap_references(missing)

    assert not result.is_valid
    assert result.scenario == SWAP_ONLY
    assert result.errors == [f"Swap {missing} does not exist"]


def test_inactive_owner(swap, owner):
    owner.is_active = False
    owner.save(update_fields=["is_active"])

    result = validate_swap_references(swap.id)

    assert not result.is_valid
    assert result.errors == ["Swap owner is inactive"]


def test_proposal_from_another_swap(make_swap, bidder, proposal):
    other = make_swap(bidder)

    result = validate_swap_references(other.id, proposal.id)

    assert not result.is_valid
    assert result.errors == [f"Proposal {proposal.id} does not belong to swap {other.id}"]


def test_active_auction_is_reported(make_swap, owner):
    swap = make_swap(owner, cash=True, auction=True)

    result = validate_swap_references(swap.id)

    assert result.is_valid
    assert result.details["active_auction_id"] == str(SwapAuction.objects.get(swap_id=swap.id).id)


def test_query_failure_is_reported_not_raised(monkeypatch, swap):
    monkeypatch.setattr(integrity, "_fetch_references", _broken_query)

    result = validate_swap_references(swap.id)

    assert not result.is_valid
    assert result.errors == []
    assert "connection reset" in result.error
    assert result.as_dict()["error"] == result.error


def test_completion_degrades_when_check_fails(monkeypatch, swap, proposal, owner, dispatch):
    dispatch(AcceptProposal(proposal_id=proposal.id, actor_id=owner.id))
    monkeypatch.setattr(integrity, "_fetch_references", _broken_query)

    result = dispatch(CompleteSwap(swap_id=swap.id))

    assert not result.success
    assert result.error["kind"] == "external_dependency_failure"
    assert result.error["code"] == "REFERENCE_CHECK_FAILED"
    assert Swap.objects.get(pk=swap.id).status == Swap.Status.ACCEPTED
