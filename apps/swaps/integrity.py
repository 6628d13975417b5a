"""Reference validation for swaps and proposals.

Checks, in one aggregating query, that the rows a swap (and optionally one
of its proposals) points at still line up: the owner acting as recipient,
the source booking, the proposal and its proposer, and the active auction.
A failure of the query itself never propagates; it is logged and reported
through ``ReferenceValidationResult.error``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

import structlog
from django.db import DatabaseError  # type: ignore
from django.db.models import FilteredRelation, Q  # type: ignore

from .models import Swap, SwapAuction

logger = structlog.get_logger(__name__)

SWAP_ONLY = "swap_only"
SWAP_WITH_PROPOSAL = "swap_with_proposal"


@dataclass
class ReferenceValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    scenario: str = SWAP_ONLY
    details: dict = field(default_factory=dict)
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "scenario": self.scenario,
            "details": self.details,
            "error": self.error,
        }


def _fetch_references(swap_id: UUID, proposal_id: UUID | None) -> dict | None:
    queryset = Swap.objects.filter(pk=swap_id).annotate(
        active_auction=FilteredRelation(
            "auction",
            condition=Q(auction__status=SwapAuction.Status.ACTIVE),
        ),
    )
    fields = [
        "id",
        "status",
        "owner_id",
        "owner__is_active",
        "source_booking_id",
        "source_booking__owner_id",
        "source_booking__status",
        "active_auction__id",
    ]
    if proposal_id is not None:
        queryset = queryset.annotate(
            requested_proposal=FilteredRelation(
                "proposals",
                condition=Q(proposals__id=proposal_id),
            ),
        )
        fields += [
            "requested_proposal__id",
            "requested_proposal__status",
            "requested_proposal__proposer_id",
            "requested_proposal__proposer__is_active",
        ]
    return queryset.values(*fields).first()


def validate_swap_references(swap_id: UUID, proposal_id: UUID | None = None) -> ReferenceValidationResult:
    """Validate the foreign keys around ``swap_id`` with a single query."""

    scenario = SWAP_WITH_PROPOSAL if proposal_id else SWAP_ONLY
    try:
        row = _fetch_references(swap_id, proposal_id)
    except DatabaseError as exc:
        logger.error(
            "swap.reference_check_failed",
            swap_id=str(swap_id),
            proposal_id=str(proposal_id) if proposal_id else None,
            error=str(exc),
            exc_info=True,
        )
        return ReferenceValidationResult(
            is_valid=False,
            scenario=scenario,
            error=f"Reference validation query failed: {exc}",
        )

    if row is None:
        return ReferenceValidationResult(
            is_valid=False,
            errors=[f"Swap {swap_id} does not exist"],
            scenario=scenario,
        )

    errors = []
    if not row["owner__is_active"]:
        errors.append("Swap owner is inactive")
    if row["source_booking__owner_id"] != row["owner_id"]:
        errors.append("Source booking is not owned by the swap owner")

    details = {
        "swap_status": row["status"],
        "source_booking_status": row["source_booking__status"],
        "active_auction_id": str(row["active_auction__id"]) if row["active_auction__id"] else None,
    }

    if proposal_id is not None:
        if row["requested_proposal__id"] is None:
            errors.append(f"Proposal {proposal_id} does not belong to swap {swap_id}")
        else:
            details["proposal_status"] = row["requested_proposal__status"]
            if not row["requested_proposal__proposer__is_active"]:
                errors.append("Proposer is inactive")
            if row["requested_proposal__proposer_id"] == row["owner_id"]:
                errors.append("Proposer and recipient are the same user")

    return ReferenceValidationResult(
        is_valid=not errors,
        errors=errors,
        scenario=scenario,
        details=details,
    )
