"""Serializers for swaps, proposals, auctions and targeting links."""

from __future__ import annotations

from django.core.exceptions import ObjectDoesNotExist  # type: ignore
from django.utils import timezone  # type: ignore
from rest_framework import serializers  # type: ignore

from apps.bookings.serializers import BookingSerializer

from .application.command_handlers import CreateSwap
from .domain.entities import ACTIVE_DISPLAY_STATUS
from .domain.proposals import BookingOffer, CashOffer
from .models import Swap, SwapAuction, SwapProposal


# ============================================================================
# SWAP CREATION
# ============================================================================

class PaymentTypesSerializer(serializers.Serializer):
    booking_exchange = serializers.BooleanField(default=True)
    cash_payment = serializers.BooleanField(default=False)
    minimum_cash_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )
    preferred_cash_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )


class AcceptanceStrategySerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=Swap.Strategy.choices, default=Swap.Strategy.FIRST_MATCH)
    end_date = serializers.DateTimeField(required=False, allow_null=True)
    auto_select_highest = serializers.BooleanField(default=False)


class AuctionSettingsSerializer(serializers.Serializer):
    end_date = serializers.DateTimeField(required=False, allow_null=True)
    allow_booking_proposals = serializers.BooleanField(default=True)
    allow_cash_proposals = serializers.BooleanField(default=True)
    minimum_cash_offer = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )
    auto_select_after_hours = serializers.IntegerField(required=False, allow_null=True)


class SwapCreateSerializer(serializers.Serializer):
    """Listing a booking for swapping.

    Business rules (last-minute restriction, auction window, payment types)
    are enforced by the domain so that their error kinds reach the client.
    """

    source_booking_id = serializers.UUIDField()
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    payment_types = PaymentTypesSerializer()
    acceptance_strategy = AcceptanceStrategySerializer()
    auction_settings = AuctionSettingsSerializer(required=False, allow_null=True)
    swap_preferences = serializers.DictField(required=False, default=dict)
    expiration_date = serializers.DateTimeField()

    def to_command(self, owner_id: int) -> CreateSwap:
        data = self.validated_data
        return CreateSwap(
            owner_id=owner_id,
            source_booking_id=data["source_booking_id"],
            title=data["title"],
            description=data.get("description", ""),
            expiration_date=data["expiration_date"],
            payment_types=dict(data["payment_types"]),
            acceptance_strategy=dict(data["acceptance_strategy"]),
            auction_settings=dict(data["auction_settings"]) if data.get("auction_settings") else None,
            swap_preferences=dict(data.get("swap_preferences") or {}),
        )


# ============================================================================
# SWAP READ MODELS
# ============================================================================

class AuctionSerializer(serializers.ModelSerializer):
    swap_id = serializers.UUIDField(read_only=True)
    proposal_count = serializers.SerializerMethodField()

    class Meta:
        model = SwapAuction
        fields = [
            "id",
            "swap_id",
            "end_date",
            "allow_booking_proposals",
            "allow_cash_proposals",
            "minimum_cash_offer",
            "auto_select_after_hours",
            "status",
            "winner_proposal_id",
            "ended_at",
            "proposal_count",
        ]
        read_only_fields = fields

    def get_proposal_count(self, obj) -> int:  # type: ignore
        return obj.proposals.count()


class SwapSerializer(serializers.ModelSerializer):
    """Read representation of a swap.

    ``display_status`` applies lazy expiry and shows ``active`` while an
    auction is still collecting proposals.
    """

    owner_id = serializers.ReadOnlyField(source="owner.id")
    source_booking = BookingSerializer(read_only=True)
    payment_types = serializers.SerializerMethodField()
    acceptance_strategy = serializers.SerializerMethodField()
    auction = serializers.SerializerMethodField()
    display_status = serializers.SerializerMethodField()

    class Meta:
        model = Swap
        fields = [
            "id",
            "owner_id",
            "source_booking",
            "title",
            "description",
            "payment_types",
            "acceptance_strategy",
            "auction",
            "preferences",
            "status",
            "display_status",
            "expires_at",
            "proposed_at",
            "responded_at",
            "completed_at",
            "accepted_proposal_id",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def _auction(self, obj):  # type: ignore
        try:
            return obj.auction
        except ObjectDoesNotExist:
            return None

    def get_payment_types(self, obj) -> dict:  # type: ignore
        return {
            "booking_exchange": obj.accepts_booking_exchange,
            "cash_payment": obj.accepts_cash,
            "minimum_cash_amount": str(obj.minimum_cash_amount) if obj.minimum_cash_amount is not None else None,
            "preferred_cash_amount": (
                str(obj.preferred_cash_amount) if obj.preferred_cash_amount is not None else None
            ),
            "currency": obj.currency,
        }

    def get_acceptance_strategy(self, obj) -> dict:  # type: ignore
        data = {"type": obj.acceptance_strategy}
        auction = self._auction(obj)
        if obj.is_auction and auction is not None:
            data["end_date"] = auction.end_date
            data["auto_select_highest"] = obj.auto_select_highest
        return data

    def get_auction(self, obj):  # type: ignore
        auction = self._auction(obj)
        if auction is None:
            return None
        return AuctionSerializer(auction).data

    def get_display_status(self, obj) -> str:  # type: ignore
        now = timezone.now()
        if obj.status != Swap.Status.PENDING:
            return obj.status
        if now > obj.expires_at:
            return Swap.Status.EXPIRED.value
        auction = self._auction(obj)
        if auction is not None and auction.status == SwapAuction.Status.ACTIVE and now < auction.end_date:
            return ACTIVE_DISPLAY_STATUS
        return obj.status


# ============================================================================
# PROPOSALS
# ============================================================================

class ProposalCreateSerializer(serializers.Serializer):
    """Booking or cash offer; the fields of the other kind are refused."""

    proposal_type = serializers.ChoiceField(choices=SwapProposal.Type.choices)
    booking_id = serializers.UUIDField(required=False)
    cash_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    currency = serializers.CharField(max_length=3, required=False)
    payment_method_id = serializers.CharField(max_length=128, required=False, allow_blank=True)
    escrow_agreement = serializers.BooleanField(default=False)
    message = serializers.CharField(allow_blank=True)
    conditions = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    def validate(self, attrs):  # type: ignore
        cash_fields = [name for name in ("cash_amount", "currency", "payment_method_id") if name in attrs]
        if attrs["proposal_type"] == SwapProposal.Type.BOOKING:
            if "booking_id" not in attrs:
                raise serializers.ValidationError({"booking_id": "Required for booking proposals."})
            if cash_fields or attrs.get("escrow_agreement"):
                raise serializers.ValidationError("Cash fields are not allowed on a booking proposal.")
        else:
            if "cash_amount" not in attrs:
                raise serializers.ValidationError({"cash_amount": "Required for cash proposals."})
            if "booking_id" in attrs:
                raise serializers.ValidationError("A cash proposal cannot offer a booking.")
        return attrs

    def to_offer(self, default_currency: str):  # type: ignore
        data = self.validated_data
        if data["proposal_type"] == SwapProposal.Type.BOOKING:
            return BookingOffer(booking_id=data["booking_id"])
        return CashOffer(
            amount=data["cash_amount"],
            currency=(data.get("currency") or default_currency).upper(),
            payment_method_id=data.get("payment_method_id") or None,
            escrow_agreement=data.get("escrow_agreement", False),
        )


class ProposalSerializer(serializers.ModelSerializer):
    swap_id = serializers.UUIDField(read_only=True)
    proposer_id = serializers.ReadOnlyField(source="proposer.id")
    booking_id = serializers.UUIDField(read_only=True)
    auction_id = serializers.UUIDField(read_only=True)
    targeting_id = serializers.SerializerMethodField()

    class Meta:
        model = SwapProposal
        fields = [
            "id",
            "swap_id",
            "proposer_id",
            "proposal_type",
            "booking_id",
            "cash_amount",
            "currency",
            "payment_method_id",
            "escrow_agreement",
            "message",
            "conditions",
            "status",
            "rejection_reason",
            "responded_at",
            "auction_id",
            "targeting_id",
            "created_at",
        ]
        read_only_fields = fields

    def get_targeting_id(self, obj):  # type: ignore
        try:
            return str(obj.targeting.id)
        except ObjectDoesNotExist:
            return None


class ProposalStateSerializer(serializers.Serializer):
    """Proposal aggregate as seen by a query, lazy state included."""

    id = serializers.UUIDField()
    swap_id = serializers.UUIDField()
    proposer_id = serializers.IntegerField()
    proposal_type = serializers.CharField()
    status = serializers.CharField(source="status.value")
    offer = serializers.SerializerMethodField()
    message = serializers.CharField()
    conditions = serializers.ListField(child=serializers.CharField())
    rejection_reason = serializers.CharField()
    responded_at = serializers.DateTimeField(allow_null=True)

    def get_offer(self, obj) -> dict:  # type: ignore
        offer = obj.offer
        if isinstance(offer, BookingOffer):
            return {"type": offer.kind, "booking_id": str(offer.booking_id)}
        return {
            "type": offer.kind,
            "amount": str(offer.amount),
            "currency": offer.currency,
            "payment_method_id": offer.payment_method_id,
            "escrow_agreement": offer.escrow_agreement,
        }


class AcceptProposalSerializer(serializers.Serializer):
    swap_id = serializers.UUIDField(required=False)
    target_id = serializers.UUIDField(required=False)


class RejectProposalSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    close_swap = serializers.BooleanField(default=False)
    swap_id = serializers.UUIDField(required=False)
    target_id = serializers.UUIDField(required=False)


# ============================================================================
# AUCTIONS, COMPLETION AND TARGETING
# ============================================================================

class SelectWinnerSerializer(serializers.Serializer):
    proposal_id = serializers.UUIDField()


class CompleteSwapSerializer(serializers.Serializer):
    confirmation_reference = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    succeeded = serializers.BooleanField(default=True)
    failure_reason = serializers.CharField(required=False, allow_blank=True, default="")


class RetargetSerializer(serializers.Serializer):
    target_swap_id = serializers.UUIDField()
    message = serializers.CharField(required=False, allow_blank=True)
    conditions = serializers.ListField(child=serializers.CharField(), required=False)


class CancelTargetingSerializer(serializers.Serializer):
    targeting_id = serializers.UUIDField()


class TargetingSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    source_swap_id = serializers.UUIDField()
    target_swap_id = serializers.UUIDField()
    proposal_id = serializers.UUIDField()
    status = serializers.CharField(source="status.value")
    ended_at = serializers.DateTimeField(allow_null=True)
    created_at = serializers.DateTimeField()


def _money(money):  # type: ignore
    if money is None:
        return None
    return {"amount": str(money.amount), "currency": money.currency}


def comparison_payload(comparison) -> dict:  # type: ignore
    """Auction comparison: ranked cash offers and valued booking offers."""
    return {
        "cash_ranking": [
            {
                "proposal_id": str(p.id),
                "proposer_id": p.proposer_id,
                "amount": str(p.offer.amount),
                "currency": p.offer.currency,
            }
            for p in comparison.cash_ranking
        ],
        "booking_proposals": [
            {
                "proposal_id": str(item.proposal.id),
                "proposer_id": item.proposal.proposer_id,
                "booking_id": str(item.proposal.offer.booking_id),
                "offered_value": _money(item.offered_value),
                "value_difference": (
                    str(item.value_difference) if item.value_difference is not None else None
                ),
            }
            for item in comparison.booking_proposals
        ],
        "highest_cash_offer": _money(comparison.highest_cash_offer),
        "recommended_proposal_id": (
            str(comparison.recommended_proposal_id) if comparison.recommended_proposal_id else None
        ),
    }
