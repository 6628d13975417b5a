"""API views for swaps, auctions and proposals.

State changes are dispatched as commands through the message bus; the
views only translate HTTP payloads to commands and results to responses.
"""

from __future__ import annotations

import uuid

import structlog
from django.db.models import Q  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.application.message_bus import message_bus
from shared.domain.exceptions import ValidationFailed

from .application.command_handlers import (
    AcceptProposal,
    CancelSwap,
    CancelTargeting,
    CloseAuctionEarly,
    CompleteSwap,
    RejectProposal,
    Retarget,
    SelectWinner,
    SubmitProposal,
)
from .application.queries import compare_auction_proposals, get_proposal_details, get_targeting_view
from .filters import ProposalFilterSet, SwapFilterSet
from .integrity import validate_swap_references
from .models import Swap, SwapAuction, SwapProposal
from .serializers import (
    AcceptProposalSerializer,
    AuctionSerializer,
    CancelTargetingSerializer,
    CompleteSwapSerializer,
    ProposalCreateSerializer,
    ProposalSerializer,
    ProposalStateSerializer,
    RejectProposalSerializer,
    RetargetSerializer,
    SelectWinnerSerializer,
    SwapCreateSerializer,
    SwapSerializer,
    TargetingSerializer,
    comparison_payload,
)

logger = structlog.get_logger(__name__)

UUID_PATTERN = "[0-9a-fA-F-]{36}"


def _uuid(value) -> uuid.UUID:  # type: ignore
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationFailed(f"Invalid identifier: {value}", code="INVALID_ID") from exc


def _swap_data(swap_id, context=None) -> dict:  # type: ignore
    row = Swap.objects.select_related("owner", "source_booking").get(pk=swap_id)
    return SwapSerializer(row, context=context or {}).data


def _proposal_data(proposal_id) -> dict:  # type: ignore
    row = SwapProposal.objects.select_related("proposer").get(pk=proposal_id)
    return ProposalSerializer(row).data


class SwapViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Browse swaps, list bookings for swapping and act on them."""

    queryset = Swap.objects.select_related("owner", "source_booking").all()
    permission_classes = [permissions.IsAuthenticated]
    filterset_class = SwapFilterSet
    lookup_value_regex = UUID_PATTERN

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return SwapCreateSerializer
        return SwapSerializer

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        swap = message_bus.handle_command(serializer.to_command(request.user.id))
        data = _swap_data(swap.id, self.get_serializer_context())
        return Response(data, status=status.HTTP_201_CREATED, headers=self.get_success_headers(data))

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        swap = message_bus.handle_command(CancelSwap(swap_id=_uuid(pk), actor_id=request.user.id))
        return Response(_swap_data(swap.id), status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def complete(self, request, pk=None):  # type: ignore
        """Confirmation callback of the exchange collaborator."""
        serializer = CompleteSwapSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = message_bus.handle_command(CompleteSwap(swap_id=_uuid(pk), **serializer.validated_data))
        payload = {"success": result.success, "swap": _swap_data(result.swap.id)}
        if not result.success:
            logger.warning("api.swap_completion_degraded", swap_id=pk, code=result.error["code"])
            payload["error"] = result.error
            return Response(payload, status=status.HTTP_502_BAD_GATEWAY)
        return Response(payload, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get", "post"])
    def proposals(self, request, pk=None):  # type: ignore
        swap_id = _uuid(pk)
        if request.method == "GET":
            qs = SwapProposal.objects.select_related("proposer").filter(swap_id=swap_id)
            if not Swap.objects.filter(pk=swap_id, owner=request.user).exists():
                qs = qs.filter(proposer=request.user)
            return Response(ProposalSerializer(qs, many=True).data)

        serializer = ProposalCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        currency = Swap.objects.filter(pk=swap_id).values_list("currency", flat=True).first()
        command = SubmitProposal(
            swap_id=swap_id,
            proposer_id=request.user.id,
            offer=serializer.to_offer(currency or "USD"),
            message=serializer.validated_data["message"],
            conditions=serializer.validated_data.get("conditions", []),
        )
        proposal = message_bus.handle_command(command)
        return Response(_proposal_data(proposal.id), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def targeting(self, request, pk=None):  # type: ignore
        view = get_targeting_view(_uuid(pk))
        return Response(
            {
                "swap_id": str(view.swap_id),
                "outgoing": TargetingSerializer(view.outgoing).data if view.outgoing else None,
                "incoming": TargetingSerializer(view.incoming, many=True).data,
            }
        )

    @action(detail=True, methods=["post"])
    def retarget(self, request, pk=None):  # type: ignore
        serializer = RetargetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        link = message_bus.handle_command(
            Retarget(
                source_swap_id=_uuid(pk),
                new_target_swap_id=data["target_swap_id"],
                actor_id=request.user.id,
                message=data.get("message") or None,
                conditions=data.get("conditions"),
            )
        )
        return Response(TargetingSerializer(link).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="cancel-targeting")
    def cancel_targeting(self, request, pk=None):  # type: ignore
        serializer = CancelTargetingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        link = message_bus.handle_command(
            CancelTargeting(
                source_swap_id=_uuid(pk),
                targeting_id=serializer.validated_data["targeting_id"],
                actor_id=request.user.id,
            )
        )
        return Response(TargetingSerializer(link).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"], permission_classes=[permissions.IsAdminUser])
    def integrity(self, request, pk=None):  # type: ignore
        proposal_id = request.query_params.get("proposal_id")
        result = validate_swap_references(_uuid(pk), _uuid(proposal_id) if proposal_id else None)
        return Response(result.as_dict())


class AuctionViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Auction state and owner actions."""

    queryset = SwapAuction.objects.all()
    serializer_class = AuctionSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = UUID_PATTERN

    @action(detail=True, methods=["post"], url_path="select-winner")
    def select_winner(self, request, pk=None):  # type: ignore
        serializer = SelectWinnerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        swap = message_bus.handle_command(
            SelectWinner(
                auction_id=_uuid(pk),
                proposal_id=serializer.validated_data["proposal_id"],
                actor_id=request.user.id,
            )
        )
        return Response({"success": True, "swap": _swap_data(swap.id)}, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def close(self, request, pk=None):  # type: ignore
        auction = message_bus.handle_command(CloseAuctionEarly(auction_id=_uuid(pk), actor_id=request.user.id))
        return Response(AuctionSerializer(SwapAuction.objects.get(pk=auction.id)).data)

    @action(detail=True, methods=["get"])
    def comparison(self, request, pk=None):  # type: ignore
        comparison = compare_auction_proposals(_uuid(pk), request.user.id)
        return Response(comparison_payload(comparison))


class ProposalViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """The caller's sent and received proposals."""

    serializer_class = ProposalSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_class = ProposalFilterSet
    lookup_value_regex = UUID_PATTERN

    def get_queryset(self):  # type: ignore
        user = self.request.user
        return (
            SwapProposal.objects.select_related("proposer", "swap")
            .filter(Q(proposer=user) | Q(swap__owner=user))
            .order_by("-created_at")
        )

    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):  # type: ignore
        serializer = AcceptProposalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        proposal_id = _uuid(pk)
        swap = message_bus.handle_command(
            AcceptProposal(proposal_id=proposal_id, actor_id=request.user.id, **serializer.validated_data)
        )
        return Response(
            {"success": True, "swap": _swap_data(swap.id), "proposal": _proposal_data(proposal_id)},
            status=status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):  # type: ignore
        serializer = RejectProposalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        proposal = message_bus.handle_command(
            RejectProposal(proposal_id=_uuid(pk), actor_id=request.user.id, **serializer.validated_data)
        )
        return Response(
            {
                "success": True,
                "proposal": _proposal_data(proposal.id),
                "swap": _swap_data(proposal.swap_id),
            },
            status=status.HTTP_200_OK,
        )

    @action(detail=True, methods=["get"])
    def details(self, request, pk=None):  # type: ignore
        details = get_proposal_details(_uuid(pk), request.user.id)
        return Response(
            {
                "proposal": ProposalStateSerializer(details.proposal).data,
                "swap_id": str(details.swap.id),
                "swap_status": details.swap.status.value,
                "can_accept": details.can_accept,
                "can_reject": details.can_reject,
                "restrictions": details.restrictions,
                "targeting": TargetingSerializer(details.targeting).data if details.targeting else None,
            }
        )
