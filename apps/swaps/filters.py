"""FilterSet definitions for swap listing."""

from __future__ import annotations

import django_filters  # type: ignore

from .models import Swap, SwapProposal


class SwapFilterSet(django_filters.FilterSet):
    """Filters used by the swap browser."""

    status = django_filters.ChoiceFilter(field_name="status", choices=Swap.Status.choices)
    strategy = django_filters.ChoiceFilter(field_name="acceptance_strategy", choices=Swap.Strategy.choices)
    cash = django_filters.BooleanFilter(field_name="accepts_cash")
    exchange = django_filters.BooleanFilter(field_name="accepts_booking_exchange")
    type = django_filters.CharFilter(field_name="source_booking__booking_type", lookup_expr="exact")
    city = django_filters.CharFilter(field_name="source_booking__city", lookup_expr="icontains")
    country = django_filters.CharFilter(field_name="source_booking__country", lookup_expr="iexact")
    mine = django_filters.BooleanFilter(method="filter_mine")

    class Meta:
        model = Swap
        fields = ["status", "strategy", "cash", "exchange", "type", "city", "country"]

    def filter_mine(self, queryset, name, value):  # type: ignore
        user = getattr(self.request, "user", None)
        if not value or user is None or not user.is_authenticated:
            return queryset
        return queryset.filter(owner=user)


class ProposalFilterSet(django_filters.FilterSet):
    """Filters for the caller's sent and received proposals."""

    status = django_filters.ChoiceFilter(field_name="status", choices=SwapProposal.Status.choices)
    proposal_type = django_filters.ChoiceFilter(field_name="proposal_type", choices=SwapProposal.Type.choices)
    swap = django_filters.UUIDFilter(field_name="swap_id")
    box = django_filters.ChoiceFilter(
        method="filter_box",
        choices=[("sent", "Sent"), ("received", "Received")],
    )

    class Meta:
        model = SwapProposal
        fields = ["status", "proposal_type", "swap"]

    def filter_box(self, queryset, name, value):  # type: ignore
        user = self.request.user
        if value == "sent":
            return queryset.filter(proposer=user)
        if value == "received":
            return queryset.filter(swap__owner=user)
        return queryset
