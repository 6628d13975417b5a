"""Admin registration for swaps."""

from __future__ import annotations

from django.contrib import admin

from .models import Swap, SwapAuction, SwapProposal, SwapTargeting


class SwapProposalInline(admin.TabularInline):
    model = SwapProposal
    extra = 0
    fields = ("proposer", "proposal_type", "booking", "cash_amount", "currency", "status", "created_at")
    readonly_fields = fields
    can_delete = False
    show_change_link = True


@admin.register(Swap)
class SwapAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "owner",
        "acceptance_strategy",
        "status",
        "expires_at",
        "accepts_booking_exchange",
        "accepts_cash",
        "created_at",
    )
    list_filter = ("status", "acceptance_strategy", "accepts_cash")
    search_fields = ("title", "owner__email", "source_booking__title")
    readonly_fields = ("version", "proposed_at", "responded_at", "completed_at", "created_at", "updated_at")
    inlines = [SwapProposalInline]


@admin.register(SwapAuction)
class SwapAuctionAdmin(admin.ModelAdmin):
    list_display = ("swap", "status", "end_date", "winner_proposal_id", "ended_at")
    list_filter = ("status",)


@admin.register(SwapProposal)
class SwapProposalAdmin(admin.ModelAdmin):
    list_display = ("swap", "proposer", "proposal_type", "status", "cash_amount", "currency", "created_at")
    list_filter = ("status", "proposal_type")
    search_fields = ("swap__title", "proposer__email", "message")
    readonly_fields = ("created_at", "updated_at", "responded_at")


@admin.register(SwapTargeting)
class SwapTargetingAdmin(admin.ModelAdmin):
    list_display = ("source_swap", "target_swap", "proposal", "status", "created_at", "ended_at")
    list_filter = ("status",)
