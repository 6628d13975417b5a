"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "owner",
        "booking_type",
        "city",
        "status",
        "check_in",
        "event_date",
        "swap_value",
        "currency",
        "created_at",
    )
    list_filter = ("status", "booking_type", "country")
    search_fields = ("title", "city", "owner__email")
    readonly_fields = ("created_at", "updated_at")
