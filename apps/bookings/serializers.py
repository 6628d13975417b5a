"""Serializers for booking listings."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Booking


class BookingCreateSerializer(serializers.ModelSerializer):
    """Listing a new booking."""

    original_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    swap_value = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    capacity = serializers.IntegerField(min_value=1, default=1)
    amenities = serializers.ListField(child=serializers.CharField(max_length=64), required=False)

    class Meta:
        model = Booking
        fields = [
            "title",
            "description",
            "booking_type",
            "city",
            "country",
            "check_in",
            "check_out",
            "event_date",
            "original_price",
            "swap_value",
            "currency",
            "capacity",
            "amenities",
        ]
        extra_kwargs = {
            "description": {"required": False, "allow_blank": True},
            "currency": {"required": False},
        }

    def validate_currency(self, value: str) -> str:
        value = value.upper()
        if len(value) != 3 or not value.isalpha():
            raise serializers.ValidationError("Currency must be a 3-letter ISO code.")
        return value

    def validate(self, attrs):  # type: ignore
        check_in = attrs.get("check_in")
        check_out = attrs.get("check_out")
        if bool(check_in) != bool(check_out):
            raise serializers.ValidationError("Check-in and check-out must be provided together.")
        if check_in and check_out and check_in >= check_out:
            raise serializers.ValidationError("Check-out must be after check-in.")
        if not check_in and not attrs.get("event_date"):
            raise serializers.ValidationError("A booking needs stay dates or an event date.")
        return attrs


class BookingSerializer(serializers.ModelSerializer):
    """Read representation of a booking."""

    owner_id = serializers.ReadOnlyField(source="owner.id")
    starts_on = serializers.DateField(read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "owner_id",
            "title",
            "description",
            "booking_type",
            "city",
            "country",
            "check_in",
            "check_out",
            "event_date",
            "starts_on",
            "original_price",
            "swap_value",
            "currency",
            "capacity",
            "amenities",
            "status",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
