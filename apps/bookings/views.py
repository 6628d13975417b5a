"""API views for booking listings."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from .models import Booking
from .serializers import BookingCreateSerializer, BookingSerializer
from .services import list_booking, remove_booking


class BookingViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Create and browse booking listings.

    Listings are immutable once created; owners may only withdraw them.
    """

    queryset = Booking.objects.select_related("owner").all()
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = "[0-9a-f-]{36}"
    filterset_fields = ["status", "booking_type", "city", "country"]

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        if self.request.query_params.get("mine") in ("1", "true"):
            return qs.filter(owner=self.request.user)
        if self.action == "list":
            return qs.filter(status=Booking.Status.AVAILABLE) | qs.filter(owner=self.request.user)
        return qs

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = list_booking(request.user, serializer.validated_data)
        read_serializer = BookingSerializer(booking, context=self.get_serializer_context())
        headers = self.get_success_headers(read_serializer.data)
        return Response(read_serializer.data, status=status.HTTP_201_CREATED, headers=headers)

    @action(detail=True, methods=["post"])
    def remove(self, request, pk=None):  # type: ignore
        booking = remove_booking(pk, request.user.id)
        return Response(BookingSerializer(booking).data, status=status.HTTP_200_OK)
