"""URL routing for swaps, auctions and proposals."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import AuctionViewSet, ProposalViewSet, SwapViewSet

router = DefaultRouter()
router.register(r"swaps", SwapViewSet, basename="swap")
router.register(r"auctions", AuctionViewSet, basename="auction")
router.register(r"proposals", ProposalViewSet, basename="proposal")

urlpatterns = [
    path("", include(router.urls)),
]
