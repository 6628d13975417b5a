"""Swap marketplace tunables, read from ``settings.SWAPS``."""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings  # type: ignore

DEFAULTS = {
    "LAST_MINUTE_WINDOW_DAYS": 7,
    "MAX_PROPOSAL_MESSAGE_LENGTH": 1000,
    "NOTIFY_BY_EMAIL": False,
}


def swap_setting(name: str):
    overrides = getattr(settings, "SWAPS", {}) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]


def last_minute_window() -> timedelta:
    return timedelta(days=swap_setting("LAST_MINUTE_WINDOW_DAYS"))


def max_message_length() -> int:
    return int(swap_setting("MAX_PROPOSAL_MESSAGE_LENGTH"))


def notify_by_email() -> bool:
    return bool(swap_setting("NOTIFY_BY_EMAIL"))
