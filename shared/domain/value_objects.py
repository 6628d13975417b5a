"""Money and date ranges shared by bookings and swaps."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from shared.domain.base import ValueObject


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Non-negative amount in a three-letter ISO 4217 currency

    Amounts from serializers arrive as Decimal, from fixtures as str or int;
    all are stored as Decimal. Arithmetic across currencies is refused.
    """
    amount: Decimal
    currency: str = 'USD'

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if self.amount < 0:
            raise ValueError(f"Negative amount: {self.amount}")
        code = self.currency or ''
        if not (len(code) == 3 and code.isalpha() and code.isupper()):
            raise ValueError(f"Unsupported currency: {self.currency!r}")

    def _same_currency(self, other: 'Money'):
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise ValueError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        self._same_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def difference(self, other: 'Money') -> Decimal:
        """``self - other`` as a signed Decimal"""
        self._same_currency(other)
        return self.amount - other.amount

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"


@dataclass(frozen=True)
class DateRange(ValueObject):
    """Stay dates: check-in inclusive, check-out exclusive."""
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.end_date <= self.start_date:
            raise ValueError(
                f"Check-out {self.end_date} must be after check-in {self.start_date}"
            )

    def __str__(self):
        return f"{self.start_date:%Y-%m-%d}..{self.end_date:%Y-%m-%d}"
