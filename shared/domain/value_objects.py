"""
Common Value Objects

Value objects used across the booking engine:
- Money: Represents monetary amounts with currency
- TimeRange: A half-open [start, end) interval inside one calendar day
- Actor: The verified (user id, role) pair supplied by authentication
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator

from shared.domain.base import ValueObject

SUPPORTED_CURRENCIES = ('INR', 'USD', 'EUR')


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Represents a monetary amount with currency.
    Immutable and supports arithmetic operations.
    """
    amount: Decimal
    currency: str = 'INR'

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if not self.currency:
            raise ValueError("Currency is required")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        """Add two money objects"""
        if not isinstance(other, Money):
            raise TypeError("Can only add Money to Money")
        if self.currency != other.currency:
            raise ValueError(f"Cannot add different currencies: {self.currency} and {other.currency}")
        return Money(self.amount + other.amount, self.currency)

    def __mul__(self, factor) -> 'Money':
        """Multiply money by a factor"""
        if not isinstance(factor, (int, Decimal)):
            raise TypeError("Can only multiply Money by int or Decimal")
        return Money(self.amount * Decimal(factor), self.currency)

    @classmethod
    def zero(cls, currency: str = 'INR') -> 'Money':
        return cls(Decimal('0'), currency)

    def quantized(self) -> Decimal:
        return self.amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    def minor_units(self) -> int:
        """Amount in the smallest currency unit (paise, cents)"""
        return int(self.quantized() * 100)

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


def _minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class TimeRange(ValueObject):
    """
    Time range value object

    Represents [start, end) within a single day. Ranges never cross
    midnight; adjacent ranges (18:00-19:00 and 19:00-20:00) do not overlap.
    """
    start: time
    end: time

    def __post_init__(self):
        if self.start.second or self.end.second or self.start.microsecond or self.end.microsecond:
            raise ValueError("Time range must be expressed in whole minutes")
        if self.start >= self.end:
            raise ValueError(f"Start time ({self.start}) must be before end time ({self.end})")

    @classmethod
    def from_duration(cls, start: time, hours: int) -> 'TimeRange':
        end_dt = datetime.combine(datetime.min, start) + timedelta(hours=hours)
        if end_dt.date() != datetime.min.date() or end_dt.time() == time(0, 0):
            raise ValueError("Time range cannot run past midnight")
        return cls(start, end_dt.time())

    @property
    def start_minute(self) -> int:
        return _minute_of_day(self.start)

    @property
    def end_minute(self) -> int:
        return _minute_of_day(self.end)

    @property
    def minutes(self) -> int:
        return self.end_minute - self.start_minute

    def overlaps_with(self, other: 'TimeRange') -> bool:
        """
        Check if this range overlaps with another

        Overlap formula: start1 < end2 AND end1 > start2
        """
        if not isinstance(other, TimeRange):
            raise TypeError("Can only check overlap with another TimeRange")
        return self.start < other.end and self.end > other.start

    def contains(self, other: 'TimeRange') -> bool:
        return self.start <= other.start and other.end <= self.end

    def is_aligned(self, cell_minutes: int) -> bool:
        return self.start_minute % cell_minutes == 0 and self.end_minute % cell_minutes == 0

    def cells(self, cell_minutes: int) -> Iterator[int]:
        """
        Canonical interval key: the minute-of-day start of every
        ``cell_minutes``-wide cell covered by this range.
        """
        if not self.is_aligned(cell_minutes):
            raise ValueError(f"{self} is not aligned to {cell_minutes}-minute cells")
        return iter(range(self.start_minute, self.end_minute, cell_minutes))

    def __str__(self):
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"

    def __repr__(self):
        return f"TimeRange({self.start}, {self.end})"


@dataclass(frozen=True)
class Actor(ValueObject):
    """Verified caller identity handed over by the authentication layer"""
    user_id: int
    role: str

    USER = 'user'
    FACILITY_OWNER = 'facility_owner'
    ADMIN = 'admin'

    @property
    def is_owner(self) -> bool:
        return self.role == self.FACILITY_OWNER

    @property
    def is_admin(self) -> bool:
        return self.role == self.ADMIN
