"""Fixed-point money: integer minor units, exact arithmetic."""
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from functools import total_ordering
from typing import Any

from pydantic import GetCoreSchemaHandler, GetJsonSchemaHandler
from pydantic_core import core_schema

from settleup.exceptions import InvalidAmount

MINOR_UNITS = 100
DECIMAL_PLACES = 2
_CENT = Decimal("0.01")


@total_ordering
class Money:
    """A signed amount stored as an integer number of cents."""

    __slots__ = ("_cents",)

    def __init__(self, cents: int = 0):
        if isinstance(cents, bool) or not isinstance(cents, int):
            raise InvalidAmount(f"Money needs integer cents, got {cents!r}")
        self._cents = cents

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        return cls(cents)

    @classmethod
    def of(cls, value: Any) -> "Money":
        """Build Money from an int, float, str, Decimal or Money, rounding half-up to cents."""
        if isinstance(value, Money):
            return value
        if value is None or isinstance(value, bool):
            raise InvalidAmount(f"Not a monetary amount: {value!r}")
        if isinstance(value, float):
            if not math.isfinite(value):
                raise InvalidAmount(f"Amount must be finite, got {value!r}")
            value = repr(value)
        if isinstance(value, (int, str, Decimal)):
            try:
                dec = Decimal(value.strip() if isinstance(value, str) else value)
            except (InvalidOperation, ValueError):
                raise InvalidAmount(f"Not a monetary amount: {value!r}") from None
            if not dec.is_finite():
                raise InvalidAmount(f"Amount must be finite, got {value!r}")
            cents = (dec * MINOR_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP)
            return cls(int(cents))
        raise InvalidAmount(f"Unsupported amount type: {type(value).__name__}")

    @property
    def cents(self) -> int:
        return self._cents

    # ----- arithmetic -----
    def add(self, other: "Money") -> "Money":
        return Money(self._cents + other._cents)

    def subtract(self, other: "Money") -> "Money":
        return Money(self._cents - other._cents)

    def negate(self) -> "Money":
        return Money(-self._cents)

    def compare(self, other: "Money") -> int:
        return (self._cents > other._cents) - (self._cents < other._cents)

    def is_zero(self) -> bool:
        return self._cents == 0

    def round_to(self, places: int = DECIMAL_PLACES) -> "Money":
        if places >= DECIMAL_PLACES:
            return self
        step = Decimal(1).scaleb(-places)
        return Money.of(self.to_decimal().quantize(step, rounding=ROUND_HALF_UP))

    def allocate(self, parts: int) -> list["Money"]:
        """Split into `parts` amounts differing by at most a cent, summing exactly to self."""
        if parts <= 0:
            raise InvalidAmount("Cannot allocate across zero parts")
        base, remainder = divmod(abs(self._cents), parts)
        sign = -1 if self._cents < 0 else 1
        return [Money(sign * (base + (1 if i < remainder else 0))) for i in range(parts)]

    # ----- tolerance -----
    def is_negligible(self) -> bool:
        return abs(self._cents) <= TOLERANCE._cents

    def exceeds_tolerance(self) -> bool:
        return self._cents > TOLERANCE._cents

    def effectively_equals(self, other: "Money") -> bool:
        return self.subtract(other).is_negligible()

    # ----- conversion -----
    def to_decimal(self) -> Decimal:
        return (Decimal(self._cents) / MINOR_UNITS).quantize(_CENT)

    def __float__(self) -> float:
        return float(self.to_decimal())

    def __str__(self) -> str:
        return str(self.to_decimal())

    def __repr__(self) -> str:
        return f"Money('{self}')"

    # ----- operators -----
    def __add__(self, other):
        if not isinstance(other, Money):
            return NotImplemented
        return self.add(other)

    def __radd__(self, other):
        # lets sum() start from 0
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other):
        if not isinstance(other, Money):
            return NotImplemented
        return self.subtract(other)

    def __neg__(self):
        return self.negate()

    def __abs__(self):
        return Money(abs(self._cents))

    def __eq__(self, other):
        if not isinstance(other, Money):
            return NotImplemented
        return self._cents == other._cents

    def __lt__(self, other):
        if not isinstance(other, Money):
            return NotImplemented
        return self._cents < other._cents

    def __hash__(self):
        return hash(self._cents)

    # ----- pydantic -----
    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler):
        return core_schema.no_info_plain_validator_function(
            cls.of,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda m: float(m), when_used="json"
            ),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, schema, handler: GetJsonSchemaHandler):
        return {"type": "number", "multipleOf": 0.01}


ZERO = Money(0)
# Balances at or below one minor unit are rounding residue from unequal splits.
TOLERANCE = Money(1)


# (decimal separator, grouping separator)
LOCALE_SEPARATORS = {
    "en_US": (".", ","),
    "en_GB": (".", ","),
    "ja_JP": (".", ","),
    "de_DE": (",", "."),
    "es_ES": (",", "."),
    "it_IT": (",", "."),
    "fr_FR": (",", " "),
    "de_CH": (".", "'"),
}


def format_money(amount: Money, locale: str = "en_US", symbol: str = "") -> str:
    """Render an amount with the locale's decimal and grouping separators."""
    decimal_sep, group_sep = LOCALE_SEPARATORS.get(locale, LOCALE_SEPARATORS["en_US"])
    whole, frac = divmod(abs(amount.cents), MINOR_UNITS)
    digits = f"{whole:,}".replace(",", group_sep)
    sign = "-" if amount.cents < 0 else ""
    return f"{sign}{symbol}{digits}{decimal_sep}{frac:02d}"
