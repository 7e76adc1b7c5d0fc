"""
Parameter value model for setup exports.

Every value read from an export is one of three kinds:

- Numeric: a decimal magnitude with an optional unit token ("-0.10 deg", "54%")
- Text:    anything that is not a number ("High", "Blue")
- Empty:   blank or placeholder cells ("", "—", "N/A")

Two values are only compared numerically when both are Numeric and carry the
same unit. Everything else falls back to exact text equality.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union


class Classification(str, Enum):
    INCREASED = "increased"
    DECREASED = "decreased"
    UNCHANGED = "unchanged"
    INCOMPARABLE = "incomparable"

    def inverse(self) -> "Classification":
        """Swap the direction of a change, as if the operands were swapped."""
        if self is Classification.INCREASED:
            return Classification.DECREASED
        if self is Classification.DECREASED:
            return Classification.INCREASED
        return self


# Cells the exporter writes when a parameter has no value
PLACEHOLDERS = frozenset({"", "-", "—", "–", "--", "n/a", "na", "none", "null"})

# Spellings of the same unit that show up across car models
DEFAULT_UNIT_ALIASES = {
    "in.": "in",
    "deg.": "deg",
    "°": "deg",
    "degrees": "deg",
    "lb": "lbs",
    "lb/in": "lbs/in",
}

DEFAULT_EPSILON = Decimal("1e-9")

_NUMBER_RE = re.compile(
    r"""
    ^(?P<number>
        [+-]?
        (?:
            \d{1,3}(?:,\d{3})+(?:\.\d*)?   # 1,234 or 1,234.5
          | \d+(?:\.\d*)?                  # 12 or 12.5
          | \.\d+                          # .5
        )
    )
    \s*
    (?P<unit>[^\d\s+\-.,/][^\s]*)?         # single unit token: deg, lbs/in, %, F
    $
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Numeric:
    magnitude: Decimal
    unit: Optional[str] = None
    raw: str = field(default="", compare=False)

    def __str__(self) -> str:
        if self.raw:
            return self.raw
        text = format(self.magnitude, "f")
        return f"{text} {self.unit}" if self.unit else text


@dataclass(frozen=True)
class Text:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Empty:
    raw: str = field(default="", compare=False)

    def __str__(self) -> str:
        return self.raw


Value = Union[Numeric, Text, Empty]


def normalize_unit(unit: Optional[str], aliases: Optional[dict] = None) -> Optional[str]:
    """Map a unit token onto its canonical spelling."""
    if not unit:
        return None
    table = DEFAULT_UNIT_ALIASES if aliases is None else aliases
    return table.get(unit, table.get(unit.lower(), unit))


def parse_value(raw_text: str, unit_aliases: Optional[dict] = None) -> Value:
    """
    Parse the raw text of one export cell into a Value.

    Thousands separators are only recognized in comma-grouped form
    ("1,250 lbs"); a leading "+" is accepted ("+12.2 deg").
    """
    text = (raw_text or "").strip()

    if text.lower() in PLACEHOLDERS:
        return Empty(raw=text)

    match = _NUMBER_RE.match(text)
    if match:
        number = match.group("number").replace(",", "")
        try:
            magnitude = Decimal(number)
        except InvalidOperation:
            return Text(text)
        unit = normalize_unit(match.group("unit"), unit_aliases)
        return Numeric(magnitude=magnitude, unit=unit, raw=text)

    return Text(text)


def compare_values(a: Value, b: Value, epsilon: Decimal = DEFAULT_EPSILON) -> Classification:
    """
    Classify the change from ``a`` (earlier/left) to ``b`` (later/right).

    Magnitudes within ``epsilon`` of each other count as unchanged.
    """
    if isinstance(a, Empty) or isinstance(b, Empty):
        if isinstance(a, Empty) and isinstance(b, Empty):
            return Classification.UNCHANGED
        return Classification.INCOMPARABLE

    if isinstance(a, Numeric) and isinstance(b, Numeric):
        if a.unit != b.unit:
            return Classification.INCOMPARABLE
        delta = b.magnitude - a.magnitude
        if abs(delta) <= Decimal(epsilon):
            return Classification.UNCHANGED
        return Classification.INCREASED if delta > 0 else Classification.DECREASED

    if isinstance(a, Text) and isinstance(b, Text):
        return Classification.UNCHANGED if a.text == b.text else Classification.INCOMPARABLE

    return Classification.INCOMPARABLE


def format_value(value: Optional[Value]) -> str:
    """Format a value for display, with a marker for absent values."""
    if value is None:
        return "(absent)"
    if isinstance(value, Empty):
        return "(empty)"
    return str(value)


def value_to_dict(value: Optional[Value]) -> Optional[dict]:
    """Convert a value to a dictionary for JSON serialization."""
    if value is None:
        return None
    if isinstance(value, Numeric):
        return {
            "kind": "numeric",
            "magnitude": str(value.magnitude),
            "unit": value.unit,
            "display": str(value),
        }
    if isinstance(value, Text):
        return {"kind": "text", "display": value.text}
    return {"kind": "empty", "display": value.raw}
