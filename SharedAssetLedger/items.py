"""
Items Module

This module defines the shared item snapshot used by the proration engine,
its validation, and the normalization of incoming item payloads.

Features:
    - Immutable item snapshots with Decimal prices
    - Single canonical depreciation length in days
    - Normalization of legacy and years-or-days payloads at the boundary
    - Edit-form period inference (days vs years)

Data Model:
    Item fields:
        - item_id: string (unique, opaque)
        - name: string
        - price: Decimal (must be >= 0)
        - purchase_date: date (day the item entered service)
        - depreciation_days: int (1 to MAX_DEPRECIATION_DAYS)

Functions:
    validate_item: Check a single item's invariants.
    validate_items: Check an item list (invariants + unique ids).
    convert_years_to_days: Convert a years period to days.
    convert_days_to_years: Convert a days period to whole years.
    normalize_item_payload: Resolve canonical fields from any payload shape.
    infer_edit_period: Pick the unit and value to show when editing an item.
    item_from_payload: Normalize, parse and validate a payload into an Item.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from utils import to_day, to_decimal


DAYS_PER_YEAR = 365

# Default period shown on a blank item form
DEFAULT_PERIOD_DAYS = DAYS_PER_YEAR * 3

# Upper bound on a schedule, keeps window ends within the calendar
MAX_DEPRECIATION_DAYS = DAYS_PER_YEAR * 100

VALID_PERIOD_TYPES = {"days", "years"}


@dataclass(frozen=True)
class Item:
    """
    Represents a jointly owned, depreciating item.

    Attributes:
        item_id (str): Unique identifier for the item.
        name (str): Display name.
        price (Decimal): Purchase price.
        purchase_date (date): Day the item entered service.
        depreciation_days (int): Length of the straight-line schedule.
    """

    item_id: str
    name: str
    price: Decimal
    purchase_date: date
    depreciation_days: int

    def to_dict(self) -> dict:
        """Convert item to a JSON-friendly dictionary."""
        return {
            "item_id": self.item_id,
            "name": self.name,
            "price": str(self.price),
            "purchase_date": self.purchase_date.isoformat(),
            "depreciation_days": self.depreciation_days,
        }

    def __repr__(self) -> str:
        return f"Item(name='{self.name}', price={self.price}, purchased='{self.purchase_date}')"

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        """Create an Item from a dictionary holding canonical fields."""
        return cls(
            item_id=str(data["item_id"]) if data.get("item_id") is not None else "",
            name=data.get("name") or "",
            price=to_decimal(data.get("price")),
            purchase_date=to_day(data.get("purchase_date")),
            depreciation_days=data.get("depreciation_days"),
        )


def validate_item(item: Item) -> bool:
    """
    Validate an item snapshot.

    Rules:
        - item_id is a non-empty string
        - price is a non-negative Decimal
        - purchase_date is a date
        - depreciation_days is an integer between 1 and MAX_DEPRECIATION_DAYS
        - the depreciation window ends on a representable date

    Raises:
        ValueError: Naming the item and the invariant that failed.
    """
    if not isinstance(item.item_id, str) or not item.item_id.strip():
        raise ValueError("item_id must be a non-empty string")

    if not isinstance(item.price, Decimal) or not item.price.is_finite():
        raise ValueError(f"Item {item.item_id}: price must be a finite Decimal")
    if item.price < 0:
        raise ValueError(f"Item {item.item_id}: price must be >= 0, got {item.price}")

    if not isinstance(item.purchase_date, date):
        raise ValueError(f"Item {item.item_id}: purchase_date must be a date")

    days = item.depreciation_days
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValueError(f"Item {item.item_id}: depreciation_days must be an integer, got {days!r}")
    if days < 1:
        raise ValueError(f"Item {item.item_id}: depreciation_days must be >= 1, got {days}")
    if days > MAX_DEPRECIATION_DAYS:
        raise ValueError(
            f"Item {item.item_id}: depreciation_days must be <= {MAX_DEPRECIATION_DAYS}, got {days}"
        )
    try:
        item.purchase_date + timedelta(days=days - 1)
    except OverflowError:
        raise ValueError(
            f"Item {item.item_id}: depreciation_days {days} runs past the last representable date"
        )

    return True


def validate_items(items: list[Item]) -> bool:
    """Validate every item and reject duplicate item ids."""
    seen = set()
    for item in items:
        validate_item(item)
        if item.item_id in seen:
            raise ValueError(f"Duplicate item_id: {item.item_id}")
        seen.add(item.item_id)
    return True


def _round_half_up(value: Decimal, field_name: str = "period") -> int:
    if not value.is_finite():
        raise ValueError(f"{field_name} must be a finite number, got {value}")
    try:
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValueError(f"{field_name} is too large, got {value}")


def convert_years_to_days(years) -> int:
    """Convert a period in years to days, never less than one day."""
    number = to_decimal(years)
    if not number.is_finite():
        raise ValueError(f"depreciation_years must be a finite number, got {years}")
    return max(1, _round_half_up(number * DAYS_PER_YEAR, "depreciation_years"))


def convert_days_to_years(days) -> int:
    """Convert a period in days to whole years, never less than one year."""
    number = to_decimal(days)
    if not number.is_finite():
        raise ValueError(f"depreciation_days must be a finite number, got {days}")
    return max(1, _round_half_up(number / DAYS_PER_YEAR, "depreciation_days"))


def _first_present(raw: dict, *keys):
    """Return the first value among keys that is present and not None."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _whole_days(value, field_name: str) -> int:
    number = to_decimal(value)
    if not number.is_finite():
        raise ValueError(f"{field_name} must be a finite number, got {value}")
    if number != number.to_integral_value():
        raise ValueError(f"{field_name} must be a whole number of days, got {value}")
    return int(number)


def normalize_item_payload(raw: dict, default_days: Optional[int] = None) -> dict:
    """
    Resolve an incoming item payload to canonical field names.

    Accepted depreciation inputs, in order of precedence:
        1. period_type + period_value (form input; years are converted)
        2. period_days / depreciationDays / depreciation_days
        3. depreciation_years / depreciationYears (converted to days)
        4. default_days, if given

    Args:
        raw: Payload dict using any mix of canonical and legacy names.
        default_days: Fallback period when the payload carries none.

    Returns:
        dict: item_id, name, price, purchase_date, depreciation_days and the
        period_type the payload was expressed in.

    Raises:
        ValueError: If no depreciation period can be resolved or the
        period type is unknown.
    """
    days_value = _first_present(raw, "period_days", "depreciationDays", "depreciation_days")
    years_value = _first_present(raw, "depreciation_years", "depreciationYears")
    period_value = _first_present(raw, "period_value", "periodValue")
    period_type = _first_present(raw, "period_type", "periodType", "depreciation_period_type")

    if period_type is not None and period_type not in VALID_PERIOD_TYPES:
        raise ValueError(f"period_type must be one of {sorted(VALID_PERIOD_TYPES)}, got: {period_type}")

    if period_value is not None:
        period_type = period_type or "days"
        if period_type == "years":
            depreciation_days = convert_years_to_days(period_value)
        else:
            depreciation_days = _whole_days(period_value, "period_value")
    elif days_value is not None:
        depreciation_days = _whole_days(days_value, "depreciation_days")
        period_type = period_type or "days"
    elif years_value is not None:
        depreciation_days = convert_years_to_days(years_value)
        period_type = period_type or "years"
    elif default_days is not None:
        depreciation_days = default_days
        period_type = period_type or "days"
    else:
        raise ValueError("Item payload has no depreciation period (days or years)")

    return {
        "item_id": _first_present(raw, "item_id", "id"),
        "name": raw.get("name"),
        "price": raw.get("price"),
        "purchase_date": _first_present(raw, "purchase_date", "purchaseDate"),
        "depreciation_days": depreciation_days,
        "period_type": period_type,
    }


def infer_edit_period(existing: dict) -> tuple[str, int]:
    """
    Infer which unit and value an edit form should show for a stored item.

    The explicit period type wins; without one, an item that only carries
    a years value is shown in years. Values are rounded and never below 1.

    Returns:
        tuple: (period_type, period_value), ("days", 1095) when nothing is stored.
    """
    explicit_type = _first_present(existing, "period_type", "depreciation_period_type")
    days_value = _first_present(existing, "period_days", "depreciation_days", "depreciationDays")
    years_value = _first_present(existing, "depreciation_years", "depreciationYears")

    has_days = isinstance(days_value, (int, float)) and not isinstance(days_value, bool)
    has_years = isinstance(years_value, (int, float)) and not isinstance(years_value, bool)

    if explicit_type == "years" or (explicit_type is None and has_years and not has_days):
        period_type = "years"
    else:
        period_type = "days"

    period_value = DEFAULT_PERIOD_DAYS
    if period_type == "years":
        if has_years:
            period_value = max(1, _round_half_up(to_decimal(years_value)))
        elif has_days:
            period_value = convert_days_to_years(days_value)
    else:
        if has_days:
            period_value = max(1, _round_half_up(to_decimal(days_value)))
        elif has_years:
            period_value = convert_years_to_days(years_value)

    return period_type, period_value


def item_from_payload(raw: dict, default_days: Optional[int] = None) -> Item:
    """
    Normalize, parse and validate one item payload.

    Raises:
        ValueError: If the payload is malformed or violates an invariant.
    """
    normalized = normalize_item_payload(raw, default_days=default_days)
    if normalized["item_id"] is None:
        raise ValueError("item_id is required")
    if normalized["price"] is None:
        raise ValueError(f"Item {normalized['item_id']}: price is required")
    if normalized["purchase_date"] is None:
        raise ValueError(f"Item {normalized['item_id']}: purchase_date is required")

    item = Item.from_dict(normalized)
    validate_item(item)
    return item


def items_from_payloads(data: list[dict], default_days: Optional[int] = None) -> list[Item]:
    """Parse a list of item payloads and reject duplicate ids."""
    items = [item_from_payload(raw, default_days=default_days) for raw in data]
    validate_items(items)
    return items
