"""
Alert matching logic.

Decides whether a property listing satisfies a user's alert criteria.
Everything here is pure: no database access, no clock, safe to call from
any thread.
"""

import re
from typing import Iterable, List

from models import AlertCriteria, AlertPropertyType, Property, PropertyType

# Concrete catalog type -> coarse category an alert targets.
# Nothing maps to LAND yet, so land alerts never match.
_CATEGORY_BY_TYPE = {
    PropertyType.APARTMENT: AlertPropertyType.APARTMENT,
    PropertyType.LOFT: AlertPropertyType.APARTMENT,
    PropertyType.PENTHOUSE: AlertPropertyType.APARTMENT,
    PropertyType.STUDIO: AlertPropertyType.APARTMENT,
    PropertyType.DUPLEX: AlertPropertyType.APARTMENT,
    PropertyType.HOUSE: AlertPropertyType.HOUSE,
    PropertyType.CHALET: AlertPropertyType.HOUSE,
    PropertyType.VILLA: AlertPropertyType.VILLA,
    PropertyType.CASTLE: AlertPropertyType.VILLA,
}

_unmapped = set(PropertyType) - set(_CATEGORY_BY_TYPE)
if _unmapped:
    raise RuntimeError(
        "Property types without a coarse category: "
        + ", ".join(sorted(t.value for t in _unmapped))
    )

ON_REQUEST_PATTERN = re.compile(r"on\s*request|sur\s*demande", re.IGNORECASE)

# First run of digits, allowing thousands separators (1'250'000, 1,200,000, 3 500)
_NUMBER_TOKEN = re.compile(r"\d[\d'\u2019,.\s]*")
_DECIMAL_COMMA = re.compile(r"^(\d[\d.'\u2019\s]*),(\d{1,2})$")


def coarse_category(property_type: PropertyType) -> AlertPropertyType:
    """Category an alert uses for a concrete property type."""
    return _CATEGORY_BY_TYPE[PropertyType(property_type)]


def is_price_on_request(price_text: str | None) -> bool:
    """True when no price is disclosed (empty or an 'on request' sentinel)."""
    text = (price_text or "").strip()
    return not text or bool(ON_REQUEST_PATTERN.search(text))


def parse_price(price_text: str | None) -> float | None:
    """
    Parse the leading numeric token of a free-form price.

    Examples:
        >>> parse_price("CHF 1'250'000")
        1250000.0
        >>> parse_price("3'500.- / month")
        3500.0
        >>> parse_price("EUR 1.250,50")
        1250.5
        >>> parse_price("Price on request") is None
        True

    Returns:
        The number, or None when the text carries no number
    """
    if is_price_on_request(price_text):
        return None

    found = _NUMBER_TOKEN.search(price_text or "")
    if not found:
        return None

    token = found.group(0).rstrip(" .,'\u2019\u00a0\u202f")

    # 1.250,50 and 3'500,75 put the decimal part after a comma
    decimal = _DECIMAL_COMMA.match(token)
    if decimal:
        whole = re.sub(r"[.'\u2019\s]", "", decimal.group(1))
        return float(f"{whole}.{decimal.group(2)}")

    token = re.sub(r"['\u2019,\s]", "", token)

    # 1.250.000 uses dots as thousands separators
    if token.count(".") > 1:
        token = token.replace(".", "")

    try:
        return float(token)
    except ValueError:
        return None


def matches(property: Property, criteria: AlertCriteria) -> bool:
    """
    Check if a property satisfies an alert.

    Checks run cheapest first and stop at the first failure. Optional
    criteria fields that are unset do not constrain the match.

    Args:
        property: Listing being evaluated
        criteria: Alert criteria (bounds already validated at creation)

    Returns:
        True if every set criterion is satisfied
    """
    # Transaction type (mandatory)
    if criteria.transaction_type != property.listing_type:
        return False

    # Coarse category (mandatory)
    if coarse_category(property.property_type) != criteria.property_type:
        return False

    # Location: city OR neighborhood, case-insensitive substring
    if criteria.location:
        needle = criteria.location.casefold()
        if (
            needle not in property.city.casefold()
            and needle not in property.neighborhood.casefold()
        ):
            return False

    # Rooms: minimum threshold, optional upper bound
    if criteria.rooms is not None:
        if property.rooms is None or property.rooms < criteria.rooms:
            return False
    if criteria.max_rooms is not None:
        if property.rooms is None or property.rooms > criteria.max_rooms:
            return False

    # Budget: an undisclosed or unparseable price cannot be checked
    if criteria.min_budget is not None or criteria.max_budget is not None:
        price = parse_price(property.price)
        if price is None:
            return False
        if criteria.min_budget is not None and price < criteria.min_budget:
            return False
        if criteria.max_budget is not None and price > criteria.max_budget:
            return False

    return True


def find_matching_criteria(
    property: Property, criteria_list: Iterable[AlertCriteria]
) -> List[AlertCriteria]:
    """Active criteria from the list that the property satisfies."""
    return [c for c in criteria_list if c.is_active and matches(property, c)]
