"""Closed vocabularies used by matching and notifications."""

from enum import Enum


class ListingType(str, Enum):
    SALE = "sale"
    RENT = "rent"


class PropertyType(str, Enum):
    """Concrete property types offered in the catalog."""

    APARTMENT = "apartment"
    HOUSE = "house"
    LOFT = "loft"
    PENTHOUSE = "penthouse"
    STUDIO = "studio"
    DUPLEX = "duplex"
    VILLA = "villa"
    CHALET = "chalet"
    CASTLE = "castle"


class AlertPropertyType(str, Enum):
    """Coarse categories an alert can target."""

    APARTMENT = "apartment"
    HOUSE = "house"
    VILLA = "villa"
    LAND = "land"


class NotificationKind(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SubscriptionState(str, Enum):
    """Derived at sweep time from a profile's expiry, never stored."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
