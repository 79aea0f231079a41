"""Pydantic models for data validation and type checking."""

from models.enums import (
    AlertPropertyType,
    ListingType,
    NotificationKind,
    PropertyType,
    SubscriptionState,
)
from models.notification import (
    EmailTemplate,
    Notification,
    NotificationCreate,
    NotificationPreference,
    NotificationTemplate,
    Recipient,
    UserProfile,
)
from models.property import (
    AlertCriteria,
    AlertCriteriaBase,
    AlertCriteriaCreate,
    Property,
)
from models.reports import (
    BulkDispatchResult,
    DayBucket,
    DispatchOutcome,
    FanoutMatch,
    FanoutReport,
    NotificationPerformance,
    NotificationStats,
    PreferenceBreakdown,
    SweepItem,
    SweepReport,
    TrendDay,
    TypeShare,
    UserEngagement,
)

__all__ = [
    "AlertPropertyType",
    "ListingType",
    "NotificationKind",
    "PropertyType",
    "SubscriptionState",
    "Property",
    "AlertCriteria",
    "AlertCriteriaBase",
    "AlertCriteriaCreate",
    "Recipient",
    "Notification",
    "NotificationCreate",
    "NotificationTemplate",
    "NotificationPreference",
    "UserProfile",
    "EmailTemplate",
    "DispatchOutcome",
    "BulkDispatchResult",
    "FanoutMatch",
    "FanoutReport",
    "SweepItem",
    "SweepReport",
    "DayBucket",
    "TypeShare",
    "UserEngagement",
    "NotificationStats",
    "NotificationPerformance",
    "PreferenceBreakdown",
    "TrendDay",
]
