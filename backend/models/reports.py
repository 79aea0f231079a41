"""Result models returned by dispatch, fan-out, sweep and analytics."""

from datetime import datetime

from pydantic import BaseModel, Field

from models.enums import SubscriptionState
from models.notification import Notification, Recipient
from models.types import AlertID, DateString, PropertyID, UserID


class DispatchOutcome(BaseModel):
    """What happened for one recipient of a dispatch."""

    recipient: Recipient
    success: bool
    notification: Notification | None = None
    error: str | None = None
    skipped_duplicate: bool = False
    email_sent: bool = False


class BulkDispatchResult(BaseModel):
    """Per-recipient outcomes of a bulk send, in input order."""

    outcomes: list[DispatchOutcome] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    def summary(self) -> str:
        return f"{self.succeeded} of {self.total} succeeded"


class FanoutMatch(BaseModel):
    """One alert evaluated against a property."""

    alert_id: AlertID
    user_id: UserID
    matched: bool
    outcome: DispatchOutcome | None = None
    error: str | None = None


class FanoutReport(BaseModel):
    property_id: PropertyID
    alerts_evaluated: int = 0
    matched: int = 0
    notified: int = 0
    duplicates: int = 0
    failed: int = 0
    results: list[FanoutMatch] = Field(default_factory=list)


class SweepItem(BaseModel):
    user_id: UserID
    state: SubscriptionState
    days_left: int
    outcome: DispatchOutcome | None = None
    error: str | None = None


class SweepReport(BaseModel):
    started_at: datetime
    skipped_locked: bool = False
    dry_run: bool = False
    scanned: int = 0
    expired: int = 0
    expiring_soon: int = 0
    notified: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    items: list[SweepItem] = Field(default_factory=list)


class DayBucket(BaseModel):
    date: DateString
    count: int = 0
    read: int = 0
    unread: int = 0


class TypeShare(BaseModel):
    type: str
    count: int
    percentage: int


class UserEngagement(BaseModel):
    total_users: int = 0
    users_with_notifications: int = 0
    average_notifications_per_user: float = 0.0
    active_users: int = 0
    engagement_rate: int = 0


class NotificationStats(BaseModel):
    total: int = 0
    unread: int = 0
    read: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_day: list[DayBucket] = Field(default_factory=list)
    top_types: list[TypeShare] = Field(default_factory=list)
    user_engagement: UserEngagement = Field(default_factory=UserEngagement)


class NotificationPerformance(BaseModel):
    read_rate: float = 0.0
    average_time_to_read_hours: float = 0.0
    type_frequency: dict[str, int] = Field(default_factory=dict)
    total: int = 0
    read: int = 0
    unread: int = 0


class PreferenceBreakdown(BaseModel):
    """How many profiles have each preference flag switched on."""

    total_users: int = 0
    admin_users: int = 0
    regular_users: int = 0
    counts: dict[str, int] = Field(default_factory=dict)
    percentages: dict[str, int] = Field(default_factory=dict)


class TrendDay(BaseModel):
    date: DateString
    total: int = 0
    read: int = 0
    unread: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
