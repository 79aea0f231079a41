"""
Notification analytics for the admin dashboard.

compute_stats() is a pure function over a list of notifications; the
AnalyticsAggregator methods fetch the inputs from the stores and delegate
to it (or compute the smaller read-side reports directly).
"""

import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from models import (
    DayBucket,
    Notification,
    NotificationKind,
    NotificationPerformance,
    NotificationPreference,
    NotificationStats,
    PreferenceBreakdown,
    TrendDay,
    TypeShare,
    UserEngagement,
)
from notifications.notification_store import NotificationStore
from notifications.profile_store import ActivityLog, ProfileStore
from shared.errors import ValidationFailure
from shared.utils import utc_now

DEFAULT_WINDOW_DAYS = 30


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def percentage(part: int, whole: int) -> int:
    """Integer percentage; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return int(_round_half_up(part * 100 / whole))


def _empty_type_counts() -> dict[str, int]:
    return {kind.value: 0 for kind in NotificationKind}


def compute_stats(
    notifications: Iterable[Notification],
    window_days: int,
    now: Optional[datetime] = None,
    total_users: Optional[int] = None,
    active_users: Optional[int] = None,
) -> NotificationStats:
    """
    Aggregate notification statistics.

    Args:
        notifications: Notifications to aggregate
        window_days: Number of daily buckets, ending on now's UTC date
        now: Reference instant (defaults to the current time)
        total_users: Registered users; defaults to users seen in notifications
        active_users: Users with recorded activity in the window

    Returns:
        NotificationStats with exactly window_days entries in by_day, oldest first

    Raises:
        ValidationFailure: window_days is less than 1
    """
    if window_days < 1:
        raise ValidationFailure("window_days must be at least 1")

    notifications = list(notifications)
    now = now or utc_now()
    today = now.date()

    total = len(notifications)
    read = sum(1 for n in notifications if n.is_read)

    by_type = _empty_type_counts()
    for n in notifications:
        by_type[NotificationKind(n.type).value] += 1

    buckets = {}
    for offset in range(window_days - 1, -1, -1):
        day = (today - timedelta(days=offset)).isoformat()
        buckets[day] = DayBucket(date=day)

    for n in notifications:
        bucket = buckets.get(n.created_at.date().isoformat())
        if bucket is None:
            continue
        bucket.count += 1
        if n.is_read:
            bucket.read += 1
        else:
            bucket.unread += 1

    top_types = sorted(
        (
            TypeShare(type=kind, count=count, percentage=percentage(count, total))
            for kind, count in by_type.items()
        ),
        key=lambda share: share.count,
        reverse=True,
    )

    users_with_notifications = len({n.user_id for n in notifications if n.user_id})
    if total_users is None:
        total_users = users_with_notifications
    active_users = active_users or 0

    average = 0.0
    if users_with_notifications:
        average = _round_half_up(total / users_with_notifications, 2)

    return NotificationStats(
        total=total,
        unread=total - read,
        read=read,
        by_type=by_type,
        by_day=list(buckets.values()),
        top_types=top_types,
        user_engagement=UserEngagement(
            total_users=total_users,
            users_with_notifications=users_with_notifications,
            average_notifications_per_user=average,
            active_users=active_users,
            engagement_rate=percentage(active_users, total_users),
        ),
    )


class AnalyticsAggregator:
    def __init__(
        self,
        store: NotificationStore,
        profiles: ProfileStore,
        activity: Optional[ActivityLog] = None,
        now: Callable = utc_now,
    ):
        self.store = store
        self.profiles = profiles
        self.activity = activity
        self._now = now

    def get_stats(
        self, window_days: int = DEFAULT_WINDOW_DAYS, admin_id: Optional[str] = None
    ) -> NotificationStats:
        """Dashboard statistics over every stored notification (optionally one admin's)."""
        if window_days < 1:
            raise ValidationFailure("window_days must be at least 1")

        now = self._now()
        notifications = self.store.list(admin_id=admin_id, limit=None)
        total_users = self.profiles.count_profiles()

        active_users = 0
        if self.activity is not None:
            window_start = now - timedelta(days=window_days)
            active_users = len(self.activity.active_user_ids(window_start))

        return compute_stats(
            notifications,
            window_days,
            now=now,
            total_users=total_users,
            active_users=active_users,
        )

    def get_performance(self, admin_id: Optional[str] = None) -> NotificationPerformance:
        notifications = self.store.list(admin_id=admin_id, limit=None)
        total = len(notifications)
        read = [n for n in notifications if n.is_read]

        # Rows read before read_at existed carry no timing
        delays = [
            (n.read_at - n.created_at).total_seconds()
            for n in read
            if n.read_at is not None
        ]
        average_hours = 0.0
        if delays:
            average_hours = _round_half_up(sum(delays) / len(delays) / 3600, 2)

        read_rate = _round_half_up(len(read) * 100 / total, 2) if total else 0.0

        return NotificationPerformance(
            read_rate=read_rate,
            average_time_to_read_hours=average_hours,
            type_frequency=dict(Counter(NotificationKind(n.type).value for n in notifications)),
            total=total,
            read=len(read),
            unread=total - len(read),
        )

    def get_preference_breakdown(self) -> PreferenceBreakdown:
        profiles = self.profiles.list_profiles(include_admins=True)
        flags = list(NotificationPreference.model_fields)

        counts = {flag: 0 for flag in flags}
        for profile in profiles:
            preferences = profile.notification_preferences
            for flag in flags:
                if getattr(preferences, flag):
                    counts[flag] += 1

        total = len(profiles)
        admins = sum(1 for p in profiles if p.is_admin)

        return PreferenceBreakdown(
            total_users=total,
            admin_users=admins,
            regular_users=total - admins,
            counts=counts,
            percentages={flag: percentage(count, total) for flag, count in counts.items()},
        )

    def get_trends(self, days: int = DEFAULT_WINDOW_DAYS) -> list[TrendDay]:
        """Per-day totals for days that had notifications, oldest first."""
        if days < 1:
            raise ValidationFailure("days must be at least 1")

        since = self._now() - timedelta(days=days)
        notifications = self.store.list(since=since, limit=None)

        trends: dict[str, TrendDay] = {}
        for n in notifications:
            day = n.created_at.date().isoformat()
            trend = trends.get(day)
            if trend is None:
                trend = trends[day] = TrendDay(date=day, by_type=_empty_type_counts())
            trend.total += 1
            if n.is_read:
                trend.read += 1
            else:
                trend.unread += 1
            trend.by_type[NotificationKind(n.type).value] += 1

        return [trends[day] for day in sorted(trends)]
