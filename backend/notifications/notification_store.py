"""
Notification persistence against the Supabase notifications table.

Every Supabase error is re-raised as PersistenceFailure so callers deal
with a single failure type.
"""

from datetime import datetime
from typing import Any, List, Optional

from models import Notification, NotificationCreate, NotificationKind
from models.types import DedupKey, NotificationID
from shared.db import fetch_all_rows, get_supabase_client, is_unique_violation
from shared.errors import DuplicateKey, PersistenceFailure, ValidationFailure
from shared.utils import utc_now

NOTIFICATIONS_TABLE = "notifications"
DEFAULT_LIST_LIMIT = 50


class NotificationStore:
    """Insert, update, delete and query Notification rows."""

    def __init__(self, client: Any = None, now=utc_now):
        self._client = client
        self._now = now

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def insert(self, notification: NotificationCreate) -> Notification:
        """
        Insert one notification and return the stored row.

        Raises:
            DuplicateKey: dedup_key is already taken (unique index on
                notifications.dedup_key; NULL keys never collide)
            PersistenceFailure: Any other store error
        """
        try:
            response = (
                self.client.table(NOTIFICATIONS_TABLE)
                .insert(notification.to_row())
                .execute()
            )
        except Exception as e:
            if notification.dedup_key and is_unique_violation(e):
                raise DuplicateKey("insert notification", e) from e
            raise PersistenceFailure("insert notification", e) from e

        if not response.data:
            raise PersistenceFailure("insert notification", "no row returned")

        return Notification.model_validate(response.data[0])

    def exists_with_dedup_key(
        self, dedup_key: DedupKey, since: Optional[datetime] = None
    ) -> bool:
        """True if a notification with this key exists (created at or after since)."""
        try:
            query = (
                self.client.table(NOTIFICATIONS_TABLE)
                .select("id")
                .eq("dedup_key", dedup_key)
            )
            if since is not None:
                query = query.gte("created_at", since.isoformat())
            response = query.limit(1).execute()
        except Exception as e:
            raise PersistenceFailure("dedup lookup", e) from e

        return bool(response.data)

    def set_read(self, notification_id: NotificationID, is_read: bool) -> Notification:
        """Mark a notification read (stamping read_at) or back to unread."""
        update = {
            "is_read": is_read,
            "read_at": self._now().isoformat() if is_read else None,
        }
        try:
            response = (
                self.client.table(NOTIFICATIONS_TABLE)
                .update(update)
                .eq("id", notification_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("update notification", e) from e

        if not response.data:
            raise PersistenceFailure(
                "update notification", f"notification {notification_id} not found"
            )

        return Notification.model_validate(response.data[0])

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user read. Returns the count."""
        try:
            response = (
                self.client.table(NOTIFICATIONS_TABLE)
                .update({"is_read": True, "read_at": self._now().isoformat()})
                .eq("user_id", user_id)
                .eq("is_read", False)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("mark all read", e) from e

        return len(response.data or [])

    def delete(self, notification_id: NotificationID) -> None:
        try:
            (
                self.client.table(NOTIFICATIONS_TABLE)
                .delete()
                .eq("id", notification_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("delete notification", e) from e

    def delete_many(self, notification_ids: List[NotificationID]) -> int:
        """Bulk delete by id list. Returns how many ids were requested."""
        if not notification_ids:
            return 0
        try:
            (
                self.client.table(NOTIFICATIONS_TABLE)
                .delete()
                .in_("id", list(notification_ids))
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("bulk delete notifications", e) from e

        return len(notification_ids)

    def list(
        self,
        user_id: Optional[str] = None,
        admin_id: Optional[str] = None,
        kind: Optional[NotificationKind] = None,
        is_read: Optional[bool] = None,
        limit: Optional[int] = DEFAULT_LIST_LIMIT,
        since: Optional[datetime] = None,
    ) -> List[Notification]:
        """
        Query notifications, newest first.

        Args:
            user_id: Only notifications addressed to this user
            admin_id: Only notifications addressed to this admin
            kind: Only this notification type
            is_read: Only read (True) or unread (False)
            limit: Maximum rows (None for no limit)
            since: Only notifications created at or after this instant

        Returns:
            Notifications ordered by created_at descending
        """
        if limit is not None and limit < 1:
            raise ValidationFailure("limit must be positive")

        def build_query():
            query = self.client.table(NOTIFICATIONS_TABLE).select("*")
            if user_id:
                query = query.eq("user_id", user_id)
            if admin_id:
                query = query.eq("admin_id", admin_id)
            if kind is not None:
                query = query.eq("type", NotificationKind(kind).value)
            if is_read is not None:
                query = query.eq("is_read", is_read)
            if since is not None:
                query = query.gte("created_at", since.isoformat())
            # id breaks created_at ties so pages never overlap
            return query.order("created_at", desc=True).order("id")

        try:
            if limit is None:
                rows = fetch_all_rows(build_query)
            else:
                rows = build_query().limit(limit).execute().data or []
        except Exception as e:
            raise PersistenceFailure("list notifications", e) from e

        return [Notification.model_validate(row) for row in rows]

    def count_unread(self, user_id: str) -> int:
        """Unread count, computed by the database rather than kept as a counter."""
        try:
            response = (
                self.client.table(NOTIFICATIONS_TABLE)
                .select("id", count="exact")
                .eq("user_id", user_id)
                .eq("is_read", False)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("count unread", e) from e

        if getattr(response, "count", None) is not None:
            return int(response.count)
        return len(response.data or [])
