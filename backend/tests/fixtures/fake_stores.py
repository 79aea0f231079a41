"""In-memory stand-ins for the Supabase-backed stores."""

import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from models import Notification, NotificationCreate, UserProfile
from shared.errors import PersistenceFailure


class InMemoryNotificationStore:
    """NotificationStore with the same interface, backed by a dict."""

    def __init__(self, fail_for: Optional[Set[str]] = None, now=None):
        self.rows: Dict[str, Notification] = {}
        self.fail_for = fail_for or set()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def insert(self, notification: NotificationCreate) -> Notification:
        recipient_id = notification.user_id or notification.admin_id
        if recipient_id in self.fail_for:
            raise PersistenceFailure("insert notification", "connection reset")

        stored = Notification(
            id=str(uuid.uuid4()),
            created_at=self._now(),
            **notification.model_dump(),
        )
        with self._lock:
            self.rows[stored.id] = stored
        return stored

    def exists_with_dedup_key(self, dedup_key: str, since: Optional[datetime] = None) -> bool:
        with self._lock:
            return any(
                n.dedup_key == dedup_key and (since is None or n.created_at >= since)
                for n in self.rows.values()
            )

    def set_read(self, notification_id: str, is_read: bool) -> Notification:
        with self._lock:
            if notification_id not in self.rows:
                raise PersistenceFailure("update notification", "not found")
            updated = self.rows[notification_id].model_copy(
                update={"is_read": is_read, "read_at": self._now() if is_read else None}
            )
            self.rows[notification_id] = updated
            return updated

    def mark_all_read(self, user_id: str) -> int:
        unread = [n.id for n in self.list(user_id=user_id, is_read=False, limit=None)]
        for notification_id in unread:
            self.set_read(notification_id, True)
        return len(unread)

    def delete(self, notification_id: str) -> None:
        with self._lock:
            self.rows.pop(notification_id, None)

    def delete_many(self, notification_ids: List[str]) -> int:
        for notification_id in notification_ids:
            self.delete(notification_id)
        return len(notification_ids)

    def list(
        self,
        user_id=None,
        admin_id=None,
        kind=None,
        is_read=None,
        limit=50,
        since=None,
    ) -> List[Notification]:
        with self._lock:
            rows = list(self.rows.values())
        rows = [
            n
            for n in rows
            if (user_id is None or n.user_id == user_id)
            and (admin_id is None or n.admin_id == admin_id)
            and (kind is None or n.type == kind)
            and (is_read is None or n.is_read == is_read)
            and (since is None or n.created_at >= since)
        ]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return rows[:limit] if limit is not None else rows

    def count_unread(self, user_id: str) -> int:
        return len(self.list(user_id=user_id, is_read=False, limit=None))


class InMemoryProfileStore:
    """ProfileStore backed by a dict of profile rows."""

    def __init__(self, rows: Optional[List[dict]] = None):
        self.rows = {row["id"]: row for row in rows or []}

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        row = self.rows.get(user_id)
        return UserProfile.model_validate(row) if row else None

    def list_profile_rows(self, include_admins: bool = True):
        profiles = []
        invalid = []
        for row in self.rows.values():
            try:
                profile = UserProfile.model_validate(row)
            except ValueError as e:
                invalid.append({"user_id": row.get("id"), "error": str(e)})
                continue
            if include_admins or not profile.is_admin:
                profiles.append(profile)
        return profiles, invalid

    def list_profiles(self, include_admins: bool = True) -> List[UserProfile]:
        return self.list_profile_rows(include_admins)[0]

    def list_active_user_ids(self) -> List[str]:
        return [p.id for p in self.list_profiles() if p.is_active]

    def count_profiles(self, include_admins: bool = False) -> int:
        return len(self.list_profiles(include_admins))

    def disable_email_notifications(self, user_id: str) -> bool:
        row = self.rows.get(user_id)
        if row is None:
            return False
        preferences = dict(row.get("notification_preferences") or {})
        preferences["email"] = False
        row["notification_preferences"] = preferences
        return True
