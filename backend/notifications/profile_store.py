"""
Read access to user profiles and the activity log.

The only write this module performs is on notification_preferences;
everything else about a profile is owned by the account workflows.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from models import NotificationPreference, UserProfile
from models.types import UserID
from shared.db import fetch_all_rows, get_supabase_client
from shared.errors import PersistenceFailure

PROFILES_TABLE = "profiles"
ACTIVITIES_TABLE = "user_activities"
PROFILE_COLUMNS = (
    "id, email, username, subscription_expiry, is_active, is_admin, "
    "notification_preferences"
)


class ProfileStore:
    """Profiles and their notification preferences."""

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def get_profile(self, user_id: UserID) -> Optional[UserProfile]:
        try:
            response = (
                self.client.table(PROFILES_TABLE)
                .select(PROFILE_COLUMNS)
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("load profile", e) from e

        if not response.data:
            return None
        try:
            return UserProfile.model_validate(response.data[0])
        except ValidationError as e:
            raise PersistenceFailure(f"load profile {user_id}", e) from e

    def list_profiles(self, include_admins: bool = True) -> List[UserProfile]:
        """All profiles that parse (list_profile_rows also returns the rejects)."""
        profiles, _ = self.list_profile_rows(include_admins=include_admins)
        return profiles

    def list_profile_rows(
        self, include_admins: bool = True
    ) -> tuple[List[UserProfile], List[Dict[str, Any]]]:
        """Profiles plus the raw rows that could not be parsed."""

        def build_query():
            query = self.client.table(PROFILES_TABLE).select(PROFILE_COLUMNS)
            if not include_admins:
                query = query.eq("is_admin", False)
            return query.order("id")

        try:
            rows = fetch_all_rows(build_query)
        except Exception as e:
            raise PersistenceFailure("list profiles", e) from e

        profiles = []
        invalid = []
        for row in rows:
            try:
                profiles.append(UserProfile.model_validate(row))
            except ValidationError as e:
                invalid.append({"user_id": row.get("id"), "error": str(e)})
        return profiles, invalid

    def list_active_user_ids(self) -> List[UserID]:
        try:
            rows = fetch_all_rows(
                lambda: self.client.table(PROFILES_TABLE)
                .select("id")
                .eq("is_active", True)
                .order("id")
            )
        except Exception as e:
            raise PersistenceFailure("list active users", e) from e

        return [row["id"] for row in rows]

    def count_profiles(self, include_admins: bool = False) -> int:
        try:
            query = self.client.table(PROFILES_TABLE).select("id", count="exact")
            if not include_admins:
                query = query.eq("is_admin", False)
            response = query.execute()
        except Exception as e:
            raise PersistenceFailure("count profiles", e) from e

        if getattr(response, "count", None) is not None:
            return int(response.count)
        return len(response.data or [])

    def get_preferences(self, user_id: UserID) -> NotificationPreference:
        """Preferences for a user; an unknown user gets everything switched off."""
        profile = self.get_profile(user_id)
        if profile is None:
            return NotificationPreference()
        return profile.notification_preferences

    def update_preferences(
        self, user_id: UserID, preferences: NotificationPreference
    ) -> NotificationPreference:
        try:
            (
                self.client.table(PROFILES_TABLE)
                .update({"notification_preferences": preferences.model_dump(by_alias=True)})
                .eq("id", user_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("update preferences", e) from e

        return preferences

    def disable_email_notifications(self, user_id: UserID) -> bool:
        """
        Switch the email channel off (one-click unsubscribe).

        Returns:
            False if the user does not exist
        """
        profile = self.get_profile(user_id)
        if profile is None:
            return False

        preferences = profile.notification_preferences.model_copy(update={"email": False})
        self.update_preferences(user_id, preferences)
        return True


class ActivityLog:
    """Read side of the user_activities log."""

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def active_user_ids(self, since: datetime) -> set[str]:
        """Distinct users with any recorded activity at or after since."""
        try:
            rows = fetch_all_rows(
                lambda: self.client.table(ACTIVITIES_TABLE)
                .select("user_id")
                .gte("created_at", since.isoformat())
                .order("created_at")
            )
        except Exception as e:
            raise PersistenceFailure("load activity log", e) from e

        return {row["user_id"] for row in rows if row.get("user_id")}
