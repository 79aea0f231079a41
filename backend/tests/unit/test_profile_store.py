"""
Unit tests for notifications/profile_store.py
"""

import unittest
from datetime import datetime, timezone
from unittest.mock import Mock, patch

from notifications.profile_store import ActivityLog, ProfileStore
from shared.errors import PersistenceFailure
from tests.fixtures.mock_helpers import create_mock_supabase
from tests.fixtures.user_factory import create_test_user


class TestProfileStore(unittest.TestCase):
    """Tests for ProfileStore."""

    def test_get_profile(self):
        client = create_mock_supabase([create_test_user(user_id="u1", email="a@example.com")])

        profile = ProfileStore(client).get_profile("u1")

        self.assertEqual(profile.email, "a@example.com")
        self.assertTrue(profile.notification_preferences.property_alerts)
        client.table.assert_called_with("profiles")

    def test_unknown_user_gets_default_preferences(self):
        client = create_mock_supabase([])

        preferences = ProfileStore(client).get_preferences("missing")

        self.assertFalse(preferences.email)

    def test_list_profile_rows_separates_invalid(self):
        client = create_mock_supabase(
            [create_test_user(user_id="u1"), {"id": None, "email": "broken"}]
        )

        profiles, invalid = ProfileStore(client).list_profile_rows()

        self.assertEqual([p.id for p in profiles], ["u1"])
        self.assertEqual(len(invalid), 1)

    @patch("shared.db.PAGE_SIZE", 2)
    def test_list_profile_rows_reads_every_page(self):
        client = create_mock_supabase()
        client.execute.side_effect = [
            Mock(data=[create_test_user(user_id="u1"), create_test_user(user_id="u2")]),
            Mock(data=[create_test_user(user_id="u3")]),
        ]

        profiles, invalid = ProfileStore(client).list_profile_rows()

        self.assertEqual([p.id for p in profiles], ["u1", "u2", "u3"])
        self.assertEqual(invalid, [])
        client.order.assert_called_with("id")

    def test_malformed_profile_row_is_a_persistence_failure(self):
        client = create_mock_supabase(
            [{"id": "u1", "email": "a@example.com", "notification_preferences": "garbage"}]
        )

        with self.assertRaises(PersistenceFailure):
            ProfileStore(client).get_profile("u1")

    def test_list_profiles_without_admins(self):
        client = create_mock_supabase([])

        ProfileStore(client).list_profiles(include_admins=False)

        client.eq.assert_called_once_with("is_admin", False)

    def test_count_profiles(self):
        client = create_mock_supabase([], count=42)

        self.assertEqual(ProfileStore(client).count_profiles(), 42)

    def test_disable_email_notifications(self):
        user = create_test_user(user_id="u1", weekly_digest=True)
        client = create_mock_supabase([user])

        self.assertTrue(ProfileStore(client).disable_email_notifications("u1"))

        update = client.update.call_args[0][0]["notification_preferences"]
        self.assertFalse(update["email"])
        # Other switches are preserved, written back in camelCase
        self.assertTrue(update["weeklyDigest"])
        self.assertTrue(update["propertyAlerts"])

    def test_disable_email_for_unknown_user(self):
        client = create_mock_supabase([])

        self.assertFalse(ProfileStore(client).disable_email_notifications("missing"))
        client.update.assert_not_called()

    def test_errors_are_wrapped(self):
        client = create_mock_supabase()
        client.execute.side_effect = Exception("timeout")

        with self.assertRaises(PersistenceFailure):
            ProfileStore(client).list_active_user_ids()


class TestActivityLog(unittest.TestCase):
    def test_distinct_active_users(self):
        since = datetime(2024, 6, 1, tzinfo=timezone.utc)
        client = create_mock_supabase(
            [{"user_id": "u1"}, {"user_id": "u1"}, {"user_id": "u2"}, {"user_id": None}]
        )

        users = ActivityLog(client).active_user_ids(since)

        self.assertEqual(users, {"u1", "u2"})
        client.table.assert_called_with("user_activities")
        client.gte.assert_called_once_with("created_at", since.isoformat())


if __name__ == "__main__":
    unittest.main()
