"""
Unit tests for alerts/alert_store.py

Tests alert validation before writes and the lifecycle operations
against a mocked Supabase client.
"""

import unittest
from unittest.mock import Mock, call, patch

from alerts.alert_store import AlertStore
from alerts.property_store import PropertyStore
from models import AlertCriteria
from shared.errors import PersistenceFailure, ValidationFailure
from tests.fixtures.mock_helpers import create_mock_supabase
from tests.fixtures.property_factory import create_test_alert_row


class TestAlertStoreCreate(unittest.TestCase):
    """Tests for AlertStore.create()."""

    def test_create_inserts_row(self):
        row = create_test_alert_row(user_id="u1", max_budget=900000, min_rooms=3)
        client = create_mock_supabase([row])

        alert = AlertStore(client).create(
            "u1",
            {
                "transaction_type": "sale",
                "property_type": "apartment",
                "max_budget": 900000,
                "rooms": 3,
            },
        )

        inserted = client.insert.call_args[0][0]
        self.assertEqual(inserted["user_id"], "u1")
        self.assertEqual(inserted["min_rooms"], 3)
        self.assertTrue(inserted["is_active"])
        self.assertEqual(alert.rooms, 3)

    def test_min_above_max_rejected_before_write(self):
        client = create_mock_supabase([])

        with self.assertRaises(ValidationFailure) as ctx:
            AlertStore(client).create(
                "u1",
                {
                    "transaction_type": "sale",
                    "property_type": "house",
                    "min_budget": 2000000,
                    "max_budget": 1000000,
                },
            )

        self.assertIn("min_budget", str(ctx.exception))
        client.insert.assert_not_called()

    def test_missing_property_type_rejected(self):
        client = create_mock_supabase([])

        with self.assertRaises(ValidationFailure):
            AlertStore(client).create("u1", {"transaction_type": "rent"})

        client.insert.assert_not_called()

    def test_database_error(self):
        client = create_mock_supabase()
        client.execute.side_effect = Exception("connection refused")

        with self.assertRaises(PersistenceFailure):
            AlertStore(client).create(
                "u1", {"transaction_type": "rent", "property_type": "house"}
            )


class TestAlertStoreLifecycle(unittest.TestCase):
    """Tests for update, toggle, delete and listing."""

    def test_toggle_flips_active_flag(self):
        row = create_test_alert_row(alert_id="a1", user_id="u1", is_active=True)
        client = create_mock_supabase([{**row, "is_active": False}])
        store = AlertStore(client)

        toggled = store.toggle(AlertCriteria.model_validate(row))

        self.assertFalse(toggled.is_active)
        update = client.update.call_args[0][0]
        self.assertFalse(update["is_active"])
        client.eq.assert_any_call("user_id", "u1")

    def test_update_missing_alert(self):
        client = create_mock_supabase([])

        with self.assertRaises(PersistenceFailure):
            AlertStore(client).update(
                "a1", "u1", {"transaction_type": "sale", "property_type": "villa"}
            )

    def test_update_validates(self):
        client = create_mock_supabase([])

        with self.assertRaises(ValidationFailure):
            AlertStore(client).update(
                "a1", "u1", {"transaction_type": "sale", "property_type": "castle"}
            )

    def test_delete_scoped_to_owner(self):
        client = create_mock_supabase([])

        AlertStore(client).delete("a1", "u1")

        client.delete.assert_called_once()
        client.eq.assert_any_call("id", "a1")
        client.eq.assert_any_call("user_id", "u1")

    def test_get_missing(self):
        self.assertIsNone(AlertStore(create_mock_supabase([])).get("a1"))

    def test_list_active_filters_on_flag(self):
        client = create_mock_supabase([create_test_alert_row(), create_test_alert_row()])

        alerts = AlertStore(client).list_active()

        self.assertEqual(len(alerts), 2)
        client.eq.assert_called_with("is_active", True)

    @patch("shared.db.PAGE_SIZE", 2)
    def test_list_active_reads_every_page(self):
        client = create_mock_supabase()
        client.execute.side_effect = [
            Mock(data=[create_test_alert_row(alert_id="a1"), create_test_alert_row(alert_id="a2")]),
            Mock(data=[create_test_alert_row(alert_id="a3")]),
        ]

        alerts = AlertStore(client).list_active()

        self.assertEqual([a.id for a in alerts], ["a1", "a2", "a3"])
        self.assertEqual(client.range.call_args_list, [call(0, 1), call(2, 3)])

    @patch("builtins.print")
    @patch("alerts.alert_store.log_notification_error", return_value="/tmp/log.txt")
    def test_invalid_rows_are_skipped_and_logged(self, mock_log, _):
        good = create_test_alert_row(alert_id="good")
        bad = create_test_alert_row(alert_id="bad", min_budget=5, max_budget=1)
        client = create_mock_supabase([good, bad])

        alerts = AlertStore(client).list_for_user("u1")

        self.assertEqual([a.id for a in alerts], ["good"])
        mock_log.assert_called_once()
        self.assertEqual(mock_log.call_args.kwargs["error_type"], "matching")


class TestPropertyStore(unittest.TestCase):
    def test_get_property(self):
        client = create_mock_supabase(
            [{"id": "p1", "title": "Loft", "property_type": "loft", "price": None}]
        )

        property = PropertyStore(client).get("p1")

        self.assertEqual(property.title, "Loft")
        self.assertEqual(property.price, "")
        client.table.assert_called_with("properties")

    def test_get_missing_property(self):
        self.assertIsNone(PropertyStore(create_mock_supabase([])).get("p1"))


if __name__ == "__main__":
    unittest.main()
