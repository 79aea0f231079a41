"""
Integration tests for the property alert workflow.

A user creates an alert, a matching property is published, the owner is
notified in-app and by email, reads the notification, and the admin
dashboard statistics reflect it.
"""

import unittest
from unittest.mock import Mock, patch

from alerts.alert_store import AlertStore
from alerts.fanout import AlertFanoutCoordinator
from models import Recipient
from notifications.analytics import AnalyticsAggregator
from notifications.dispatcher import NotificationDispatcher
from notifications.email_sender import TemplateRepository
from shared.config import Settings
from tests.fixtures.fake_stores import InMemoryNotificationStore, InMemoryProfileStore
from tests.fixtures.mock_helpers import create_mock_gateway, create_mock_supabase
from tests.fixtures.property_factory import create_test_alert_row, create_test_property
from tests.fixtures.user_factory import create_test_user


class TestAlertFanoutFlow(unittest.TestCase):
    """End-to-end alert -> notification -> analytics."""

    def setUp(self):
        self.store = InMemoryNotificationStore()
        self.profiles = InMemoryProfileStore(
            [
                create_test_user(user_id="buyer", email="buyer@example.com"),
                create_test_user(
                    user_id="renter", email="renter@example.com", email_notifications=False
                ),
            ]
        )
        self.gateway = create_mock_gateway()
        self.dispatcher = NotificationDispatcher(
            self.store,
            self.profiles,
            self.gateway,
            TemplateRepository(create_mock_supabase([])),
            Settings(unsubscribe_secret_key="x" * 40),
        )

        alert_rows = [
            create_test_alert_row(
                alert_id="a-buyer",
                user_id="buyer",
                transaction_type="sale",
                property_type="house",
                max_budget=2500000,
                location="Lausanne",
            ),
            create_test_alert_row(
                alert_id="a-renter",
                user_id="renter",
                transaction_type="rent",
                property_type="house",
            ),
        ]
        self.alerts = AlertStore(create_mock_supabase(alert_rows))
        self.coordinator = AlertFanoutCoordinator(self.alerts, self.dispatcher)

        self.addCleanup(self.coordinator.close)
        self.addCleanup(self.dispatcher.close)

        print_patcher = patch("builtins.print")
        print_patcher.start()
        self.addCleanup(print_patcher.stop)

    def test_new_chalet_reaches_buyer(self):
        chalet = create_test_property(
            property_id="p-chalet",
            title="Chalet Pully",
            listing_type="sale",
            property_type="chalet",
            city="Pully",
            neighborhood="Lausanne area",
            price="CHF 2'350'000",
        )

        report = self.coordinator.on_property_created(chalet)

        self.assertEqual(report.alerts_evaluated, 2)
        self.assertEqual(report.matched, 1)
        self.assertEqual(report.notified, 1)

        [notification] = self.dispatcher.list_notifications(user_id="buyer")
        self.assertEqual(notification.action_url, "/property/p-chalet")
        self.assertEqual(self.dispatcher.unread_count("buyer"), 1)
        self.assertEqual(self.gateway.send.call_args[0][0], "buyer@example.com")

        self.dispatcher.mark_read(notification.id)
        self.assertEqual(self.dispatcher.unread_count("buyer"), 0)

        analytics = AnalyticsAggregator(self.store, self.profiles)
        stats = analytics.get_stats(window_days=7)
        self.assertEqual(stats.total, 1)
        self.assertEqual(stats.read, 1)
        self.assertEqual(stats.by_day[-1].count, 1)
        self.assertEqual(stats.user_engagement.total_users, 2)

    def test_rental_owner_without_email_gets_in_app_only(self):
        house = create_test_property(listing_type="rent", property_type="house")

        report = self.coordinator.on_property_created(house)

        self.assertEqual(report.notified, 1)
        self.assertEqual(len(self.dispatcher.list_notifications(user_id="renter")), 1)
        self.gateway.send.assert_not_called()

    def test_listener_sees_fanout_notifications(self):
        listener = Mock()
        self.dispatcher.subscribe(listener)
        house = create_test_property(listing_type="rent", property_type="house")

        self.coordinator.on_property_created(house)

        [notification] = [c.args[0] for c in listener.call_args_list]
        self.assertEqual(notification.recipient, Recipient.user("renter"))


if __name__ == "__main__":
    unittest.main()
