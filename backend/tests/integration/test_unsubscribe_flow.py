"""
Integration tests for the one-click email opt-out workflow.
"""

import unittest
from unittest.mock import patch

from notifications.dispatcher import NotificationDispatcher
from notifications.email_sender import ResendEmailGateway, TemplateRepository
from notifications.unsubscribe_tokens import unsubscribe_from_email, validate_unsubscribe_token
from shared.config import Settings
from tests.fixtures.fake_stores import InMemoryNotificationStore, InMemoryProfileStore
from tests.fixtures.mock_helpers import create_mock_supabase
from tests.fixtures.property_factory import create_test_property
from tests.fixtures.user_factory import create_test_user

TEST_SECRET = "test-secret-key-for-testing-must-be-at-least-32-chars-long"


class TestUnsubscribeFlow(unittest.TestCase):
    """Test end-to-end unsubscribe workflow."""

    def setUp(self):
        self.store = InMemoryNotificationStore()
        self.profiles = InMemoryProfileStore(
            [create_test_user(user_id="user-1", email="buyer@example.com")]
        )
        self.settings = Settings(
            resend_api_key="re_test",
            frontend_base_url="https://test.example.com",
            unsubscribe_secret_key=TEST_SECRET,
        )
        self.gateway = ResendEmailGateway(
            self.settings.resend_api_key, self.settings.from_email, self.settings.from_name
        )
        self.dispatcher = NotificationDispatcher(
            self.store,
            self.profiles,
            self.gateway,
            TemplateRepository(create_mock_supabase([])),
            self.settings,
        )
        self.addCleanup(self.dispatcher.close)

    @patch("notifications.email_sender.resend")
    def test_link_in_email_turns_email_off(self, mock_resend):
        mock_resend.Emails.send.return_value = {"id": "email-123"}

        first = self.dispatcher.notify_property_match("user-1", create_test_property(property_id="p1"))
        self.assertTrue(first.email_sent)

        # Token from the text body link
        text_body = mock_resend.Emails.send.call_args[0][0]["text"]
        link = next(line for line in text_body.splitlines() if "/unsubscribe?token=" in line)
        token = link.split("?token=")[1].strip()
        self.assertEqual(validate_unsubscribe_token(token, TEST_SECRET), "user-1")

        self.assertEqual(unsubscribe_from_email(token, self.profiles, TEST_SECRET), "user-1")

        second = self.dispatcher.notify_property_match("user-1", create_test_property(property_id="p2"))

        # In-app notification still created, but no second email
        self.assertTrue(second.success)
        self.assertFalse(second.email_sent)
        self.assertEqual(mock_resend.Emails.send.call_count, 1)
        self.assertEqual(len(self.store.rows), 2)

    @patch("notifications.email_sender.resend")
    def test_html_and_text_carry_the_same_link(self, mock_resend):
        mock_resend.Emails.send.return_value = {"id": "email-123"}

        self.dispatcher.notify_subscription_expiring("user-1", 3, "2024-06-04")

        params = mock_resend.Emails.send.call_args[0][0]
        text_link = next(
            line.split(": ", 1)[1]
            for line in params["text"].splitlines()
            if line.startswith("Stop these emails:")
        )
        self.assertIn(text_link, params["html"])
        self.assertEqual(params["to"], "buyer@example.com")
        self.assertIn("3 Days Left", params["subject"])


if __name__ == "__main__":
    unittest.main()
