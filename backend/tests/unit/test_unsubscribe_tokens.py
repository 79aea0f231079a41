"""
Unit tests for unsubscribe token generation and validation.
"""

import hashlib
import os
import time
import unittest
from unittest.mock import Mock, patch

from itsdangerous import URLSafeTimedSerializer

from notifications.unsubscribe_tokens import (
    UNSUBSCRIBE_SALT,
    build_unsubscribe_url,
    generate_unsubscribe_token,
    unsubscribe_from_email,
    validate_unsubscribe_token,
)

TEST_SECRET = "test-secret-key-for-testing-must-be-at-least-32-chars-long"


def _token_issued_days_ago(user_id: str, days: int) -> str:
    serializer = URLSafeTimedSerializer(
        TEST_SECRET,
        salt=UNSUBSCRIBE_SALT,
        signer_kwargs={"digest_method": hashlib.sha256},
    )
    with patch("time.time", return_value=time.time() - days * 24 * 60 * 60):
        return serializer.dumps(user_id)


class TestUnsubscribeTokens(unittest.TestCase):
    """Test token generation and validation logic."""

    def setUp(self):
        """Set up test environment with secret key."""
        self.original_secret = os.environ.get("UNSUBSCRIBE_SECRET_KEY")
        os.environ["UNSUBSCRIBE_SECRET_KEY"] = TEST_SECRET

    def tearDown(self):
        """Restore original environment."""
        if self.original_secret:
            os.environ["UNSUBSCRIBE_SECRET_KEY"] = self.original_secret
        else:
            os.environ.pop("UNSUBSCRIBE_SECRET_KEY", None)

    def test_token_is_url_safe(self):
        token = generate_unsubscribe_token("550e8400-e29b-41d4-a716-446655440000")

        allowed = set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.")
        self.assertTrue(all(c in allowed for c in token))
        self.assertEqual(token.count("."), 2)

    def test_roundtrip_with_env_secret(self):
        token = generate_unsubscribe_token("user-456")

        self.assertEqual(validate_unsubscribe_token(token), "user-456")

    def test_explicit_secret_wins(self):
        token = generate_unsubscribe_token("user-1", "another-secret-that-is-long-enough-xx")

        self.assertIsNone(validate_unsubscribe_token(token))
        self.assertEqual(
            validate_unsubscribe_token(token, "another-secret-that-is-long-enough-xx"), "user-1"
        )

    def test_garbage_tokens_return_none(self):
        self.assertIsNone(validate_unsubscribe_token("this-is-not-a-valid-token"))
        self.assertIsNone(validate_unsubscribe_token(""))
        self.assertIsNone(validate_unsubscribe_token(None))

    def test_tampered_signature_rejected(self):
        parts = generate_unsubscribe_token("user-1").split(".")
        parts[2] = "X" * len(parts[2])

        self.assertIsNone(validate_unsubscribe_token(".".join(parts)))

    def test_expired_token_rejected(self):
        token = _token_issued_days_ago("user-789", 91)

        self.assertIsNone(validate_unsubscribe_token(token, max_age_days=90))

    def test_max_age_parameter(self):
        token = _token_issued_days_ago("user-789", 45)

        self.assertEqual(validate_unsubscribe_token(token, max_age_days=90), "user-789")
        self.assertIsNone(validate_unsubscribe_token(token, max_age_days=30))

    def test_missing_secret(self):
        os.environ.pop("UNSUBSCRIBE_SECRET_KEY", None)

        with self.assertRaises(ValueError) as context:
            generate_unsubscribe_token("user-1")

        self.assertIn("UNSUBSCRIBE_SECRET_KEY", str(context.exception))

    def test_build_unsubscribe_url(self):
        url = build_unsubscribe_url("https://test.example.com/", "user-1", TEST_SECRET)

        self.assertTrue(url.startswith("https://test.example.com/unsubscribe?token="))
        token = url.split("?token=")[1]
        self.assertEqual(validate_unsubscribe_token(token), "user-1")


class TestUnsubscribeFromEmail(unittest.TestCase):
    """Tests for unsubscribe_from_email()."""

    def test_valid_token_disables_email(self):
        profiles = Mock()
        profiles.disable_email_notifications.return_value = True
        token = generate_unsubscribe_token("user-1", TEST_SECRET)

        result = unsubscribe_from_email(token, profiles, TEST_SECRET)

        self.assertEqual(result, "user-1")
        profiles.disable_email_notifications.assert_called_once_with("user-1")

    def test_invalid_token_touches_nothing(self):
        profiles = Mock()

        self.assertIsNone(unsubscribe_from_email("bogus", profiles, TEST_SECRET))
        profiles.disable_email_notifications.assert_not_called()

    def test_unknown_user(self):
        profiles = Mock()
        profiles.disable_email_notifications.return_value = False
        token = generate_unsubscribe_token("ghost", TEST_SECRET)

        self.assertIsNone(unsubscribe_from_email(token, profiles, TEST_SECRET))


if __name__ == "__main__":
    unittest.main()
