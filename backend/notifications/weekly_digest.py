"""
Weekly property digest emails.

Collects the property match notifications each user received over the
past week and sends ONE email per user listing them. Only users with both
the email channel and the weeklyDigest preference switched on get one.
"""

import html
from datetime import datetime, timedelta
from typing import Callable, Optional

from models import Notification, NotificationKind, Recipient, UserProfile
from notifications.dispatcher import NotificationDispatcher, build_dedup_key
from notifications.email_sender import send_templated_email
from notifications.error_logger import log_notification_error
from shared.errors import PersistenceFailure
from shared.utils import print_summary, utc_now

DIGEST_DAYS = 7
MATCH_TITLE = "New Property Match"
DIGEST_TITLE = "Weekly Digest"


def iso_week(moment: datetime) -> str:
    """ISO week label, e.g. 2024-W26."""
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def _digest_sections(
    notifications: list[Notification], absolute_url: Callable[[str], str]
) -> tuple[str, str]:
    """HTML and text listings of the matched properties."""
    html_items = []
    text_items = []
    for n in notifications:
        link = absolute_url(n.action_url) if n.action_url else ""
        html_items.append(
            f'<li style="margin-bottom: 10px;">{html.escape(n.message)}'
            + (f' - <a href="{html.escape(link, quote=True)}">View</a>' if link else "")
            + "</li>"
        )
        text_items.append(f"- {n.message}" + (f"\n  {link}" if link else ""))

    return "<ul>" + "".join(html_items) + "</ul>", "\n".join(text_items)


def send_weekly_digests(
    dispatcher: NotificationDispatcher,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """
    Send the weekly digest to every opted-in user with matches this week.

    A user gets at most one digest per ISO week: each sent digest is
    recorded as an in-app notification keyed on (user, week), and a rerun
    in the same week skips users that already have one.

    Args:
        dispatcher: Provides the stores, email gateway, templates and settings
        dry_run: If True, don't actually send emails
        now: End of the digest week (defaults to the current time)

    Returns:
        Dictionary with stats: sent, failed, skipped, duplicates
    """
    now = now or utc_now()
    since = now - timedelta(days=DIGEST_DAYS)
    week = iso_week(now)
    settings = dispatcher.settings
    stats = {"sent": 0, "failed": 0, "skipped": 0, "duplicates": 0}

    if not dry_run and (dispatcher.gateway is None or dispatcher.templates is None):
        print("  ✗ No email gateway configured, cannot send digests")
        return stats

    print(
        f"\n[{datetime.now()}] Building weekly digests for {week} "
        f"since {since.date().isoformat()}..."
    )

    for profile in dispatcher.profiles.list_profiles(include_admins=False):
        if not _wants_digest(profile):
            continue

        dedup_key = build_dedup_key(profile.id, "weekly_digest", week)
        try:
            if dispatcher.store.exists_with_dedup_key(dedup_key):
                stats["duplicates"] += 1
                continue

            matches = [
                n
                for n in dispatcher.store.list(
                    user_id=profile.id, kind=NotificationKind.INFO, since=since, limit=None
                )
                if n.title == MATCH_TITLE
            ]
        except PersistenceFailure as e:
            print(f"  ✗ Could not load notifications for {profile.id}: {e}")
            stats["failed"] += 1
            continue

        if not matches:
            stats["skipped"] += 1
            continue

        if dry_run:
            print(f"  [DRY RUN] Would send digest of {len(matches)} to user {profile.id}")
            stats["sent"] += 1
            continue

        properties_html, properties_text = _digest_sections(matches, settings.absolute_url)
        variables = {
            **dispatcher.base_email_variables(profile.id),
            "username": profile.username or "User",
            "properties_count": str(len(matches)),
            "properties_html": properties_html,
            "properties_text": properties_text,
        }

        result = send_templated_email(
            dispatcher.gateway, dispatcher.templates, profile.email, "weekly_digest", variables
        )

        if result["success"]:
            print(f"  ✓ Sent digest to user {profile.id}")
            stats["sent"] += 1
            _record_digest(dispatcher, profile.id, len(matches), dedup_key)
        else:
            error_msg = result.get("error", "Unknown error")
            print(f"  ✗ Failed to send to user {profile.id}: {error_msg}")
            stats["failed"] += 1
            error_file = log_notification_error(
                error_type="sending",
                error_message=error_msg,
                context={
                    "user_id": profile.id,
                    "template": "weekly_digest",
                    "notification_count": len(matches),
                },
            )
            print(f"    Error details logged to: {error_file}")

    print_summary(
        "Weekly Digest Processing Complete",
        {
            "Sent": stats["sent"],
            "Failed": stats["failed"],
            "Skipped": stats["skipped"],
            "Already sent": stats["duplicates"],
        },
    )
    return stats


def _record_digest(
    dispatcher: NotificationDispatcher, user_id: str, count: int, dedup_key: str
) -> None:
    try:
        dispatcher.create(
            Recipient.user(user_id),
            DIGEST_TITLE,
            f"Your weekly digest with {count} matching properties was sent to your email.",
            NotificationKind.INFO,
            "/properties",
            dedup_key=dedup_key,
        )
    except PersistenceFailure as e:
        # The email is out; a rerun this week may send it again
        print(f"  ⚠ Could not record digest for {user_id}: {e}")


def _wants_digest(profile: UserProfile) -> bool:
    preferences = profile.notification_preferences
    return bool(profile.email) and preferences.email and preferences.weekly_digest
