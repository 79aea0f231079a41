"""
CLI entry point for scheduled and operator-triggered jobs.

Usage:
    # Daily subscription expiry sweep
    uv run python -m notifications.run_jobs --expiry-sweep

    # Classify subscriptions without sending anything
    uv run python -m notifications.run_jobs --expiry-sweep --dry-run

    # Re-run alert matching for one property
    uv run python -m notifications.run_jobs --fanout 1f6c2c1e-...

    # Notification statistics for the last 14 days
    uv run python -m notifications.run_jobs --stats 14

    # Weekly digest emails
    uv run python -m notifications.run_jobs --weekly-digest

    # Write the built-in email templates to the email_templates table
    uv run python -m notifications.run_jobs --install-templates
"""

import argparse
import sys

from alerts.matching import find_matching_criteria
from notifications.analytics import DEFAULT_WINDOW_DAYS
from notifications.engine import Engine, build_engine
from notifications.weekly_digest import send_weekly_digests
from shared.config import Settings
from shared.errors import EngineError


def run_fanout(engine: Engine, property_id: str, dry_run: bool) -> None:
    if not dry_run:
        report = engine.fanout.on_property_created_by_id(property_id)
        print(f"Fanout for {property_id}: {report.notified} notified, {report.failed} failed")
        return

    property = engine.properties.get(property_id)
    if property is None:
        print(f"✗ Property {property_id} not found")
        return

    matching = find_matching_criteria(property, engine.alerts.list_active())
    print(f"[DRY RUN] {len(matching)} alert(s) match property {property_id}:")
    for alert in matching:
        print(f"  - alert {alert.id} (user {alert.user_id})")


def print_stats(engine: Engine, days: int) -> None:
    stats = engine.analytics.get_stats(window_days=days)

    print(f"\n{'=' * 60}")
    print(f"Notification statistics (last {days} days)")
    print(f"{'=' * 60}")
    print(f"Total:    {stats.total}")
    print(f"Unread:   {stats.unread}")
    print(f"Read:     {stats.read}")
    for share in stats.top_types:
        print(f"  {share.type:<8} {share.count:>6}  ({share.percentage}%)")

    engagement = stats.user_engagement
    print(f"Users:    {engagement.total_users} ({engagement.active_users} active, "
          f"{engagement.engagement_rate}% engagement)")
    print(f"Average notifications per user: {engagement.average_notifications_per_user}")
    print("\nPer day:")
    for bucket in stats.by_day:
        print(f"  {bucket.date}  {bucket.count:>4}  read {bucket.read:>4}  unread {bucket.unread:>4}")


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run alert fan-out, expiry sweep, digest and analytics jobs"
    )

    parser.add_argument(
        "--expiry-sweep", action="store_true", help="Run the subscription expiry sweep"
    )

    parser.add_argument(
        "--fanout",
        metavar="PROPERTY_ID",
        type=str,
        help="Match one property against every active alert and notify owners",
    )

    parser.add_argument(
        "--stats",
        metavar="DAYS",
        type=int,
        nargs="?",
        const=DEFAULT_WINDOW_DAYS,
        help=f"Print notification statistics (default window: {DEFAULT_WINDOW_DAYS} days)",
    )

    parser.add_argument(
        "--weekly-digest", action="store_true", help="Send weekly digest emails"
    )

    parser.add_argument(
        "--install-templates",
        action="store_true",
        help="Upsert the built-in email templates",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry run mode (classify and match, but don't send anything)",
    )

    args = parser.parse_args()

    if not (
        args.expiry_sweep
        or args.fanout
        or args.stats is not None
        or args.weekly_digest
        or args.install_templates
    ):
        parser.error(
            "Must specify one of --expiry-sweep, --fanout, --stats, "
            "--weekly-digest or --install-templates"
        )

    if args.stats is not None and args.stats < 1:
        parser.error("--stats DAYS must be at least 1")

    engine = build_engine(Settings.from_env())
    try:
        if args.install_templates:
            names = engine.templates.install_defaults()
            print(f"✓ Installed templates: {', '.join(names)}")

        if args.fanout:
            run_fanout(engine, args.fanout, args.dry_run)

        if args.expiry_sweep:
            report = engine.sweeper.run(dry_run=args.dry_run)
            if report.failed:
                sys.exit(1)

        if args.weekly_digest:
            send_weekly_digests(engine.dispatcher, dry_run=args.dry_run)

        if args.stats is not None:
            print_stats(engine, args.stats)
    except EngineError as e:
        print(f"✗ {e}")
        sys.exit(1)
    finally:
        engine.close()


if __name__ == "__main__":
    main()
