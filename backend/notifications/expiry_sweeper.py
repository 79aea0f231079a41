"""
Subscription expiry sweep.

Scans every profile, classifies its subscription as active, expiring soon
or expired, and sends the matching notification. Runs are guarded by a
lease so two schedulers never sweep at the same time, and every
notification carries an idempotency key so a second run on the same day
does not repeat what the first one sent.
"""

import math
import socket
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from models import SubscriptionState, SweepItem, SweepReport, UserProfile
from notifications.dispatcher import NotificationDispatcher
from notifications.error_logger import log_notification_error
from notifications.profile_store import ProfileStore
from shared.db import get_supabase_client, is_unique_violation
from shared.errors import PersistenceFailure
from shared.utils import print_summary, utc_now

LEASES_TABLE = "job_leases"
SWEEP_JOB_NAME = "subscription_expiry_sweep"
SECONDS_PER_DAY = 86400


def days_until(expiry: datetime, now: datetime) -> int:
    """Whole days left, rounded up (an expiry later today counts as 1)."""
    return math.ceil((expiry - now).total_seconds() / SECONDS_PER_DAY)


def classify_subscription(
    expiry: datetime, now: datetime, warning_days: int = 7
) -> SubscriptionState:
    """
    Derive the subscription state.

    Examples:
        >>> from datetime import timezone
        >>> now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> classify_subscription(now + timedelta(days=5), now).value
        'expiring_soon'
        >>> classify_subscription(now - timedelta(days=1), now).value
        'expired'
    """
    days_left = days_until(expiry, now)
    if days_left <= 0:
        return SubscriptionState.EXPIRED
    if days_left <= warning_days:
        return SubscriptionState.EXPIRING_SOON
    return SubscriptionState.ACTIVE


class SweepLease:
    """
    Exclusive, time-bounded claim on running a job.

    The claim is a row in job_leases keyed by job_name. A second holder's
    insert fails on the unique key; a crashed holder's row expires after
    the lease duration and is cleared by the next acquire.
    """

    def __init__(
        self,
        client: Any = None,
        job_name: str = SWEEP_JOB_NAME,
        duration_minutes: int = 30,
        holder: Optional[str] = None,
        now: Callable = utc_now,
    ):
        self._client = client
        self.job_name = job_name
        self.duration = timedelta(minutes=duration_minutes)
        self.holder = holder or f"{socket.gethostname()}:{uuid.uuid4().hex[:8]}"
        self._now = now
        self._local = threading.Lock()

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def acquire(self) -> bool:
        """
        Try to take the lease without waiting.

        Returns:
            False if the lease is held by this process or another one

        Raises:
            PersistenceFailure: The lease table could not be reached
        """
        if not self._local.acquire(blocking=False):
            return False

        now = self._now()
        try:
            (
                self.client.table(LEASES_TABLE)
                .delete()
                .eq("job_name", self.job_name)
                .lt("expires_at", now.isoformat())
                .execute()
            )
            (
                self.client.table(LEASES_TABLE)
                .insert(
                    {
                        "job_name": self.job_name,
                        "holder": self.holder,
                        "acquired_at": now.isoformat(),
                        "expires_at": (now + self.duration).isoformat(),
                    }
                )
                .execute()
            )
        except Exception as e:
            self._local.release()
            if is_unique_violation(e):
                return False
            raise PersistenceFailure("acquire lease", e) from e

        return True

    def release(self) -> None:
        try:
            (
                self.client.table(LEASES_TABLE)
                .delete()
                .eq("job_name", self.job_name)
                .eq("holder", self.holder)
                .execute()
            )
        except Exception as e:
            # The row expires on its own
            print(f"  ⚠ Could not release lease {self.job_name}: {e}")
        finally:
            self._local.release()


class ExpirySweeper:
    """Sends subscription expiring/expired notifications."""

    def __init__(
        self,
        profiles: ProfileStore,
        dispatcher: NotificationDispatcher,
        lease: Optional[SweepLease] = None,
        warning_days: Optional[int] = None,
        max_workers: Optional[int] = None,
        now: Callable = utc_now,
    ):
        settings = dispatcher.settings
        self.profiles = profiles
        self.dispatcher = dispatcher
        self.lease = lease
        self.warning_days = warning_days or settings.expiry_warning_days
        self.max_workers = max_workers or settings.fanout_concurrency
        self._now = now

    def run(self, now: Optional[datetime] = None, dry_run: bool = False) -> SweepReport:
        """
        Run one sweep.

        Args:
            now: Instant to classify against (defaults to the clock)
            dry_run: Classify and report without sending anything

        Returns:
            SweepReport; skipped_locked is set when another run holds the lease
        """
        now = now or self._now()
        report = SweepReport(started_at=now, dry_run=dry_run)

        print(f"\n[{datetime.now()}] Starting subscription expiry sweep...")

        if self.lease is not None and not self.lease.acquire():
            print("  ⚠️  Another expiry sweep holds the lease, skipping this run")
            report.skipped_locked = True
            return report

        try:
            self._sweep(now, report)
        finally:
            if self.lease is not None:
                self.lease.release()

        print_summary(
            "Expiry sweep complete" + (" (dry run)" if dry_run else ""),
            {
                "Scanned": report.scanned,
                "Expired": report.expired,
                "Expiring": report.expiring_soon,
                "Notified": report.notified,
                "Duplicates": report.duplicates,
                "Skipped": report.skipped,
                "Failed": report.failed,
            },
        )
        return report

    def _sweep(self, now: datetime, report: SweepReport) -> None:
        profiles, invalid = self.profiles.list_profile_rows()
        report.scanned = len(profiles) + len(invalid)
        errors = list(invalid)
        report.failed += len(invalid)

        due = []
        for profile in profiles:
            if profile.subscription_expiry is None:
                report.skipped += 1
                continue

            state = classify_subscription(profile.subscription_expiry, now, self.warning_days)
            if state == SubscriptionState.EXPIRED:
                report.expired += 1
            elif state == SubscriptionState.EXPIRING_SOON:
                report.expiring_soon += 1
            else:
                continue

            due.append((profile, state))

        if report.dry_run:
            for profile, state in due:
                report.items.append(
                    SweepItem(
                        user_id=profile.id,
                        state=state,
                        days_left=days_until(profile.subscription_expiry, now),
                    )
                )
                print(f"  [dry run] {profile.id}: {state.value}")
        else:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="sweep"
            ) as pool:
                futures = [
                    pool.submit(self._notify, profile, state, now)
                    for profile, state in due
                ]
                items = [future.result() for future in futures]

            for item in items:
                report.items.append(item)
                outcome = item.outcome
                if item.error or (outcome is not None and not outcome.success):
                    report.failed += 1
                    errors.append(
                        {"user_id": item.user_id, "error": item.error or outcome.error}
                    )
                elif outcome is not None and outcome.skipped_duplicate:
                    report.duplicates += 1
                else:
                    report.notified += 1

        if errors:
            error_file = log_notification_error(
                error_type="sweep",
                error_message=f"{len(errors)} user(s) failed during expiry sweep",
                context={"failures": errors},
            )
            print(f"  ✗ {len(errors)} failure(s). Details logged to: {error_file}")

    def _notify(self, profile: UserProfile, state: SubscriptionState, now: datetime) -> SweepItem:
        expiry = profile.subscription_expiry
        days_left = days_until(expiry, now)
        expiry_date = expiry.date().isoformat()

        try:
            if state == SubscriptionState.EXPIRED:
                outcome = self.dispatcher.notify_subscription_expired(profile.id, expiry_date)
            else:
                outcome = self.dispatcher.notify_subscription_expiring(
                    profile.id, days_left, expiry_date
                )
        except Exception as e:
            return SweepItem(user_id=profile.id, state=state, days_left=days_left, error=str(e))

        return SweepItem(user_id=profile.id, state=state, days_left=days_left, outcome=outcome)
