"""
Notification dispatching.

Creates in-app notifications (one or many recipients), keeps repeat causes
from producing duplicates, and sends the optional email copy according to
the recipient's preferences. The in-app row never depends on the email:
once the row is written, an email failure is only logged.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from models import (
    BulkDispatchResult,
    DispatchOutcome,
    Notification,
    NotificationCreate,
    NotificationKind,
    NotificationTemplate,
    Property,
    Recipient,
)
from models.types import DedupKey, NotificationID
from notifications.email_sender import (
    EmailGateway,
    TemplateRepository,
    send_templated_email,
)
from notifications.error_logger import log_notification_error
from notifications.notification_store import NotificationStore
from notifications.profile_store import ProfileStore
from notifications.unsubscribe_tokens import build_unsubscribe_url
from shared.config import Settings
from shared.errors import DuplicateKey, PersistenceFailure, ValidationFailure
from shared.utils import utc_now

Listener = Callable[[Notification], None]

# Recipients hash onto a fixed set of locks; one recipient always gets the same lock
_LOCK_STRIPES = 64

DESCRIPTION_PREVIEW_CHARS = 200

SEVERITY_KINDS = {
    "low": NotificationKind.INFO,
    "medium": NotificationKind.WARNING,
    "high": NotificationKind.ERROR,
    "critical": NotificationKind.ERROR,
}


def build_dedup_key(recipient_id: str, cause: str, subject_id: str) -> DedupKey:
    """Idempotency key for one cause about one subject for one recipient."""
    return f"{recipient_id}:{cause}:{subject_id}"


class NotificationDispatcher:
    """Creates notifications and fans them out to the email channel."""

    def __init__(
        self,
        store: NotificationStore,
        profiles: ProfileStore,
        gateway: Optional[EmailGateway] = None,
        templates: Optional[TemplateRepository] = None,
        settings: Optional[Settings] = None,
        now: Callable = utc_now,
    ):
        self.store = store
        self.profiles = profiles
        self.gateway = gateway
        self.templates = templates
        self.settings = settings or Settings()
        self._now = now

        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        self._recipient_locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.fanout_concurrency,
            thread_name_prefix="dispatch",
        )

    # Listener contract

    def subscribe(self, listener: Listener) -> None:
        """Call listener with every notification created from now on."""
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, notification: Notification) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(notification)
            except Exception as e:
                print(f"  ⚠ Notification listener {listener!r} failed: {e}")

    # Single recipient

    def create(
        self,
        recipient: Recipient,
        title: str,
        message: str,
        kind: NotificationKind = NotificationKind.INFO,
        action_url: Optional[str] = None,
        *,
        dedup_key: Optional[DedupKey] = None,
        email_template: Optional[str] = None,
        email_variables: Optional[Dict[str, str]] = None,
        preference_flag: Optional[str] = None,
    ) -> Optional[Notification]:
        """
        Create one notification.

        Args:
            recipient: User or admin to address
            title: Short title
            message: Body shown in-app
            kind: info, success, warning or error
            action_url: In-app link opened from the notification
            dedup_key: When set, a notification with the same key suppresses this one
            email_template: Template for the email copy (user recipients only)
            email_variables: Values for the template placeholders
            preference_flag: Topic preference that must also be on for the email

        Returns:
            The stored notification, or None when suppressed as a duplicate

        Raises:
            ValidationFailure: Recipient addressing or content is invalid
            PersistenceFailure: The notification could not be stored
        """
        payload = self._build_payload(recipient, title, message, kind, action_url, dedup_key)

        notification = self._persist(recipient, payload)
        if notification is None:
            return None

        self._emit(notification)

        if email_template:
            self._send_email_copy(
                recipient, email_template, email_variables or {}, preference_flag
            )

        return notification

    def create_notification(self, params: Dict[str, Any]) -> Optional[Notification]:
        """
        Create a notification from a parameter dict.

        Accepts user_id/admin_id, title, message, type, action_url,
        dedup_key, email_template, email_variables, preference_flag.
        """
        try:
            recipient = Recipient(
                user_id=params.get("user_id"), admin_id=params.get("admin_id")
            )
        except ValidationError as e:
            raise ValidationFailure(
                "exactly one of user_id or admin_id must be set"
            ) from e

        return self.create(
            recipient,
            params.get("title", ""),
            params.get("message", ""),
            params.get("type", NotificationKind.INFO),
            params.get("action_url"),
            dedup_key=params.get("dedup_key"),
            email_template=params.get("email_template"),
            email_variables=params.get("email_variables"),
            preference_flag=params.get("preference_flag"),
        )

    def dispatch(
        self,
        recipient: Recipient,
        title: str,
        message: str,
        kind: NotificationKind = NotificationKind.INFO,
        action_url: Optional[str] = None,
        *,
        dedup_key: Optional[DedupKey] = None,
        email_template: Optional[str] = None,
        email_variables: Optional[Dict[str, str]] = None,
        preference_flag: Optional[str] = None,
    ) -> DispatchOutcome:
        """
        Same as create() but reports failures in the outcome instead of raising.

        Used by every batch path so one recipient's failure stays with that
        recipient.
        """
        try:
            payload = self._build_payload(
                recipient, title, message, kind, action_url, dedup_key
            )
            notification = self._persist(recipient, payload)
        except (ValidationFailure, PersistenceFailure) as e:
            error_file = log_notification_error(
                error_type="dispatch",
                error_message=str(e),
                context={"recipient": recipient.id, "title": title, "dedup_key": dedup_key},
            )
            print(f"  ✗ Could not notify {recipient.id}. Details logged to: {error_file}")
            return DispatchOutcome(recipient=recipient, success=False, error=str(e))

        if notification is None:
            return DispatchOutcome(
                recipient=recipient, success=True, skipped_duplicate=True
            )

        self._emit(notification)

        email_sent = False
        if email_template:
            email_sent = self._send_email_copy(
                recipient, email_template, email_variables or {}, preference_flag
            )

        return DispatchOutcome(
            recipient=recipient,
            success=True,
            notification=notification,
            email_sent=email_sent,
        )

    # Many recipients

    def create_many(
        self, recipients: Iterable[Recipient], template: NotificationTemplate
    ) -> BulkDispatchResult:
        """
        Send the same notification to many recipients.

        Recipients are processed on the dispatcher's worker pool. A failure
        for one recipient is recorded in its outcome and never stops the
        rest. Outcomes come back in input order.
        """
        recipients = list(recipients)
        futures = [
            self._executor.submit(self._dispatch_from_template, r, template)
            for r in recipients
        ]

        outcomes = []
        for recipient, future in zip(recipients, futures):
            try:
                outcomes.append(future.result())
            except Exception as e:
                # Anything dispatch() itself did not anticipate
                outcomes.append(
                    DispatchOutcome(recipient=recipient, success=False, error=str(e))
                )

        result = BulkDispatchResult(outcomes=outcomes)
        print(f"  Bulk notification '{template.title}': {result.summary()}")
        return result

    def create_bulk_notification(
        self, recipients: Iterable[Recipient], params: Dict[str, Any]
    ) -> BulkDispatchResult:
        """create_many() taking the template as a parameter dict."""
        try:
            template = NotificationTemplate(
                title=params.get("title", ""),
                message=params.get("message", ""),
                kind=params.get("type", NotificationKind.INFO),
                action_url=params.get("action_url"),
                email_template=params.get("email_template"),
                email_variables=params.get("email_variables") or {},
                preference_flag=params.get("preference_flag"),
                cause=params.get("cause"),
                subject_id=params.get("subject_id"),
            )
        except ValidationError as e:
            raise ValidationFailure(str(e)) from e

        return self.create_many(recipients, template)

    def _dispatch_from_template(
        self, recipient: Recipient, template: NotificationTemplate
    ) -> DispatchOutcome:
        dedup_key = None
        if template.cause and template.subject_id:
            dedup_key = build_dedup_key(recipient.id, template.cause, template.subject_id)

        return self.dispatch(
            recipient,
            template.title,
            template.message,
            template.kind,
            template.action_url,
            dedup_key=dedup_key,
            email_template=template.email_template,
            email_variables=template.email_variables,
            preference_flag=template.preference_flag,
        )

    # Marketplace workflows

    def notify_property_match(self, user_id: str, property: Property) -> DispatchOutcome:
        """Tell an alert owner about a matching listing (one per owner and property)."""
        action_url = f"/property/{property.id}"
        description = property.description or ""
        if len(description) > DESCRIPTION_PREVIEW_CHARS:
            description = description[:DESCRIPTION_PREVIEW_CHARS].rstrip() + "..."

        return self.dispatch(
            Recipient.user(user_id),
            "New Property Match",
            f'A new property "{property.title}" matches your alert criteria',
            NotificationKind.INFO,
            action_url,
            dedup_key=build_dedup_key(user_id, "property_alert", property.id),
            email_template="property_alert",
            email_variables={
                "property_title": property.title,
                "property_price": property.price or "Price on request",
                "property_city": property.city or "",
                "property_type": property.property_type.value,
                "property_description": description,
                "property_url": self.settings.absolute_url(action_url),
            },
            preference_flag="property_alerts",
        )

    def notify_subscription_expiring(
        self, user_id: str, days_left: int, expiry_date: str
    ) -> DispatchOutcome:
        unit = "day" if days_left == 1 else "days"
        return self.dispatch(
            Recipient.user(user_id),
            "Subscription Expiring Soon",
            f"Your subscription expires in {days_left} {unit}. "
            "Please renew to continue enjoying our services.",
            NotificationKind.WARNING,
            "/settings",
            dedup_key=build_dedup_key(
                user_id, "subscription_expiring", f"{expiry_date}:{days_left}"
            ),
            email_template="subscription_expiry",
            email_variables={"days_left": str(days_left)},
        )

    def notify_subscription_expired(self, user_id: str, expiry_date: str) -> DispatchOutcome:
        return self.dispatch(
            Recipient.user(user_id),
            "Subscription Expired",
            "Your subscription has expired. Please renew to regain access to our services.",
            NotificationKind.ERROR,
            "/settings",
            dedup_key=build_dedup_key(user_id, "subscription_expired", expiry_date),
            email_template="subscription_expired",
        )

    def notify_new_property_admin(
        self, admin_id: str, property_title: str, property_id: str
    ) -> DispatchOutcome:
        return self.dispatch(
            Recipient.admin(admin_id),
            "New Property Added",
            f'Property "{property_title}" has been successfully added to the platform',
            NotificationKind.SUCCESS,
            f"/admin/properties/{property_id}",
        )

    def notify_new_user_admin(
        self, admin_id: str, username: str, user_id: str
    ) -> DispatchOutcome:
        return self.dispatch(
            Recipient.admin(admin_id),
            "New User Registration",
            f'New user "{username}" has registered on the platform',
            NotificationKind.INFO,
            f"/admin/accounts/{user_id}",
            dedup_key=build_dedup_key(admin_id, "user_registered", user_id),
        )

    def notify_form_submission_admin(
        self, admin_id: str, form_type: str, submission_id: str
    ) -> DispatchOutcome:
        return self.dispatch(
            Recipient.admin(admin_id),
            "New Form Submission",
            f"New {form_type} form submission received",
            NotificationKind.INFO,
            "/admin/form-submissions",
            dedup_key=build_dedup_key(admin_id, "form_submission", submission_id),
        )

    def notify_inquiry_admin(
        self, admin_id: str, property_title: str, inquiry_id: str
    ) -> DispatchOutcome:
        return self.dispatch(
            Recipient.admin(admin_id),
            "New Property Inquiry",
            f'New inquiry received for property "{property_title}"',
            NotificationKind.INFO,
            "/admin/inquiries",
            dedup_key=build_dedup_key(admin_id, "inquiry", inquiry_id),
        )

    def notify_property_status_change_admin(
        self,
        admin_id: str,
        property_title: str,
        old_status: str,
        new_status: str,
        property_id: str,
    ) -> DispatchOutcome:
        return self.dispatch(
            Recipient.admin(admin_id),
            "Property Status Changed",
            f'Property "{property_title}" status changed from {old_status} to {new_status}',
            NotificationKind.INFO,
            f"/admin/properties/{property_id}",
        )

    def notify_subscription_change_admin(
        self, admin_id: str, username: str, old_type: str, new_type: str, user_id: str
    ) -> DispatchOutcome:
        return self.dispatch(
            Recipient.admin(admin_id),
            "Subscription Changed",
            f'User "{username}" subscription changed from {old_type} to {new_type}',
            NotificationKind.INFO,
            f"/admin/accounts/{user_id}",
        )

    def notify_admin_action(
        self, admin_id: str, action: str, target_type: str, target_id: str
    ) -> DispatchOutcome:
        return self.dispatch(
            Recipient.admin(admin_id),
            "Admin Action Logged",
            f"Action: {action} on {target_type} (ID: {target_id})",
            NotificationKind.INFO,
        )

    def notify_system_admin(
        self,
        admin_id: str,
        title: str,
        message: str,
        kind: NotificationKind = NotificationKind.INFO,
    ) -> DispatchOutcome:
        return self.dispatch(Recipient.admin(admin_id), title, message, kind)

    def notify_system_health_admin(
        self, admin_id: str, alert_type: str, message: str, severity: str
    ) -> DispatchOutcome:
        """
        Raise a system health alert.

        Raises:
            ValidationFailure: severity is not low, medium, high or critical
        """
        try:
            kind = SEVERITY_KINDS[severity]
        except KeyError:
            raise ValidationFailure(f"Unknown severity '{severity}'") from None

        return self.dispatch(
            Recipient.admin(admin_id),
            f"System Health Alert: {alert_type}",
            message,
            kind,
        )

    def send_welcome_email(self, user_id: str) -> bool:
        """Email-only welcome message; sent when the user has email switched on."""
        return self._send_email_copy(Recipient.user(user_id), "welcome", {}, None)

    def broadcast_maintenance(
        self, title: str, message: str, scheduled_time: Optional[str] = None
    ) -> BulkDispatchResult:
        """Warn every active user about planned maintenance."""
        if scheduled_time:
            message = f"{message} Scheduled for: {scheduled_time}"

        user_ids = self.profiles.list_active_user_ids()
        template = NotificationTemplate(
            title=title, message=message, kind=NotificationKind.WARNING
        )
        return self.create_many([Recipient.user(u) for u in user_ids], template)

    # Read-side state transitions

    def mark_read(self, notification_id: NotificationID) -> Notification:
        return self.store.set_read(notification_id, True)

    def mark_unread(self, notification_id: NotificationID) -> Notification:
        """Administrative escape hatch back to unread."""
        return self.store.set_read(notification_id, False)

    def mark_all_read(self, user_id: str) -> int:
        with self._lock_for(user_id):
            return self.store.mark_all_read(user_id)

    def delete(self, notification_id: NotificationID) -> None:
        self.store.delete(notification_id)

    def delete_many(self, notification_ids: List[NotificationID]) -> int:
        return self.store.delete_many(notification_ids)

    def list_notifications(self, **filters) -> List[Notification]:
        return self.store.list(**filters)

    def unread_count(self, user_id: str) -> int:
        return self.store.count_unread(user_id)

    def close(self) -> None:
        """Let in-flight sends finish and drop work that has not started."""
        self._executor.shutdown(wait=True, cancel_futures=True)
        if self.gateway is not None:
            self.gateway.close()

    # Internals

    def _build_payload(
        self,
        recipient: Recipient,
        title: str,
        message: str,
        kind: NotificationKind,
        action_url: Optional[str],
        dedup_key: Optional[DedupKey],
    ) -> NotificationCreate:
        try:
            return NotificationCreate(
                user_id=recipient.user_id,
                admin_id=recipient.admin_id,
                title=title,
                message=message,
                type=kind,
                action_url=action_url,
                is_read=False,
                dedup_key=dedup_key,
            )
        except ValidationError as e:
            raise ValidationFailure(str(e)) from e

    def _lock_for(self, recipient_id: str) -> threading.Lock:
        return self._recipient_locks[hash(recipient_id) % _LOCK_STRIPES]

    def _persist(
        self, recipient: Recipient, payload: NotificationCreate
    ) -> Optional[Notification]:
        """Insert unless the dedup key was already used (serialized per recipient)."""
        with self._lock_for(recipient.id):
            if payload.dedup_key and self.store.exists_with_dedup_key(
                payload.dedup_key, since=self._dedup_since()
            ):
                print(f"  ⊘ Skipping duplicate notification {payload.dedup_key}")
                return None
            try:
                return self.store.insert(payload)
            except DuplicateKey:
                # Another process inserted the same key after our lookup
                print(f"  ⊘ Skipping duplicate notification {payload.dedup_key}")
                return None

    def _dedup_since(self):
        hours = self.settings.dedup_cooldown_hours
        if hours is None:
            return None
        return self._now() - timedelta(hours=hours)

    def base_email_variables(self, user_id: str) -> Dict[str, str]:
        settings = self.settings
        preferences_url = settings.absolute_url("/settings")
        unsubscribe_url = preferences_url
        if settings.unsubscribe_secret_key:
            unsubscribe_url = build_unsubscribe_url(
                settings.frontend_base_url, user_id, settings.unsubscribe_secret_key
            )
        return {
            "preferences_url": preferences_url,
            "unsubscribe_url": unsubscribe_url,
            "renew_url": settings.absolute_url("/settings"),
            "properties_url": settings.absolute_url("/properties"),
        }

    def _send_email_copy(
        self,
        recipient: Recipient,
        template_name: str,
        variables: Dict[str, str],
        preference_flag: Optional[str],
    ) -> bool:
        """Send the email copy if the user wants it. Never raises."""
        if recipient.is_admin or self.gateway is None or self.templates is None:
            return False

        user_id = recipient.user_id
        try:
            result = self._deliver_email(user_id, template_name, variables, preference_flag)
        except Exception as e:
            # The in-app row is already stored; only the email is lost
            result = {"success": False, "error": f"{type(e).__name__}: {e}"}

        if result is None:
            return False

        if not result["success"]:
            error_file = log_notification_error(
                error_type="sending",
                error_message=result.get("error", "Unknown error"),
                context={"user_id": user_id, "template": template_name},
            )
            print(f"  ✗ Email to user {user_id} failed. Details logged to: {error_file}")
            return False

        return True

    def _deliver_email(
        self,
        user_id: str,
        template_name: str,
        variables: Dict[str, str],
        preference_flag: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """Send result, or None when the user has no address or opted out."""
        profile = self.profiles.get_profile(user_id)
        if profile is None or not profile.email:
            return None

        preferences = profile.notification_preferences
        if not preferences.email or not preferences.allows(preference_flag):
            return None

        all_variables = {
            **self.base_email_variables(user_id),
            "username": profile.username or "User",
            **variables,
        }

        return send_templated_email(
            self.gateway, self.templates, profile.email, template_name, all_variables
        )
