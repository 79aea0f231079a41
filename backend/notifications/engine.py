"""
Default wiring of the engine against Supabase and Resend.

Builds every component from one Settings instance. Tests construct the
components directly with mocked clients instead.
"""

from dataclasses import dataclass
from typing import Optional

from alerts.alert_store import AlertStore
from alerts.fanout import AlertFanoutCoordinator
from alerts.property_store import PropertyStore
from notifications.analytics import AnalyticsAggregator
from notifications.dispatcher import NotificationDispatcher
from notifications.email_sender import ResendEmailGateway, TemplateRepository
from notifications.expiry_sweeper import ExpirySweeper, SweepLease
from notifications.notification_store import NotificationStore
from notifications.profile_store import ActivityLog, ProfileStore
from shared.config import Settings
from shared.db import get_supabase_client


@dataclass
class Engine:
    settings: Settings
    alerts: AlertStore
    properties: PropertyStore
    notifications: NotificationStore
    profiles: ProfileStore
    templates: TemplateRepository
    dispatcher: NotificationDispatcher
    fanout: AlertFanoutCoordinator
    sweeper: ExpirySweeper
    analytics: AnalyticsAggregator

    def close(self) -> None:
        """Shut the worker pools down, letting in-flight work finish."""
        self.fanout.close()
        self.dispatcher.close()


def build_engine(settings: Optional[Settings] = None) -> Engine:
    settings = settings or Settings.from_env()
    client = get_supabase_client(settings.supabase_url, settings.supabase_service_key)

    notifications = NotificationStore(client)
    profiles = ProfileStore(client)
    templates = TemplateRepository(client)
    gateway = ResendEmailGateway(
        api_key=settings.resend_api_key,
        from_email=settings.from_email,
        from_name=settings.from_name,
        timeout_seconds=settings.email_timeout_seconds,
    )

    dispatcher = NotificationDispatcher(
        notifications, profiles, gateway, templates, settings
    )
    alerts = AlertStore(client)
    properties = PropertyStore(client)

    return Engine(
        settings=settings,
        alerts=alerts,
        properties=properties,
        notifications=notifications,
        profiles=profiles,
        templates=templates,
        dispatcher=dispatcher,
        fanout=AlertFanoutCoordinator(alerts, dispatcher, properties),
        sweeper=ExpirySweeper(
            profiles,
            dispatcher,
            lease=SweepLease(client, duration_minutes=settings.sweep_lease_minutes),
        ),
        analytics=AnalyticsAggregator(notifications, profiles, ActivityLog(client)),
    )
