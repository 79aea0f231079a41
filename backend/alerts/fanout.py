"""
Property alert fan-out.

When a listing is created (or updated), every active alert is evaluated
against it and each matching owner is notified once. Evaluation and
dispatch run on a bounded worker pool; a failure for one alert is recorded
on that alert's result and never stops the others.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Optional

from alerts.alert_store import AlertStore
from alerts.matching import matches
from alerts.property_store import PropertyStore
from models import AlertCriteria, FanoutMatch, FanoutReport, Property
from models.types import PropertyID
from notifications.dispatcher import NotificationDispatcher
from notifications.error_logger import log_notification_error
from shared.errors import ValidationFailure


class AlertFanoutCoordinator:
    def __init__(
        self,
        alerts: AlertStore,
        dispatcher: NotificationDispatcher,
        properties: Optional[PropertyStore] = None,
        max_workers: Optional[int] = None,
    ):
        self.alerts = alerts
        self.dispatcher = dispatcher
        self.properties = properties
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or dispatcher.settings.fanout_concurrency,
            thread_name_prefix="fanout",
        )

    def on_property_created(self, property: Property) -> FanoutReport:
        """
        Notify the owners of every active alert the new listing satisfies.

        An owner with several matching alerts, or the same event delivered
        twice, still gets a single notification for the property.

        Raises:
            PersistenceFailure: The active alerts could not be loaded
        """
        print(f"\n[{datetime.now()}] Matching property {property.id} against active alerts...")

        active_alerts = self.alerts.list_active()

        futures = [
            self._executor.submit(self._evaluate, property, alert)
            for alert in active_alerts
        ]

        report = FanoutReport(property_id=property.id)
        errors = []
        for alert, future in zip(active_alerts, futures):
            try:
                result = future.result()
            except Exception as e:
                result = FanoutMatch(
                    alert_id=alert.id, user_id=alert.user_id, matched=False, error=str(e)
                )

            report.results.append(result)
            report.alerts_evaluated += 1
            if result.matched:
                report.matched += 1

            outcome = result.outcome
            if result.error or (outcome is not None and not outcome.success):
                report.failed += 1
                errors.append(
                    {
                        "alert_id": result.alert_id,
                        "user_id": result.user_id,
                        "error": result.error or outcome.error,
                    }
                )
            elif outcome is not None and outcome.skipped_duplicate:
                report.duplicates += 1
            elif outcome is not None:
                report.notified += 1

        if errors:
            error_file = log_notification_error(
                error_type="matching",
                error_message=f"{len(errors)} alert(s) failed for property {property.id}",
                context={"property_id": property.id, "failures": errors},
            )
            print(f"  ✗ {len(errors)} alert(s) failed. Details logged to: {error_file}")

        print(
            f"  ✓ {report.alerts_evaluated} alerts evaluated, {report.matched} matched, "
            f"{report.notified} notified, {report.duplicates} duplicates"
        )
        return report

    def on_property_updated(self, property: Property) -> FanoutReport:
        """Same as on_property_created; owners already told about it are skipped."""
        return self.on_property_created(property)

    def on_property_created_by_id(self, property_id: PropertyID) -> FanoutReport:
        if self.properties is None:
            raise ValidationFailure("no property store configured")

        property = self.properties.get(property_id)
        if property is None:
            raise ValidationFailure(f"property {property_id} not found")
        return self.on_property_created(property)

    def close(self) -> None:
        """Finish in-flight evaluations and drop the rest."""
        self._executor.shutdown(wait=True, cancel_futures=True)

    def _evaluate(self, property: Property, alert: AlertCriteria) -> FanoutMatch:
        if not matches(property, alert):
            return FanoutMatch(alert_id=alert.id, user_id=alert.user_id, matched=False)

        outcome = self.dispatcher.notify_property_match(alert.user_id, property)
        return FanoutMatch(
            alert_id=alert.id, user_id=alert.user_id, matched=True, outcome=outcome
        )
