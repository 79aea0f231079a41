"""
Persistence for user-owned property alerts (property_alerts table).

Criteria are validated before any write; a malformed payload raises
ValidationFailure and nothing reaches the database.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from models import AlertCriteria, AlertCriteriaBase, AlertCriteriaCreate
from models.types import AlertID, UserID
from notifications.error_logger import log_notification_error
from shared.db import fetch_all_rows, get_supabase_client
from shared.errors import PersistenceFailure, ValidationFailure

ALERTS_TABLE = "property_alerts"


class AlertStore:
    """CRUD and lifecycle for AlertCriteria."""

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def create(self, user_id: UserID, payload: Dict[str, Any]) -> AlertCriteria:
        """
        Create an alert for a user.

        Args:
            user_id: Owner of the alert
            payload: transaction_type, property_type and optional
                     min_budget, max_budget, location, rooms, max_rooms

        Returns:
            The stored alert

        Raises:
            ValidationFailure: Missing mandatory fields or min > max
            PersistenceFailure: Insert failed
        """
        try:
            alert = AlertCriteriaCreate(user_id=user_id, **payload)
        except ValidationError as e:
            raise ValidationFailure(_describe(e)) from e

        row = {**alert.to_row(), "user_id": alert.user_id, "is_active": alert.is_active}

        try:
            response = self.client.table(ALERTS_TABLE).insert(row).execute()
        except Exception as e:
            raise PersistenceFailure("create alert", e) from e

        if not response.data:
            raise PersistenceFailure("create alert", "no row returned")

        return AlertCriteria.model_validate(response.data[0])

    def update(
        self, alert_id: AlertID, user_id: UserID, payload: Dict[str, Any]
    ) -> AlertCriteria:
        """Replace the filter fields of an alert owned by user_id."""
        try:
            criteria = AlertCriteriaBase(**payload)
        except ValidationError as e:
            raise ValidationFailure(_describe(e)) from e

        row = {**criteria.to_row(), "updated_at": "now()"}
        return self._update_one(alert_id, user_id, row, "update alert")

    def set_active(
        self, alert_id: AlertID, user_id: UserID, is_active: bool
    ) -> AlertCriteria:
        """Activate or deactivate an alert."""
        return self._update_one(
            alert_id,
            user_id,
            {"is_active": is_active, "updated_at": "now()"},
            "toggle alert",
        )

    def toggle(self, alert: AlertCriteria) -> AlertCriteria:
        """Flip Active <-> Inactive."""
        return self.set_active(alert.id, alert.user_id, not alert.is_active)

    def delete(self, alert_id: AlertID, user_id: UserID) -> None:
        """Hard delete (terminal)."""
        try:
            (
                self.client.table(ALERTS_TABLE)
                .delete()
                .eq("id", alert_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("delete alert", e) from e

    def get(self, alert_id: AlertID) -> Optional[AlertCriteria]:
        try:
            response = (
                self.client.table(ALERTS_TABLE)
                .select("*")
                .eq("id", alert_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("load alert", e) from e

        if not response.data:
            return None
        return AlertCriteria.model_validate(response.data[0])

    def list_for_user(self, user_id: UserID) -> List[AlertCriteria]:
        """All alerts owned by a user, newest first."""
        try:
            response = (
                self.client.table(ALERTS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("list alerts", e) from e

        return self._parse_rows(response.data or [])

    def list_active(self) -> List[AlertCriteria]:
        """Every active alert across all owners."""
        try:
            rows = fetch_all_rows(
                lambda: self.client.table(ALERTS_TABLE)
                .select("*")
                .eq("is_active", True)
                .order("id")
            )
        except Exception as e:
            raise PersistenceFailure("list active alerts", e) from e

        return self._parse_rows(rows)

    def _update_one(
        self, alert_id: AlertID, user_id: UserID, row: Dict[str, Any], operation: str
    ) -> AlertCriteria:
        try:
            response = (
                self.client.table(ALERTS_TABLE)
                .update(row)
                .eq("id", alert_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(operation, e) from e

        if not response.data:
            raise PersistenceFailure(operation, f"alert {alert_id} not found")

        return AlertCriteria.model_validate(response.data[0])

    def _parse_rows(self, rows: List[Dict[str, Any]]) -> List[AlertCriteria]:
        """Validate rows, skipping (and logging) legacy rows that break invariants."""
        alerts = []
        invalid = []
        for row in rows:
            try:
                alerts.append(AlertCriteria.model_validate(row))
            except ValidationError as e:
                invalid.append({"alert_id": row.get("id"), "error": _describe(e)})

        if invalid:
            error_file = log_notification_error(
                error_type="matching",
                error_message=f"Skipped {len(invalid)} invalid alert row(s)",
                context={"invalid_alerts": invalid},
            )
            print(f"  ⚠️  Skipped invalid alerts. Details logged to: {error_file}")

        return alerts


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'criteria'}: {err['msg']}"
        for err in error.errors()
    )
