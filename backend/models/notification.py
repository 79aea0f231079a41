"""Pydantic models for the notification system."""

from datetime import datetime

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from models.enums import NotificationKind
from models.types import AdminID, DedupKey, NotificationID, UserID
from shared.utils import parse_timestamp


class Recipient(BaseModel):
    """Addressee of a notification: a user or an admin, never both."""

    model_config = ConfigDict(frozen=True)

    user_id: UserID | None = None
    admin_id: AdminID | None = None

    @model_validator(mode="after")
    def _exactly_one(self):
        if bool(self.user_id) == bool(self.admin_id):
            raise ValueError("exactly one of user_id or admin_id must be set")
        return self

    @classmethod
    def user(cls, user_id: str) -> "Recipient":
        return cls(user_id=user_id)

    @classmethod
    def admin(cls, admin_id: str) -> "Recipient":
        return cls(admin_id=admin_id)

    @property
    def id(self) -> str:
        return self.user_id or self.admin_id  # type: ignore[return-value]

    @property
    def is_admin(self) -> bool:
        return self.admin_id is not None


class NotificationCreate(BaseModel):
    """Notification payload for insertion into the notifications table."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: UserID | None = None
    admin_id: AdminID | None = None
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: NotificationKind = NotificationKind.INFO
    action_url: str | None = None
    is_read: bool = False
    dedup_key: DedupKey | None = None

    @model_validator(mode="after")
    def _recipient_xor(self):
        if bool(self.user_id) == bool(self.admin_id):
            raise ValueError("exactly one of user_id or admin_id must be set")
        return self

    def to_row(self) -> dict:
        return self.model_dump(mode="json")


class Notification(BaseModel):
    """Notification record from the database."""

    model_config = ConfigDict(extra="ignore")

    id: NotificationID
    user_id: UserID | None = None
    admin_id: AdminID | None = None
    title: str
    message: str
    type: NotificationKind = NotificationKind.INFO
    is_read: bool = False
    action_url: str | None = None
    created_at: datetime
    read_at: datetime | None = None
    dedup_key: DedupKey | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value) if value is not None else value

    @field_validator("created_at", "read_at", mode="before")
    @classmethod
    def _utc(cls, value):
        return parse_timestamp(value)

    @property
    def recipient(self) -> Recipient:
        return Recipient(user_id=self.user_id, admin_id=self.admin_id)


class NotificationTemplate(BaseModel):
    """Content shared by every recipient of a bulk send."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    kind: NotificationKind = NotificationKind.INFO
    action_url: str | None = None
    email_template: str | None = None
    email_variables: dict[str, str] = Field(default_factory=dict)
    preference_flag: str | None = None
    # Cause and subject for dedup keys; both required to enable dedup
    cause: str | None = None
    subject_id: str | None = None


class NotificationPreference(BaseModel):
    """Per-user channel and topic switches (camelCase in the JSON column)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    email: bool = False
    push: bool = False
    sms: bool = False
    property_alerts: bool = False
    price_updates: bool = False
    new_properties: bool = False
    weekly_digest: bool = False

    def allows(self, flag: str | None) -> bool:
        """True if the topic flag is on (no flag means no topic restriction)."""
        if flag is None:
            return True
        return bool(getattr(self, flag, False))


class UserProfile(BaseModel):
    """User profile fields the engine reads."""

    model_config = ConfigDict(extra="ignore")

    id: UserID
    email: str | None = None
    username: str | None = None
    subscription_expiry: datetime | None = None
    is_active: bool = True
    is_admin: bool = False
    notification_preferences: NotificationPreference = Field(
        default_factory=NotificationPreference
    )

    @field_validator("subscription_expiry", mode="before")
    @classmethod
    def _parse_expiry(cls, value):
        return parse_timestamp(value)

    @field_validator("notification_preferences", mode="before")
    @classmethod
    def _missing_preferences(cls, value):
        return value or {}

    @model_validator(mode="before")
    @classmethod
    def _default_flags(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            if data.get("is_active") is None:
                data["is_active"] = True
            if data.get("is_admin") is None:
                data["is_admin"] = False
        return data


class EmailTemplate(BaseModel):
    """Named email template with {{placeholder}} variables."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    subject: str
    html_template: str
    text_template: str
    variables: list[str] = Field(default_factory=list)
    is_active: bool = True
