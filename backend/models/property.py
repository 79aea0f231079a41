"""Pydantic models for property listings and alert criteria."""

from datetime import datetime

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from models.enums import AlertPropertyType, ListingType, PropertyType
from models.types import AlertID, PropertyID, UserID


class Property(BaseModel):
    """Property listing as seen by the matcher (read-only)."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="ignore")

    id: PropertyID
    title: str = ""
    listing_type: ListingType = ListingType.SALE
    property_type: PropertyType
    city: str = ""
    neighborhood: str = ""
    rooms: float | None = Field(None, ge=0)
    price: str = ""
    description: str = ""

    @field_validator("title", "city", "neighborhood", "price", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("listing_type", mode="before")
    @classmethod
    def _default_listing_type(cls, value):
        # Older rows have no listing_type and are sales
        return value or ListingType.SALE


class AlertCriteriaBase(BaseModel):
    """Filter fields shared by stored alerts and create/update payloads."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    transaction_type: ListingType
    property_type: AlertPropertyType
    min_budget: float | None = Field(None, ge=0)
    max_budget: float | None = Field(None, ge=0)
    location: str | None = None
    rooms: float | None = Field(
        None, ge=0, validation_alias=AliasChoices("rooms", "min_rooms")
    )
    max_rooms: float | None = Field(None, ge=0)

    @field_validator("location", mode="before")
    @classmethod
    def _blank_location_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_bounds(self):
        if (
            self.min_budget is not None
            and self.max_budget is not None
            and self.min_budget > self.max_budget
        ):
            raise ValueError("min_budget cannot be greater than max_budget")
        if (
            self.rooms is not None
            and self.max_rooms is not None
            and self.rooms > self.max_rooms
        ):
            raise ValueError("rooms cannot be greater than max_rooms")
        return self

    def to_row(self) -> dict:
        """Column values for the property_alerts table."""
        return {
            "transaction_type": self.transaction_type.value,
            "property_type": self.property_type.value,
            "min_budget": self.min_budget,
            "max_budget": self.max_budget,
            "location": self.location,
            "min_rooms": self.rooms,
            "max_rooms": self.max_rooms,
        }


class AlertCriteriaCreate(AlertCriteriaBase):
    """Alert data for insertion (before ID assignment)."""

    user_id: UserID = Field(..., min_length=1)
    is_active: bool = True


class AlertCriteria(AlertCriteriaCreate):
    """Complete alert record from the property_alerts table."""

    id: AlertID
    created_at: datetime | None = None
    updated_at: datetime | None = None
