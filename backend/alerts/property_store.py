"""Read-only access to property listings."""

from typing import Any, Optional

from models import Property
from models.types import PropertyID
from shared.db import get_supabase_client
from shared.errors import PersistenceFailure

PROPERTIES_TABLE = "properties"
PROPERTY_COLUMNS = (
    "id, title, listing_type, property_type, city, neighborhood, rooms, price, description"
)


class PropertyStore:
    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def get(self, property_id: PropertyID) -> Optional[Property]:
        try:
            response = (
                self.client.table(PROPERTIES_TABLE)
                .select(PROPERTY_COLUMNS)
                .eq("id", property_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("load property", e) from e

        if not response.data:
            return None
        return Property.model_validate(response.data[0])
