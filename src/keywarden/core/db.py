from collections.abc import Iterable, Mapping
from typing import Any, Self
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pymongo.asynchronous.cursor import AsyncCursor


class MongoModel(BaseModel):
    """Document stored in a MongoDB collection.

    `id` is `_id` in storage and `id` in API responses.
    """

    id: UUID = Field(alias="_id", serialization_alias="id", default_factory=uuid4)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        json_schema_serialization_defaults_required=True,
    )

    def to_mongo(self, fields: Iterable[str] | None = None) -> dict[str, Any]:
        """Serialize for storage. With `fields`, only those are included, ready for a `$set`."""
        data = self.model_dump(include=set(fields) if fields is not None else None)
        if "id" in data:
            data["_id"] = data.pop("id")
        return data

    @classmethod
    def from_mongo(cls, document: Mapping[str, Any] | None) -> Self | None:
        return cls.model_validate(document) if document is not None else None

    @classmethod
    async def list_cursor(cls, cursor: AsyncCursor[dict[str, Any]]) -> list[Self]:
        """Iterate over an AsyncCursor and return a list of model instances."""
        return [cls.model_validate(document) async for document in cursor]
