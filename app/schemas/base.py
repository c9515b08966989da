"""Base schemas for the application."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema class with common configuration.

    Fields are exposed to clients in camelCase and accepted in either case.
    """

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict using the camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)


class BaseModelSchema(BaseSchema):
    """Base schema for database models."""

    id: UUID
    created_at: datetime
    updated_at: datetime


class ResponseSchema(BaseModel):
    """Standard API response schema."""

    status: str
    message: Optional[str] = None
    data: Optional[Any] = None
