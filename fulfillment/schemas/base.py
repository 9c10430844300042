"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models MUST inherit from
BaseResponseSchema.
"""
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas built from ORM models or dataclasses.

    Usage:
        class StockRowResponse(BaseResponseSchema):
            id: UUID
            amount: int
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for request bodies; unknown fields are ignored."""
    model_config = ConfigDict(
        extra='ignore',
    )
