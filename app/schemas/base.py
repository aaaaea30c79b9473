"""
Base Schema Classes for Pydantic Models

RULE: Response schemas that read from ORM rows inherit from BaseResponseSchema.
Billing engine documents (line items, totals, invoices, recurring profiles)
inherit from EngineDocument: they are immutable and serialize with the
camelCase field names the bookkeeping frontend uses.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class InvoiceItemResponse(BaseResponseSchema):
            id: UUID
            description: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Accepts both snake_case and camelCase keys so the frontend payloads
    (``unitRate``, ``placeOfSupply``) validate unchanged.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class EngineDocument(BaseModel):
    """
    Immutable snapshot passed through the billing engine.

    Engine functions never mutate a document; they return a new one built
    with ``model_copy(update=...)``. Dumps use camelCase when called with
    ``by_alias=True``.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )
