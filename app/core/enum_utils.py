"""
Enum Utilities for VARCHAR-based Status Fields

STANDARD:
• Database: VARCHAR(50) - NOT a database ENUM
• SQLAlchemy: String(50) with Mapped[str]
• Pydantic: Python Enum for API validation
• Case: All enum values stored in UPPERCASE

DATA FLOW:
INPUT (API Request):
    Pydantic Enum → .value → String → Database
    Example: InvoiceStatus.SENT → "SENT" → VARCHAR

OUTPUT (reading records back into engine documents):
    Database → String → to_enum() → Enum

CASE NORMALIZATION:
The original bookkeeping frontend posts lowercase values ("monthly",
"active", "percentage"). Use normalize_to_uppercase() or
create_uppercase_validator() to accept them case-insensitively.
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type, Set


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(InvoiceStatus.SENT)
        'SENT'
        >>> get_enum_value("SENT")
        'SENT'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """
    Convert a string value to an enum instance.

    Lookup is case-insensitive so that stored lowercase values from older
    records still resolve.

    Examples:
        >>> to_enum("SENT", InvoiceStatus)
        InvoiceStatus.SENT
        >>> to_enum("monthly", RecurrenceFrequency)
        RecurrenceFrequency.MONTHLY
        >>> to_enum("INVALID", InvoiceStatus)
        None
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except (ValueError, KeyError):
        pass
    if isinstance(value, str):
        try:
            return enum_class(value.strip().upper())
        except (ValueError, KeyError):
            return None
    return None


def enum_values(enum_class: Type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """Comma-separated list of valid values, for VARCHAR column comments."""
    return ", ".join(enum_values(enum_class))


# =============================================================================
# CASE NORMALIZATION FOR PYDANTIC SCHEMAS
# =============================================================================

def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Also accepts camelCase/lowercase spellings with the underscore dropped
    (e.g. "partiallyPaid" → "PARTIALLY_PAID").

    Examples:
        >>> normalize_to_uppercase('paused', {'ACTIVE', 'PAUSED'})
        'PAUSED'
        >>> normalize_to_uppercase('invalid', {'ACTIVE', 'PAUSED'})
        'invalid'  # Returned as-is for Pydantic to raise validation error
    """
    if value is None or isinstance(value, Enum):
        return value
    if isinstance(value, str):
        upper_v = value.strip().upper()
        if upper_v in valid_values:
            return upper_v
        squashed = upper_v.replace("_", "").replace("-", "").replace(" ", "")
        for candidate in valid_values:
            if candidate.replace("_", "") == squashed:
                return candidate
    return value


def create_uppercase_validator(*field_names: str, valid_values: Set[str]) -> classmethod:
    """
    Create a Pydantic field_validator that normalizes values to UPPERCASE.

    Usage:
        class MySchema(BaseModel):
            status: InvoiceStatus

            normalize_status = create_uppercase_validator(
                'status', valid_values=VALID_INVOICE_STATUSES
            )
    """
    from pydantic import field_validator

    @field_validator(*field_names, mode='before')
    @classmethod
    def validate(cls, v):
        return normalize_to_uppercase(v, valid_values)

    return validate


# =============================================================================
# PRE-DEFINED VALID VALUE SETS FOR BILLING ENUMS
# =============================================================================

VALID_INVOICE_STATUSES = {
    "DRAFT", "SENT", "UNPAID", "PARTIALLY_PAID", "PAID",
    "OVERDUE", "CANCELLED", "VOID"
}

VALID_RECURRING_PROFILE_STATUSES = {"ACTIVE", "PAUSED", "COMPLETED"}

VALID_RECURRENCE_FREQUENCIES = {"DAILY", "WEEKLY", "MONTHLY", "YEARLY"}

VALID_DISCOUNT_MODES = {"PERCENTAGE", "FIXED_AMOUNT"}

VALID_ADDITIONAL_TAX_KINDS = {"TDS", "TCS"}

VALID_SUPPLY_TYPES = {"INTRA_STATE", "INTER_STATE"}
