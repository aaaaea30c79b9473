"""
Billing engine exceptions.

Pure computation (tax split, aggregation, discounts, amount in words) clamps
malformed-but-numeric input instead of raising. These exceptions cover
precondition violations and policy decisions made by the lifecycle and
scheduler layers.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional


class BillingEngineError(Exception):
    """Base exception for the billing engine."""

    error_code = "BILLING_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.error_code, "details": self.details}


class InvalidTransition(BillingEngineError):
    """Requested invoice or recurring profile status change is not permitted."""

    error_code = "INVALID_TRANSITION"

    def __init__(self, entity: str, current: str, requested: str, allowed: Iterable[str] = ()):
        self.entity = entity
        self.current = current
        self.requested = requested
        self.allowed = sorted(allowed)
        super().__init__(
            f"Cannot move {entity} from {current} to {requested}",
            details={
                "entity": entity,
                "current": current,
                "requested": requested,
                "allowed": self.allowed,
            },
        )


class NegativeAmount(BillingEngineError):
    """A quantity, rate, discount or similar input is below zero."""

    error_code = "NEGATIVE_AMOUNT"

    def __init__(self, field: str, value: Decimal):
        self.field = field
        self.value = value
        super().__init__(
            f"{field} must not be negative (got {value})",
            details={"field": field, "value": str(value)},
        )


class UnresolvableJurisdiction(BillingEngineError):
    """No GST state could be matched in an address (strict mode only)."""

    error_code = "UNRESOLVABLE_JURISDICTION"

    def __init__(self, address: Optional[str]):
        self.address = address
        super().__init__(
            f"Could not determine GST state for address '{address or ''}'",
            details={"address": address},
        )


class AdditionalTaxError(BillingEngineError):
    """TDS/TCS selected but no amount could be derived."""

    error_code = "INVALID_ADDITIONAL_TAX"


class RecurringProfileError(BillingEngineError):
    """Recurring profile schedule is inconsistent."""

    error_code = "INVALID_RECURRING_PROFILE"
