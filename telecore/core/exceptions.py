"""
Domain error hierarchy shared by all telecore services.

Every error carries a stable ``code`` and a ``context`` dictionary of
structured details, so the HTTP layer and log processors can render it
without parsing the message.
"""

from typing import Any


class TelecoreError(Exception):
    """Base exception for telecore domain errors."""

    code = "TELECORE_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": {key: _stringify(value) for key, value in self.context.items()},
        }


class InvalidTransitionError(TelecoreError):
    """Raised when a state-machine precondition does not hold."""

    code = "INVALID_TRANSITION"


class PricingUnavailableError(TelecoreError):
    """Raised when no catalog plan or explicit override prices an order."""

    code = "PRICING_UNAVAILABLE"


class ValidationError(TelecoreError):
    """Raised for malformed input the caller must correct."""

    code = "VALIDATION_ERROR"


class InsufficientBalanceError(ValidationError):
    """Raised when a wallet debit exceeds the available balance."""

    code = "INSUFFICIENT_BALANCE"


class ConflictError(TelecoreError):
    """Raised when a concurrent mutation won the race."""

    code = "CONFLICT"


class NotFoundError(TelecoreError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any, **context: Any):
        super().__init__(
            f"{entity} not found: {entity_id}",
            entity=entity,
            entity_id=entity_id,
            **context,
        )
        self.entity = entity
        self.entity_id = entity_id


class PricingPlanNotFoundError(NotFoundError):
    """Raised when the catalog has no plan for a product/country/area."""

    code = "PRICING_PLAN_NOT_FOUND"

    def __init__(self, product_id: Any, country_id: Any, area_code: Any = None):
        super().__init__(
            "PricingPlan",
            f"{product_id}/{country_id}/{area_code or '*'}",
            product_id=product_id,
            country_id=country_id,
            area_code=area_code,
        )


def _stringify(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple, set)):
        return [_stringify(item) for item in value]
    return str(value)
