"""
Error Taxonomy

Every failure the order core can report to a caller is an OrderFlowError
subclass carrying a machine-readable ``code`` and the HTTP status the API
answers with. The FastAPI layer maps them in one exception handler.

Categories:
    - Validation (400): bad or missing input, never persisted
    - Catalog (400 / 503): unknown or unavailable items, catalog outage
    - Integrity (500): broken invariants that need operator attention
    - Transition (409): stale or illegal status changes, order unchanged
"""

from typing import Optional


class OrderFlowError(Exception):
    """Base class for all order core errors."""

    code: str = "ORDER_FLOW_ERROR"
    status_code: int = 500

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        """Convert to the API error envelope."""
        return {
            "success": False,
            "error": self.code,
            "detail": self.message,
            **({"context": self.detail} if self.detail else {}),
        }


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationFailed(OrderFlowError):
    code = "VALIDATION_FAILED"
    status_code = 400


class OrderNotFound(OrderFlowError):
    code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", {"order_id": order_id})
        self.order_id = order_id


# =============================================================================
# CATALOG
# =============================================================================

class CatalogError(OrderFlowError):
    code = "CATALOG_ERROR"
    status_code = 400


class ItemNotFound(CatalogError):
    code = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        super().__init__(f"Item '{item_id}' is not on the menu", {"item_id": item_id})
        self.item_id = item_id


class ItemUnavailable(CatalogError):
    code = "ITEM_UNAVAILABLE"

    def __init__(self, item_id: str, name: Optional[str] = None):
        label = f"{name} ({item_id})" if name else item_id
        super().__init__(f"Item '{label}' is currently unavailable", {"item_id": item_id})
        self.item_id = item_id


class CatalogUnavailable(CatalogError):
    """The catalog could not be reached in time; no order is created."""
    code = "CATALOG_UNAVAILABLE"
    status_code = 503


# =============================================================================
# INTEGRITY
# =============================================================================

class IntegrityViolation(OrderFlowError):
    code = "INTEGRITY_VIOLATION"
    status_code = 500


class DuplicateId(IntegrityViolation):
    code = "DUPLICATE_ID"

    def __init__(self, order_id: str):
        super().__init__(f"Order id {order_id} already exists", {"order_id": order_id})
        self.order_id = order_id


class CodeGenerationExhausted(IntegrityViolation):
    code = "CODE_GENERATION_EXHAUSTED"

    def __init__(self, restaurant_id: str, attempts: int):
        super().__init__(
            f"No free display code for restaurant {restaurant_id} after {attempts} attempts",
            {"restaurant_id": restaurant_id, "attempts": attempts},
        )


class DisplayCodeTaken(OrderFlowError):
    """
    Raised by the store when a concurrent insert claimed the same active
    display code. Handled internally by regenerating the code.
    """
    code = "DISPLAY_CODE_TAKEN"
    status_code = 500

    def __init__(self, restaurant_id: str, display_code: str):
        super().__init__(
            f"Display code {display_code} already active for restaurant {restaurant_id}",
            {"restaurant_id": restaurant_id, "display_code": display_code},
        )
        self.display_code = display_code


# =============================================================================
# TRANSITIONS
# =============================================================================

class TransitionError(OrderFlowError):
    status_code = 409


class StaleTransition(TransitionError):
    code = "STALE_TRANSITION"

    def __init__(self, order_id: str, expected: Optional[str], actual: Optional[str]):
        super().__init__(
            f"Order {order_id} is '{actual}', expected '{expected}'",
            {"order_id": order_id, "expected_status": expected, "current_status": actual},
        )
        self.current_status = actual


class IllegalTransition(TransitionError):
    code = "ILLEGAL_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        super().__init__(
            f"Order {order_id} cannot move from '{from_status}' to '{to_status}'",
            {"order_id": order_id, "current_status": from_status, "requested_status": to_status},
        )
        self.current_status = from_status
