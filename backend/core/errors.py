"""
Engine error types.

A closed set of variants, each tagged with an ErrorKind. Callers (the HTTP
layer, scripts, tests) dispatch on ``err.kind`` rather than on the class or
message text.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICTING_STATE = "conflicting_state"
    VALIDATION = "validation"


class InventoryError(Exception):
    kind: ErrorKind
    status: int = 500

    def __init__(self, code: str, detail: str, **extra: Any):
        self.code = code
        self.detail = detail
        self.extra = extra
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "detail": self.detail,
            **self.extra,
        }


class NotFoundError(InventoryError):
    kind = ErrorKind.NOT_FOUND
    status = 404

    def __init__(self, resource: str, resource_id: Any = None):
        code = f"{resource.upper().replace(' ', '_')}_NOT_FOUND"
        super().__init__(code, f"{resource} not found", resource=resource, resource_id=resource_id)


class InsufficientStockError(InventoryError):
    """No single location holds enough available stock.

    ``available`` is the best availability seen (0 when the product has no
    stock row at all), ``warehouse_id`` the location it was seen at.
    """

    kind = ErrorKind.INSUFFICIENT_STOCK
    status = 409

    def __init__(self, product_id: int, required: int, available: int, warehouse_id: Optional[int] = None):
        self.product_id = product_id
        self.required = required
        self.available = available
        self.warehouse_id = warehouse_id
        super().__init__(
            "INSUFFICIENT_STOCK",
            f"Insufficient stock for product {product_id}: required={required}, available={available}",
            product_id=product_id,
            warehouse_id=warehouse_id,
            required=required,
            available=available,
        )


class InvalidTransitionError(InventoryError):
    kind = ErrorKind.INVALID_TRANSITION
    status = 409

    def __init__(self, code: str, current: str, requested: str, detail: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(
            code,
            detail or f"Cannot change status from {current} to {requested}",
            current=current,
            requested=requested,
        )


class ConflictingStateError(InventoryError):
    kind = ErrorKind.CONFLICTING_STATE
    status = 409


class ValidationError(InventoryError):
    kind = ErrorKind.VALIDATION
    status = 422
