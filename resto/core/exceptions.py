"""
Application exceptions.

Every error carries an HTTP status and a machine readable code so the
exception handler in main.py can render it without knowing the subclass.
"""

from typing import Any, Dict, Optional


class RestoAPIError(Exception):
    """Base exception for the API"""

    def __init__(self, message: str, status_code: int = 500, error_code: str = "INTERNAL_ERROR"):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)

    def to_detail(self) -> Dict[str, Any]:
        return {}


class NotFoundError(RestoAPIError):
    """Raised when a requested record does not exist"""

    def __init__(self, message: str):
        super().__init__(message, status_code=404, error_code="NOT_FOUND")


class StorageError(RestoAPIError):
    """Raised when the database fails underneath an operation"""

    def __init__(self, message: str, retryable: bool = False,
                 status_code: int = 503, error_code: str = "STORAGE_ERROR"):
        self.retryable = retryable
        super().__init__(message, status_code=status_code, error_code=error_code)

    def to_detail(self) -> Dict[str, Any]:
        return {"retryable": self.retryable}


class ConcurrencyConflictError(StorageError):
    """Raised when a concurrent writer appended to the same partition first"""

    def __init__(self, message: str):
        super().__init__(message, retryable=True, status_code=409, error_code="CONCURRENCY_CONFLICT")


class InvalidMovementError(RestoAPIError):
    """Raised when a request can never be applied to the ledger"""

    def __init__(self, message: str):
        super().__init__(message, status_code=400, error_code="INVALID_MOVEMENT")


class InsufficientStockError(RestoAPIError):
    """Raised when an outflow would leave a partition below zero"""

    def __init__(self, product_id: int, warehouse_id: int, available, required,
                 message: Optional[str] = None):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.required = required
        super().__init__(
            message or (
                f"insufficient stock for product {product_id} in warehouse {warehouse_id}: "
                f"available {available}, required {required}"
            ),
            status_code=409,
            error_code="INSUFFICIENT_STOCK",
        )

    def to_detail(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "available": str(self.available),
            "required": str(self.required),
        }
