"""
Workshop errors

Raised by the catalog, ledger and order workflow; translated into HTTP
responses by the handlers registered in main.py.
"""
from typing import Optional


class WorkshopError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class NotFoundError(WorkshopError):
    status_code = 404


class ValidationFailure(WorkshopError):
    status_code = 400


class InsufficientStockError(WorkshopError):
    status_code = 409

    def __init__(self, product_id: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_id}: available {available}, requested {requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidStatusTransition(WorkshopError):
    status_code = 409


class PartialOrderError(WorkshopError):
    """The order header was written but the workflow did not finish.

    The order stays in the ledger with workflow state "failed" so it can be
    listed and repaired; nothing is rolled back.
    """

    status_code = 500

    def __init__(self, order_id: str, order_number: str, lines_written: int,
                 lines_requested: int, stock_applied: list, cause: Optional[Exception] = None):
        super().__init__(
            f"Order {order_number} partially written: {lines_written}/{lines_requested} lines, "
            f"{len(stock_applied)} stock updates applied ({cause})"
        )
        self.order_id = order_id
        self.order_number = order_number
        self.lines_written = lines_written
        self.lines_requested = lines_requested
        self.stock_applied = stock_applied
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "lines_written": self.lines_written,
            "lines_requested": self.lines_requested,
            "stock_applied": self.stock_applied,
        }
