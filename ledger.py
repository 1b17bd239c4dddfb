"""
Order ledger

Order headers (order collection) and their line snapshots (order_item
collection, linked by order_id). Lines are write-once; on a header only the
status and the workflow bookkeeping change after creation.
"""
import logging
from typing import Optional

from pymongo import ASCENDING
from pymongo.database import Database

from database import create_document, ensure_object_id, get_documents, now, to_str_id
from errors import InvalidStatusTransition, NotFoundError
from schemas import Order, OrderDetails, OrderLine, OrderStatus, WorkflowState

log = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.IN_PROGRESS: {OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: {OrderStatus.COMPLETED},
}


class OrderLedger:
    def __init__(self, db: Database):
        self.db = db
        self.orders = db["order"]
        self.lines = db["order_item"]

    # ----- writes used by the order workflow -----

    def insert_order(self, order: Order) -> str:
        return create_document(self.db, "order", order)

    def insert_line(self, line: OrderLine) -> str:
        return create_document(self.db, "order_item", line)

    def mark_applied(self, order_id: str) -> None:
        self._set_state(order_id, WorkflowState.APPLIED)

    def mark_failed(self, order_id: str, reason: str) -> None:
        self._set_state(order_id, WorkflowState.FAILED, failure_reason=reason)

    def _set_state(self, order_id: str, state: WorkflowState, **extra) -> None:
        self.orders.update_one(
            {"_id": ensure_object_id(order_id)},
            {"$set": {"workflow_state": state.value, "updated_at": now(), **extra}},
        )

    # ----- queries -----

    def _find(self, order_id: str) -> dict:
        doc = self.orders.find_one({"_id": ensure_object_id(order_id)})
        if not doc:
            raise NotFoundError("Order not found")
        return doc

    def get_order(self, order_id: str) -> OrderDetails:
        """Order header plus its lines in insertion order."""
        order = self._find(order_id)
        lines = self.lines.find({"order_id": str(order["_id"])}).sort("position", ASCENDING)
        return OrderDetails(order=to_str_id(order), items=[to_str_id(l) for l in lines])

    def get_by_number(self, order_number: str) -> OrderDetails:
        doc = self.orders.find_one({"order_number": order_number})
        if not doc:
            raise NotFoundError(f"Order {order_number} not found")
        return self.get_order(str(doc["_id"]))

    def list_orders(self, status: Optional[OrderStatus] = None) -> list:
        filter_dict = {"status": OrderStatus(status).value} if status else None
        return [to_str_id(d) for d in get_documents(self.db, "order", filter_dict)]

    def list_incomplete(self) -> list:
        """Orders whose creation never finished (still pending, or failed)."""
        filter_dict = {"workflow_state": {"$ne": WorkflowState.APPLIED.value}}
        return [to_str_id(d) for d in get_documents(self.db, "order", filter_dict)]

    def lines_for_item(self, item_id: str) -> list:
        return [to_str_id(d) for d in get_documents(self.db, "order_item", {"item_id": item_id})]

    # ----- status -----

    def update_status(self, order_id: str, status: OrderStatus) -> str:
        """Move an order to `status`.

        InProgress -> Completed is the only real transition; re-setting the
        current status is accepted as a no-op. A completed order cannot be
        reopened.
        """
        status = OrderStatus(status)
        order = self._find(order_id)
        current = OrderStatus(order["status"])
        if status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(
                f"Cannot change order {order['order_number']} from {current.value} to {status.value}"
            )
        if status is not current:
            self.orders.update_one(
                {"_id": order["_id"]},
                {"$set": {"status": status.value, "updated_at": now()}},
            )
            log.info("Order %s: %s -> %s", order["order_number"], current.value, status.value)
        return order_id
