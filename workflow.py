"""
Service order creation

Turns a customer/vehicle form plus a list of requested lines into an order:
totals, header, one line per request, stock decrement per product line.

The header is written first with workflow_state "pending" and only flipped to
"applied" once every line and stock update went through. If anything fails in
between, the header is marked "failed" and PartialOrderError reports exactly
what was written; nothing already written is undone.
"""
import logging
import random
import string
import time
from collections import defaultdict
from typing import List, Optional, Tuple

from pymongo.errors import DuplicateKeyError, PyMongoError

import config
from catalog import CatalogStore
from errors import InsufficientStockError, PartialOrderError, ValidationFailure, WorkshopError
from ledger import OrderLedger
from schemas import ItemKind, Order, OrderCreate, OrderLine, OrderLineIn

log = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
_NUMBER_ATTEMPTS = 5


def compute_totals(lines: List[OrderLineIn]) -> Tuple[List[float], float]:
    subtotals = [line.subtotal for line in lines]
    return subtotals, sum(subtotals)


def generate_order_number() -> str:
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def check_items(catalog: CatalogStore, lines: List[OrderLineIn]) -> None:
    """Refuse up front when an item is unknown or a product is short.

    Repeated lines for the same product are summed.
    """
    needed = defaultdict(int)
    on_shelf = {}
    for line in lines:
        item = catalog.resolve(line.ref)
        if line.item_kind is ItemKind.PRODUCT:
            needed[line.item_id] += line.quantity
            on_shelf[line.item_id] = item["stock"]
    for product_id, quantity in needed.items():
        if on_shelf[product_id] < quantity:
            raise InsufficientStockError(product_id, on_shelf[product_id], quantity)


def _insert_header(ledger: OrderLedger, request: OrderCreate, total: float) -> Tuple[str, str]:
    for _ in range(_NUMBER_ATTEMPTS):
        order_number = generate_order_number()
        header = Order(
            order_number=order_number,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            vehicle_type=request.vehicle_type,
            plate_number=request.plate_number,
            complaint=request.complaint,
            total_amount=total,
            lines_requested=len(request.items),
        )
        try:
            return ledger.insert_order(header), order_number
        except DuplicateKeyError:
            log.debug("Order number %s already taken, retrying", order_number)
    raise WorkshopError("Could not allocate a unique order number")


def create_order(catalog: CatalogStore, ledger: OrderLedger, request: OrderCreate,
                 policy: Optional[str] = None) -> dict:
    policy = policy or config.STOCK_POLICY
    if policy not in config.STOCK_POLICIES:
        raise ValidationFailure(f"Unknown stock policy: {policy}")
    if not request.items:
        raise ValidationFailure("At least one item is required")

    if policy == "reject":
        check_items(catalog, request.items)

    subtotals, total = compute_totals(request.items)
    order_id, order_number = _insert_header(ledger, request, total)

    lines_written = 0
    stock_applied = []
    try:
        for position, (line, subtotal) in enumerate(zip(request.items, subtotals)):
            ledger.insert_line(OrderLine(
                order_id=order_id,
                position=position,
                item_id=line.item_id,
                item_name=line.item_name,
                item_kind=line.item_kind,
                quantity=line.quantity,
                price=line.price,
                subtotal=subtotal,
            ))
            lines_written += 1
            if line.item_kind is ItemKind.PRODUCT:
                stock_applied.append(catalog.decrement_stock(line.item_id, line.quantity, policy=policy))
        ledger.mark_applied(order_id)
    except Exception as exc:
        log.warning(
            "Order %s left incomplete after %d/%d lines: %s",
            order_number, lines_written, len(request.items), exc,
        )
        try:
            ledger.mark_failed(order_id, str(exc))
        except PyMongoError:
            log.exception("Could not mark order %s as failed", order_number)
        raise PartialOrderError(
            order_id, order_number, lines_written, len(request.items), stock_applied, cause=exc,
        ) from exc

    log.info("Created order %s with %d lines, total %s", order_number, lines_written, total)
    return {"order_id": order_id, "order_number": order_number, "total_amount": total}
