"""Order creation: totals, line snapshots, stock decrements and partial writes."""
import pytest
from pymongo.errors import PyMongoError

import workflow
from errors import InsufficientStockError, NotFoundError, PartialOrderError, ValidationFailure, WorkshopError
from schemas import ItemKind, OrderCreate, OrderLineIn
from workflow import compute_totals, create_order, generate_order_number


def line(item_id, name, kind, quantity, price):
    return {"item_id": item_id, "item_name": name, "item_kind": kind, "quantity": quantity, "price": price}


@pytest.fixture
def order_for(customer):
    def _order(*lines):
        return OrderCreate(**customer, items=list(lines))
    return _order


def test_compute_totals():
    lines = [
        OrderLineIn(**line("P-1", "Oil", "product", 2, 45000)),
        OrderLineIn(**line("J-1", "Service", "service", 1, 30000)),
    ]
    subtotals, total = compute_totals(lines)
    assert subtotals == [90000, 30000]
    assert total == 120000


def test_order_numbers_are_unique():
    numbers = {generate_order_number() for _ in range(200)}
    assert len(numbers) == 200
    assert all(n.startswith("ORD-") for n in numbers)


def test_product_order(catalog, ledger, order_for):
    product_id = catalog.create(ItemKind.PRODUCT, "Oil Filter", 50000, stock=10)
    created = create_order(catalog, ledger, order_for(line(product_id, "Oil Filter", "product", 3, 50000)))

    assert created["total_amount"] == 150000
    details = ledger.get_order(created["order_id"])
    assert details.order["total_amount"] == 150000
    assert details.order["status"] == "InProgress"
    assert len(details.items) == 1
    assert details.items[0]["subtotal"] == 150000
    assert catalog.get_product(product_id)["stock"] == 7


def test_service_order_leaves_stock_alone(catalog, ledger, order_for):
    product_id = catalog.create(ItemKind.PRODUCT, "Oil Filter", 50000, stock=10)
    service_id = catalog.create(ItemKind.SERVICE, "Tune-up", 75000)
    created = create_order(catalog, ledger, order_for(line(service_id, "Tune-up", "service", 1, 75000)))

    details = ledger.get_order(created["order_id"])
    assert details.order["total_amount"] == 75000
    assert details.items[0]["item_kind"] == "service"
    assert catalog.get_product(product_id)["stock"] == 10
    assert "stock" not in catalog.get_service(service_id)


def test_total_matches_lines(catalog, ledger, order_for):
    oil = catalog.create(ItemKind.PRODUCT, "Oil", 45000, stock=20)
    pads = catalog.create(ItemKind.PRODUCT, "Brake Pad", 40000, stock=6)
    tune = catalog.create(ItemKind.SERVICE, "Tune-up", 75000)
    created = create_order(catalog, ledger, order_for(
        line(oil, "Oil", "product", 2, 45000),
        line(tune, "Tune-up", "service", 1, 75000),
        line(pads, "Brake Pad", "product", 2, 40000),
    ))

    details = ledger.get_order(created["order_id"])
    assert [l["item_name"] for l in details.items] == ["Oil", "Tune-up", "Brake Pad"]
    for l in details.items:
        assert l["subtotal"] == l["quantity"] * l["price"]
    assert details.order["total_amount"] == sum(l["subtotal"] for l in details.items) == 245000
    assert catalog.get_product(oil)["stock"] == 18
    assert catalog.get_product(pads)["stock"] == 4


def test_oversell_is_floored_by_default(catalog, ledger, order_for):
    product_id = catalog.create(ItemKind.PRODUCT, "Chain", 120000, stock=2)
    created = create_order(catalog, ledger, order_for(line(product_id, "Chain", "product", 5, 120000)),
                           policy="floor")

    assert catalog.get_product(product_id)["stock"] == 0
    details = ledger.get_order(created["order_id"])
    assert details.items[0]["quantity"] == 5
    assert details.order["workflow_state"] == "applied"


def test_oversell_rejected_before_any_write(catalog, ledger, order_for):
    product_id = catalog.create(ItemKind.PRODUCT, "Chain", 120000, stock=2)
    with pytest.raises(InsufficientStockError):
        create_order(catalog, ledger, order_for(line(product_id, "Chain", "product", 5, 120000)),
                     policy="reject")
    assert ledger.list_orders() == []
    assert catalog.get_product(product_id)["stock"] == 2


def test_reject_sums_repeated_lines(catalog, ledger, order_for):
    product_id = catalog.create(ItemKind.PRODUCT, "Bulb", 15000, stock=3)
    with pytest.raises(InsufficientStockError):
        create_order(catalog, ledger, order_for(
            line(product_id, "Bulb", "product", 2, 15000),
            line(product_id, "Bulb", "product", 2, 15000),
        ), policy="reject")
    assert catalog.get_product(product_id)["stock"] == 3


def test_reject_unknown_product_before_any_write(catalog, ledger, order_for):
    with pytest.raises(NotFoundError):
        create_order(catalog, ledger, order_for(line("P-404", "Ghost", "product", 1, 1000)), policy="reject")
    assert ledger.list_orders() == []


def test_missing_product_leaves_partial_order(catalog, ledger, order_for):
    oil = catalog.create(ItemKind.PRODUCT, "Oil", 45000, stock=5)
    request = order_for(
        line(oil, "Oil", "product", 1, 45000),
        line("P-404", "Ghost", "product", 1, 1000),
        line("J-1", "Tune-up", "service", 1, 75000),
    )
    with pytest.raises(PartialOrderError) as info:
        create_order(catalog, ledger, request, policy="floor")

    err = info.value
    assert err.lines_written == 2
    assert err.lines_requested == 3
    assert [c["product_id"] for c in err.stock_applied] == [oil]
    assert isinstance(err.cause, NotFoundError)

    details = ledger.get_order(err.order_id)
    assert details.order["workflow_state"] == "failed"
    assert details.order["lines_requested"] == 3
    assert len(details.items) == 2
    assert catalog.get_product(oil)["stock"] == 4
    assert [o["id"] for o in ledger.list_incomplete()] == [err.order_id]


def test_completed_orders_not_incomplete(catalog, ledger, order_for):
    tune = catalog.create(ItemKind.SERVICE, "Tune-up", 75000)
    create_order(catalog, ledger, order_for(line(tune, "Tune-up", "service", 1, 75000)))
    assert ledger.list_incomplete() == []


def test_deleting_product_keeps_line_snapshot(catalog, ledger, order_for):
    product_id = catalog.create(ItemKind.PRODUCT, "Oil Filter", 50000, stock=10)
    created = create_order(catalog, ledger, order_for(line(product_id, "Oil Filter", "product", 1, 50000)))
    catalog.delete_product(product_id)

    item = ledger.get_order(created["order_id"]).items[0]
    assert item["item_id"] == product_id
    assert item["item_name"] == "Oil Filter"
    assert item["price"] == 50000
    assert item["subtotal"] == 50000


def test_price_snapshot_survives_catalog_update(catalog, ledger, order_for):
    product_id = catalog.create(ItemKind.PRODUCT, "Oil Filter", 50000, stock=10)
    created = create_order(catalog, ledger, order_for(line(product_id, "Oil Filter", "product", 1, 50000)))
    catalog.update_product(product_id, "Oil Filter", 60000, 9)
    assert ledger.get_order(created["order_id"]).items[0]["price"] == 50000


def test_unknown_policy(catalog, ledger, order_for):
    with pytest.raises(ValidationFailure):
        create_order(catalog, ledger, order_for(line("J-1", "Tune-up", "service", 1, 1)), policy="maybe")


def test_reject_unknown_service_before_any_write(catalog, ledger, order_for):
    with pytest.raises(NotFoundError):
        create_order(catalog, ledger, order_for(line("J-404", "Ghost", "service", 1, 1000)), policy="reject")
    assert ledger.list_orders() == []


def test_line_insert_failure_leaves_partial_order(catalog, ledger, order_for, monkeypatch):
    product_id = catalog.create(ItemKind.PRODUCT, "Oil Filter", 50000, stock=10)

    def broken_insert(line):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(ledger, "insert_line", broken_insert)
    with pytest.raises(PartialOrderError) as info:
        create_order(catalog, ledger, order_for(line(product_id, "Oil Filter", "product", 3, 50000)))

    err = info.value
    assert err.lines_written == 0
    assert err.stock_applied == []
    assert isinstance(err.cause, PyMongoError)
    details = ledger.get_order(err.order_id)
    assert details.order["workflow_state"] == "failed"
    assert details.order["failure_reason"] == "connection reset"
    assert details.items == []
    assert catalog.get_product(product_id)["stock"] == 10


def test_order_number_allocation_failure(catalog, ledger, order_for, monkeypatch):
    monkeypatch.setattr(workflow, "generate_order_number", lambda: "ORD-1-SAME00")
    tune = catalog.create(ItemKind.SERVICE, "Tune-up", 75000)
    create_order(catalog, ledger, order_for(line(tune, "Tune-up", "service", 1, 75000)))

    with pytest.raises(WorkshopError) as info:
        create_order(catalog, ledger, order_for(line(tune, "Tune-up", "service", 1, 75000)))
    assert not isinstance(info.value, ValidationFailure)
    assert info.value.status_code == 500
    assert len(ledger.list_orders()) == 1
