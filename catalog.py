"""
Catalog store

Spare parts (product collection) and services (service collection). Both are
keyed by a shop-assigned id; the two collections are independent of each
other and of the order ledger.
"""
import logging
import random
import string
import time
from typing import Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, get_documents, now, to_str_id
from errors import InsufficientStockError, NotFoundError, ValidationFailure, WorkshopError
from schemas import ItemKind, ItemRef, Product, Service

log = logging.getLogger(__name__)

ID_PREFIX = {ItemKind.PRODUCT: "P", ItemKind.SERVICE: "J"}
_ID_ATTEMPTS = 5
_DECREMENT_ATTEMPTS = 5
_ALPHABET = string.ascii_uppercase + string.digits


def generate_item_id(kind: ItemKind) -> str:
    suffix = "".join(random.choices(_ALPHABET, k=4))
    return f"{ID_PREFIX[kind]}-{int(time.time() * 1000)}-{suffix}"


class CatalogStore:
    def __init__(self, db: Database):
        self.db = db
        self.products = db["product"]
        self.services = db["service"]

    # ----- create -----

    def create(self, kind: ItemKind, name: str, price: float, stock: Optional[int] = None) -> str:
        """Add a product or service and return its shop-assigned id."""
        kind = ItemKind(kind)
        for _ in range(_ID_ATTEMPTS):
            item_id = generate_item_id(kind)
            try:
                if kind is ItemKind.PRODUCT:
                    doc = Product(product_id=item_id, name=name, price=price, stock=stock or 0)
                    create_document(self.db, "product", doc)
                else:
                    doc = Service(service_id=item_id, name=name, price=price)
                    create_document(self.db, "service", doc)
            except DuplicateKeyError:
                log.debug("Item id %s already taken, retrying", item_id)
                continue
            log.info("Created %s %s (%s)", kind.value, item_id, name)
            return item_id
        raise WorkshopError(f"Could not allocate a unique {kind.value} id")

    # ----- read -----

    def list_products(self) -> list:
        return [to_str_id(d) for d in get_documents(self.db, "product")]

    def list_services(self) -> list:
        return [to_str_id(d) for d in get_documents(self.db, "service")]

    def get_product(self, product_id: str) -> dict:
        doc = self.products.find_one({"product_id": product_id})
        if not doc:
            raise NotFoundError(f"Product {product_id} not found")
        return to_str_id(doc)

    def get_service(self, service_id: str) -> dict:
        doc = self.services.find_one({"service_id": service_id})
        if not doc:
            raise NotFoundError(f"Service {service_id} not found")
        return to_str_id(doc)

    def resolve(self, ref: ItemRef) -> dict:
        if ref.kind is ItemKind.PRODUCT:
            return self.get_product(ref.item_id)
        return self.get_service(ref.item_id)

    # ----- update / delete -----

    def update_product(self, product_id: str, name: str, price: float, stock: int) -> None:
        result = self.products.update_one(
            {"product_id": product_id},
            {"$set": {"name": name, "price": price, "stock": stock, "updated_at": now()}},
        )
        if result.matched_count == 0:
            raise NotFoundError(f"Product {product_id} not found")

    def update_service(self, service_id: str, name: str, price: float) -> None:
        result = self.services.update_one(
            {"service_id": service_id},
            {"$set": {"name": name, "price": price, "updated_at": now()}},
        )
        if result.matched_count == 0:
            raise NotFoundError(f"Service {service_id} not found")

    def delete_product(self, product_id: str) -> None:
        # Order lines keep their own name/price snapshot, nothing to cascade.
        if self.products.delete_one({"product_id": product_id}).deleted_count == 0:
            raise NotFoundError(f"Product {product_id} not found")
        log.info("Deleted product %s", product_id)

    def delete_service(self, service_id: str) -> None:
        if self.services.delete_one({"service_id": service_id}).deleted_count == 0:
            raise NotFoundError(f"Service {service_id} not found")
        log.info("Deleted service %s", service_id)

    # ----- stock -----

    def decrement_stock(self, product_id: str, quantity: int, policy: Optional[str] = None) -> dict:
        """Take `quantity` units of a product off the shelf.

        The decrement is a single conditional update (stock >= quantity), so
        two orders racing for the same product can never both succeed on the
        same units. When there is not enough stock:

        - policy "reject" raises InsufficientStockError and leaves stock alone;
        - policy "floor" sets stock to 0 instead of going negative.

        `policy` defaults to the configured STOCK_POLICY. Returns a record of
        the change: product_id, previous, stock, decremented.
        """
        policy = policy or config.STOCK_POLICY
        if policy not in config.STOCK_POLICIES:
            raise ValidationFailure(f"Unknown stock policy: {policy}")
        if quantity <= 0:
            raise ValidationFailure("Quantity must be positive")
        for _ in range(_DECREMENT_ATTEMPTS):
            doc = self.products.find_one_and_update(
                {"product_id": product_id, "stock": {"$gte": quantity}},
                {"$inc": {"stock": -quantity}, "$set": {"updated_at": now()}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                return {
                    "product_id": product_id,
                    "previous": doc["stock"] + quantity,
                    "stock": doc["stock"],
                    "decremented": quantity,
                }

            current = self.products.find_one({"product_id": product_id})
            if current is None:
                raise NotFoundError(f"Product {product_id} not found")
            if policy == "reject":
                raise InsufficientStockError(product_id, current.get("stock", 0), quantity)

            doc = self.products.find_one_and_update(
                {"product_id": product_id, "stock": {"$lt": quantity}},
                {"$set": {"stock": 0, "updated_at": now()}},
                return_document=ReturnDocument.BEFORE,
            )
            if doc is not None:
                log.warning(
                    "Stock for %s floored at 0 (had %s, requested %s)",
                    product_id, doc["stock"], quantity,
                )
                return {
                    "product_id": product_id,
                    "previous": doc["stock"],
                    "stock": 0,
                    "decremented": doc["stock"],
                }
            # restocked between the two updates, try the plain decrement again
        raise WorkshopError(f"Stock for {product_id} kept changing, gave up after {_DECREMENT_ATTEMPTS} attempts")
