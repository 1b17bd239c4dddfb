"""
Database Schemas

Workshop (bengkel) models: spare parts, services and service orders.
Each document model maps to a MongoDB collection (product, service, order,
order_item); the *Create/*Update models are request bodies.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemKind(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"


class OrderStatus(str, Enum):
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


class WorkflowState(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"


class ItemRef(BaseModel):
    """Reference to a catalog item, tagged with the collection it lives in."""
    kind: ItemKind
    item_id: str = Field(..., min_length=1)


# ----- Catalog -----

class Product(BaseModel):
    """Collection: product"""
    product_id: str = Field(..., description="Shop-assigned id, e.g. P-1712345678901-4F2K")
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, description="Unit price")
    stock: int = Field(0, ge=0, description="Units on the shelf")


class Service(BaseModel):
    """Collection: service"""
    service_id: str = Field(..., description="Shop-assigned id, e.g. J-1712345678901-9QX1")
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)


class CatalogItemCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: ItemKind
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    stock: Optional[int] = Field(None, ge=0, description="Ignored for services")


class ProductUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)


class ServiceUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)


# ----- Orders -----

class OrderLineIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    item_id: str = Field(..., min_length=1)
    item_name: str = Field(..., min_length=1)
    item_kind: ItemKind
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0, description="Unit price at the time of the order")

    @property
    def ref(self) -> ItemRef:
        return ItemRef(kind=self.item_kind, item_id=self.item_id)

    @property
    def subtotal(self) -> float:
        return self.quantity * self.price


class OrderCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    vehicle_type: str = Field(..., min_length=1, description="e.g. 'Honda Vario 125'")
    plate_number: str = Field(..., min_length=1)
    complaint: str = Field(..., min_length=1)
    items: List[OrderLineIn] = Field(..., min_length=1)


class Order(BaseModel):
    """Collection: order"""
    order_number: str
    customer_name: str
    customer_phone: str
    vehicle_type: str
    plate_number: str
    complaint: str
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.IN_PROGRESS
    workflow_state: WorkflowState = WorkflowState.PENDING
    lines_requested: int = Field(..., ge=1)
    failure_reason: Optional[str] = None


class OrderLine(BaseModel):
    """Collection: order_item"""
    order_id: str
    position: int = Field(..., ge=0)
    item_id: str
    item_name: str
    item_kind: ItemKind
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    subtotal: float = Field(..., ge=0)


class StatusUpdate(BaseModel):
    status: OrderStatus


class OrderDetails(BaseModel):
    order: dict
    items: List[dict]
