"""
Persisted record shapes. Repository rows are validated into these; routes return them directly.
"""
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from poolorders.order_state import OrderStatus

Role = Literal["DEALER", "ADMIN", "SUPERADMIN"]
PoolStockStatus = Literal["READY", "RESERVED", "IN_PRODUCTION", "DAMAGED"]
POOL_STOCK_STATUSES: tuple[str, ...] = ("READY", "RESERVED", "IN_PRODUCTION", "DAMAGED")


class User(BaseModel):
    id: str
    email: str
    role: Role
    dealer_id: str | None = None
    approved: bool = False
    created_at: datetime | None = None


class Dealer(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    tax_doc_url: str | None = None
    agreement_url: str | None = None
    agreement_signature_url: str | None = None
    agreement_signed_at: datetime | None = None
    onboarding: dict[str, Any] = Field(default_factory=dict)
    onboarding_completed_at: datetime | None = None
    created_at: datetime | None = None


class FactoryLocation(BaseModel):
    id: str
    name: str
    active: bool = True


class PoolModel(BaseModel):
    id: str
    name: str
    length_ft: float | None = None
    width_ft: float | None = None
    depth_ft: float | None = None
    shape: str | None = None
    image_url: str | None = None
    blueprint_url: str | None = None


class Color(BaseModel):
    id: str
    name: str
    swatch_url: str | None = None


class BlueprintMarker(BaseModel):
    type: Literal["skimmer", "return"]
    x: float = Field(ge=0, le=100)
    y: float = Field(ge=0, le=100)


class Order(BaseModel):
    id: str
    dealer_id: str
    pool_model_id: str
    color_id: str
    factory_location_id: str | None = None
    status: OrderStatus
    serial_number: str | None = None
    production_priority: int | None = None
    requested_ship_date: date | None = None
    delivery_address: str
    notes: str | None = None
    payment_proof_url: str | None = None
    shipping_method: Literal["PICK_UP", "QUOTE"] | None = None
    hardware_skimmer: bool = False
    hardware_autocover: bool = False
    hardware_returns: bool = False
    hardware_main_drains: bool = False
    blueprint_markers: list[BlueprintMarker] | None = None
    created_at: datetime
    updated_at: datetime | None = None

    # Joined display names, filled by listing queries
    dealer_name: str | None = None
    dealer_email: str | None = None
    pool_model_name: str | None = None
    color_name: str | None = None
    factory_name: str | None = None


class OrderHistory(BaseModel):
    id: int
    order_id: str
    status: OrderStatus
    comment: str | None = None
    user_id: str | None = None
    created_at: datetime


class OrderMedia(BaseModel):
    id: str
    order_id: str
    file_url: str
    type: str
    doc_type: str | None = None
    visible_to_dealer: bool = True
    uploaded_by: str | None = None
    uploaded_at: datetime


class Notification(BaseModel):
    id: str
    dealer_id: str
    order_id: str | None = None
    title: str
    message: str
    read: bool = False
    created_at: datetime


class AuditLog(BaseModel):
    id: int
    action: str
    message: str
    actor_user_id: str | None = None
    actor_email: str | None = None
    actor_role: str | None = None
    dealer_id: str | None = None
    order_id: str | None = None
    meta: dict[str, Any] | None = None
    created_at: datetime


class InventoryCategory(BaseModel):
    id: str
    name: str
    active: bool = True
    created_at: datetime | None = None
    item_count: int | None = None


class InventoryItem(BaseModel):
    id: str
    sku: str
    name: str
    category_id: str | None = None
    uom: str = "ea"
    min_stock: int = 0
    active: bool = True

    category_name: str | None = None


class InventoryLocation(BaseModel):
    id: str
    name: str
    active: bool = True


class InventoryStock(BaseModel):
    item_id: str
    location_id: str
    on_hand: int
    updated_at: datetime | None = None


class InventoryTxn(BaseModel):
    id: int
    type: str
    qty: int
    item_id: str
    location_id: str
    notes: str | None = None
    actor_user_id: str | None = None
    created_at: datetime


class ReorderSheet(BaseModel):
    id: str
    location_id: str
    sheet_date: date
    notes: str | None = None
    created_at: datetime | None = None

    location_name: str | None = None


class ReorderLine(BaseModel):
    id: int
    sheet_id: str
    item_id: str
    qty_to_order: int

    sku: str | None = None
    item_name: str | None = None
    uom: str | None = None
    min_stock: int | None = None
    category_id: str | None = None
    category_name: str | None = None


class PoolStock(BaseModel):
    id: str
    factory_id: str
    pool_model_id: str
    color_id: str | None = None
    status: PoolStockStatus
    quantity: int
    eta: date | None = None
    image_url: str | None = None
    notes: str | None = None
    updated_at: datetime | None = None

    factory_name: str | None = None
    pool_model_name: str | None = None
    color_name: str | None = None


class PoolStockTxn(BaseModel):
    id: int
    stock_id: str
    type: str
    quantity: int
    notes: str | None = None
    actor_user_id: str | None = None
    created_at: datetime
