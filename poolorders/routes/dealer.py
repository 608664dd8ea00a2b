from typing import Any

from fastapi import APIRouter, Depends, File, Form, Header, Query, UploadFile
from pydantic import BaseModel, Field

from poolorders import dealers, history, inventory, notifications, orders, reports
from poolorders.auth import Identity, Operation, require
from poolorders.db import Database, get_db

router = APIRouter(prefix="/dealer", tags=["dealer"])


class ProfileBody(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None


class OnboardingBody(BaseModel):
    onboarding: dict[str, Any] = Field(default_factory=dict, description="Free-form onboarding answers")


class SignatureBody(BaseModel):
    signature_data_url: str = Field(..., description="data:image/png;base64,... from the signature pad")


# ---- orders ----

@router.post("/orders", status_code=201)
async def create_order(
    pool_model_id: str = Form(...),
    color_id: str = Form(...),
    delivery_address: str = Form(...),
    notes: str | None = Form(default=None),
    shipping_method: str | None = Form(default=None),
    requested_ship_date: str | None = Form(default=None),
    blueprint_markers: str | None = Form(default=None, description="JSON array of {type, x, y}"),
    hardware_skimmer: bool = Form(default=False),
    hardware_autocover: bool = Form(default=False),
    hardware_returns: bool = Form(default=False),
    hardware_main_drains: bool = Form(default=False),
    payment_proof: UploadFile | None = File(default=None),
    idempotency_key: str | None = Header(default=None),
    identity: Identity = Depends(require(Operation.ORDER_CREATE)),
    db: Database = Depends(get_db),
):
    """
    Place an order. Same Idempotency-Key twice -> 409 on the second request.
    A payment proof file, when sent, is attached as the PROOF_OF_PAYMENT document.
    """
    draft = orders.OrderDraft(
        pool_model_id=pool_model_id,
        color_id=color_id,
        delivery_address=delivery_address,
        notes=notes,
        shipping_method=shipping_method,
        requested_ship_date=requested_ship_date,
        blueprint_markers=blueprint_markers,
        hardware_skimmer=hardware_skimmer,
        hardware_autocover=hardware_autocover,
        hardware_returns=hardware_returns,
        hardware_main_drains=hardware_main_drains,
    )
    proof = await orders.read_upload(payment_proof)
    return await orders.create_order(db, identity, draft, proof, idempotency_key)


@router.get("/orders")
async def list_orders(
    status: str | None = None,
    identity: Identity = Depends(require(Operation.ORDER_READ_OWN)),
    db: Database = Depends(get_db),
):
    return await orders.list_orders(db, identity, status=status)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    identity: Identity = Depends(require(Operation.ORDER_READ_OWN)),
    db: Database = Depends(get_db),
):
    return await orders.get_order(db, identity, order_id)


@router.get("/orders/{order_id}/history")
async def order_history(
    order_id: str,
    identity: Identity = Depends(require(Operation.ORDER_READ_OWN)),
    db: Database = Depends(get_db),
):
    return await history.list_for_order(db, identity, order_id)


@router.get("/orders/{order_id}/summary")
async def order_summary(
    order_id: str,
    identity: Identity = Depends(require(Operation.ORDER_READ_OWN)),
    db: Database = Depends(get_db),
):
    """Pool model blueprint with the marker placement chosen for this order."""
    return await orders.order_summary(db, identity, order_id)


@router.get("/orders/{order_id}/media")
async def order_media(
    order_id: str,
    identity: Identity = Depends(require(Operation.ORDER_READ_OWN)),
    db: Database = Depends(get_db),
):
    return await orders.list_media(db, identity, order_id)


@router.get("/metrics")
async def dealer_metrics(
    identity: Identity = Depends(require(Operation.ORDER_READ_OWN)),
    db: Database = Depends(get_db),
):
    return await reports.dealer_metrics(db, identity)


@router.get("/in-stock")
async def in_stock(
    factory_id: str | None = None,
    pool_model_id: str | None = None,
    identity: Identity = Depends(require(Operation.POOL_STOCK_VIEW_READY)),
    db: Database = Depends(get_db),
):
    return await inventory.list_in_stock(db, factory_id, pool_model_id)


# ---- profile & onboarding ----

@router.get("/profile")
async def get_profile(
    identity: Identity = Depends(require(Operation.DEALER_SELF)),
    db: Database = Depends(get_db),
):
    return await dealers.get_dealer(db, identity, identity.dealer_id)


@router.patch("/profile")
async def update_profile(
    body: ProfileBody,
    identity: Identity = Depends(require(Operation.DEALER_SELF)),
    db: Database = Depends(get_db),
):
    return await dealers.update_profile(db, identity, body.model_dump(exclude_unset=True))


@router.get("/onboarding")
async def get_onboarding(
    identity: Identity = Depends(require(Operation.DEALER_SELF)),
    db: Database = Depends(get_db),
):
    return await reports.onboarding_for(db, identity)


@router.patch("/onboarding")
async def save_onboarding(
    body: OnboardingBody,
    identity: Identity = Depends(require(Operation.DEALER_SELF)),
    db: Database = Depends(get_db),
):
    return {"onboarding": await dealers.save_onboarding(db, identity, body.onboarding)}


@router.post("/tax-doc")
async def upload_tax_doc(
    file: UploadFile = File(...),
    identity: Identity = Depends(require(Operation.DEALER_SELF)),
    db: Database = Depends(get_db),
):
    upload = await orders.read_upload(file)
    return {"tax_doc_url": await dealers.upload_tax_doc(db, identity, upload)}


@router.post("/agreement/sign")
async def sign_agreement(
    body: SignatureBody,
    identity: Identity = Depends(require(Operation.DEALER_SELF)),
    db: Database = Depends(get_db),
):
    return await dealers.sign_agreement(db, identity, body.signature_data_url)


# ---- notifications ----

@router.get("/notifications")
async def list_notifications(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1),
    identity: Identity = Depends(require(Operation.NOTIFICATIONS_OWN)),
    db: Database = Depends(get_db),
):
    return await notifications.list_for_dealer(db, identity, page, page_size)


@router.get("/notifications/unread-count")
async def unread_count(
    identity: Identity = Depends(require(Operation.NOTIFICATIONS_OWN)),
    db: Database = Depends(get_db),
) -> dict:
    return {"count": await notifications.unread_count(db, identity)}


@router.post("/notifications/read-all")
async def mark_all_read(
    identity: Identity = Depends(require(Operation.NOTIFICATIONS_OWN)),
    db: Database = Depends(get_db),
) -> dict:
    return {"updated": await notifications.mark_all_read(db, identity)}


@router.post("/notifications/{notification_id}/read")
async def mark_read(
    notification_id: str,
    identity: Identity = Depends(require(Operation.NOTIFICATIONS_OWN)),
    db: Database = Depends(get_db),
) -> dict:
    await notifications.mark_read(db, identity, notification_id)
    return {"status": "ok"}
