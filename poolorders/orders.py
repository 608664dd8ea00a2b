"""
Dealer order placement and order/media reads, tenant-scoped. Admin CSV export of the order list.
"""
import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import date, timedelta

from fastapi import UploadFile
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from poolorders import audit, history, storage
from poolorders.auth import Identity
from poolorders.errors import Conflict, Forbidden, NotFound, ValidationError
from poolorders.mailer import email_dealer, order_created_email
from poolorders.models import BlueprintMarker, Order, OrderMedia
from poolorders.notifications import notify_dealer
from poolorders.order_state import DocType, MediaType, OrderStatus
from poolorders.redis_client import claim_idempotency_key, order_claim_key, release_idempotency_key

logger = logging.getLogger(__name__)

MIN_SHIP_LEAD = timedelta(weeks=4)
SHIPPING_METHODS = ("PICK_UP", "QUOTE")
EXPORT_HEADER = (
    "Order ID", "Status", "Delivery Address", "Created At", "Updated At",
    "Dealer Name", "Dealer Email", "Pool Model", "Color", "Factory",
)
EXPORT_SORTS = {"created_at": "created_at", "createdAt": "created_at", "status": "status"}

_markers = TypeAdapter(list[BlueprintMarker])


@dataclass
class Upload:
    filename: str | None
    content_type: str | None
    data: bytes


async def read_upload(file: UploadFile | None) -> Upload | None:
    if file is None:
        return None
    return Upload(filename=file.filename, content_type=file.content_type, data=await file.read())


@dataclass
class OrderDraft:
    pool_model_id: str
    color_id: str
    delivery_address: str
    notes: str | None = None
    shipping_method: str | None = None
    requested_ship_date: str | None = None
    blueprint_markers: str | None = None
    hardware_skimmer: bool = False
    hardware_autocover: bool = False
    hardware_returns: bool = False
    hardware_main_drains: bool = False


def parse_ship_date(raw: str | None, today: date) -> date | None:
    if not raw:
        return None
    try:
        parsed = date.fromisoformat(raw)
    except ValueError:
        raise ValidationError("Invalid requested ship date format")
    if parsed < today + MIN_SHIP_LEAD:
        raise ValidationError("Requested ship date must be at least 4 weeks in the future")
    return parsed


def parse_markers(raw: str | None) -> list[dict] | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("Invalid blueprint markers JSON")
    if not isinstance(parsed, list):
        raise ValidationError("Blueprint markers must be an array")
    try:
        markers = _markers.validate_python(parsed)
    except PydanticValidationError:
        raise ValidationError("Invalid blueprint marker")
    return [m.model_dump() for m in markers] or None


def _validate_draft(draft: OrderDraft, today: date) -> dict:
    pool_model_id = (draft.pool_model_id or "").strip()
    color_id = (draft.color_id or "").strip()
    address = (draft.delivery_address or "").strip()
    if not pool_model_id or not color_id or not address:
        raise ValidationError("Missing required fields (pool_model_id, color_id, delivery_address)")
    shipping_method = (draft.shipping_method or "").strip() or None
    if shipping_method is not None and shipping_method not in SHIPPING_METHODS:
        raise ValidationError("Invalid shipping method")
    return {
        "pool_model_id": pool_model_id,
        "color_id": color_id,
        "delivery_address": address,
        "notes": (draft.notes or "").strip() or None,
        "shipping_method": shipping_method,
        "requested_ship_date": parse_ship_date((draft.requested_ship_date or "").strip(), today),
        "blueprint_markers": parse_markers((draft.blueprint_markers or "").strip()),
        "hardware_skimmer": draft.hardware_skimmer,
        "hardware_autocover": draft.hardware_autocover,
        "hardware_returns": draft.hardware_returns,
        "hardware_main_drains": draft.hardware_main_drains,
    }


async def create_order(
    db,
    identity: Identity,
    draft: OrderDraft,
    payment_proof: Upload | None = None,
    idempotency_key: str | None = None,
    today: date | None = None,
) -> Order:
    data = _validate_draft(draft, today or date.today())

    async with db.connection() as repo:
        user = await repo.get_user(identity.user_id)
        if user is None or not user.approved:
            raise Forbidden("Dealer account pending approval")
        if await repo.get_pool_model(data["pool_model_id"]) is None:
            raise ValidationError("Unknown pool model")
        if await repo.get_color(data["color_id"]) is None:
            raise ValidationError("Unknown color")

    claim = None
    if idempotency_key:
        claim = order_claim_key(identity.dealer_id, idempotency_key)
        if not await claim_idempotency_key(claim):
            raise Conflict("Duplicate order request")

    try:
        proof_url = None
        if payment_proof is not None and payment_proof.data:
            proof_url = await storage.put_file(
                f"orders/payment/{identity.dealer_id}", payment_proof.filename, payment_proof.data, payment_proof.content_type
            )
        async with db.transaction() as repo:
            order = await repo.insert_order(
                dict(
                    data,
                    dealer_id=identity.dealer_id,
                    status=OrderStatus.PENDING_PAYMENT_APPROVAL.value,
                    payment_proof_url=proof_url,
                )
            )
            await history.record(repo, order.id, order.status.value, "Order created", identity.user_id)
            if proof_url:
                await repo.insert_media(
                    order.id, proof_url, MediaType.PROOF.value, DocType.PROOF_OF_PAYMENT.value, True, identity.user_id
                )
    except Exception:
        if claim:
            await release_idempotency_key(claim)
        raise

    logger.info("Order %s created by dealer %s", order.id, order.dealer_id)
    await notify_dealer(db, order.dealer_id, "Order received", f"Order {order.id} was received and is pending payment approval", order.id)
    subject, body = order_created_email(order.id, order.pool_model_name, order.color_name)
    await email_dealer(db, order.dealer_id, subject, body)
    await audit.audit_log(
        db,
        audit.ORDER_CREATED,
        f"Order {order.id} created by dealer",
        actor=identity,
        dealer_id=order.dealer_id,
        order_id=order.id,
        meta={"shipping_method": order.shipping_method, "has_payment_proof": bool(proof_url)},
    )
    return order


async def list_orders(
    db,
    identity: Identity,
    status: str | None = None,
    dealer_id: str | None = None,
    factory_id: str | None = None,
) -> list[Order]:
    if status is not None and status not in {s.value for s in OrderStatus}:
        raise ValidationError(f"Invalid status: {status}")
    if not identity.is_admin:
        if not identity.dealer_id:
            raise Forbidden("Dealer not linked to this account")
        dealer_id = identity.dealer_id
    async with db.connection() as repo:
        return await repo.list_orders(dealer_id=dealer_id, status=status, factory_id=factory_id)


async def get_order(db, identity: Identity, order_id: str) -> Order:
    async with db.connection() as repo:
        order = await repo.get_order(order_id)
    if order is None:
        raise NotFound("Order not found")
    identity.ensure_owns(order.dealer_id, "Order")
    return order


def media_type_from_mime(mime: str | None) -> MediaType:
    return MediaType.PHOTO if (mime or "").lower().startswith("image/") else MediaType.UPDATE


def parse_media_type(raw: str | None, fallback: MediaType) -> MediaType:
    value = (raw or "").strip().lower()
    try:
        return MediaType(value)
    except ValueError:
        return fallback


def parse_doc_type(raw: str | None) -> str | None:
    value = (raw or "").strip()
    if not value:
        return None
    try:
        return DocType(value).value
    except ValueError:
        raise ValidationError(f"Invalid doc type: {value}")


def parse_visible(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    value = (raw or "").strip().lower()
    if value in ("false", "0", "off", "no"):
        return False
    return True


async def upload_media(
    db,
    identity: Identity,
    order_id: str,
    upload: Upload,
    media_type: str | None = None,
    doc_type: str | None = None,
    visible_to_dealer=None,
) -> OrderMedia:
    if not upload.data:
        raise ValidationError("file is required")
    kind = parse_media_type(media_type, media_type_from_mime(upload.content_type))
    tag = parse_doc_type(doc_type)
    visible = parse_visible(visible_to_dealer)

    async with db.connection() as repo:
        if await repo.get_order(order_id) is None:
            raise NotFound("Order not found")
    url = await storage.put_file(f"orders/{order_id}", upload.filename, upload.data, upload.content_type)
    async with db.transaction() as repo:
        media = await repo.insert_media(order_id, url, kind.value, tag, visible, identity.user_id)
    logger.info("Media %s (%s) attached to order %s", media.id, tag or kind.value, order_id)
    return media


async def list_media(db, identity: Identity, order_id: str) -> list[OrderMedia]:
    async with db.connection() as repo:
        order = await repo.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        identity.ensure_owns(order.dealer_id, "Order")
        return await repo.list_media(order_id, dealer_visible_only=not identity.is_admin)


async def order_summary(db, identity: Identity, order_id: str) -> dict:
    """Blueprint and marker placement for one of the caller's own orders."""
    async with db.connection() as repo:
        order = await repo.get_order(order_id)
        if order is None or order.dealer_id != identity.dealer_id:
            raise NotFound("Order not found")
        model = await repo.get_pool_model(order.pool_model_id)
    return {
        "id": order.id,
        "pool_model": {"name": model.name, "blueprint_url": model.blueprint_url} if model else None,
        "blueprint_markers": [m.model_dump() for m in order.blueprint_markers or []],
    }


# ---- export ----

async def export_orders(
    db,
    q: str | None = None,
    status: str | None = None,
    dealer: str | None = None,
    factory: str | None = None,
    sort: str | None = None,
    direction: str | None = None,
) -> list[Order]:
    """Admin search across every tenant. Unknown sort or direction fall back to newest first."""
    column = EXPORT_SORTS.get(sort or "", "created_at")
    descending = (direction or "").lower() != "asc"
    async with db.connection() as repo:
        return await repo.search_orders(
            q=(q or "").strip() or None,
            status=status or None,
            dealer_name=dealer or None,
            factory_name=factory or None,
            sort=column,
            descending=descending,
        )


def orders_csv(rows: list[Order]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for o in rows:
        writer.writerow(
            [
                o.id,
                o.status.value,
                o.delivery_address or "",
                o.created_at.isoformat(),
                (o.updated_at or o.created_at).isoformat(),
                o.dealer_name or "",
                o.dealer_email or "",
                o.pool_model_name or "",
                o.color_name or "",
                o.factory_name or "",
            ]
        )
    return buf.getvalue()
