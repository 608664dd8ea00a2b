from datetime import date

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from pydantic import BaseModel, Field

from poolorders import audit, dealers, history, orders, reports, transitions, users
from poolorders.auth import Identity, Operation, require
from poolorders.config import settings
from poolorders.db import Database, get_db
from poolorders.errors import ValidationError
from poolorders.queue import replay_redis_dlq
from poolorders.sqs_client import replay_dlq_to_main

router = APIRouter(prefix="/admin", tags=["admin"])


class StatusBody(BaseModel):
    status: str = Field(..., description="Target pipeline status")
    comment: str | None = Field(default=None, description="History comment; defaults to 'Status changed to <status>'")


class NoteBody(BaseModel):
    note: str | None = None


class CommentBody(BaseModel):
    comment: str = Field(..., description="Free-text history entry, recorded against the current status")


class FactoryBody(BaseModel):
    factory_location_id: str | None = None
    shipping_method: str | None = Field(default=None, description="PICK_UP or QUOTE")


class ScheduleBody(BaseModel):
    production_priority: int | None = Field(default=None, description="Clamped to 1..9999")
    requested_ship_date: date | None = None


class PriorityUpdate(BaseModel):
    order_id: str
    production_priority: int | None = None


class BatchScheduleBody(BaseModel):
    updates: list[PriorityUpdate]


class SerialBody(BaseModel):
    serial_number: str | None = None


class DealerBody(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None


class ApprovalBody(BaseModel):
    approved: bool


class RoleBody(BaseModel):
    role: str


def _transition_response(result: transitions.TransitionResult) -> dict:
    return {"order": result.order, "previous_status": result.previous, "history": result.history}


# ---- orders ----

@router.get("/orders")
async def list_orders(
    status: str | None = None,
    dealer_id: str | None = None,
    factory_id: str | None = None,
    identity: Identity = Depends(require(Operation.ORDER_READ_ANY)),
    db: Database = Depends(get_db),
):
    return await orders.list_orders(db, identity, status=status, dealer_id=dealer_id, factory_id=factory_id)


@router.get("/orders/export")
async def export_orders(
    q: str | None = None,
    status: str | None = None,
    dealer: str | None = Query(default=None, description="Exact dealer name"),
    factory: str | None = Query(default=None, description="Exact factory name"),
    sort: str | None = Query(default=None, description="created_at or status"),
    dir: str | None = Query(default=None, description="asc or desc"),
    identity: Identity = Depends(require(Operation.ORDER_READ_ANY)),
    db: Database = Depends(get_db),
):
    rows = await orders.export_orders(db, q, status, dealer, factory, sort, dir)
    return Response(
        content=orders.orders_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": 'attachment; filename="orders-export.csv"',
            "Cache-Control": "no-store",
        },
    )


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    identity: Identity = Depends(require(Operation.ORDER_READ_ANY)),
    db: Database = Depends(get_db),
):
    return await orders.get_order(db, identity, order_id)


@router.patch("/orders/{order_id}/status")
async def change_status(
    order_id: str,
    body: StatusBody,
    identity: Identity = Depends(require(Operation.ORDER_TRANSITION)),
    db: Database = Depends(get_db),
):
    """
    Move the order to body.status. 422 names the first missing document or field,
    409 when the order is terminal, already there, or kept changing underneath us.
    """
    result = await transitions.transition(db, identity, order_id, body.status, body.comment)
    return _transition_response(result)


@router.post("/orders/{order_id}/approve")
async def approve_order(
    order_id: str,
    body: NoteBody | None = None,
    identity: Identity = Depends(require(Operation.ORDER_TRANSITION)),
    db: Database = Depends(get_db),
):
    result = await transitions.approve(db, identity, order_id, body.note if body else None)
    return _transition_response(result)


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: NoteBody | None = None,
    identity: Identity = Depends(require(Operation.ORDER_TRANSITION)),
    db: Database = Depends(get_db),
):
    result = await transitions.cancel(db, identity, order_id, body.note if body else None)
    return _transition_response(result)


@router.get("/orders/{order_id}/history")
async def order_history(
    order_id: str,
    identity: Identity = Depends(require(Operation.ORDER_READ_ANY)),
    db: Database = Depends(get_db),
):
    return await history.list_for_order(db, identity, order_id)


@router.post("/orders/{order_id}/history", status_code=201)
async def annotate_order(
    order_id: str,
    body: CommentBody,
    identity: Identity = Depends(require(Operation.ORDER_ANNOTATE)),
    db: Database = Depends(get_db),
):
    return await history.annotate(db, identity, order_id, body.comment)


@router.post("/orders/{order_id}/media", status_code=201)
async def upload_media(
    order_id: str,
    file: UploadFile = File(...),
    type: str | None = Form(default=None),
    doc_type: str | None = Form(default=None),
    visible_to_dealer: str | None = Form(default=None),
    identity: Identity = Depends(require(Operation.MEDIA_UPLOAD)),
    db: Database = Depends(get_db),
):
    upload = await orders.read_upload(file)
    return await orders.upload_media(db, identity, order_id, upload, type, doc_type, visible_to_dealer)


@router.get("/orders/{order_id}/media")
async def list_media(
    order_id: str,
    identity: Identity = Depends(require(Operation.ORDER_READ_ANY)),
    db: Database = Depends(get_db),
):
    return await orders.list_media(db, identity, order_id)


@router.patch("/orders/{order_id}/factory")
async def reassign_factory(
    order_id: str,
    body: FactoryBody,
    identity: Identity = Depends(require(Operation.ORDER_REASSIGN)),
    db: Database = Depends(get_db),
):
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("Nothing to update")
    return await transitions.reassign_factory(db, identity, order_id, fields)


@router.patch("/orders/{order_id}/schedule")
async def update_schedule(
    order_id: str,
    body: ScheduleBody,
    identity: Identity = Depends(require(Operation.ORDER_REASSIGN)),
    db: Database = Depends(get_db),
):
    return await transitions.update_schedule(db, identity, order_id, body.model_dump(exclude_unset=True))


@router.post("/orders/batch-schedule")
async def batch_schedule(
    body: BatchScheduleBody,
    identity: Identity = Depends(require(Operation.ORDER_REASSIGN)),
    db: Database = Depends(get_db),
):
    updates = [(u.order_id, u.production_priority) for u in body.updates]
    updated = await transitions.batch_update_priority(db, identity, updates)
    return {"updated": updated}


@router.patch("/orders/{order_id}/serial")
async def set_serial(
    order_id: str,
    body: SerialBody,
    identity: Identity = Depends(require(Operation.ORDER_REASSIGN)),
    db: Database = Depends(get_db),
):
    return await transitions.set_serial_number(db, identity, order_id, body.serial_number)


@router.get("/metrics")
async def admin_metrics(
    identity: Identity = Depends(require(Operation.REPORTS_ADMIN)),
    db: Database = Depends(get_db),
):
    return await reports.admin_metrics(db)


# ---- dealers ----

@router.get("/dealers")
async def list_dealers(
    identity: Identity = Depends(require(Operation.DEALER_MANAGE)),
    db: Database = Depends(get_db),
):
    return await dealers.list_dealers(db)


@router.get("/dealers/overview")
async def dealers_overview(
    identity: Identity = Depends(require(Operation.DEALER_MANAGE)),
    db: Database = Depends(get_db),
):
    """Every dealer with its onboarding stage: pending approval, waiting on the signed agreement, or active."""
    return await dealers.dealers_overview(db)


@router.post("/dealers", status_code=201)
async def create_dealer(
    body: DealerBody,
    identity: Identity = Depends(require(Operation.DEALER_MANAGE)),
    db: Database = Depends(get_db),
):
    return await dealers.create_dealer(db, identity, body.model_dump(exclude_none=True))


@router.get("/dealers/{dealer_id}")
async def get_dealer(
    dealer_id: str,
    identity: Identity = Depends(require(Operation.DEALER_MANAGE)),
    db: Database = Depends(get_db),
):
    return await dealers.get_dealer(db, identity, dealer_id)


@router.post("/dealers/{dealer_id}/approval")
async def set_dealer_approval(
    dealer_id: str,
    body: ApprovalBody,
    identity: Identity = Depends(require(Operation.DEALER_MANAGE)),
    db: Database = Depends(get_db),
):
    return await dealers.set_approval(db, identity, dealer_id, body.approved)


# ---- audit, ops, users ----

@router.get("/audit")
async def audit_logs(
    limit: int = Query(default=100, ge=1, le=500),
    identity: Identity = Depends(require(Operation.AUDIT_READ)),
    db: Database = Depends(get_db),
):
    return await audit.list_recent(db, limit)


@router.post("/dlq/replay")
async def dlq_replay(
    limit: int = Query(default=100, ge=1, le=1000),
    identity: Identity = Depends(require(Operation.OPS_MANAGE)),
) -> dict:
    """
    Replay dead-lettered email jobs to the main queue with attempts reset.
    Uses the SQS DLQ when SQS is configured, otherwise the Redis DLQ list.
    Returns number of messages replayed.
    """
    if settings.sqs_email_queue_url:
        replayed = await replay_dlq_to_main(limit=limit)
    else:
        replayed = await replay_redis_dlq(limit=limit)
    return {"status": "ok", "replayed": replayed}


@router.get("/users")
async def list_users(
    identity: Identity = Depends(require(Operation.USERS_MANAGE)),
    db: Database = Depends(get_db),
):
    return await users.list_users(db)


@router.patch("/users/{user_id}/role")
async def change_user_role(
    user_id: str,
    body: RoleBody,
    identity: Identity = Depends(require(Operation.USERS_MANAGE)),
    db: Database = Depends(get_db),
):
    return await users.change_role(db, identity, user_id, body.role)
