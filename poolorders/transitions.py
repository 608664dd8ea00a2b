"""
Order state machine.

A transition reads the order and its attached document types, checks the requirement table for the
target status, then writes the new status with a compare-and-swap on the status it read. The history
row is written in a savepoint of the same transaction: if it fails the status change still commits.
If another request moved the order in between, the whole check is retried from a fresh read. Dealer
notification, email and audit entry run after commit and are best-effort.

Only the target's requirements are checked, whatever the current status: forward skips are allowed.
Terminal statuses (COMPLETED, CANCELED) are never left.
"""
import logging
from dataclasses import dataclass
from datetime import date

from poolorders import audit, history
from poolorders.auth import Identity
from poolorders.config import settings
from poolorders.errors import Conflict, DocumentMissing, FieldMissing, NotFound, ValidationError
from poolorders.mailer import email_dealer, status_changed_email
from poolorders.metrics import (
    order_history_write_failures_total,
    order_transition_conflicts_total,
    order_transitions_rejected_total,
    order_transitions_total,
)
from poolorders.models import Order, OrderHistory
from poolorders.notifications import notify_dealer
from poolorders.order_state import (
    OrderStatus,
    first_unmet_requirement,
    is_terminal,
    label_status,
)

logger = logging.getLogger(__name__)

SHIPPING_METHODS = ("PICK_UP", "QUOTE")
MIN_PRIORITY, MAX_PRIORITY = 1, 9999


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    previous: OrderStatus
    history: OrderHistory | None


class _StaleStatus(Exception):
    """The compare-and-swap lost: the stored status no longer matches what was read."""


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value}")


def _reject(target: OrderStatus, reason: str, error: Exception) -> Exception:
    order_transitions_rejected_total.labels(target=target.value, reason=reason).inc()
    return error


async def _attempt(db, identity: Identity, order_id: str, target: OrderStatus, note: str | None) -> TransitionResult:
    async with db.transaction() as repo:
        order = await repo.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        current = order.status
        if is_terminal(current):
            raise _reject(target, "terminal", Conflict(f"Order is {current.value}; its status can no longer change"))
        if current == target:
            raise _reject(target, "unchanged", Conflict(f"Order is already {target.value}"))

        if target != OrderStatus.CANCELED:
            doc_types = await repo.list_doc_types(order_id)
            unmet = first_unmet_requirement(target.value, doc_types, order.model_dump())
            if unmet is not None:
                kind, name = unmet
                if kind == "document":
                    raise _reject(target, "document", DocumentMissing(name, target.value))
                raise _reject(target, "field", FieldMissing(name, target.value))

        if not await repo.update_order_status(order_id, current.value, target.value):
            raise _StaleStatus()
        entry = await _record_history(repo, identity, order_id, target, note)
        updated = await repo.get_order(order_id)
    return TransitionResult(order=updated, previous=current, history=entry)


async def _record_history(repo, identity: Identity, order_id: str, target: OrderStatus, note: str | None) -> OrderHistory | None:
    try:
        async with repo.savepoint():
            return await history.record(
                repo,
                order_id,
                target.value,
                note or f"Status changed to {target.value}",
                identity.user_id,
            )
    except Exception:
        order_history_write_failures_total.inc()
        logger.exception("History entry for order %s -> %s was not recorded", order_id, target.value)
        return None


async def transition(db, identity: Identity, order_id: str, target: str, note: str | None = None) -> TransitionResult:
    status = parse_status(target)
    note = (note or "").strip() or None
    attempts = max(settings.transition_max_attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            result = await _attempt(db, identity, order_id, status, note)
            break
        except _StaleStatus:
            order_transition_conflicts_total.inc()
            logger.info("Order %s changed during transition to %s (attempt %d/%d)", order_id, status.value, attempt, attempts)
    else:
        raise _reject(status, "conflict", Conflict("Order status changed concurrently, please retry"))

    order_transitions_total.labels(target=status.value).inc()
    logger.info("Order %s: %s -> %s by %s", order_id, result.previous.value, status.value, identity.user_id)
    await _announce(db, identity, result, note)
    return result


async def _announce(db, identity: Identity, result: TransitionResult, note: str | None) -> None:
    order = result.order
    label = label_status(order.status.value)
    await notify_dealer(
        db,
        order.dealer_id,
        "Order status updated",
        f"Order {order.id} is now {label}",
        order_id=order.id,
    )
    subject, body = status_changed_email(order.id, order.status.value, note)
    await email_dealer(db, order.dealer_id, subject, body)
    await audit.audit_log(
        db,
        audit.ORDER_STATUS_CHANGED,
        f"Status of order {order.id} -> {order.status.value}",
        actor=identity,
        dealer_id=order.dealer_id,
        order_id=order.id,
        meta={"prev": result.previous.value, "next": order.status.value, "note": note},
    )


async def approve(db, identity: Identity, order_id: str, note: str | None = None) -> TransitionResult:
    return await transition(db, identity, order_id, OrderStatus.APPROVED.value, note)


async def cancel(db, identity: Identity, order_id: str, note: str | None = None) -> TransitionResult:
    return await transition(db, identity, order_id, OrderStatus.CANCELED.value, note)


# ---- admin overrides: metadata only, no requirement gate ----

async def reassign_factory(db, identity: Identity, order_id: str, fields: dict) -> Order:
    """Update factory_location_id and/or shipping_method. Keys absent from fields are left as they are."""
    changes = {}
    if "factory_location_id" in fields:
        changes["factory_location_id"] = fields["factory_location_id"] or None
    if "shipping_method" in fields:
        method = fields["shipping_method"] or None
        if method is not None and method not in SHIPPING_METHODS:
            raise ValidationError("Invalid shipping method")
        changes["shipping_method"] = method

    async with db.transaction() as repo:
        factory_id = changes.get("factory_location_id")
        if factory_id and await repo.get_factory(factory_id) is None:
            raise ValidationError("Unknown factory")
        before = await repo.get_order(order_id)
        if before is None:
            raise NotFound("Order not found")
        order = await repo.update_order(order_id, changes)

    await audit.audit_log(
        db,
        audit.FACTORY_REASSIGNED,
        f"Order {order_id} factory set to {order.factory_name or 'none'}",
        actor=identity,
        dealer_id=order.dealer_id,
        order_id=order_id,
        meta={"prev": before.factory_location_id, "next": order.factory_location_id, "shipping_method": order.shipping_method},
    )
    return order


def clamp_priority(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid productionPriority")
    return max(MIN_PRIORITY, min(MAX_PRIORITY, number))


async def update_schedule(db, identity: Identity, order_id: str, fields: dict) -> Order:
    changes = {}
    if "production_priority" in fields:
        changes["production_priority"] = clamp_priority(fields["production_priority"])
    if "requested_ship_date" in fields:
        ship = fields["requested_ship_date"]
        if ship is not None and not isinstance(ship, date):
            raise ValidationError("Invalid requestedShipDate")
        changes["requested_ship_date"] = ship
    async with db.transaction() as repo:
        order = await repo.update_order(order_id, changes)
        if order is None:
            raise NotFound("Order not found")
    return order


async def batch_update_priority(db, identity: Identity, updates: list[tuple[str, int | None]]) -> int:
    """Set production priority on many orders at once; all or nothing."""
    if not updates:
        raise ValidationError("Missing updates")
    async with db.transaction() as repo:
        for order_id, priority in updates:
            if await repo.update_order(order_id, {"production_priority": clamp_priority(priority)}) is None:
                raise NotFound(f"Order {order_id} not found")
    return len(updates)


async def set_serial_number(db, identity: Identity, order_id: str, serial_number: str | None) -> Order:
    serial = (serial_number or "").strip() or None
    async with db.transaction() as repo:
        order = await repo.update_order(order_id, {"serial_number": serial})
        if order is None:
            raise NotFound("Order not found")
    return order
