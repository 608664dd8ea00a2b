"""
Order history: one immutable row per status change, order creation or manual comment.
Rows are only ever inserted; reads are newest-first.
"""
from poolorders.auth import Identity
from poolorders.errors import NotFound, ValidationError
from poolorders.models import OrderHistory
from poolorders.repository import Repository


async def record(repo: Repository, order_id: str, status: str, comment: str | None, user_id: str | None) -> OrderHistory:
    """Append a history row on the caller's connection, so it commits or rolls back with the caller's writes."""
    return await repo.insert_history(order_id, status, comment, user_id)


async def list_for_order(db, identity: Identity, order_id: str) -> list[OrderHistory]:
    async with db.connection() as repo:
        order = await repo.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        identity.ensure_owns(order.dealer_id, "Order")
        return await repo.list_history(order_id)


async def annotate(db, identity: Identity, order_id: str, comment: str) -> OrderHistory:
    """Manual admin entry: records a comment against the order's current status without moving it."""
    comment = (comment or "").strip()
    if not comment:
        raise ValidationError("comment is required")
    async with db.transaction() as repo:
        order = await repo.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        return await record(repo, order_id, order.status.value, comment, identity.user_id)
