"""
Administrative audit log. Writes are best-effort: a failed audit insert never fails the action.
"""
from typing import Any

from poolorders.auth import Identity
from poolorders.side_effects import Outcome, fire_and_forget

ORDER_CREATED = "ORDER_CREATED"
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
FACTORY_REASSIGNED = "FACTORY_REASSIGNED"
DEALER_APPROVED = "DEALER_APPROVED"
DEALER_REVOKED = "DEALER_REVOKED"
INVENTORY_ADJUSTED = "INVENTORY_ADJUSTED"


async def _write(db, action: str, message: str, actor: Identity | None, dealer_id, order_id, meta):
    async with db.connection() as repo:
        return await repo.insert_audit(
            action=action,
            message=message,
            actor_user_id=actor.user_id if actor else None,
            actor_email=actor.email if actor else None,
            actor_role=actor.role if actor else None,
            dealer_id=dealer_id,
            order_id=order_id,
            meta=meta,
        )


async def audit_log(
    db,
    action: str,
    message: str,
    actor: Identity | None = None,
    dealer_id: str | None = None,
    order_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> Outcome:
    return await fire_and_forget(
        "audit",
        _write(db, action, message, actor, dealer_id, order_id, meta),
        action=action,
        order_id=order_id,
    )


async def list_recent(db, limit: int = 100):
    async with db.connection() as repo:
        return await repo.list_audit(limit)
