"""
Dealer notifications. The system creates them best-effort on order and account events;
dealers can only read them and flip the read flag.
"""
from poolorders.auth import Identity
from poolorders.errors import NotFound
from poolorders.models import Notification
from poolorders.side_effects import Outcome, fire_and_forget

MAX_PAGE_SIZE = 100


async def _create(db, dealer_id: str, title: str, message: str, order_id: str | None) -> Notification:
    async with db.connection() as repo:
        return await repo.insert_notification(dealer_id, title, message, order_id)


async def notify_dealer(db, dealer_id: str | None, title: str, message: str, order_id: str | None = None) -> Outcome:
    """Create a notification on its own connection, after the triggering write has committed."""
    if not dealer_id:
        return Outcome()
    return await fire_and_forget(
        "notification",
        _create(db, dealer_id, title, message, order_id),
        dealer_id=dealer_id,
        order_id=order_id,
    )


async def list_for_dealer(db, identity: Identity, page: int = 1, page_size: int = 20) -> list[Notification]:
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    async with db.connection() as repo:
        return await repo.list_notifications(identity.dealer_id, (page - 1) * page_size, page_size)


async def unread_count(db, identity: Identity) -> int:
    async with db.connection() as repo:
        return await repo.count_unread(identity.dealer_id)


async def mark_read(db, identity: Identity, notification_id: str) -> None:
    async with db.transaction() as repo:
        if not await repo.mark_notification_read(identity.dealer_id, notification_id):
            raise NotFound("Notification not found")


async def mark_all_read(db, identity: Identity) -> int:
    async with db.transaction() as repo:
        return await repo.mark_all_notifications_read(identity.dealer_id)
