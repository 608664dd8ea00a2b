"""
Read-only projections, recomputed on every request: dealer and admin order metrics,
pool-stock summary per factory, and dealer onboarding progress.
"""
import calendar
from datetime import date, datetime, timezone
from typing import Iterable

from poolorders.auth import Identity
from poolorders.errors import NotFound
from poolorders.models import POOL_STOCK_STATUSES, Dealer, FactoryLocation, Order
from poolorders.order_state import OrderStatus

MONTHS = 6
RECENT_LIMIT = 6


def _today() -> date:
    return datetime.now(timezone.utc).date()


def month_starts(today: date, months: int = MONTHS) -> list[date]:
    """First day of each of the last `months` calendar months, oldest first, current month last."""
    starts = []
    for back in range(months - 1, -1, -1):
        index = today.year * 12 + (today.month - 1) - back
        starts.append(date(index // 12, index % 12 + 1, 1))
    return starts


def month_key(d: date | datetime) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def monthly_series(created: Iterable[datetime], today: date) -> list[dict]:
    buckets = {month_key(start): 0 for start in month_starts(today)}
    for ts in created:
        key = month_key(ts.astimezone(timezone.utc) if ts.tzinfo else ts)
        if key in buckets:
            buckets[key] += 1
    return [
        {"key": key, "label": calendar.month_abbr[int(key[5:])], "count": count}
        for key, count in buckets.items()
    ]


def status_totals(statuses: Iterable[str]) -> dict[str, int]:
    totals = {"total": 0}
    totals.update({s.value: 0 for s in OrderStatus})
    for status in statuses:
        totals["total"] += 1
        totals[status] = totals.get(status, 0) + 1
    return totals


def _recent(orders: list[Order]) -> list[dict]:
    newest = sorted(orders, key=lambda o: o.created_at, reverse=True)[:RECENT_LIMIT]
    return [
        {
            "id": o.id,
            "dealer": o.dealer_name or "-",
            "model": o.pool_model_name or "-",
            "color": o.color_name or "-",
            "factory": o.factory_name,
            "status": o.status.value,
            "created_at": o.created_at,
        }
        for o in newest
    ]


def order_metrics(orders: list[Order], today: date) -> dict:
    return {
        "totals": status_totals(o.status.value for o in orders),
        "monthly": monthly_series((o.created_at for o in orders), today),
        "recent": _recent(orders),
    }


async def dealer_metrics(db, identity: Identity, today: date | None = None) -> dict:
    async with db.connection() as repo:
        dealer = await repo.get_dealer(identity.dealer_id)
        if dealer is None:
            raise NotFound("Dealer not found")
        orders = await repo.list_orders(dealer_id=dealer.id)
    result = order_metrics(orders, today or _today())
    result["dealer"] = {"id": dealer.id, "name": dealer.name}
    return result


def factory_order_totals(factories: list[FactoryLocation], rows: Iterable[tuple[str, str, int]]) -> list[dict]:
    by_factory = {}
    for f in factories:
        base = {"total": 0}
        base.update({s.value: 0 for s in OrderStatus})
        by_factory[f.id] = {"factory_id": f.id, "factory_name": f.name, "totals": base}
    for factory_id, status, count in rows:
        entry = by_factory.get(factory_id)
        if entry is None:
            continue
        entry["totals"]["total"] += count
        entry["totals"][status] = entry["totals"].get(status, 0) + count
    return sorted(by_factory.values(), key=lambda e: e["factory_name"])


async def admin_metrics(db, today: date | None = None) -> dict:
    async with db.connection() as repo:
        orders = await repo.list_orders()
        factories = await repo.list_factories()
        rows = await repo.order_counts_by_factory()
    result = order_metrics(orders, today or _today())
    result["by_factory"] = factory_order_totals(factories, rows)
    return result


def pool_stock_summary(factories: list[FactoryLocation], rows: Iterable[tuple[str, str, int]]) -> list[dict]:
    """One entry per factory, every status bucket present and zero unless stock rows say otherwise."""
    by_factory = {
        f.id: {"factory_id": f.id, "factory_name": f.name, "totals": {s: 0 for s in POOL_STOCK_STATUSES}}
        for f in factories
    }
    for factory_id, status, quantity in rows:
        entry = by_factory.get(factory_id)
        if entry is None or status not in entry["totals"]:
            continue
        entry["totals"][status] += quantity or 0
    return list(by_factory.values())


async def pool_stock_summary_for(db) -> list[dict]:
    async with db.connection() as repo:
        factories = await repo.list_factories(active_only=True)
        rows = await repo.pool_stock_totals()
    return pool_stock_summary(factories, rows)


def onboarding_progress(dealer: Dealer, orders_count: int) -> dict:
    has_profile = all(
        (value or "").strip() for value in (dealer.name, dealer.phone, dealer.address, dealer.city, dealer.state)
    )
    steps = [
        {"key": "profile", "label": "Complete profile", "done": has_profile},
        {"key": "tax", "label": "Upload W-9 / Tax document", "done": bool(dealer.tax_doc_url)},
        {"key": "agreement", "label": "Sign dealer agreement", "done": dealer.agreement_signed_at is not None},
        {"key": "firstOrder", "label": "Place your first order", "done": orders_count > 0},
    ]
    done = sum(1 for s in steps if s["done"])
    return {"steps": steps, "progress": round(100 * done / len(steps))}


async def onboarding_for(db, identity: Identity) -> dict:
    async with db.connection() as repo:
        dealer = await repo.get_dealer(identity.dealer_id)
        if dealer is None:
            raise NotFound("Dealer not found")
        orders_count = await repo.count_orders(dealer.id)
    result = onboarding_progress(dealer, orders_count)
    result["dealer"] = {
        "id": dealer.id,
        "name": dealer.name,
        "tax_doc_url": dealer.tax_doc_url,
        "agreement_signed_at": dealer.agreement_signed_at,
        "onboarding_completed_at": dealer.onboarding_completed_at,
    }
    return result
