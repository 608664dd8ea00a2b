from datetime import date, datetime, timezone

from conftest import place_order
from poolorders import reports
from poolorders.models import Dealer, FactoryLocation


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_month_starts_cross_year_boundary():
    starts = reports.month_starts(date(2026, 2, 10))
    assert starts == [
        date(2025, 9, 1), date(2025, 10, 1), date(2025, 11, 1),
        date(2025, 12, 1), date(2026, 1, 1), date(2026, 2, 1),
    ]


def test_monthly_series_zero_filled_without_orders():
    series = reports.monthly_series([], date(2026, 3, 15))
    assert [b["label"] for b in series] == ["Oct", "Nov", "Dec", "Jan", "Feb", "Mar"]
    assert [b["key"] for b in series][-1] == "2026-03"
    assert all(b["count"] == 0 for b in series)


def test_monthly_series_counts_and_ignores_older_orders():
    created = [_utc(2026, 3, 1, 8), _utc(2026, 3, 31, 23), _utc(2025, 10, 2), _utc(2025, 9, 30)]
    series = {b["key"]: b["count"] for b in reports.monthly_series(created, date(2026, 3, 15))}
    assert series["2026-03"] == 2
    assert series["2025-10"] == 1
    assert "2025-09" not in series


def test_status_totals_include_every_status():
    totals = reports.status_totals(["APPROVED", "APPROVED", "CANCELED"])
    assert totals == {
        "total": 3,
        "PENDING_PAYMENT_APPROVAL": 0,
        "APPROVED": 2,
        "IN_PRODUCTION": 0,
        "PRE_SHIPPING": 0,
        "COMPLETED": 0,
        "CANCELED": 1,
    }


def test_pool_stock_summary_zero_buckets_and_sums():
    factories = [FactoryLocation(id="f1", name="East"), FactoryLocation(id="f2", name="West")]
    rows = [("f1", "READY", 3), ("f1", "READY", 2), ("f1", "DAMAGED", 1), ("gone", "READY", 9)]

    summary = reports.pool_stock_summary(factories, rows)

    assert summary[0] == {
        "factory_id": "f1",
        "factory_name": "East",
        "totals": {"READY": 5, "RESERVED": 0, "IN_PRODUCTION": 0, "DAMAGED": 1},
    }
    assert summary[1]["totals"] == {"READY": 0, "RESERVED": 0, "IN_PRODUCTION": 0, "DAMAGED": 0}


def test_onboarding_progress_half_done():
    dealer = Dealer(
        id="d1",
        name="Acme Pools",
        phone="555-0100",
        address="1 Main St",
        city="Albany",
        state="NY",
        agreement_signed_at=_utc(2026, 1, 5),
    )

    progress = reports.onboarding_progress(dealer, orders_count=0)

    assert progress["progress"] == 50
    assert [s["done"] for s in progress["steps"]] == [True, False, True, False]


def test_onboarding_progress_blank_profile_field():
    dealer = Dealer(id="d1", name="Acme", phone=" ", address="1 Main", city="Albany", state="NY", tax_doc_url="/x.pdf")
    progress = reports.onboarding_progress(dealer, orders_count=2)
    assert [s["key"] for s in progress["steps"] if s["done"]] == ["tax", "firstOrder"]
    assert progress["progress"] == 50


async def test_dealer_metrics_only_count_own_orders(db, world):
    db.now = _utc(2026, 1, 20)
    await place_order(db, world)
    await place_order(db, world, status="APPROVED")
    await place_order(db, world, dealer=world.other_dealer)

    metrics = await reports.dealer_metrics(db, world.dealer, today=date(2026, 1, 31))

    assert metrics["totals"]["total"] == 2
    assert metrics["totals"]["APPROVED"] == 1
    assert metrics["monthly"][-1] == {"key": "2026-01", "label": "Jan", "count": 2}
    assert len(metrics["recent"]) == 2
    assert metrics["dealer"]["name"] == "Acme Pools"


async def test_dealer_metrics_without_orders(db, world):
    metrics = await reports.dealer_metrics(db, world.dealer, today=date(2026, 1, 31))
    assert metrics["totals"]["total"] == 0
    assert len(metrics["monthly"]) == 6
    assert metrics["recent"] == []


async def test_recent_orders_capped_at_six(db, world):
    for _ in range(8):
        await place_order(db, world)
    metrics = await reports.dealer_metrics(db, world.dealer, today=date(2026, 1, 31))
    assert len(metrics["recent"]) == 6
    assert metrics["recent"][0]["model"] == "Laguna 16"


async def test_admin_metrics_by_factory(db, world):
    await place_order(db, world, factory_location_id=world.factory.id)
    await place_order(db, world, dealer=world.other_dealer, factory_location_id=world.factory.id, status="CANCELED")
    await place_order(db, world)

    metrics = await reports.admin_metrics(db, today=date(2026, 1, 31))

    assert metrics["totals"]["total"] == 3
    by_factory = {f["factory_name"]: f["totals"] for f in metrics["by_factory"]}
    assert by_factory["Factory East"]["total"] == 2
    assert by_factory["Factory East"]["CANCELED"] == 1
    assert by_factory["Factory West"]["total"] == 0


async def test_onboarding_for_counts_orders(db, world):
    await place_order(db, world)
    result = await reports.onboarding_for(db, world.dealer)
    steps = {s["key"]: s["done"] for s in result["steps"]}
    assert steps["firstOrder"] is True
    assert steps["profile"] is False
