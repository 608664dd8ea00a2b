from datetime import date

import pytest

from poolorders import inventory
from poolorders.errors import Conflict, NotFound, ValidationError
from poolorders.orders import Upload

MONDAY = date(2026, 5, 4)


@pytest.fixture
async def part(db):
    item = await inventory.create_item(db, "RES-50", "Gelcoat resin", "gal", 10)
    location = await inventory.create_location(db, "Plant 1 - Bay A")
    return item, location


async def test_adjust_writes_stock_and_ledger_delta(db, world, part):
    item, location = part

    stock, txn = await inventory.adjust_stock(db, world.admin, item.id, location.id, 40, "cycle count")
    assert stock.on_hand == 40
    assert (txn.type, txn.qty) == ("ADJUST", 40)

    stock, txn = await inventory.adjust_stock(db, world.admin, item.id, location.id, 25)
    assert stock.on_hand == 25
    assert txn.qty == -15

    ledger = await inventory.list_txns(db, item.id)
    assert [t.qty for t in ledger] == [-15, 40]
    async with db.connection() as repo:
        assert (await repo.list_audit(1))[0].action == "INVENTORY_ADJUSTED"


async def test_failed_ledger_write_leaves_stock_untouched(db, world, part):
    item, location = part
    await inventory.adjust_stock(db, world.admin, item.id, location.id, 5)
    db.fail_next("insert_inventory_txn")

    with pytest.raises(RuntimeError):
        await inventory.adjust_stock(db, world.admin, item.id, location.id, 99)

    assert [s.on_hand for s in await inventory.list_stock(db)] == [5]
    assert len(await inventory.list_txns(db)) == 1


async def test_adjust_validation(db, world, part):
    item, location = part
    with pytest.raises(ValidationError):
        await inventory.adjust_stock(db, world.admin, item.id, location.id, -1)
    with pytest.raises(NotFound):
        await inventory.adjust_stock(db, world.admin, "missing", location.id, 1)


async def test_duplicate_sku_conflicts(db, part):
    with pytest.raises(Conflict):
        await inventory.create_item(db, "RES-50", "Other resin")


async def test_add_pool_stock_increments_same_bucket(db, world):
    args = (world.factory.id, world.model.id, world.color.id, "ready")

    first = await inventory.add_pool_stock(db, world.admin, *args, 2)
    second = await inventory.add_pool_stock(db, world.admin, *args, 3, notes="second run")

    assert first.id == second.id
    assert second.quantity == 5
    assert second.status == "READY"
    assert [t.type for t in await inventory.list_pool_stock_txns(db, first.id)] == ["ADD", "ADD"]


async def test_colorless_stock_is_its_own_bucket(db, world):
    plain = await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "READY", 1)
    colored = await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, world.color.id, "READY", 1)
    assert plain.id != colored.id


async def test_set_quantity_and_in_stock_view(db, world):
    ready = await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "READY", 4)
    await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "DAMAGED", 1)

    assert [s.id for s in await inventory.list_in_stock(db)] == [ready.id]

    updated = await inventory.update_pool_stock(db, world.admin, ready.id, {"quantity": 0, "txn_note": "sold out"})
    assert updated.quantity == 0
    assert await inventory.list_in_stock(db) == []
    assert len(await inventory.list_pool_stock(db, include_zero=True)) == 2
    txns = await inventory.list_pool_stock_txns(db, ready.id)
    assert (txns[0].type, txns[0].quantity, txns[0].notes) == ("ADJUST", -4, "sold out")


async def test_pool_stock_validation(db, world):
    with pytest.raises(ValidationError):
        await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "SOLD", 1)
    with pytest.raises(ValidationError):
        await inventory.add_pool_stock(db, world.admin, "nowhere", world.model.id, None, "READY", 1)
    with pytest.raises(ValidationError):
        await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "READY", 0)
    with pytest.raises(NotFound):
        await inventory.update_pool_stock(db, world.admin, "missing", {"quantity": 1})
    with pytest.raises(ValidationError):
        await inventory.update_pool_stock(db, world.admin, "missing", {})


async def test_quantity_edit_records_signed_delta(db, world):
    stock = await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "READY", 5)

    await inventory.update_pool_stock(db, world.admin, stock.id, {"quantity": 3})
    await inventory.update_pool_stock(db, world.admin, stock.id, {"quantity": 3, "notes": "recounted"})

    txns = await inventory.list_pool_stock_txns(db, stock.id)
    assert [(t.type, t.quantity) for t in txns] == [("ADJUST", -2), ("ADD", 5)]
    assert (await inventory.list_pool_stock(db))[0].notes == "recounted"


async def test_status_move_writes_zero_adjust(db, world):
    stock = await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "IN_PRODUCTION", 2)

    moved = await inventory.update_pool_stock(
        db, world.admin, stock.id, {"status": "ready", "color_id": world.color.id, "txn_note": "out of the mold"}
    )

    assert (moved.status, moved.color_id, moved.quantity) == ("READY", world.color.id, 2)
    txns = await inventory.list_pool_stock_txns(db, stock.id)
    assert (txns[0].type, txns[0].quantity, txns[0].notes) == ("ADJUST", 0, "out of the mold")


async def test_status_move_onto_existing_row_is_a_conflict(db, world):
    args = (db, world.admin, world.factory.id, world.model.id, None)
    ready = await inventory.add_pool_stock(*args, "READY", 1)
    reserved = await inventory.add_pool_stock(*args, "RESERVED", 1)

    with pytest.raises(Conflict):
        await inventory.update_pool_stock(db, world.admin, reserved.id, {"status": "READY", "quantity": 4})

    assert [t.type for t in await inventory.list_pool_stock_txns(db, reserved.id)] == ["ADD"]
    with pytest.raises(ValidationError):
        await inventory.update_pool_stock(db, world.admin, ready.id, {"color_id": "nope"})


async def test_category_lifecycle(db, part):
    item, _ = part
    resins = await inventory.create_category(db, "  Resins ")
    assert resins.name == "Resins"
    with pytest.raises(Conflict):
        await inventory.create_category(db, "Resins")

    moved = await inventory.update_item(db, item.id, {"category_id": resins.id, "min_stock": 12})
    assert (moved.category_name, moved.min_stock) == ("Resins", 12)
    assert (await inventory.get_category(db, resins.id)).item_count == 1
    assert [i.id for i in await inventory.list_items(db, resins.id)] == [item.id]

    with pytest.raises(ValidationError):
        await inventory.delete_category(db, resins.id)
    await inventory.update_item(db, item.id, {"category_id": None})
    await inventory.delete_category(db, resins.id)
    assert await inventory.list_categories(db) == []
    with pytest.raises(NotFound):
        await inventory.delete_category(db, resins.id)


async def test_item_edits_are_validated(db, part):
    item, _ = part
    with pytest.raises(ValidationError):
        await inventory.update_item(db, item.id, {"category_id": "nope"})
    with pytest.raises(ValidationError):
        await inventory.update_item(db, item.id, {})
    with pytest.raises(NotFound):
        await inventory.update_item(db, "missing", {"name": "Glass"})


async def test_one_reorder_sheet_per_location_and_day(db, part):
    _, location = part

    first = await inventory.open_reorder_sheet(db, location.id, MONDAY)
    again = await inventory.open_reorder_sheet(db, location.id, MONDAY)

    assert first.id == again.id
    assert again.location_name == "Plant 1 - Bay A"
    assert [s.id for s in await inventory.list_reorder_sheets(db, location.id)] == [first.id]
    with pytest.raises(NotFound):
        await inventory.open_reorder_sheet(db, "nowhere", MONDAY)


async def test_zero_quantity_removes_reorder_line(db, part):
    item, location = part
    sheet = await inventory.open_reorder_sheet(db, location.id, MONDAY)

    line = await inventory.set_reorder_qty(db, sheet.id, item.id, 6)
    assert (line.sku, line.qty_to_order) == ("RES-50", 6)
    line = await inventory.set_reorder_qty(db, sheet.id, item.id, 8)
    _, lines = await inventory.get_reorder_sheet(db, sheet.id)
    assert [(l.item_id, l.qty_to_order) for l in lines] == [(item.id, 8)]

    assert await inventory.set_reorder_qty(db, sheet.id, item.id, 0) is None
    _, lines = await inventory.list_reorder_lines(db, sheet.id)
    assert lines == []
    with pytest.raises(ValidationError):
        await inventory.set_reorder_qty(db, sheet.id, item.id, -1)
    with pytest.raises(NotFound):
        await inventory.set_reorder_qty(db, "missing", item.id, 1)


async def test_reorder_lines_filter_by_text_and_category(db, part):
    resin, location = part
    hardware = await inventory.create_category(db, "Hardware")
    skimmer = await inventory.create_item(db, "SKM-1", "Skimmer body", category_id=hardware.id)
    sheet = await inventory.open_reorder_sheet(db, location.id, MONDAY)
    await inventory.set_reorder_qty(db, sheet.id, resin.id, 3)
    await inventory.set_reorder_qty(db, sheet.id, skimmer.id, 2)

    _, by_text = await inventory.list_reorder_lines(db, sheet.id, q="res")
    _, by_category = await inventory.list_reorder_lines(db, sheet.id, category_id=hardware.id)

    assert [l.item_id for l in by_text] == [resin.id]
    assert [l.item_id for l in by_category] == [skimmer.id]


async def test_deleting_sheet_drops_its_lines(db, part):
    item, location = part
    sheet = await inventory.open_reorder_sheet(db, location.id, MONDAY)
    await inventory.set_reorder_qty(db, sheet.id, item.id, 4)
    await inventory.update_reorder_sheet(db, sheet.id, "  call supplier  ")
    assert (await inventory.get_reorder_sheet(db, sheet.id))[0].notes == "call supplier"

    await inventory.delete_reorder_sheet(db, sheet.id)

    with pytest.raises(NotFound):
        await inventory.get_reorder_sheet(db, sheet.id)
    fresh = await inventory.open_reorder_sheet(db, location.id, MONDAY)
    assert (await inventory.get_reorder_sheet(db, fresh.id))[1] == []


async def test_daily_inventory_groups_by_category(db, world, part):
    resin, location = part
    hardware = await inventory.create_category(db, "Hardware")
    skimmer = await inventory.create_item(db, "SKM-1", "Skimmer body", category_id=hardware.id)
    retired = await inventory.create_item(db, "OLD-1", "Retired part")
    await inventory.update_item(db, retired.id, {"active": False})
    await inventory.adjust_stock(db, world.admin, resin.id, location.id, 14)
    await inventory.set_daily_reorder_qty(db, location.id, MONDAY, skimmer.id, 5)

    sheet = await inventory.daily_inventory(db, location.id, MONDAY)

    assert (sheet["location_id"], sheet["date"]) == (location.id, "2026-05-04")
    assert [c["category"] for c in sheet["categories"]] == ["Hardware", "UNCATEGORIZED"]
    hardware_items, loose_items = (c["items"] for c in sheet["categories"])
    assert [(i["sku"], i["on_hand"], i["qty_to_order"]) for i in hardware_items] == [("SKM-1", 0, 5)]
    assert [(i["sku"], i["on_hand"], i["qty_to_order"]) for i in loose_items] == [("RES-50", 14, 0)]


async def test_pool_stock_photo(db, world, local_storage):
    stock = await inventory.add_pool_stock(db, world.admin, world.factory.id, world.model.id, None, "READY", 1)

    updated = await inventory.upload_pool_stock_photo(db, stock.id, Upload("shell.jpg", "image/jpeg", b"\xff\xd8"))

    assert updated.image_url.startswith(f"/uploads/pool-stock/{stock.id}/")
    assert (local_storage / updated.image_url[len("/uploads/"):]).read_bytes() == b"\xff\xd8"
    with pytest.raises(ValidationError):
        await inventory.upload_pool_stock_photo(db, stock.id, Upload("brochure.pdf", "application/pdf", b"%PDF"))
    with pytest.raises(NotFound):
        await inventory.upload_pool_stock_photo(db, "missing", Upload("a.jpg", "image/jpeg", b"x"))
