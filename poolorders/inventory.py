"""
Factory inventory (parts by location, grouped in categories, with daily reorder sheets) and
finished-pool stock. Every quantity change writes its ledger row in the same transaction as the stock row.
"""
import logging
from datetime import date

from poolorders import audit, storage
from poolorders.auth import Identity
from poolorders.errors import Conflict, NotFound, ValidationError
from poolorders.models import (
    POOL_STOCK_STATUSES,
    InventoryCategory,
    InventoryItem,
    InventoryLocation,
    InventoryStock,
    InventoryTxn,
    PoolStock,
    PoolStockTxn,
    ReorderLine,
    ReorderSheet,
)
from poolorders.orders import Upload

logger = logging.getLogger(__name__)

TXN_ADD = "ADD"
TXN_ADJUST = "ADJUST"
UNCATEGORIZED = "UNCATEGORIZED"


def _non_negative(value, what: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {what}")
    if number < 0:
        raise ValidationError(f"{what} must be >= 0")
    return number


def _clean(value) -> str | None:
    return (value or "").strip() or None


# ---- categories ----

def _category_name(value) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("name is required")
    return name


async def create_category(db, name: str) -> InventoryCategory:
    name = _category_name(name)
    async with db.transaction() as repo:
        return await repo.insert_inventory_category(name)


async def list_categories(db) -> list[InventoryCategory]:
    async with db.connection() as repo:
        return await repo.list_inventory_categories()


async def get_category(db, category_id: str) -> InventoryCategory:
    async with db.connection() as repo:
        category = await repo.get_inventory_category(category_id)
    if category is None:
        raise NotFound("Category not found")
    return category


async def update_category(db, category_id: str, fields: dict) -> InventoryCategory:
    changes = {}
    if "name" in fields:
        changes["name"] = _category_name(fields["name"])
    if fields.get("active") is not None:
        changes["active"] = bool(fields["active"])
    if not changes:
        raise ValidationError("No valid fields to update")
    async with db.transaction() as repo:
        category = await repo.update_inventory_category(category_id, changes)
    if category is None:
        raise NotFound("Category not found")
    return category


async def delete_category(db, category_id: str) -> None:
    """Only empty categories can go; items must be moved first."""
    async with db.transaction() as repo:
        category = await repo.get_inventory_category(category_id)
        if category is None:
            raise NotFound("Category not found")
        if category.item_count:
            raise ValidationError("Cannot delete category with items. Move items first.")
        await repo.delete_inventory_category(category_id)
    logger.info("Inventory category %s deleted", category_id)


# ---- parts inventory ----

async def _check_category(repo, category_id: str | None) -> str | None:
    category_id = (category_id or "").strip() or None
    if category_id and await repo.get_inventory_category(category_id) is None:
        raise ValidationError("Unknown category")
    return category_id


async def create_item(
    db, sku: str, name: str, uom: str = "ea", min_stock: int = 0, category_id: str | None = None
) -> InventoryItem:
    sku, name = (sku or "").strip(), (name or "").strip()
    if not sku or not name:
        raise ValidationError("sku and name are required")
    async with db.transaction() as repo:
        category_id = await _check_category(repo, category_id)
        return await repo.insert_inventory_item(
            sku, name, (uom or "ea").strip(), _non_negative(min_stock, "min_stock"), category_id
        )


async def list_items(db, category_id: str | None = None) -> list[InventoryItem]:
    async with db.connection() as repo:
        return await repo.list_inventory_items(category_id)


async def update_item(db, item_id: str, fields: dict) -> InventoryItem:
    changes = {}
    if "name" in fields:
        changes["name"] = (fields["name"] or "").strip()
        if not changes["name"]:
            raise ValidationError("name is required")
    if fields.get("uom") is not None:
        changes["uom"] = fields["uom"].strip() or "ea"
    if fields.get("min_stock") is not None:
        changes["min_stock"] = _non_negative(fields["min_stock"], "min_stock")
    if fields.get("active") is not None:
        changes["active"] = bool(fields["active"])
    async with db.transaction() as repo:
        if "category_id" in fields:
            changes["category_id"] = await _check_category(repo, fields["category_id"])
        if not changes:
            raise ValidationError("No valid fields to update")
        item = await repo.update_inventory_item(item_id, changes)
    if item is None:
        raise NotFound("Inventory item not found")
    return item


async def create_location(db, name: str) -> InventoryLocation:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    async with db.transaction() as repo:
        return await repo.insert_inventory_location(name)


async def list_locations(db) -> list[InventoryLocation]:
    async with db.connection() as repo:
        return await repo.list_inventory_locations()


async def list_stock(db, location_id: str | None = None) -> list[InventoryStock]:
    async with db.connection() as repo:
        return await repo.list_inventory_stocks(location_id)


async def list_txns(db, item_id: str | None = None, limit: int = 100) -> list[InventoryTxn]:
    async with db.connection() as repo:
        return await repo.list_inventory_txns(item_id, min(max(limit, 1), 500))


async def adjust_stock(
    db, identity: Identity, item_id: str, location_id: str, on_hand: int, notes: str | None = None
) -> tuple[InventoryStock, InventoryTxn]:
    """Set on-hand for item at location; the ledger row records the signed delta."""
    target = _non_negative(on_hand, "on_hand")
    async with db.transaction() as repo:
        if await repo.get_inventory_item(item_id) is None:
            raise NotFound("Inventory item not found")
        if await repo.get_inventory_location(location_id) is None:
            raise NotFound("Inventory location not found")
        current = await repo.get_inventory_stock(item_id, location_id)
        delta = target - (current.on_hand if current else 0)
        stock = await repo.upsert_inventory_stock(item_id, location_id, target)
        txn = await repo.insert_inventory_txn(TXN_ADJUST, delta, item_id, location_id, notes, identity.user_id)

    logger.info("Inventory %s@%s set to %d (%+d)", item_id, location_id, target, delta)
    await audit.audit_log(
        db,
        audit.INVENTORY_ADJUSTED,
        f"Inventory item {item_id} at {location_id} set to {target}",
        actor=identity,
        meta={"item_id": item_id, "location_id": location_id, "delta": delta, "on_hand": target},
    )
    return stock, txn


# ---- reorder sheets ----

async def _location(repo, location_id: str) -> InventoryLocation:
    location = await repo.get_inventory_location(location_id)
    if location is None:
        raise NotFound("Inventory location not found")
    return location


async def list_reorder_sheets(
    db, location_id: str | None = None, sheet_date: date | None = None
) -> list[ReorderSheet]:
    async with db.connection() as repo:
        return await repo.list_reorder_sheets(location_id, sheet_date)


async def open_reorder_sheet(db, location_id: str, sheet_date: date) -> ReorderSheet:
    """Return the sheet for (location, day), creating it on first use."""
    async with db.transaction() as repo:
        await _location(repo, location_id)
        return await repo.get_or_create_reorder_sheet(location_id, sheet_date)


async def get_reorder_sheet(db, sheet_id: str) -> tuple[ReorderSheet, list[ReorderLine]]:
    async with db.connection() as repo:
        sheet = await repo.get_reorder_sheet(sheet_id)
        if sheet is None:
            raise NotFound("Sheet not found")
        return sheet, await repo.list_reorder_lines(sheet_id)


async def update_reorder_sheet(db, sheet_id: str, notes: str | None) -> ReorderSheet:
    async with db.transaction() as repo:
        sheet = await repo.update_reorder_sheet_notes(sheet_id, _clean(notes))
    if sheet is None:
        raise NotFound("Sheet not found")
    return sheet


async def delete_reorder_sheet(db, sheet_id: str) -> None:
    async with db.transaction() as repo:
        if not await repo.delete_reorder_sheet(sheet_id):
            raise NotFound("Sheet not found")


async def list_reorder_lines(
    db, sheet_id: str, q: str | None = None, category_id: str | None = None
) -> tuple[ReorderSheet, list[ReorderLine]]:
    async with db.connection() as repo:
        sheet = await repo.get_reorder_sheet(sheet_id)
        if sheet is None:
            raise NotFound("Sheet not found")
        lines = await repo.list_reorder_lines(sheet_id, (q or "").strip() or None, (category_id or "").strip() or None)
    return sheet, lines


async def _set_line(repo, sheet_id: str, item_id: str, qty_to_order: int) -> ReorderLine | None:
    if await repo.get_inventory_item(item_id) is None:
        raise NotFound("Inventory item not found")
    if qty_to_order == 0:
        await repo.delete_reorder_line(sheet_id, item_id)
        return None
    return await repo.upsert_reorder_line(sheet_id, item_id, qty_to_order)


async def set_reorder_qty(db, sheet_id: str, item_id: str, qty_to_order) -> ReorderLine | None:
    """Set quantity to order for one item on the sheet; 0 removes the line and returns None."""
    qty = _non_negative(qty_to_order, "qty_to_order")
    item_id = (item_id or "").strip()
    if not item_id:
        raise ValidationError("item_id is required")
    async with db.transaction() as repo:
        if await repo.get_reorder_sheet(sheet_id) is None:
            raise NotFound("Sheet not found")
        return await _set_line(repo, sheet_id, item_id, qty)


async def set_daily_reorder_qty(
    db, location_id: str, sheet_date: date, item_id: str, qty_to_order
) -> ReorderLine | None:
    """Same as set_reorder_qty, addressed by location and day instead of sheet id."""
    qty = _non_negative(qty_to_order, "qty_to_order")
    async with db.transaction() as repo:
        await _location(repo, location_id)
        sheet = await repo.get_or_create_reorder_sheet(location_id, sheet_date)
        return await _set_line(repo, sheet.id, item_id, qty)


async def daily_inventory(db, location_id: str, sheet_date: date) -> dict:
    """
    Daily count sheet for one location: every active item grouped by category name, with its
    on-hand quantity and the quantity to order on that day's sheet.
    """
    async with db.transaction() as repo:
        await _location(repo, location_id)
        sheet = await repo.get_or_create_reorder_sheet(location_id, sheet_date)
        rows = await repo.daily_inventory_rows(location_id, sheet.id)

    groups: dict[str, list[dict]] = {}
    for item, on_hand, qty_to_order in rows:
        groups.setdefault(item.category_name or UNCATEGORIZED, []).append(
            {
                "id": item.id,
                "sku": item.sku,
                "name": item.name,
                "uom": item.uom,
                "on_hand": on_hand,
                "qty_to_order": qty_to_order,
            }
        )
    return {
        "location_id": location_id,
        "date": sheet_date.isoformat(),
        "sheet_id": sheet.id,
        "categories": [{"category": name, "items": items} for name, items in groups.items()],
    }


# ---- pool stock ----

def parse_stock_status(value: str | None) -> str:
    status = (value or "").strip().upper()
    if status not in POOL_STOCK_STATUSES:
        raise ValidationError(f"Invalid stock status: {value}")
    return status


async def add_pool_stock(
    db,
    identity: Identity,
    factory_id: str,
    pool_model_id: str,
    color_id: str | None,
    status: str,
    quantity: int,
    eta: date | None = None,
    notes: str | None = None,
) -> PoolStock:
    status = parse_stock_status(status)
    quantity = _non_negative(quantity, "quantity")
    if quantity == 0:
        raise ValidationError("quantity must be > 0")
    async with db.transaction() as repo:
        if await repo.get_factory(factory_id) is None:
            raise ValidationError("Unknown factory")
        if await repo.get_pool_model(pool_model_id) is None:
            raise ValidationError("Unknown pool model")
        if color_id and await repo.get_color(color_id) is None:
            raise ValidationError("Unknown color")
        stock = await repo.add_pool_stock(factory_id, pool_model_id, color_id or None, status, quantity, eta, notes)
        await repo.insert_pool_stock_txn(stock.id, TXN_ADD, quantity, notes, identity.user_id)
    return stock


async def update_pool_stock(db, identity: Identity, stock_id: str, fields: dict) -> PoolStock:
    """
    Edit quantity, status, color, eta or notes of one stock row. fields holds only the keys the caller
    sent; txn_note labels the ledger row.

    A quantity change writes an ADJUST row with the signed delta. A status or color change without one
    writes a zero ADJUST row. Moving onto another row's factory/model/color/status is a Conflict.
    """
    changes = {}
    if "quantity" in fields:
        changes["quantity"] = _non_negative(fields["quantity"], "quantity")
    if fields.get("status"):
        changes["status"] = parse_stock_status(fields["status"])
    if "eta" in fields:
        changes["eta"] = fields["eta"]
    if "notes" in fields:
        changes["notes"] = _clean(fields["notes"])
    if "color_id" in fields:
        changes["color_id"] = _clean(fields["color_id"])
        changes["color_key"] = changes["color_id"] or "NONE"
    if not changes:
        raise ValidationError("No valid fields to update")
    txn_note = _clean(fields.get("txn_note"))

    async with db.transaction() as repo:
        current = await repo.lock_pool_stock(stock_id)
        if current is None:
            raise NotFound("Pool stock not found")
        if changes.get("color_id") and await repo.get_color(changes["color_id"]) is None:
            raise ValidationError("Unknown color")
        status = changes.get("status", current.status)
        color_id = changes["color_id"] if "color_id" in changes else current.color_id
        moved = status != current.status or color_id != current.color_id
        if moved:
            clash = await repo.find_pool_stock(current.factory_id, current.pool_model_id, color_id, status)
            if clash is not None and clash.id != stock_id:
                raise Conflict("Stock row already exists for that factory/model/color/status")
        delta = changes["quantity"] - current.quantity if "quantity" in changes else 0
        stock = await repo.update_pool_stock(stock_id, changes)
        if delta:
            await repo.insert_pool_stock_txn(stock_id, TXN_ADJUST, delta, txn_note or changes.get("notes"), identity.user_id)
        elif moved:
            await repo.insert_pool_stock_txn(stock_id, TXN_ADJUST, 0, txn_note or "Status/color updated", identity.user_id)

    if delta:
        logger.info("Pool stock %s set to %d (%+d) by %s", stock_id, stock.quantity, delta, identity.user_id)
    return stock


async def list_pool_stock(
    db,
    factory_id: str | None = None,
    pool_model_id: str | None = None,
    color_id: str | None = None,
    status: str | None = None,
    include_zero: bool = False,
) -> list[PoolStock]:
    if status is not None:
        status = parse_stock_status(status)
    async with db.connection() as repo:
        return await repo.list_pool_stock(factory_id, pool_model_id, color_id, status, include_zero)


async def list_in_stock(db, factory_id: str | None = None, pool_model_id: str | None = None) -> list[PoolStock]:
    """Dealer view: finished pools ready to ship."""
    return await list_pool_stock(db, factory_id=factory_id, pool_model_id=pool_model_id, status="READY")


async def list_pool_stock_txns(db, stock_id: str) -> list[PoolStockTxn]:
    async with db.connection() as repo:
        if await repo.get_pool_stock(stock_id) is None:
            raise NotFound("Pool stock not found")
        return await repo.list_pool_stock_txns(stock_id)


async def upload_pool_stock_photo(db, stock_id: str, upload: Upload) -> PoolStock:
    if not upload.data:
        raise ValidationError("file is required")
    if not (upload.content_type or "").lower().startswith("image/"):
        raise ValidationError("image file required")
    async with db.connection() as repo:
        if await repo.get_pool_stock(stock_id) is None:
            raise NotFound("Pool stock not found")
    url = await storage.put_file(f"pool-stock/{stock_id}", upload.filename, upload.data, upload.content_type)
    async with db.transaction() as repo:
        stock = await repo.update_pool_stock(stock_id, {"image_url": url})
    if stock is None:
        raise NotFound("Pool stock not found")
    return stock
