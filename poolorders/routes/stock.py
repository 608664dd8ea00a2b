from datetime import date

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import BaseModel, Field

from poolorders import inventory, orders, reports
from poolorders.auth import Identity, Operation, require
from poolorders.db import Database, get_db

router = APIRouter(prefix="/admin", tags=["stock"])


class ItemBody(BaseModel):
    sku: str
    name: str
    uom: str = "ea"
    min_stock: int = Field(default=0, ge=0)
    category_id: str | None = None


class ItemPatch(BaseModel):
    name: str | None = None
    uom: str | None = None
    min_stock: int | None = Field(default=None, ge=0)
    category_id: str | None = Field(default=None, description="null moves the item out of its category")
    active: bool | None = None


class CategoryBody(BaseModel):
    name: str


class CategoryPatch(BaseModel):
    name: str | None = None
    active: bool | None = None


class LocationBody(BaseModel):
    name: str


class AdjustBody(BaseModel):
    item_id: str
    location_id: str
    on_hand: int = Field(..., ge=0, description="New on-hand quantity; the ledger records the delta")
    notes: str | None = None


class SheetBody(BaseModel):
    location_id: str
    sheet_date: date = Field(..., alias="date")


class SheetPatch(BaseModel):
    notes: str | None = None


class LinePatch(BaseModel):
    item_id: str
    qty_to_order: int = Field(..., ge=0, description="0 removes the line")


class DailyLineBody(LinePatch):
    location_id: str
    sheet_date: date = Field(..., alias="date")


class PoolStockBody(BaseModel):
    factory_id: str
    pool_model_id: str
    color_id: str | None = None
    status: str = Field(..., description="READY, RESERVED, IN_PRODUCTION or DAMAGED")
    quantity: int = Field(..., gt=0)
    eta: date | None = None
    notes: str | None = None


class PoolStockPatch(BaseModel):
    quantity: int | None = Field(default=None, ge=0, description="New quantity; the ledger records the delta")
    status: str | None = None
    color_id: str | None = Field(default=None, description="null clears the color")
    eta: date | None = None
    notes: str | None = None
    txn_note: str | None = Field(default=None, description="Note for the ledger row")


# ---- categories ----

@router.get("/inventory/categories")
async def list_categories(
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_categories(db)


@router.post("/inventory/categories", status_code=201)
async def create_category(
    body: CategoryBody,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.create_category(db, body.name)


@router.get("/inventory/categories/{category_id}")
async def get_category(
    category_id: str,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.get_category(db, category_id)


@router.patch("/inventory/categories/{category_id}")
async def update_category(
    category_id: str,
    body: CategoryPatch,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.update_category(db, category_id, body.model_dump(exclude_unset=True))


@router.delete("/inventory/categories/{category_id}")
async def delete_category(
    category_id: str,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    await inventory.delete_category(db, category_id)
    return {"ok": True}


# ---- parts inventory ----

@router.get("/inventory/items")
async def list_items(
    category_id: str | None = None,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_items(db, category_id)


@router.post("/inventory/items", status_code=201)
async def create_item(
    body: ItemBody,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.create_item(db, body.sku, body.name, body.uom, body.min_stock, body.category_id)


@router.patch("/inventory/items/{item_id}")
async def update_item(
    item_id: str,
    body: ItemPatch,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.update_item(db, item_id, body.model_dump(exclude_unset=True))


@router.get("/inventory/locations")
async def list_locations(
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_locations(db)


@router.post("/inventory/locations", status_code=201)
async def create_location(
    body: LocationBody,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.create_location(db, body.name)


@router.get("/inventory/stock")
async def list_stock(
    location_id: str | None = None,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_stock(db, location_id)


@router.get("/inventory/txns")
async def list_txns(
    item_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_txns(db, item_id, limit)


@router.post("/inventory/adjust")
async def adjust_stock(
    body: AdjustBody,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    stock, txn = await inventory.adjust_stock(db, identity, body.item_id, body.location_id, body.on_hand, body.notes)
    return {"stock": stock, "txn": txn}


# ---- reorder sheets ----

@router.get("/inventory/reorder-sheets")
async def list_reorder_sheets(
    location_id: str | None = None,
    sheet_date: date | None = Query(default=None, alias="date"),
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_reorder_sheets(db, location_id, sheet_date)


@router.post("/inventory/reorder-sheets")
async def open_reorder_sheet(
    body: SheetBody,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.open_reorder_sheet(db, body.location_id, body.sheet_date)


@router.get("/inventory/reorder-sheets/{sheet_id}")
async def get_reorder_sheet(
    sheet_id: str,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    sheet, lines = await inventory.get_reorder_sheet(db, sheet_id)
    return {"sheet": sheet, "lines": lines}


@router.patch("/inventory/reorder-sheets/{sheet_id}")
async def update_reorder_sheet(
    sheet_id: str,
    body: SheetPatch,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.update_reorder_sheet(db, sheet_id, body.notes)


@router.delete("/inventory/reorder-sheets/{sheet_id}")
async def delete_reorder_sheet(
    sheet_id: str,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    await inventory.delete_reorder_sheet(db, sheet_id)
    return {"ok": True}


@router.get("/inventory/reorder-sheets/{sheet_id}/lines")
async def list_reorder_lines(
    sheet_id: str,
    q: str | None = None,
    category_id: str | None = None,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    sheet, lines = await inventory.list_reorder_lines(db, sheet_id, q, category_id)
    return {"sheet": sheet, "items": lines}


def _line_response(line) -> dict:
    if line is None:
        return {"ok": True, "deleted": True}
    return {"ok": True, "line": line}


@router.patch("/inventory/reorder-sheets/{sheet_id}/lines")
async def set_reorder_line(
    sheet_id: str,
    body: LinePatch,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return _line_response(await inventory.set_reorder_qty(db, sheet_id, body.item_id, body.qty_to_order))


@router.post("/inventory/reorder-lines")
async def set_daily_reorder_line(
    body: DailyLineBody,
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    line = await inventory.set_daily_reorder_qty(db, body.location_id, body.sheet_date, body.item_id, body.qty_to_order)
    return _line_response(line)


@router.get("/inventory/daily")
async def daily_inventory(
    location_id: str,
    sheet_date: date = Query(..., alias="date"),
    identity: Identity = Depends(require(Operation.INVENTORY_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.daily_inventory(db, location_id, sheet_date)


# ---- pool stock ----

@router.get("/pool-stock")
async def list_pool_stock(
    factory_id: str | None = None,
    pool_model_id: str | None = None,
    color_id: str | None = None,
    status: str | None = None,
    include_zero: bool = False,
    identity: Identity = Depends(require(Operation.POOL_STOCK_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_pool_stock(db, factory_id, pool_model_id, color_id, status, include_zero)


@router.get("/pool-stock/summary")
async def pool_stock_summary(
    identity: Identity = Depends(require(Operation.POOL_STOCK_MANAGE)),
    db: Database = Depends(get_db),
):
    """Per active factory: total quantity in every stock status, zero when nothing is stocked."""
    return await reports.pool_stock_summary_for(db)


@router.post("/pool-stock", status_code=201)
async def add_pool_stock(
    body: PoolStockBody,
    identity: Identity = Depends(require(Operation.POOL_STOCK_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.add_pool_stock(
        db,
        identity,
        body.factory_id,
        body.pool_model_id,
        body.color_id,
        body.status,
        body.quantity,
        body.eta,
        body.notes,
    )


@router.patch("/pool-stock/{stock_id}")
async def update_pool_stock(
    stock_id: str,
    body: PoolStockPatch,
    identity: Identity = Depends(require(Operation.POOL_STOCK_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.update_pool_stock(db, identity, stock_id, body.model_dump(exclude_unset=True))


@router.get("/pool-stock/{stock_id}/txns")
async def pool_stock_txns(
    stock_id: str,
    identity: Identity = Depends(require(Operation.POOL_STOCK_MANAGE)),
    db: Database = Depends(get_db),
):
    return await inventory.list_pool_stock_txns(db, stock_id)


@router.post("/pool-stock/{stock_id}/photo")
async def upload_pool_stock_photo(
    stock_id: str,
    file: UploadFile = File(...),
    identity: Identity = Depends(require(Operation.POOL_STOCK_MANAGE)),
    db: Database = Depends(get_db),
):
    stock = await inventory.upload_pool_stock_photo(db, stock_id, await orders.read_upload(file))
    return {"id": stock.id, "image_url": stock.image_url}
