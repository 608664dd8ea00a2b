"""
SQL for every table, bound to one asyncpg connection. Callers decide the transaction boundary
(see db.Database); methods here never open transactions of their own. savepoint() nests one
inside the caller's transaction on request.
"""
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator

import asyncpg
from asyncpg.exceptions import UniqueViolationError

from poolorders.errors import Conflict
from poolorders.models import (
    AuditLog,
    Color,
    Dealer,
    FactoryLocation,
    InventoryCategory,
    InventoryItem,
    InventoryLocation,
    InventoryStock,
    InventoryTxn,
    Notification,
    Order,
    OrderHistory,
    OrderMedia,
    PoolModel,
    PoolStock,
    PoolStockTxn,
    ReorderLine,
    ReorderSheet,
    User,
)

DEALER_COLUMNS = (
    "name", "email", "phone", "address", "city", "state", "tax_doc_url", "agreement_url",
    "agreement_signature_url", "agreement_signed_at", "onboarding", "onboarding_completed_at",
)
ORDER_COLUMNS = (
    "factory_location_id", "serial_number", "production_priority", "requested_ship_date",
    "shipping_method", "notes", "delivery_address",
)
POOL_MODEL_COLUMNS = ("name", "length_ft", "width_ft", "depth_ft", "shape", "image_url", "blueprint_url")
COLOR_COLUMNS = ("name", "swatch_url")
FACTORY_COLUMNS = ("name", "active")
POOL_STOCK_COLUMNS = ("quantity", "status", "eta", "notes", "color_id", "color_key", "image_url")
ORDER_SORT_COLUMNS = ("created_at", "status")
ORDER_SEARCH_COLUMNS = ("o.delivery_address", "pm.name", "c.name", "d.name", "f.name", "o.status")
CATEGORY_COLUMNS = ("name", "active")
ITEM_COLUMNS = ("name", "uom", "min_stock", "category_id", "active")

ORDER_SELECT = """
    SELECT o.*, d.name AS dealer_name, d.email AS dealer_email, pm.name AS pool_model_name,
           c.name AS color_name, f.name AS factory_name
    FROM orders o
    JOIN dealers d ON d.id = o.dealer_id
    JOIN pool_models pm ON pm.id = o.pool_model_id
    JOIN colors c ON c.id = o.color_id
    LEFT JOIN factory_locations f ON f.id = o.factory_location_id
"""

ITEM_SELECT = """
    SELECT i.*, c.name AS category_name
    FROM inventory_items i
    LEFT JOIN inventory_categories c ON c.id = i.category_id
"""

SHEET_SELECT = """
    SELECT s.*, l.name AS location_name
    FROM inventory_reorder_sheets s
    JOIN inventory_locations l ON l.id = s.location_id
"""

REORDER_LINE_SELECT = """
    SELECT l.*, i.sku, i.name AS item_name, i.uom, i.min_stock, i.category_id, c.name AS category_name
    FROM inventory_reorder_lines l
    JOIN inventory_items i ON i.id = l.item_id
    LEFT JOIN inventory_categories c ON c.id = i.category_id
"""

POOL_STOCK_SELECT = """
    SELECT s.*, f.name AS factory_name, pm.name AS pool_model_name, c.name AS color_name
    FROM pool_stocks s
    JOIN factory_locations f ON f.id = s.factory_id
    JOIN pool_models pm ON pm.id = s.pool_model_id
    LEFT JOIN colors c ON c.id = s.color_id
"""


def new_id() -> str:
    return str(uuid.uuid4())


def _set_clause(fields: dict, allowed: tuple[str, ...]) -> tuple[str, list]:
    """Build "col = $1, col2 = $2" from whitelisted fields. Unknown keys are a programming error."""
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown columns: {sorted(unknown)}")
    names = list(fields)
    clause = ", ".join(f"{name} = ${i}" for i, name in enumerate(names, start=1))
    return clause, [fields[name] for name in names]


class Repository:
    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator["Repository"]:
        """Nested transaction: if the block raises, only its own writes are rolled back."""
        async with self.conn.transaction():
            yield self

    async def _insert_unique(self, sql: str, *args, what: str) -> asyncpg.Record:
        try:
            return await self.conn.fetchrow(sql, *args)
        except UniqueViolationError:
            raise Conflict(f"{what} already exists")

    # ---- users ----

    async def get_user(self, user_id: str) -> User | None:
        row = await self.conn.fetchrow("SELECT * FROM users WHERE id = $1;", user_id)
        return User.model_validate(dict(row)) if row else None

    async def insert_user(self, email: str, role: str, dealer_id: str | None = None, approved: bool = False) -> User:
        row = await self._insert_unique(
            """
            INSERT INTO users (id, email, role, dealer_id, approved)
            VALUES ($1, $2, $3, $4, $5) RETURNING *;
            """,
            new_id(), email, role, dealer_id, approved,
            what="User",
        )
        return User.model_validate(dict(row))

    async def list_users(self) -> list[User]:
        rows = await self.conn.fetch("SELECT * FROM users ORDER BY created_at DESC;")
        return [User.model_validate(dict(r)) for r in rows]

    async def update_user_role(self, user_id: str, role: str) -> User | None:
        row = await self.conn.fetchrow("UPDATE users SET role = $1 WHERE id = $2 RETURNING *;", role, user_id)
        return User.model_validate(dict(row)) if row else None

    async def set_dealer_users_approved(self, dealer_id: str, approved: bool) -> int:
        status = await self.conn.execute("UPDATE users SET approved = $1 WHERE dealer_id = $2;", approved, dealer_id)
        return int(status.split()[-1])

    async def dealer_approvals(self) -> dict[str, bool]:
        rows = await self.conn.fetch(
            "SELECT dealer_id, bool_or(approved) AS approved FROM users WHERE dealer_id IS NOT NULL GROUP BY dealer_id;"
        )
        return {r["dealer_id"]: r["approved"] for r in rows}

    # ---- dealers ----

    async def insert_dealer(self, name: str, **fields) -> Dealer:
        dealer_id = new_id()
        clause_fields = {"name": name, **fields}
        _set_clause(clause_fields, DEALER_COLUMNS)
        columns = ["id"] + list(clause_fields)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        row = await self.conn.fetchrow(
            f"INSERT INTO dealers ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *;",
            dealer_id, *clause_fields.values(),
        )
        return Dealer.model_validate(dict(row))

    async def get_dealer(self, dealer_id: str) -> Dealer | None:
        row = await self.conn.fetchrow("SELECT * FROM dealers WHERE id = $1;", dealer_id)
        return Dealer.model_validate(dict(row)) if row else None

    async def list_dealers(self) -> list[Dealer]:
        rows = await self.conn.fetch("SELECT * FROM dealers ORDER BY name ASC;")
        return [Dealer.model_validate(dict(r)) for r in rows]

    async def update_dealer(self, dealer_id: str, fields: dict) -> Dealer | None:
        if not fields:
            return await self.get_dealer(dealer_id)
        clause, values = _set_clause(fields, DEALER_COLUMNS)
        row = await self.conn.fetchrow(
            f"UPDATE dealers SET {clause} WHERE id = ${len(values) + 1} RETURNING *;",
            *values, dealer_id,
        )
        return Dealer.model_validate(dict(row)) if row else None

    # ---- catalog ----

    async def insert_factory(self, name: str, active: bool = True) -> FactoryLocation:
        row = await self._insert_unique(
            "INSERT INTO factory_locations (id, name, active) VALUES ($1, $2, $3) RETURNING *;",
            new_id(), name, active,
            what="Factory",
        )
        return FactoryLocation.model_validate(dict(row))

    async def get_factory(self, factory_id: str) -> FactoryLocation | None:
        row = await self.conn.fetchrow("SELECT * FROM factory_locations WHERE id = $1;", factory_id)
        return FactoryLocation.model_validate(dict(row)) if row else None

    async def list_factories(self, active_only: bool = False) -> list[FactoryLocation]:
        sql = "SELECT * FROM factory_locations"
        if active_only:
            sql += " WHERE active"
        rows = await self.conn.fetch(sql + " ORDER BY name ASC;")
        return [FactoryLocation.model_validate(dict(r)) for r in rows]

    async def update_factory(self, factory_id: str, fields: dict) -> FactoryLocation | None:
        row = await self._update("factory_locations", factory_id, fields, FACTORY_COLUMNS, "Factory")
        return FactoryLocation.model_validate(dict(row)) if row else None

    async def insert_pool_model(self, name: str, length_ft=None, width_ft=None, depth_ft=None, shape=None) -> PoolModel:
        row = await self._insert_unique(
            """
            INSERT INTO pool_models (id, name, length_ft, width_ft, depth_ft, shape)
            VALUES ($1, $2, $3, $4, $5, $6) RETURNING *;
            """,
            new_id(), name, length_ft, width_ft, depth_ft, shape,
            what="Pool model",
        )
        return PoolModel.model_validate(dict(row))

    async def get_pool_model(self, pool_model_id: str) -> PoolModel | None:
        row = await self.conn.fetchrow("SELECT * FROM pool_models WHERE id = $1;", pool_model_id)
        return PoolModel.model_validate(dict(row)) if row else None

    async def list_pool_models(self) -> list[PoolModel]:
        rows = await self.conn.fetch("SELECT * FROM pool_models ORDER BY name ASC;")
        return [PoolModel.model_validate(dict(r)) for r in rows]

    async def update_pool_model(self, pool_model_id: str, fields: dict) -> PoolModel | None:
        row = await self._update("pool_models", pool_model_id, fields, POOL_MODEL_COLUMNS, "Pool model")
        return PoolModel.model_validate(dict(row)) if row else None

    async def insert_color(self, name: str, swatch_url: str | None = None) -> Color:
        row = await self._insert_unique(
            "INSERT INTO colors (id, name, swatch_url) VALUES ($1, $2, $3) RETURNING *;",
            new_id(), name, swatch_url,
            what="Color",
        )
        return Color.model_validate(dict(row))

    async def get_color(self, color_id: str) -> Color | None:
        row = await self.conn.fetchrow("SELECT * FROM colors WHERE id = $1;", color_id)
        return Color.model_validate(dict(row)) if row else None

    async def list_colors(self) -> list[Color]:
        rows = await self.conn.fetch("SELECT * FROM colors ORDER BY name ASC;")
        return [Color.model_validate(dict(r)) for r in rows]

    async def update_color(self, color_id: str, fields: dict) -> Color | None:
        row = await self._update("colors", color_id, fields, COLOR_COLUMNS, "Color")
        return Color.model_validate(dict(row)) if row else None

    async def _update(self, table: str, row_id: str, fields: dict, allowed: tuple[str, ...], what: str):
        if not fields:
            return await self.conn.fetchrow(f"SELECT * FROM {table} WHERE id = $1;", row_id)
        clause, values = _set_clause(fields, allowed)
        try:
            return await self.conn.fetchrow(
                f"UPDATE {table} SET {clause} WHERE id = ${len(values) + 1} RETURNING *;",
                *values, row_id,
            )
        except UniqueViolationError:
            raise Conflict(f"{what} already exists")

    # ---- orders ----

    async def insert_order(self, data: dict) -> Order:
        order_id = new_id()
        columns = ["id"] + list(data)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        await self.conn.execute(
            f"INSERT INTO orders ({', '.join(columns)}) VALUES ({placeholders});",
            order_id, *data.values(),
        )
        return await self.get_order(order_id)

    async def get_order(self, order_id: str) -> Order | None:
        row = await self.conn.fetchrow(ORDER_SELECT + " WHERE o.id = $1;", order_id)
        return Order.model_validate(dict(row)) if row else None

    async def list_orders(
        self,
        dealer_id: str | None = None,
        status: str | None = None,
        factory_id: str | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        conditions, args = [], []
        for column, value in (("o.dealer_id", dealer_id), ("o.status", status), ("o.factory_location_id", factory_id)):
            if value is not None:
                args.append(value)
                conditions.append(f"{column} = ${len(args)}")
        sql = ORDER_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY o.created_at DESC"
        if limit is not None:
            args.append(limit)
            sql += f" LIMIT ${len(args)}"
        rows = await self.conn.fetch(sql + ";", *args)
        return [Order.model_validate(dict(r)) for r in rows]

    async def search_orders(
        self,
        q: str | None = None,
        status: str | None = None,
        dealer_name: str | None = None,
        factory_name: str | None = None,
        sort: str = "created_at",
        descending: bool = True,
    ) -> list[Order]:
        """Exact dealer/factory name filters; q matches address, names and status case-insensitively."""
        if sort not in ORDER_SORT_COLUMNS:
            raise ValueError(f"Unknown sort column: {sort}")
        conditions, args = [], []
        for column, value in (("o.status", status), ("d.name", dealer_name), ("f.name", factory_name)):
            if value:
                args.append(value)
                conditions.append(f"{column} = ${len(args)}")
        if q:
            args.append(f"%{q}%")
            placeholder = f"${len(args)}"
            conditions.append("(" + " OR ".join(f"{c} ILIKE {placeholder}" for c in ORDER_SEARCH_COLUMNS) + ")")
        sql = ORDER_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += f" ORDER BY o.{sort} {'DESC' if descending else 'ASC'}, o.id;"
        rows = await self.conn.fetch(sql, *args)
        return [Order.model_validate(dict(r)) for r in rows]

    async def count_orders(self, dealer_id: str) -> int:
        return await self.conn.fetchval("SELECT COUNT(*) FROM orders WHERE dealer_id = $1;", dealer_id)

    async def update_order_status(self, order_id: str, expected: str, new: str) -> bool:
        """Compare-and-swap: only writes when the stored status still equals expected."""
        row = await self.conn.fetchrow(
            """
            UPDATE orders SET status = $1, updated_at = NOW()
            WHERE id = $2 AND status = $3
            RETURNING id;
            """,
            new, order_id, expected,
        )
        return row is not None

    async def update_order(self, order_id: str, fields: dict) -> Order | None:
        if fields:
            clause, values = _set_clause(fields, ORDER_COLUMNS)
            row = await self.conn.fetchrow(
                f"UPDATE orders SET {clause}, updated_at = NOW() WHERE id = ${len(values) + 1} RETURNING id;",
                *values, order_id,
            )
            if row is None:
                return None
        return await self.get_order(order_id)

    async def list_doc_types(self, order_id: str) -> set[str]:
        rows = await self.conn.fetch(
            "SELECT DISTINCT doc_type FROM order_media WHERE order_id = $1 AND doc_type IS NOT NULL;",
            order_id,
        )
        return {r["doc_type"] for r in rows}

    # ---- history ----

    async def insert_history(self, order_id: str, status: str, comment: str | None, user_id: str | None) -> OrderHistory:
        row = await self.conn.fetchrow(
            """
            INSERT INTO order_history (order_id, status, comment, user_id)
            VALUES ($1, $2, $3, $4) RETURNING *;
            """,
            order_id, status, comment, user_id,
        )
        return OrderHistory.model_validate(dict(row))

    async def list_history(self, order_id: str) -> list[OrderHistory]:
        rows = await self.conn.fetch(
            "SELECT * FROM order_history WHERE order_id = $1 ORDER BY created_at DESC, id DESC;",
            order_id,
        )
        return [OrderHistory.model_validate(dict(r)) for r in rows]

    # ---- media ----

    async def insert_media(
        self,
        order_id: str,
        file_url: str,
        media_type: str,
        doc_type: str | None,
        visible_to_dealer: bool,
        uploaded_by: str | None,
    ) -> OrderMedia:
        row = await self.conn.fetchrow(
            """
            INSERT INTO order_media (id, order_id, file_url, type, doc_type, visible_to_dealer, uploaded_by)
            VALUES ($1, $2, $3, $4, $5, $6, $7) RETURNING *;
            """,
            new_id(), order_id, file_url, media_type, doc_type, visible_to_dealer, uploaded_by,
        )
        return OrderMedia.model_validate(dict(row))

    async def list_media(self, order_id: str, dealer_visible_only: bool = False) -> list[OrderMedia]:
        sql = "SELECT * FROM order_media WHERE order_id = $1"
        if dealer_visible_only:
            sql += " AND visible_to_dealer"
        rows = await self.conn.fetch(sql + " ORDER BY uploaded_at DESC;", order_id)
        return [OrderMedia.model_validate(dict(r)) for r in rows]

    # ---- notifications ----

    async def insert_notification(self, dealer_id: str, title: str, message: str, order_id: str | None) -> Notification:
        row = await self.conn.fetchrow(
            """
            INSERT INTO notifications (id, dealer_id, order_id, title, message)
            VALUES ($1, $2, $3, $4, $5) RETURNING *;
            """,
            new_id(), dealer_id, order_id, title, message,
        )
        return Notification.model_validate(dict(row))

    async def list_notifications(self, dealer_id: str, offset: int, limit: int) -> list[Notification]:
        rows = await self.conn.fetch(
            """
            SELECT * FROM notifications WHERE dealer_id = $1
            ORDER BY created_at DESC OFFSET $2 LIMIT $3;
            """,
            dealer_id, offset, limit,
        )
        return [Notification.model_validate(dict(r)) for r in rows]

    async def count_unread(self, dealer_id: str) -> int:
        return await self.conn.fetchval(
            "SELECT COUNT(*) FROM notifications WHERE dealer_id = $1 AND NOT read;", dealer_id
        )

    async def mark_notification_read(self, dealer_id: str, notification_id: str) -> bool:
        row = await self.conn.fetchrow(
            "UPDATE notifications SET read = TRUE WHERE id = $1 AND dealer_id = $2 RETURNING id;",
            notification_id, dealer_id,
        )
        return row is not None

    async def mark_all_notifications_read(self, dealer_id: str) -> int:
        status = await self.conn.execute(
            "UPDATE notifications SET read = TRUE WHERE dealer_id = $1 AND NOT read;", dealer_id
        )
        return int(status.split()[-1])

    # ---- audit ----

    async def insert_audit(
        self,
        action: str,
        message: str,
        actor_user_id: str | None,
        actor_email: str | None,
        actor_role: str | None,
        dealer_id: str | None,
        order_id: str | None,
        meta: dict | None,
    ) -> AuditLog:
        row = await self.conn.fetchrow(
            """
            INSERT INTO audit_logs (action, message, actor_user_id, actor_email, actor_role, dealer_id, order_id, meta)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8) RETURNING *;
            """,
            action, message, actor_user_id, actor_email, actor_role, dealer_id, order_id, meta,
        )
        return AuditLog.model_validate(dict(row))

    async def list_audit(self, limit: int) -> list[AuditLog]:
        rows = await self.conn.fetch("SELECT * FROM audit_logs ORDER BY created_at DESC, id DESC LIMIT $1;", limit)
        return [AuditLog.model_validate(dict(r)) for r in rows]

    # ---- inventory ----

    async def insert_inventory_category(self, name: str) -> InventoryCategory:
        row = await self._insert_unique(
            "INSERT INTO inventory_categories (id, name) VALUES ($1, $2) RETURNING *;",
            new_id(), name,
            what="Category",
        )
        return InventoryCategory.model_validate(dict(row))

    async def get_inventory_category(self, category_id: str) -> InventoryCategory | None:
        row = await self.conn.fetchrow(
            """
            SELECT c.*, (SELECT COUNT(*) FROM inventory_items i WHERE i.category_id = c.id) AS item_count
            FROM inventory_categories c WHERE c.id = $1;
            """,
            category_id,
        )
        return InventoryCategory.model_validate(dict(row)) if row else None

    async def list_inventory_categories(self) -> list[InventoryCategory]:
        rows = await self.conn.fetch("SELECT * FROM inventory_categories ORDER BY name ASC;")
        return [InventoryCategory.model_validate(dict(r)) for r in rows]

    async def update_inventory_category(self, category_id: str, fields: dict) -> InventoryCategory | None:
        row = await self._update("inventory_categories", category_id, fields, CATEGORY_COLUMNS, "Category")
        return InventoryCategory.model_validate(dict(row)) if row else None

    async def delete_inventory_category(self, category_id: str) -> bool:
        result = await self.conn.execute("DELETE FROM inventory_categories WHERE id = $1;", category_id)
        return result != "DELETE 0"

    async def insert_inventory_item(
        self, sku: str, name: str, uom: str, min_stock: int, category_id: str | None = None
    ) -> InventoryItem:
        row = await self._insert_unique(
            """
            INSERT INTO inventory_items (id, sku, name, uom, min_stock, category_id)
            VALUES ($1, $2, $3, $4, $5, $6) RETURNING id;
            """,
            new_id(), sku, name, uom, min_stock, category_id,
            what="Inventory item",
        )
        return await self.get_inventory_item(row["id"])

    async def get_inventory_item(self, item_id: str) -> InventoryItem | None:
        row = await self.conn.fetchrow(ITEM_SELECT + " WHERE i.id = $1;", item_id)
        return InventoryItem.model_validate(dict(row)) if row else None

    async def list_inventory_items(self, category_id: str | None = None) -> list[InventoryItem]:
        if category_id is None:
            rows = await self.conn.fetch(ITEM_SELECT + " ORDER BY i.name ASC;")
        else:
            rows = await self.conn.fetch(ITEM_SELECT + " WHERE i.category_id = $1 ORDER BY i.name ASC;", category_id)
        return [InventoryItem.model_validate(dict(r)) for r in rows]

    async def update_inventory_item(self, item_id: str, fields: dict) -> InventoryItem | None:
        row = await self._update("inventory_items", item_id, fields, ITEM_COLUMNS, "Inventory item")
        return await self.get_inventory_item(item_id) if row else None

    async def insert_inventory_location(self, name: str) -> InventoryLocation:
        row = await self._insert_unique(
            "INSERT INTO inventory_locations (id, name) VALUES ($1, $2) RETURNING *;",
            new_id(), name,
            what="Inventory location",
        )
        return InventoryLocation.model_validate(dict(row))

    async def get_inventory_location(self, location_id: str) -> InventoryLocation | None:
        row = await self.conn.fetchrow("SELECT * FROM inventory_locations WHERE id = $1;", location_id)
        return InventoryLocation.model_validate(dict(row)) if row else None

    async def list_inventory_locations(self) -> list[InventoryLocation]:
        rows = await self.conn.fetch("SELECT * FROM inventory_locations ORDER BY name ASC;")
        return [InventoryLocation.model_validate(dict(r)) for r in rows]

    async def get_inventory_stock(self, item_id: str, location_id: str) -> InventoryStock | None:
        row = await self.conn.fetchrow(
            "SELECT * FROM inventory_stocks WHERE item_id = $1 AND location_id = $2 FOR UPDATE;",
            item_id, location_id,
        )
        return InventoryStock.model_validate(dict(row)) if row else None

    async def upsert_inventory_stock(self, item_id: str, location_id: str, on_hand: int) -> InventoryStock:
        row = await self.conn.fetchrow(
            """
            INSERT INTO inventory_stocks (item_id, location_id, on_hand)
            VALUES ($1, $2, $3)
            ON CONFLICT (item_id, location_id) DO UPDATE SET on_hand = EXCLUDED.on_hand, updated_at = NOW()
            RETURNING *;
            """,
            item_id, location_id, on_hand,
        )
        return InventoryStock.model_validate(dict(row))

    async def list_inventory_stocks(self, location_id: str | None = None) -> list[InventoryStock]:
        if location_id is None:
            rows = await self.conn.fetch("SELECT * FROM inventory_stocks ORDER BY item_id, location_id;")
        else:
            rows = await self.conn.fetch(
                "SELECT * FROM inventory_stocks WHERE location_id = $1 ORDER BY item_id;", location_id
            )
        return [InventoryStock.model_validate(dict(r)) for r in rows]

    async def insert_inventory_txn(
        self, txn_type: str, qty: int, item_id: str, location_id: str, notes: str | None, actor_user_id: str | None
    ) -> InventoryTxn:
        row = await self.conn.fetchrow(
            """
            INSERT INTO inventory_txns (type, qty, item_id, location_id, notes, actor_user_id)
            VALUES ($1, $2, $3, $4, $5, $6) RETURNING *;
            """,
            txn_type, qty, item_id, location_id, notes, actor_user_id,
        )
        return InventoryTxn.model_validate(dict(row))

    async def list_inventory_txns(self, item_id: str | None = None, limit: int = 100) -> list[InventoryTxn]:
        if item_id is None:
            rows = await self.conn.fetch(
                "SELECT * FROM inventory_txns ORDER BY created_at DESC, id DESC LIMIT $1;", limit
            )
        else:
            rows = await self.conn.fetch(
                "SELECT * FROM inventory_txns WHERE item_id = $1 ORDER BY created_at DESC, id DESC LIMIT $2;",
                item_id, limit,
            )
        return [InventoryTxn.model_validate(dict(r)) for r in rows]

    # ---- reorder sheets ----

    async def get_or_create_reorder_sheet(self, location_id: str, sheet_date: date) -> ReorderSheet:
        """One sheet per (location, day)."""
        await self.conn.execute(
            """
            INSERT INTO inventory_reorder_sheets (id, location_id, sheet_date) VALUES ($1, $2, $3)
            ON CONFLICT (location_id, sheet_date) DO NOTHING;
            """,
            new_id(), location_id, sheet_date,
        )
        row = await self.conn.fetchrow(
            SHEET_SELECT + " WHERE s.location_id = $1 AND s.sheet_date = $2;", location_id, sheet_date
        )
        return ReorderSheet.model_validate(dict(row))

    async def get_reorder_sheet(self, sheet_id: str) -> ReorderSheet | None:
        row = await self.conn.fetchrow(SHEET_SELECT + " WHERE s.id = $1;", sheet_id)
        return ReorderSheet.model_validate(dict(row)) if row else None

    async def list_reorder_sheets(
        self, location_id: str | None = None, sheet_date: date | None = None, limit: int = 200
    ) -> list[ReorderSheet]:
        conditions, args = [], []
        for column, value in (("s.location_id", location_id), ("s.sheet_date", sheet_date)):
            if value is not None:
                args.append(value)
                conditions.append(f"{column} = ${len(args)}")
        sql = SHEET_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        args.append(limit)
        sql += f" ORDER BY s.sheet_date DESC, s.created_at DESC LIMIT ${len(args)};"
        rows = await self.conn.fetch(sql, *args)
        return [ReorderSheet.model_validate(dict(r)) for r in rows]

    async def update_reorder_sheet_notes(self, sheet_id: str, notes: str | None) -> ReorderSheet | None:
        row = await self.conn.fetchrow(
            "UPDATE inventory_reorder_sheets SET notes = $1 WHERE id = $2 RETURNING id;", notes, sheet_id
        )
        return await self.get_reorder_sheet(sheet_id) if row else None

    async def delete_reorder_sheet(self, sheet_id: str) -> bool:
        result = await self.conn.execute("DELETE FROM inventory_reorder_sheets WHERE id = $1;", sheet_id)
        return result != "DELETE 0"

    async def list_reorder_lines(
        self, sheet_id: str, q: str | None = None, category_id: str | None = None
    ) -> list[ReorderLine]:
        conditions, args = ["l.sheet_id = $1"], [sheet_id]
        if q:
            args.append(f"%{q}%")
            conditions.append(f"(i.sku ILIKE ${len(args)} OR i.name ILIKE ${len(args)})")
        if category_id:
            args.append(category_id)
            conditions.append(f"i.category_id = ${len(args)}")
        rows = await self.conn.fetch(
            REORDER_LINE_SELECT + " WHERE " + " AND ".join(conditions) + " ORDER BY i.name ASC, i.sku ASC;", *args
        )
        return [ReorderLine.model_validate(dict(r)) for r in rows]

    async def upsert_reorder_line(self, sheet_id: str, item_id: str, qty_to_order: int) -> ReorderLine:
        row = await self.conn.fetchrow(
            """
            INSERT INTO inventory_reorder_lines (sheet_id, item_id, qty_to_order) VALUES ($1, $2, $3)
            ON CONFLICT (sheet_id, item_id) DO UPDATE SET qty_to_order = EXCLUDED.qty_to_order
            RETURNING id;
            """,
            sheet_id, item_id, qty_to_order,
        )
        line = await self.conn.fetchrow(REORDER_LINE_SELECT + " WHERE l.id = $1;", row["id"])
        return ReorderLine.model_validate(dict(line))

    async def delete_reorder_line(self, sheet_id: str, item_id: str) -> bool:
        result = await self.conn.execute(
            "DELETE FROM inventory_reorder_lines WHERE sheet_id = $1 AND item_id = $2;", sheet_id, item_id
        )
        return result != "DELETE 0"

    async def daily_inventory_rows(self, location_id: str, sheet_id: str) -> list[tuple[InventoryItem, int, int]]:
        """Active items with on-hand at location and quantity to order on the sheet (0 when absent)."""
        rows = await self.conn.fetch(
            """
            SELECT i.*, c.name AS category_name,
                   COALESCE(s.on_hand, 0) AS on_hand, COALESCE(l.qty_to_order, 0) AS qty_to_order
            FROM inventory_items i
            LEFT JOIN inventory_categories c ON c.id = i.category_id
            LEFT JOIN inventory_stocks s ON s.item_id = i.id AND s.location_id = $1
            LEFT JOIN inventory_reorder_lines l ON l.item_id = i.id AND l.sheet_id = $2
            WHERE i.active
            ORDER BY c.name ASC NULLS LAST, i.name ASC;
            """,
            location_id, sheet_id,
        )
        return [(InventoryItem.model_validate(dict(r)), r["on_hand"], r["qty_to_order"]) for r in rows]

    # ---- pool stock ----

    async def add_pool_stock(
        self,
        factory_id: str,
        pool_model_id: str,
        color_id: str | None,
        status: str,
        quantity: int,
        eta: date | None,
        notes: str | None,
    ) -> PoolStock:
        """Upsert on (factory, model, color, status), incrementing quantity."""
        row = await self.conn.fetchrow(
            """
            INSERT INTO pool_stocks (id, factory_id, pool_model_id, color_id, color_key, status, quantity, eta, notes)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (factory_id, pool_model_id, color_key, status) DO UPDATE SET
                quantity = pool_stocks.quantity + EXCLUDED.quantity,
                eta = COALESCE(EXCLUDED.eta, pool_stocks.eta),
                notes = COALESCE(EXCLUDED.notes, pool_stocks.notes),
                updated_at = NOW()
            RETURNING id;
            """,
            new_id(), factory_id, pool_model_id, color_id, color_id or "NONE", status, quantity, eta, notes,
        )
        return await self.get_pool_stock(row["id"])

    async def get_pool_stock(self, stock_id: str) -> PoolStock | None:
        row = await self.conn.fetchrow(POOL_STOCK_SELECT + " WHERE s.id = $1;", stock_id)
        return PoolStock.model_validate(dict(row)) if row else None

    async def lock_pool_stock(self, stock_id: str) -> PoolStock | None:
        """Row-locks the stock row for the rest of the transaction."""
        row = await self.conn.fetchrow("SELECT id FROM pool_stocks WHERE id = $1 FOR UPDATE;", stock_id)
        return await self.get_pool_stock(stock_id) if row else None

    async def find_pool_stock(self, factory_id: str, pool_model_id: str, color_id: str | None, status: str) -> PoolStock | None:
        row = await self.conn.fetchrow(
            "SELECT id FROM pool_stocks WHERE factory_id = $1 AND pool_model_id = $2 AND color_key = $3 AND status = $4;",
            factory_id, pool_model_id, color_id or "NONE", status,
        )
        return await self.get_pool_stock(row["id"]) if row else None

    async def update_pool_stock(self, stock_id: str, fields: dict) -> PoolStock | None:
        clause, values = _set_clause(fields, POOL_STOCK_COLUMNS)
        try:
            row = await self.conn.fetchrow(
                f"UPDATE pool_stocks SET {clause}, updated_at = NOW() WHERE id = ${len(values) + 1} RETURNING id;",
                *values, stock_id,
            )
        except UniqueViolationError:
            raise Conflict("Stock row already exists for that factory/model/color/status")
        return await self.get_pool_stock(row["id"]) if row else None

    async def insert_pool_stock_txn(
        self, stock_id: str, txn_type: str, quantity: int, notes: str | None, actor_user_id: str | None
    ) -> PoolStockTxn:
        row = await self.conn.fetchrow(
            """
            INSERT INTO pool_stock_txns (stock_id, type, quantity, notes, actor_user_id)
            VALUES ($1, $2, $3, $4, $5) RETURNING *;
            """,
            stock_id, txn_type, quantity, notes, actor_user_id,
        )
        return PoolStockTxn.model_validate(dict(row))

    async def list_pool_stock_txns(self, stock_id: str) -> list[PoolStockTxn]:
        rows = await self.conn.fetch(
            "SELECT * FROM pool_stock_txns WHERE stock_id = $1 ORDER BY created_at DESC, id DESC;", stock_id
        )
        return [PoolStockTxn.model_validate(dict(r)) for r in rows]

    async def list_pool_stock(
        self,
        factory_id: str | None = None,
        pool_model_id: str | None = None,
        color_id: str | None = None,
        status: str | None = None,
        include_zero: bool = False,
    ) -> list[PoolStock]:
        conditions, args = [], []
        for column, value in (
            ("s.factory_id", factory_id),
            ("s.pool_model_id", pool_model_id),
            ("s.color_id", color_id),
            ("s.status", status),
        ):
            if value is not None:
                args.append(value)
                conditions.append(f"{column} = ${len(args)}")
        if not include_zero:
            conditions.append("s.quantity > 0")
        sql = POOL_STOCK_SELECT
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY f.name, pm.name, c.name NULLS FIRST, s.status;"
        rows = await self.conn.fetch(sql, *args)
        return [PoolStock.model_validate(dict(r)) for r in rows]

    async def pool_stock_totals(self) -> list[tuple[str, str, int]]:
        rows = await self.conn.fetch(
            "SELECT factory_id, status, COALESCE(SUM(quantity), 0) AS total FROM pool_stocks GROUP BY factory_id, status;"
        )
        return [(r["factory_id"], r["status"], int(r["total"])) for r in rows]

    async def order_counts_by_factory(self) -> list[tuple[str, str, int]]:
        rows = await self.conn.fetch(
            """
            SELECT factory_location_id, status, COUNT(*) AS total FROM orders
            WHERE factory_location_id IS NOT NULL
            GROUP BY factory_location_id, status;
            """
        )
        return [(r["factory_location_id"], r["status"], int(r["total"])) for r in rows]
