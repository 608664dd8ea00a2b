"""
Async Postgres: connection pool, schema, and the Database handle routes depend on.
Every mutating operation runs inside Database.transaction(); reads use Database.connection().
"""
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
from fastapi import Request

from poolorders.config import settings
from poolorders.repository import Repository

_pool: asyncpg.Pool | None = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=60,
            init=_init_connection,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


SCHEMA = """
CREATE TABLE IF NOT EXISTS dealers (
    id VARCHAR(64) PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    email VARCHAR(255),
    phone VARCHAR(64),
    address TEXT,
    city VARCHAR(128),
    state VARCHAR(64),
    tax_doc_url TEXT,
    agreement_url TEXT,
    agreement_signature_url TEXT,
    agreement_signed_at TIMESTAMPTZ,
    onboarding JSONB NOT NULL DEFAULT '{}'::jsonb,
    onboarding_completed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(64) PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    role VARCHAR(20) NOT NULL CHECK (role IN ('DEALER', 'ADMIN', 'SUPERADMIN')),
    dealer_id VARCHAR(64) REFERENCES dealers(id),
    approved BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS factory_locations (
    id VARCHAR(64) PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    active BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS pool_models (
    id VARCHAR(64) PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    length_ft DOUBLE PRECISION,
    width_ft DOUBLE PRECISION,
    depth_ft DOUBLE PRECISION,
    shape VARCHAR(64),
    image_url TEXT,
    blueprint_url TEXT
);

CREATE TABLE IF NOT EXISTS colors (
    id VARCHAR(64) PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    swatch_url TEXT
);

CREATE TABLE IF NOT EXISTS orders (
    id VARCHAR(64) PRIMARY KEY,
    dealer_id VARCHAR(64) NOT NULL REFERENCES dealers(id),
    pool_model_id VARCHAR(64) NOT NULL REFERENCES pool_models(id),
    color_id VARCHAR(64) NOT NULL REFERENCES colors(id),
    factory_location_id VARCHAR(64) REFERENCES factory_locations(id),
    status VARCHAR(32) NOT NULL CHECK (status IN (
        'PENDING_PAYMENT_APPROVAL', 'APPROVED', 'IN_PRODUCTION', 'PRE_SHIPPING', 'COMPLETED', 'CANCELED'
    )),
    serial_number VARCHAR(128),
    production_priority INT,
    requested_ship_date DATE,
    delivery_address TEXT NOT NULL,
    notes TEXT,
    payment_proof_url TEXT,
    shipping_method VARCHAR(16),
    hardware_skimmer BOOLEAN NOT NULL DEFAULT FALSE,
    hardware_autocover BOOLEAN NOT NULL DEFAULT FALSE,
    hardware_returns BOOLEAN NOT NULL DEFAULT FALSE,
    hardware_main_drains BOOLEAN NOT NULL DEFAULT FALSE,
    blueprint_markers JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_orders_dealer_id ON orders(dealer_id);
CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);

CREATE TABLE IF NOT EXISTS order_history (
    id BIGSERIAL PRIMARY KEY,
    order_id VARCHAR(64) NOT NULL REFERENCES orders(id),
    status VARCHAR(32) NOT NULL,
    comment TEXT,
    user_id VARCHAR(64),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_order_history_order_id ON order_history(order_id);

CREATE TABLE IF NOT EXISTS order_media (
    id VARCHAR(64) PRIMARY KEY,
    order_id VARCHAR(64) NOT NULL REFERENCES orders(id),
    file_url TEXT NOT NULL,
    type VARCHAR(16) NOT NULL,
    doc_type VARCHAR(32),
    visible_to_dealer BOOLEAN NOT NULL DEFAULT TRUE,
    uploaded_by VARCHAR(64),
    uploaded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_order_media_order_id ON order_media(order_id);

CREATE TABLE IF NOT EXISTS notifications (
    id VARCHAR(64) PRIMARY KEY,
    dealer_id VARCHAR(64) NOT NULL REFERENCES dealers(id),
    order_id VARCHAR(64),
    title VARCHAR(255) NOT NULL,
    message TEXT NOT NULL,
    read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_notifications_dealer_id ON notifications(dealer_id);

CREATE TABLE IF NOT EXISTS audit_logs (
    id BIGSERIAL PRIMARY KEY,
    action VARCHAR(64) NOT NULL,
    message TEXT NOT NULL,
    actor_user_id VARCHAR(64),
    actor_email VARCHAR(255),
    actor_role VARCHAR(20),
    dealer_id VARCHAR(64),
    order_id VARCHAR(64),
    meta JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS inventory_categories (
    id VARCHAR(64) PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS inventory_items (
    id VARCHAR(64) PRIMARY KEY,
    sku VARCHAR(128) NOT NULL UNIQUE,
    name VARCHAR(255) NOT NULL,
    category_id VARCHAR(64) REFERENCES inventory_categories(id),
    uom VARCHAR(16) NOT NULL DEFAULT 'ea',
    min_stock INT NOT NULL DEFAULT 0,
    active BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS inventory_locations (
    id VARCHAR(64) PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    active BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS inventory_stocks (
    item_id VARCHAR(64) NOT NULL REFERENCES inventory_items(id),
    location_id VARCHAR(64) NOT NULL REFERENCES inventory_locations(id),
    on_hand INT NOT NULL DEFAULT 0,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (item_id, location_id)
);

CREATE TABLE IF NOT EXISTS inventory_txns (
    id BIGSERIAL PRIMARY KEY,
    type VARCHAR(16) NOT NULL,
    qty INT NOT NULL,
    item_id VARCHAR(64) NOT NULL REFERENCES inventory_items(id),
    location_id VARCHAR(64) NOT NULL REFERENCES inventory_locations(id),
    notes TEXT,
    actor_user_id VARCHAR(64),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS inventory_reorder_sheets (
    id VARCHAR(64) PRIMARY KEY,
    location_id VARCHAR(64) NOT NULL REFERENCES inventory_locations(id),
    sheet_date DATE NOT NULL,
    notes TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (location_id, sheet_date)
);

CREATE TABLE IF NOT EXISTS inventory_reorder_lines (
    id BIGSERIAL PRIMARY KEY,
    sheet_id VARCHAR(64) NOT NULL REFERENCES inventory_reorder_sheets(id) ON DELETE CASCADE,
    item_id VARCHAR(64) NOT NULL REFERENCES inventory_items(id),
    qty_to_order INT NOT NULL CHECK (qty_to_order > 0),
    UNIQUE (sheet_id, item_id)
);

CREATE TABLE IF NOT EXISTS pool_stocks (
    id VARCHAR(64) PRIMARY KEY,
    factory_id VARCHAR(64) NOT NULL REFERENCES factory_locations(id),
    pool_model_id VARCHAR(64) NOT NULL REFERENCES pool_models(id),
    color_id VARCHAR(64) REFERENCES colors(id),
    color_key VARCHAR(64) NOT NULL,
    status VARCHAR(16) NOT NULL CHECK (status IN ('READY', 'RESERVED', 'IN_PRODUCTION', 'DAMAGED')),
    quantity INT NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    eta DATE,
    image_url TEXT,
    notes TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (factory_id, pool_model_id, color_key, status)
);

CREATE TABLE IF NOT EXISTS pool_stock_txns (
    id BIGSERIAL PRIMARY KEY,
    stock_id VARCHAR(64) NOT NULL REFERENCES pool_stocks(id),
    type VARCHAR(16) NOT NULL,
    quantity INT NOT NULL,
    notes TEXT,
    actor_user_id VARCHAR(64),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

ALTER TABLE pool_models ADD COLUMN IF NOT EXISTS image_url TEXT;
ALTER TABLE pool_models ADD COLUMN IF NOT EXISTS blueprint_url TEXT;
ALTER TABLE pool_stocks ADD COLUMN IF NOT EXISTS image_url TEXT;
ALTER TABLE inventory_items ADD COLUMN IF NOT EXISTS category_id VARCHAR(64) REFERENCES inventory_categories(id);
"""


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA)


class Database:
    """Hands out repositories bound to a pooled connection."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Repository]:
        async with self.pool.acquire() as conn:
            yield Repository(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Repository]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield Repository(conn)


def get_db(request: Request) -> Database:
    """Route dependency: the Database opened in main.lifespan."""
    return request.app.state.db
