"""
Shared fixtures: an in-memory database seeded with two dealers, an admin and a super-admin,
email pushes captured in a list, idempotency keys in a set, uploads in a temp directory.
"""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from memory_db import MemoryDatabase
from poolorders import mailer, orders
from poolorders.auth import Identity, issue_token
from poolorders.config import settings
from poolorders.order_state import MediaType, OrderStatus


@pytest.fixture
def db():
    return MemoryDatabase()


@pytest.fixture(autouse=True)
def local_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "s3_bucket", None)
    return tmp_path / "uploads"


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Email jobs the code tried to enqueue."""
    sent: list[dict] = []

    async def push(job):
        sent.append(job)

    monkeypatch.setattr(mailer, "push_to_queue", push)
    return sent


@pytest.fixture(autouse=True)
def idempotency_keys(monkeypatch):
    claimed: set[str] = set()

    async def claim(key, ttl_seconds=86400):
        if key in claimed:
            return False
        claimed.add(key)
        return True

    async def release(key):
        claimed.discard(key)

    monkeypatch.setattr(orders, "claim_idempotency_key", claim)
    monkeypatch.setattr(orders, "release_idempotency_key", release)
    return claimed


def _identity(user, role=None) -> Identity:
    return Identity(user_id=user.id, email=user.email, role=role or user.role, dealer_id=user.dealer_id)


@pytest.fixture
async def world(db):
    async with db.transaction() as repo:
        factory = await repo.insert_factory("Factory East")
        idle_factory = await repo.insert_factory("Factory West")
        model = await repo.insert_pool_model("Laguna 16", 16, 8, 5.5, "rectangle")
        color = await repo.insert_color("Sapphire Blue")
        dealer_a = await repo.insert_dealer("Acme Pools", email="acme@example.com", phone="555-0100")
        dealer_b = await repo.insert_dealer("Blue Lagoon", email="lagoon@example.com")
        user_a = await repo.insert_user("owner@acme.example.com", "DEALER", dealer_a.id, approved=True)
        user_b = await repo.insert_user("owner@lagoon.example.com", "DEALER", dealer_b.id, approved=True)
        admin = await repo.insert_user("ops@factory.example.com", "ADMIN")
        superadmin = await repo.insert_user("root@factory.example.com", "SUPERADMIN")
    return SimpleNamespace(
        factory=factory,
        idle_factory=idle_factory,
        model=model,
        color=color,
        dealer_a=dealer_a,
        dealer_b=dealer_b,
        dealer=_identity(user_a),
        other_dealer=_identity(user_b),
        admin=_identity(admin),
        superadmin=_identity(superadmin),
    )


async def place_order(db, world, dealer=None, **fields):
    """Insert an order directly, bypassing create_order's side effects."""
    identity = dealer or world.dealer
    data = {
        "dealer_id": identity.dealer_id,
        "pool_model_id": world.model.id,
        "color_id": world.color.id,
        "delivery_address": "12 Shore Rd, Albany NY",
        "status": OrderStatus.PENDING_PAYMENT_APPROVAL.value,
    }
    data.update(fields)
    async with db.transaction() as repo:
        return await repo.insert_order(data)


async def attach(db, order_id, *doc_types, visible=True):
    async with db.transaction() as repo:
        for doc_type in doc_types:
            await repo.insert_media(order_id, f"/uploads/{doc_type}.pdf", MediaType.PROOF.value, doc_type, visible, None)


@pytest.fixture
def client(db):
    from poolorders.db import get_db
    from poolorders.main import app

    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def bearer(identity: Identity) -> dict:
    return {"Authorization": f"Bearer {issue_token(identity)}"}
