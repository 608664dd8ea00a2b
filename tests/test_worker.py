import asyncio
import json
import os
import signal

from poolorders import redis_client, worker
from poolorders.config import settings
from poolorders.mailer import dealer_approval_email, status_changed_email
from poolorders.queue import EMAIL_DLQ_KEY, make_email_job


class FakeRedis:
    def __init__(self):
        self.lists: dict[str, list[str]] = {}

    async def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)


def test_parse_job_skips_bad_payloads():
    assert worker.parse_job("{not json") is None
    assert worker.parse_job(json.dumps({"job_id": "1"})) is None
    job = make_email_job("a@example.com", "Hi", "<p>x</p>")
    assert worker.parse_job(json.dumps(job)) == job


async def test_delivered_job_is_not_requeued(monkeypatch):
    delivered = []
    monkeypatch.setattr(worker, "deliver_email", delivered.append)
    r = FakeRedis()
    job = make_email_job("a@example.com", "Hi", "<p>x</p>")

    await worker.process_one_redis(r, json.dumps(job), asyncio.Semaphore(1))

    assert delivered == [job]
    assert r.lists == {}


async def test_failed_job_goes_to_dlq_after_max_retries(monkeypatch):
    def boom(job):
        raise RuntimeError("SES throttled")

    monkeypatch.setattr(worker, "deliver_email", boom)
    monkeypatch.setattr(settings, "worker_max_retries", 1)
    r = FakeRedis()

    await worker.process_one_redis(r, json.dumps(make_email_job("a@example.com", "Hi", "x")), asyncio.Semaphore(1))

    dead = json.loads(r.lists[EMAIL_DLQ_KEY][0])
    assert dead["attempts"] == 1
    assert dead["last_error"] == "SES throttled"


def test_email_templates_escape_html():
    subject, body = status_changed_email("o-1", "IN_PRODUCTION", "<script>")
    assert subject == "Order o-1 status: In Production"
    assert "&lt;script&gt;" in body and "<script>" not in body
    subject, _ = dealer_approval_email("Acme", approved=False)
    assert "revoked" in subject


async def test_sigterm_stops_intake(monkeypatch):
    stopped = []

    async def run(stop):
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(stop.wait(), timeout=5)
        stopped.append(True)

    monkeypatch.setattr(worker, "run_worker", run)

    await worker.serve()

    assert stopped == [True]


class ClaimRedis:
    def __init__(self):
        self.keys: dict[str, int] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.keys:
            return None
        self.keys[key] = ex
        return True

    async def delete(self, key):
        self.keys.pop(key, None)


async def test_idempotency_claims_are_per_dealer_and_expire(monkeypatch):
    fake = ClaimRedis()

    async def get_redis():
        return fake

    monkeypatch.setattr(redis_client, "get_redis", get_redis)
    monkeypatch.setattr(settings, "idempotency_ttl_seconds", 600)
    mine = redis_client.order_claim_key("dealer-a", "k-1")

    assert await redis_client.claim_idempotency_key(mine)
    assert not await redis_client.claim_idempotency_key(mine)
    assert await redis_client.claim_idempotency_key(redis_client.order_claim_key("dealer-b", "k-1"))
    assert fake.keys[mine] == 600
    await redis_client.release_idempotency_key(mine)
    assert await redis_client.claim_idempotency_key(mine, ttl_seconds=5)
    assert fake.keys[mine] == 5
