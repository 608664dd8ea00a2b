"""
Email worker: pull email jobs from Redis or AWS SQS and deliver them.
- Redis: exponential backoff + manual DLQ. SQS: don't delete on failure; SQS redrive to DLQ after max receives.
- Prometheus /metrics on settings.worker_metrics_port (default 9090).
- SIGTERM/SIGINT stop intake, then in-flight deliveries drain.
Run: python -m poolorders.worker
"""
import asyncio
import json
import logging
import signal
import sys
import time

import redis.asyncio as redis
from prometheus_client import start_http_server

from poolorders.config import settings
from poolorders.mailer import deliver_email
from poolorders.metrics import emails_dlq_total, emails_failed_total, emails_sent_total
from poolorders.queue import EMAIL_DLQ_KEY, EMAIL_QUEUE_KEY
from poolorders.redis_client import connect
from poolorders.sqs_client import change_message_visibility, delete_message, receive_messages

logger = logging.getLogger(__name__)

BRPOP_TIMEOUT = 5
GRACEFUL_SHUTDOWN_WAIT_SEC = 30
STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def parse_job(raw: str) -> dict | None:
    try:
        job = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON from queue: %s", e)
        return None
    if not isinstance(job, dict) or not job.get("job_id") or not job.get("to"):
        logger.warning("Email job missing job_id or recipient, skipping")
        return None
    return job


async def process_one_redis(r: redis.Redis, raw: str, sem: asyncio.Semaphore) -> None:
    job = parse_job(raw)
    if job is None:
        return
    attempts = job.get("attempts", 0)

    async with sem:
        try:
            await asyncio.to_thread(deliver_email, job)
            emails_sent_total.inc()
            logger.info("Delivered job_id=%s to=%s", job["job_id"], job["to"])
        except Exception as e:
            emails_failed_total.inc()
            logger.exception("Failed to deliver job_id=%s (attempt %d): %s", job["job_id"], attempts + 1, e)
            next_attempts = attempts + 1
            if next_attempts >= settings.worker_max_retries:
                dead = dict(job, attempts=next_attempts, last_error=str(e), failed_at=time.time())
                await r.lpush(EMAIL_DLQ_KEY, json.dumps(dead))
                emails_dlq_total.inc()
                logger.warning("Moved job_id=%s to DLQ after %d attempts", job["job_id"], settings.worker_max_retries)
            else:
                backoff_sec = 2 ** attempts
                logger.info(
                    "Re-queuing job_id=%s in %ds (attempt %d/%d)",
                    job["job_id"], backoff_sec, next_attempts, settings.worker_max_retries,
                )
                await asyncio.sleep(backoff_sec)
                await r.lpush(EMAIL_QUEUE_KEY, json.dumps(dict(job, attempts=next_attempts)))


async def process_one_sqs(body: str, receipt_handle: str, receive_count: int, sem: asyncio.Semaphore) -> None:
    job = parse_job(body)
    if job is None:
        await asyncio.to_thread(delete_message, receipt_handle)
        return

    async with sem:
        try:
            await asyncio.to_thread(deliver_email, job)
            emails_sent_total.inc()
            logger.info("Delivered job_id=%s to=%s", job["job_id"], job["to"])
            await asyncio.to_thread(delete_message, receipt_handle)
        except Exception as e:
            emails_failed_total.inc()
            logger.exception("Failed to deliver job_id=%s (receive #%d): %s", job["job_id"], receive_count, e)
            # Don't delete: message reappears after visibility timeout; after max receives SQS moves it to DLQ
            backoff = min(2 ** receive_count, 900)
            await asyncio.to_thread(change_message_visibility, receipt_handle, backoff)


async def _drain(tasks: set[asyncio.Task]) -> None:
    if not tasks:
        return
    logger.info("Graceful shutdown: waiting for %d in-flight task(s) (max %ds) ...", len(tasks), GRACEFUL_SHUTDOWN_WAIT_SEC)
    _, pending = await asyncio.wait(tasks, timeout=GRACEFUL_SHUTDOWN_WAIT_SEC, return_when=asyncio.ALL_COMPLETED)
    for t in pending:
        t.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


async def run_worker_redis(shutdown_event: asyncio.Event) -> None:
    sem = asyncio.Semaphore(settings.worker_concurrency)
    logger.info(
        "Backend=Redis. Listening on %s (concurrency=%d, max_retries=%d) ...",
        EMAIL_QUEUE_KEY,
        settings.worker_concurrency,
        settings.worker_max_retries,
    )
    r = connect()
    tasks: set[asyncio.Task] = set()
    try:
        while not shutdown_event.is_set():
            result = await r.brpop(EMAIL_QUEUE_KEY, timeout=BRPOP_TIMEOUT)
            if result is None:
                continue
            _key, raw = result
            t = asyncio.create_task(process_one_redis(r, raw, sem))
            tasks.add(t)
            t.add_done_callback(tasks.discard)
    finally:
        await _drain(tasks)
        await r.aclose()
        logger.info("Worker stopped.")


async def run_worker_sqs(shutdown_event: asyncio.Event) -> None:
    sem = asyncio.Semaphore(settings.worker_concurrency)
    logger.info(
        "Backend=SQS. Queue=%s (concurrency=%d) ...",
        settings.sqs_email_queue_url,
        settings.worker_concurrency,
    )
    tasks: set[asyncio.Task] = set()
    try:
        while not shutdown_event.is_set():
            messages = await asyncio.to_thread(receive_messages, 10, 5)
            for msg in messages:
                body = msg.get("Body") or "{}"
                receipt = msg.get("ReceiptHandle") or ""
                attrs = msg.get("Attributes") or {}
                receive_count = int(attrs.get("ApproximateReceiveCount", 1))
                t = asyncio.create_task(process_one_sqs(body, receipt, receive_count, sem))
                tasks.add(t)
                t.add_done_callback(tasks.discard)
    finally:
        await _drain(tasks)
        logger.info("Worker stopped.")


async def run_worker(shutdown_event: asyncio.Event) -> None:
    if settings.sqs_email_queue_url:
        await run_worker_sqs(shutdown_event)
    else:
        await run_worker_redis(shutdown_event)


async def serve() -> None:
    """Run until SIGTERM or SIGINT; in-flight deliveries then get GRACEFUL_SHUTDOWN_WAIT_SEC to finish."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in STOP_SIGNALS:
        loop.add_signal_handler(sig, stop.set)
    try:
        await run_worker(stop)
    finally:
        for sig in STOP_SIGNALS:
            loop.remove_signal_handler(sig)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        stream=sys.stdout,
    )
    start_http_server(settings.worker_metrics_port)
    logger.info("Metrics server listening on port %s", settings.worker_metrics_port)
    asyncio.run(serve())


if __name__ == "__main__":
    main()
