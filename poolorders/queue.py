"""
Push email jobs to the queue. Backend: Redis (LPUSH) or AWS SQS when SQS_EMAIL_QUEUE_URL is set.
"""
import json
import uuid

from poolorders.config import settings
from poolorders.redis_client import get_redis
from poolorders.sqs_client import send_message

EMAIL_QUEUE_KEY = "queue:email_jobs"
EMAIL_DLQ_KEY = "queue:email_jobs:dlq"


def make_email_job(to: str, subject: str, html: str, attempts: int = 0, job_id: str | None = None) -> dict:
    return {
        "job_id": job_id or str(uuid.uuid4()),
        "to": to,
        "subject": subject,
        "html": html,
        "attempts": attempts,
    }


async def push_to_queue(job: dict) -> None:
    if settings.sqs_email_queue_url:
        await send_message(job)
    else:
        r = await get_redis()
        await r.lpush(EMAIL_QUEUE_KEY, json.dumps(job))


async def replay_redis_dlq(limit: int = 100) -> int:
    """Move up to limit jobs from the Redis DLQ back to the main queue with attempts reset."""
    r = await get_redis()
    replayed = 0
    while replayed < limit:
        raw = await r.rpop(EMAIL_DLQ_KEY)
        if raw is None:
            break
        replayed += 1
        try:
            job = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if not job.get("job_id") or not job.get("to"):
            continue
        job["attempts"] = 0
        job.pop("last_error", None)
        job.pop("failed_at", None)
        await r.lpush(EMAIL_QUEUE_KEY, json.dumps(job))
    return replayed
