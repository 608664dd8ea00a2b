"""
Dealer emails. The API only enqueues (best-effort); the worker calls deliver_email.
"""
import html
import logging
from typing import Any

import boto3

from poolorders.config import settings
from poolorders.order_state import label_status
from poolorders.queue import make_email_job, push_to_queue
from poolorders.side_effects import Outcome, fire_and_forget

logger = logging.getLogger(__name__)

_ses_client: Any = None


def _get_ses():
    global _ses_client
    if _ses_client is None:
        _ses_client = boto3.client("ses", region_name=settings.aws_region)
    return _ses_client


async def send_email(to: str | None, subject: str, body_html: str) -> Outcome:
    """Queue an email. Never raises; a missing recipient is simply skipped."""
    if not to:
        return Outcome()
    job = make_email_job(to, subject, body_html)
    return await fire_and_forget("email", push_to_queue(job), to=to, subject=subject)


async def _queue_for_dealer(db, dealer_id: str, subject: str, body_html: str) -> str | None:
    async with db.connection() as repo:
        dealer = await repo.get_dealer(dealer_id)
    if dealer is None or not dealer.email:
        return None
    await push_to_queue(make_email_job(dealer.email, subject, body_html))
    return dealer.email


async def email_dealer(db, dealer_id: str | None, subject: str, body_html: str) -> Outcome:
    """Look up the dealer's address and queue an email; the lookup is best-effort too."""
    if not dealer_id:
        return Outcome()
    return await fire_and_forget("email", _queue_for_dealer(db, dealer_id, subject, body_html), dealer_id=dealer_id)


def deliver_email(job: dict) -> None:
    """Sync delivery (worker runs it in a thread). Raises on failure so the worker can retry."""
    if not settings.ses_enabled:
        logger.info("[DEV EMAIL MOCK] to=%s subject=%s", job["to"], job["subject"])
        return
    _get_ses().send_email(
        Source=settings.email_from,
        Destination={"ToAddresses": [job["to"]]},
        Message={
            "Subject": {"Data": job["subject"], "Charset": "UTF-8"},
            "Body": {"Html": {"Data": job["html"], "Charset": "UTF-8"}},
        },
    )


def _wrap(inner: str) -> str:
    return f'<div style="font-family:system-ui,Segoe UI,Roboto,Helvetica,Arial">{inner}</div>'


def status_changed_email(order_id: str, status: str, note: str | None) -> tuple[str, str]:
    label = label_status(status)
    body = f"<h2>Order {html.escape(order_id)} update</h2><p>Status is now <b>{html.escape(label)}</b>.</p>"
    if note:
        body += f"<p><b>Note:</b> {html.escape(note)}</p>"
    return f"Order {order_id} status: {label}", _wrap(body)


def order_created_email(order_id: str, model_name: str | None, color_name: str | None) -> tuple[str, str]:
    body = (
        f"<h2>Order {html.escape(order_id)} received</h2>"
        f"<p>{html.escape(model_name or '-')} / {html.escape(color_name or '-')}</p>"
        "<p>We will review your payment and confirm the order shortly.</p>"
    )
    return f"Order {order_id} received", _wrap(body)


def dealer_approval_email(dealer_name: str, approved: bool) -> tuple[str, str]:
    if approved:
        subject = "Your dealer account has been approved"
        body = f"<h2>Welcome, {html.escape(dealer_name)}</h2><p>Your account is approved. You can now place orders.</p>"
    else:
        subject = "Your dealer account access has been revoked"
        body = f"<h2>{html.escape(dealer_name)}</h2><p>Your dealer access was revoked. Contact us for details.</p>"
    return subject, _wrap(body)
