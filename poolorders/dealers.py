"""
Dealer accounts: admin creation and approval, dealer self-service profile, onboarding documents
and agreement signing.
"""
import logging
from datetime import datetime, timezone

from poolorders import agreement, audit, storage
from poolorders.auth import Identity
from poolorders.errors import NotFound, ValidationError
from poolorders.mailer import dealer_approval_email, send_email
from poolorders.models import Dealer
from poolorders.notifications import notify_dealer
from poolorders.orders import Upload

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "email", "phone", "address", "city", "state")


def _clean_profile(fields: dict) -> dict:
    cleaned = {}
    for key, value in fields.items():
        if key not in PROFILE_FIELDS:
            continue
        cleaned[key] = value.strip() if isinstance(value, str) else value
    if "name" in cleaned and not cleaned["name"]:
        raise ValidationError("name is required")
    return cleaned


def _summary(dealer: Dealer, approved: bool) -> dict:
    return {
        "id": dealer.id,
        "name": dealer.name,
        "email": dealer.email,
        "phone": dealer.phone or "",
        "city": dealer.city or "",
        "state": dealer.state or "",
        "approved": approved,
        "agreement_url": dealer.agreement_url,
    }


async def create_dealer(db, identity: Identity, fields: dict) -> Dealer:
    cleaned = _clean_profile(fields)
    if not cleaned.get("name"):
        raise ValidationError("name is required")
    name = cleaned.pop("name")
    async with db.transaction() as repo:
        return await repo.insert_dealer(name, **cleaned)


async def list_dealers(db) -> list[dict]:
    async with db.connection() as repo:
        dealers = await repo.list_dealers()
        approvals = await repo.dealer_approvals()
    return [_summary(d, approvals.get(d.id, False)) for d in dealers]


ONBOARDING_PENDING_APPROVAL = "PENDING_APPROVAL"
ONBOARDING_WAITING_SIGNATURE = "APPROVED_WAITING_SIGNATURE"
ONBOARDING_ACTIVE = "ACTIVE"


def onboarding_status(approved: bool, dealer: Dealer) -> str:
    if not approved:
        return ONBOARDING_PENDING_APPROVAL
    if dealer.agreement_signed_at is None:
        return ONBOARDING_WAITING_SIGNATURE
    return ONBOARDING_ACTIVE


async def dealers_overview(db) -> dict:
    """Newest dealers first, each with its onboarding stage, plus a count per stage."""
    async with db.connection() as repo:
        dealers = await repo.list_dealers()
        approvals = await repo.dealer_approvals()
    dealers.sort(key=lambda d: d.created_at, reverse=True)
    items = []
    for dealer in dealers:
        approved = approvals.get(dealer.id, False)
        items.append(
            {
                "id": dealer.id,
                "name": dealer.name,
                "email": dealer.email,
                "city": dealer.city,
                "state": dealer.state,
                "created_at": dealer.created_at,
                "approved": approved,
                "agreement_signed_at": dealer.agreement_signed_at,
                "agreement_url": dealer.agreement_url,
                "onboarding_status": onboarding_status(approved, dealer),
            }
        )
    stages = [item["onboarding_status"] for item in items]
    return {
        "items": items,
        "totals": {
            "all": len(items),
            "pending_approval": stages.count(ONBOARDING_PENDING_APPROVAL),
            "waiting_signature": stages.count(ONBOARDING_WAITING_SIGNATURE),
            "active": stages.count(ONBOARDING_ACTIVE),
        },
    }


async def get_dealer(db, identity: Identity, dealer_id: str) -> Dealer:
    identity.ensure_owns(dealer_id, "Dealer")
    async with db.connection() as repo:
        dealer = await repo.get_dealer(dealer_id)
    if dealer is None:
        raise NotFound("Dealer not found")
    return dealer


async def set_approval(db, identity: Identity, dealer_id: str, approved: bool) -> dict:
    """Approve or revoke every user linked to the dealer."""
    async with db.transaction() as repo:
        dealer = await repo.get_dealer(dealer_id)
        if dealer is None:
            raise NotFound("Dealer not found")
        updated = await repo.set_dealer_users_approved(dealer_id, approved)

    if updated == 0:
        return {
            "message": "Dealer exists but no linked users were found to update",
            "dealer": _summary(dealer, False),
        }

    verb = "approved" if approved else "revoked"
    logger.info("Dealer %s %s by %s (%d users)", dealer_id, verb, identity.user_id, updated)
    await notify_dealer(
        db,
        dealer_id,
        f"Account {verb}",
        "Your dealer account has been approved." if approved else "Your dealer access has been revoked.",
    )
    subject, body = dealer_approval_email(dealer.name, approved)
    await send_email(dealer.email, subject, body)
    await audit.audit_log(
        db,
        audit.DEALER_APPROVED if approved else audit.DEALER_REVOKED,
        f"Dealer {dealer.name} {verb}",
        actor=identity,
        dealer_id=dealer_id,
        meta={"users_updated": updated},
    )
    return {"message": f"Dealer {verb} successfully", "dealer": _summary(dealer, approved)}


async def update_profile(db, identity: Identity, fields: dict) -> Dealer:
    cleaned = _clean_profile(fields)
    async with db.transaction() as repo:
        dealer = await repo.update_dealer(identity.dealer_id, cleaned)
    if dealer is None:
        raise NotFound("Dealer not found")
    return dealer


async def save_onboarding(db, identity: Identity, onboarding: dict) -> dict:
    if not isinstance(onboarding, dict):
        raise ValidationError("onboarding must be an object")
    async with db.transaction() as repo:
        dealer = await repo.update_dealer(identity.dealer_id, {"onboarding": onboarding})
    if dealer is None:
        raise NotFound("Dealer not found")
    return dealer.onboarding


async def upload_tax_doc(db, identity: Identity, upload: Upload) -> str:
    if not upload.data:
        raise ValidationError("File is required")
    if "pdf" not in (upload.content_type or "").lower():
        raise ValidationError("Only PDF is allowed")
    url = await storage.put_file(f"dealers/{identity.dealer_id}/tax", upload.filename, upload.data, upload.content_type)
    async with db.transaction() as repo:
        if await repo.update_dealer(identity.dealer_id, {"tax_doc_url": url}) is None:
            raise NotFound("Dealer not found")
    return url


async def sign_agreement(db, identity: Identity, signature_data_url: str | None, now: datetime | None = None) -> dict:
    signature = agreement.decode_signature(signature_data_url)
    signed_at = now or datetime.now(timezone.utc)

    async with db.connection() as repo:
        dealer = await repo.get_dealer(identity.dealer_id)
    if dealer is None:
        raise NotFound("Dealer not found")

    pdf = agreement.render_signed_agreement(dealer.name or identity.email, signature, signed_at)
    prefix = f"dealers/{dealer.id}/agreement"
    signature_url = await storage.put_file(prefix, "signature.png", signature, "image/png")
    agreement_url = await storage.put_file(prefix, "agreement.pdf", pdf, "application/pdf")

    async with db.transaction() as repo:
        await repo.update_dealer(
            dealer.id,
            {
                "agreement_signature_url": signature_url,
                "agreement_url": agreement_url,
                "agreement_signed_at": signed_at,
            },
        )
    logger.info("Dealer %s signed the agreement", dealer.id)
    return {"agreement_url": agreement_url, "signature_url": signature_url, "signed_at": signed_at}
