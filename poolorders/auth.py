"""
Request identity and the role capability table.

The session service issues HS256 bearer tokens; each request decodes its own Identity and
passes it explicitly into the handler. Which role may do what lives only in CAPABILITIES.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import jwt
from fastapi import Depends, Header

from poolorders.config import settings
from poolorders.errors import Forbidden, NotFound, Unauthorized

ROLES = ("DEALER", "ADMIN", "SUPERADMIN")


class Operation(str, Enum):
    ORDER_CREATE = "order:create"
    ORDER_READ_OWN = "order:read_own"
    ORDER_READ_ANY = "order:read_any"
    ORDER_TRANSITION = "order:transition"
    ORDER_ANNOTATE = "order:annotate"
    ORDER_REASSIGN = "order:reassign"
    MEDIA_UPLOAD = "media:upload"
    DEALER_SELF = "dealer:self"
    DEALER_MANAGE = "dealer:manage"
    NOTIFICATIONS_OWN = "notifications:own"
    CATALOG_WRITE = "catalog:write"
    INVENTORY_MANAGE = "inventory:manage"
    POOL_STOCK_MANAGE = "pool_stock:manage"
    POOL_STOCK_VIEW_READY = "pool_stock:view_ready"
    REPORTS_ADMIN = "reports:admin"
    AUDIT_READ = "audit:read"
    USERS_MANAGE = "users:manage"
    OPS_MANAGE = "ops:manage"


_ADMIN_OPS = frozenset({
    Operation.ORDER_READ_ANY,
    Operation.ORDER_TRANSITION,
    Operation.ORDER_ANNOTATE,
    Operation.ORDER_REASSIGN,
    Operation.MEDIA_UPLOAD,
    Operation.DEALER_MANAGE,
    Operation.CATALOG_WRITE,
    Operation.INVENTORY_MANAGE,
    Operation.POOL_STOCK_MANAGE,
    Operation.REPORTS_ADMIN,
    Operation.AUDIT_READ,
    Operation.OPS_MANAGE,
})

# Operations scoped to the caller's own dealer; they need a dealer link
TENANT_OPS = frozenset({
    Operation.ORDER_CREATE,
    Operation.ORDER_READ_OWN,
    Operation.DEALER_SELF,
    Operation.NOTIFICATIONS_OWN,
    Operation.POOL_STOCK_VIEW_READY,
})

CAPABILITIES: dict[str, frozenset[Operation]] = {
    "DEALER": TENANT_OPS,
    "ADMIN": _ADMIN_OPS,
    "SUPERADMIN": _ADMIN_OPS | {Operation.USERS_MANAGE},
}


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    role: str
    dealer_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ("ADMIN", "SUPERADMIN")

    def can(self, op: Operation) -> bool:
        return op in CAPABILITIES.get(self.role, frozenset())

    def ensure_owns(self, dealer_id: str | None, what: str = "Resource") -> None:
        """Dealers may only touch their own tenant's rows; others' rows look absent."""
        if self.is_admin:
            return
        if self.dealer_id is None or self.dealer_id != dealer_id:
            raise NotFound(f"{what} not found")


def authorize(identity: Identity, op: Operation) -> Identity:
    if not identity.can(op):
        raise Forbidden()
    if op in TENANT_OPS and not identity.dealer_id:
        raise Forbidden("Dealer not linked to this account")
    return identity


def issue_token(identity: Identity, expires_in: int | None = None) -> str:
    claims = {"sub": identity.user_id, "email": identity.email, "role": identity.role}
    if identity.dealer_id:
        claims["dealer_id"] = identity.dealer_id
    if expires_in is not None:
        claims["exp"] = int(time.time()) + expires_in
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Identity:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired token")
    role = claims.get("role")
    if not claims.get("sub") or role not in ROLES:
        raise Unauthorized("Invalid token claims")
    if role == "DEALER" and not claims.get("dealer_id"):
        raise Unauthorized("Dealer token has no dealer_id")
    return Identity(
        user_id=claims["sub"],
        email=claims.get("email") or "",
        role=role,
        dealer_id=claims.get("dealer_id"),
    )


async def current_identity(authorization: str | None = Header(default=None)) -> Identity:
    if not authorization:
        raise Unauthorized()
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Invalid authorization header format")
    return decode_token(parts[1])


def require(op: Operation) -> Callable:
    """Route dependency: the caller's Identity, after the capability check for op."""

    async def dependency(identity: Identity = Depends(current_identity)) -> Identity:
        return authorize(identity, op)

    return dependency
