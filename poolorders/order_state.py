"""
Order pipeline statuses and the document requirement table that gates moving into each one.
"""
from enum import Enum
from typing import Iterable


class OrderStatus(str, Enum):
    PENDING_PAYMENT_APPROVAL = "PENDING_PAYMENT_APPROVAL"
    APPROVED = "APPROVED"
    IN_PRODUCTION = "IN_PRODUCTION"
    PRE_SHIPPING = "PRE_SHIPPING"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


class DocType(str, Enum):
    PROOF_OF_PAYMENT = "PROOF_OF_PAYMENT"
    QUOTE = "QUOTE"
    INVOICE = "INVOICE"
    BUILD_SHEET = "BUILD_SHEET"
    POST_PRODUCTION_MEDIA = "POST_PRODUCTION_MEDIA"
    SHIPPING_CHECKLIST = "SHIPPING_CHECKLIST"
    PRE_SHIPPING_MEDIA = "PRE_SHIPPING_MEDIA"
    BILL_OF_LADING = "BILL_OF_LADING"
    PROOF_OF_FINAL_PAYMENT = "PROOF_OF_FINAL_PAYMENT"
    PAID_INVOICE = "PAID_INVOICE"
    WARRANTY = "WARRANTY"
    MANUAL = "MANUAL"


class MediaType(str, Enum):
    PHOTO = "photo"
    PROOF = "proof"
    NOTE = "note"
    UPDATE = "update"


# Forward pipeline, in order. CANCELED is a side exit, not a forward step.
FLOW_ORDER: list[OrderStatus] = [
    OrderStatus.PENDING_PAYMENT_APPROVAL,
    OrderStatus.APPROVED,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.PRE_SHIPPING,
    OrderStatus.COMPLETED,
]

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELED})

# Target status -> documents that must already be attached to the order
REQUIRED_DOCS: dict[OrderStatus, list[DocType]] = {
    OrderStatus.APPROVED: [DocType.PROOF_OF_PAYMENT],
    OrderStatus.IN_PRODUCTION: [
        DocType.PROOF_OF_PAYMENT,
        DocType.QUOTE,
        DocType.INVOICE,
        DocType.BUILD_SHEET,
        DocType.POST_PRODUCTION_MEDIA,
    ],
    OrderStatus.PRE_SHIPPING: [
        DocType.SHIPPING_CHECKLIST,
        DocType.PRE_SHIPPING_MEDIA,
        DocType.BILL_OF_LADING,
        DocType.PROOF_OF_FINAL_PAYMENT,
        DocType.PAID_INVOICE,
    ],
}

# Target status -> order fields that must be non-empty
REQUIRED_FIELDS: dict[OrderStatus, list[str]] = {
    OrderStatus.IN_PRODUCTION: ["serial_number"],
    OrderStatus.PRE_SHIPPING: ["serial_number"],
    OrderStatus.COMPLETED: ["serial_number"],
}

STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING_PAYMENT_APPROVAL: "Pending Payment Approval",
    OrderStatus.APPROVED: "Approved",
    OrderStatus.IN_PRODUCTION: "In Production",
    OrderStatus.PRE_SHIPPING: "Pre-Shipping",
    OrderStatus.COMPLETED: "Completed",
    OrderStatus.CANCELED: "Canceled",
}

DOC_TYPE_LABELS: dict[DocType, str] = {
    DocType.PROOF_OF_PAYMENT: "Proof of Payment",
    DocType.QUOTE: "Quote",
    DocType.INVOICE: "Invoice",
    DocType.BUILD_SHEET: "Build Sheet",
    DocType.POST_PRODUCTION_MEDIA: "Post-production Photos/Video",
    DocType.SHIPPING_CHECKLIST: "Shipping Checklist",
    DocType.PRE_SHIPPING_MEDIA: "Pre-shipping Photos/Video",
    DocType.BILL_OF_LADING: "Bill of Lading",
    DocType.PROOF_OF_FINAL_PAYMENT: "Proof of Final Payment",
    DocType.PAID_INVOICE: "Paid Invoice",
    DocType.WARRANTY: "Warranty",
    DocType.MANUAL: "Manual",
}


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def first_unmet_requirement(
    target: str,
    attached_doc_types: Iterable[str | None],
    order_fields: dict,
) -> tuple[str, str] | None:
    """
    First unmet requirement for moving into target, as ("document", DOC_TYPE) or ("field", name).
    Documents are checked in table order before fields. None when the gate is satisfied.
    """
    status = OrderStatus(target)
    attached = {d for d in attached_doc_types if d}
    for doc_type in REQUIRED_DOCS.get(status, []):
        if doc_type.value not in attached:
            return "document", doc_type.value
    for field in REQUIRED_FIELDS.get(status, []):
        if _is_empty(order_fields.get(field)):
            return "field", field
    return None


def label_status(status: str) -> str:
    return STATUS_LABELS.get(OrderStatus(status), status.replace("_", " "))


def requirement_table() -> list[dict]:
    """Requirement table as served to clients."""
    return [
        {
            "status": status.value,
            "label": STATUS_LABELS[status],
            "requiredDocs": [
                {"docType": d.value, "label": DOC_TYPE_LABELS[d]} for d in REQUIRED_DOCS.get(status, [])
            ],
            "requiredFields": list(REQUIRED_FIELDS.get(status, [])),
        }
        for status in FLOW_ORDER[1:] + [OrderStatus.CANCELED]
    ]
