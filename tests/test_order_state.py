import pytest

from poolorders.order_state import (
    REQUIRED_DOCS,
    DocType,
    OrderStatus,
    first_unmet_requirement,
    is_terminal,
    label_status,
    requirement_table,
)

IN_PRODUCTION_DOCS = ["PROOF_OF_PAYMENT", "QUOTE", "INVOICE", "BUILD_SHEET", "POST_PRODUCTION_MEDIA"]
PRE_SHIPPING_DOCS = ["SHIPPING_CHECKLIST", "PRE_SHIPPING_MEDIA", "BILL_OF_LADING", "PROOF_OF_FINAL_PAYMENT", "PAID_INVOICE"]


def test_approved_needs_proof_of_payment():
    assert first_unmet_requirement("APPROVED", [], {}) == ("document", "PROOF_OF_PAYMENT")
    assert first_unmet_requirement("APPROVED", ["PROOF_OF_PAYMENT"], {}) is None


def test_documents_checked_in_table_order():
    attached = []
    for expected in IN_PRODUCTION_DOCS:
        assert first_unmet_requirement("IN_PRODUCTION", attached, {"serial_number": "SN-1"}) == ("document", expected)
        attached.append(expected)
    assert first_unmet_requirement("IN_PRODUCTION", attached, {"serial_number": "SN-1"}) is None


def test_documents_before_fields():
    assert first_unmet_requirement("PRE_SHIPPING", [], {}) == ("document", "SHIPPING_CHECKLIST")
    assert first_unmet_requirement("PRE_SHIPPING", PRE_SHIPPING_DOCS, {}) == ("field", "serial_number")


@pytest.mark.parametrize("serial", [None, "", "   "])
def test_blank_serial_number_is_missing(serial):
    assert first_unmet_requirement("COMPLETED", [], {"serial_number": serial}) == ("field", "serial_number")


def test_completed_needs_no_documents():
    assert first_unmet_requirement("COMPLETED", [], {"serial_number": "SN-9"}) is None


def test_canceled_and_pending_have_no_gate():
    assert first_unmet_requirement("CANCELED", [], {}) is None
    assert first_unmet_requirement("PENDING_PAYMENT_APPROVAL", [], {}) is None


def test_none_doc_types_are_ignored():
    assert first_unmet_requirement("APPROVED", [None, "PROOF_OF_PAYMENT"], {}) is None


def test_pre_shipping_does_not_require_production_documents():
    assert DocType.PROOF_OF_PAYMENT not in REQUIRED_DOCS[OrderStatus.PRE_SHIPPING]
    assert first_unmet_requirement("PRE_SHIPPING", PRE_SHIPPING_DOCS, {"serial_number": "SN-2"}) is None


def test_terminal_statuses():
    assert is_terminal("COMPLETED")
    assert is_terminal("CANCELED")
    assert not is_terminal("PRE_SHIPPING")


def test_labels():
    assert label_status("PENDING_PAYMENT_APPROVAL") == "Pending Payment Approval"
    assert label_status("PRE_SHIPPING") == "Pre-Shipping"


def test_requirement_table_shape():
    table = {row["status"]: row for row in requirement_table()}
    assert list(table) == ["APPROVED", "IN_PRODUCTION", "PRE_SHIPPING", "COMPLETED", "CANCELED"]
    assert [d["docType"] for d in table["IN_PRODUCTION"]["requiredDocs"]] == IN_PRODUCTION_DOCS
    assert table["COMPLETED"]["requiredDocs"] == []
    assert table["COMPLETED"]["requiredFields"] == ["serial_number"]
    assert table["CANCELED"]["requiredDocs"] == [] and table["CANCELED"]["requiredFields"] == []
