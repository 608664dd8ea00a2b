import pytest

from conftest import attach, place_order
from poolorders import history, transitions
from poolorders.errors import Conflict, DocumentMissing, FieldMissing, NotFound, ValidationError
from poolorders.order_state import OrderStatus

IN_PRODUCTION_DOCS = ["PROOF_OF_PAYMENT", "QUOTE", "INVOICE", "BUILD_SHEET", "POST_PRODUCTION_MEDIA"]
PRE_SHIPPING_DOCS = ["SHIPPING_CHECKLIST", "PRE_SHIPPING_MEDIA", "BILL_OF_LADING", "PROOF_OF_FINAL_PAYMENT", "PAID_INVOICE"]


async def _status(db, order_id):
    async with db.connection() as repo:
        return (await repo.get_order(order_id)).status


async def _history(db, world, order_id):
    return await history.list_for_order(db, world.admin, order_id)


async def test_approve_without_payment_proof_is_rejected(db, world):
    order = await place_order(db, world)

    with pytest.raises(DocumentMissing) as exc:
        await transitions.approve(db, world.admin, order.id)

    assert exc.value.doc_type == "PROOF_OF_PAYMENT"
    assert exc.value.status_code == 422
    assert await _status(db, order.id) == OrderStatus.PENDING_PAYMENT_APPROVAL
    assert await _history(db, world, order.id) == []


async def test_approve_after_proof_attached(db, world, outbox):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")

    result = await transitions.approve(db, world.admin, order.id)

    assert result.previous == OrderStatus.PENDING_PAYMENT_APPROVAL
    assert result.order.status == OrderStatus.APPROVED
    entries = await _history(db, world, order.id)
    assert len(entries) == 1
    assert entries[0].status == OrderStatus.APPROVED
    assert entries[0].comment == "Status changed to APPROVED"
    assert entries[0].user_id == world.admin.user_id
    async with db.connection() as repo:
        notes = await repo.list_notifications(world.dealer.dealer_id, 0, 10)
        audit_rows = await repo.list_audit(10)
    assert notes[0].title == "Order status updated"
    assert notes[0].order_id == order.id
    assert audit_rows[0].action == "ORDER_STATUS_CHANGED"
    assert audit_rows[0].meta == {"prev": "PENDING_PAYMENT_APPROVAL", "next": "APPROVED", "note": None}
    assert outbox[0]["to"] == "acme@example.com"


async def test_note_becomes_history_comment(db, world):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")

    result = await transitions.transition(db, world.admin, order.id, "APPROVED", "  wire received  ")

    assert result.history.comment == "wire received"


async def test_in_production_reports_first_missing_document(db, world):
    order = await place_order(db, world, serial_number="SN-100", status="APPROVED")
    await attach(db, order.id, "PROOF_OF_PAYMENT", "QUOTE")

    with pytest.raises(DocumentMissing) as exc:
        await transitions.transition(db, world.admin, order.id, "IN_PRODUCTION")

    assert exc.value.doc_type == "INVOICE"
    assert exc.value.payload()["missing"] == {"kind": "document", "name": "INVOICE"}


async def test_in_production_without_serial_number(db, world):
    order = await place_order(db, world, status="APPROVED")
    await attach(db, order.id, *IN_PRODUCTION_DOCS)

    with pytest.raises(FieldMissing) as exc:
        await transitions.transition(db, world.admin, order.id, "IN_PRODUCTION")

    assert exc.value.field == "serial_number"
    assert await _status(db, order.id) == OrderStatus.APPROVED


async def test_forward_skip_checks_only_target_requirements(db, world):
    order = await place_order(db, world, serial_number="SN-7")

    result = await transitions.transition(db, world.admin, order.id, "COMPLETED")

    assert result.order.status == OrderStatus.COMPLETED


async def test_full_pipeline(db, world):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")
    await transitions.approve(db, world.admin, order.id)
    await attach(db, order.id, *IN_PRODUCTION_DOCS[1:])
    await transitions.set_serial_number(db, world.admin, order.id, "SN-42")
    await transitions.transition(db, world.admin, order.id, "IN_PRODUCTION")
    await attach(db, order.id, *PRE_SHIPPING_DOCS)
    await transitions.transition(db, world.admin, order.id, "PRE_SHIPPING")
    await transitions.transition(db, world.admin, order.id, "COMPLETED")

    entries = await _history(db, world, order.id)
    assert [e.status.value for e in entries] == ["COMPLETED", "PRE_SHIPPING", "IN_PRODUCTION", "APPROVED"]


@pytest.mark.parametrize("terminal", ["COMPLETED", "CANCELED"])
async def test_terminal_status_cannot_be_left(db, world, terminal):
    order = await place_order(db, world, status=terminal, serial_number="SN-1")
    await attach(db, order.id, "PROOF_OF_PAYMENT")

    with pytest.raises(Conflict):
        await transitions.approve(db, world.admin, order.id)
    with pytest.raises(Conflict):
        await transitions.cancel(db, world.admin, order.id)


async def test_same_status_is_a_conflict(db, world):
    order = await place_order(db, world, status="APPROVED")
    await attach(db, order.id, "PROOF_OF_PAYMENT")

    with pytest.raises(Conflict):
        await transitions.approve(db, world.admin, order.id)


async def test_cancel_skips_requirements(db, world):
    order = await place_order(db, world)

    result = await transitions.cancel(db, world.admin, order.id, "customer withdrew")

    assert result.order.status == OrderStatus.CANCELED
    assert result.history.comment == "customer withdrew"


async def test_unknown_status_and_order(db, world):
    order = await place_order(db, world)
    with pytest.raises(ValidationError):
        await transitions.transition(db, world.admin, order.id, "SHIPPED")
    with pytest.raises(NotFound):
        await transitions.transition(db, world.admin, "missing", "CANCELED")


async def test_lost_swap_is_retried(db, world):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")
    db.stale_swaps = 1

    result = await transitions.approve(db, world.admin, order.id)

    assert result.order.status == OrderStatus.APPROVED
    assert len(await _history(db, world, order.id)) == 1


async def test_retry_rechecks_the_fresh_status(db, world):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")

    def cancel_rows(tables):
        for row in tables["orders"]:
            if row["id"] == order.id:
                row["status"] = "CANCELED"

    def concurrent_cancel(memory):
        memory.concurrently(cancel_rows)

    db.stale_swaps = 1
    db.on_stale = concurrent_cancel

    with pytest.raises(Conflict):
        await transitions.approve(db, world.admin, order.id)
    assert await _status(db, order.id) == OrderStatus.CANCELED


async def test_gives_up_after_max_attempts(db, world, monkeypatch):
    from poolorders.config import settings

    monkeypatch.setattr(settings, "transition_max_attempts", 2)
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")
    db.stale_swaps = 2

    with pytest.raises(Conflict):
        await transitions.approve(db, world.admin, order.id)
    assert await _status(db, order.id) == OrderStatus.PENDING_PAYMENT_APPROVAL


async def test_failed_history_write_keeps_status_change(db, world, outbox):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")
    db.fail_next("insert_history")

    result = await transitions.approve(db, world.admin, order.id)

    assert result.history is None
    assert result.order.status == OrderStatus.APPROVED
    assert await _status(db, order.id) == OrderStatus.APPROVED
    assert await _history(db, world, order.id) == []
    assert len(outbox) == 1


async def test_history_failure_keeps_earlier_writes_in_the_transaction(db, world):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")
    await transitions.approve(db, world.admin, order.id, note="paid")
    await attach(db, order.id, *IN_PRODUCTION_DOCS)
    await transitions.set_serial_number(db, world.admin, order.id, "GG-1")
    db.fail_next("insert_history")

    await transitions.transition(db, world.admin, order.id, "IN_PRODUCTION")

    assert await _status(db, order.id) == OrderStatus.IN_PRODUCTION
    assert [h.comment for h in await _history(db, world, order.id)] == ["paid"]


async def test_failed_notification_does_not_undo_transition(db, world):
    order = await place_order(db, world)
    await attach(db, order.id, "PROOF_OF_PAYMENT")
    db.fail_next("insert_notification")
    db.fail_next("insert_audit")

    result = await transitions.approve(db, world.admin, order.id)

    assert result.order.status == OrderStatus.APPROVED
    assert await _status(db, order.id) == OrderStatus.APPROVED
    assert len(await _history(db, world, order.id)) == 1


async def test_reassign_factory(db, world):
    order = await place_order(db, world)

    updated = await transitions.reassign_factory(
        db, world.admin, order.id, {"factory_location_id": world.factory.id, "shipping_method": "QUOTE"}
    )

    assert updated.factory_name == "Factory East"
    assert updated.shipping_method == "QUOTE"
    with pytest.raises(ValidationError):
        await transitions.reassign_factory(db, world.admin, order.id, {"factory_location_id": "nowhere"})
    with pytest.raises(ValidationError):
        await transitions.reassign_factory(db, world.admin, order.id, {"shipping_method": "DRONE"})


def test_clamp_priority():
    assert transitions.clamp_priority(0) == 1
    assert transitions.clamp_priority(123456) == 9999
    assert transitions.clamp_priority("15") == 15
    assert transitions.clamp_priority(None) is None
    with pytest.raises(ValidationError):
        transitions.clamp_priority("soon")


async def test_batch_priority_is_all_or_nothing(db, world):
    first = await place_order(db, world)
    second = await place_order(db, world)

    assert await transitions.batch_update_priority(db, world.admin, [(first.id, 3), (second.id, 1)]) == 2
    with pytest.raises(NotFound):
        await transitions.batch_update_priority(db, world.admin, [(first.id, 50), ("missing", 1)])

    async with db.connection() as repo:
        assert (await repo.get_order(first.id)).production_priority == 3
