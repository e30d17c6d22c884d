"""
Idempotent movement submission.

A replay with the same key and the same request returns the original
movement without writing; the same key with a different request is a
conflict.
"""

import pytest
from sqlalchemy import func, select

from inventory_kernel.exceptions import (
    ConflictError,
    IdempotencyKeyReusedError,
    InventoryValidationError,
)
from inventory_kernel.models.idempotency import IdempotencyRecord
from inventory_kernel.models.movement import Movement


def _movement_count(session) -> int:
    return session.execute(select(func.count()).select_from(Movement)).scalar_one()


class TestReplay:

    def test_replay_returns_original(self, coordinator, balance_selector, session):
        first = coordinator.receive("ZR001", 5, idempotency_key="order-1")
        second = coordinator.receive("ZR001", 5, idempotency_key="order-1")

        assert second.id == first.id
        assert second.balance_version == 1
        assert _movement_count(session) == 1
        view = balance_selector.get_balance("ZR001")
        assert (view.quantity, view.version) == (5, 1)

    def test_replay_ignores_note_and_actor(self, coordinator):
        first = coordinator.receive("ZR001", 5, note="a", actor_id="u1", idempotency_key="k")
        second = coordinator.receive("ZR001", 5, note="b", actor_id="u2", idempotency_key="k")
        assert second.id == first.id
        assert second.note == "a"

    def test_replay_of_out_after_stock_is_gone(self, coordinator):
        coordinator.receive("ZR001", 2)
        first = coordinator.issue("ZR001", 2, idempotency_key="pick-1")
        # A fresh OUT would oversell; the replay must not be re-planned
        second = coordinator.issue("ZR001", 2, idempotency_key="pick-1")
        assert second.id == first.id

    def test_replay_is_logged(self, coordinator, captured_logs):
        first = coordinator.receive("ZR001", 5, idempotency_key="order-1")
        coordinator.receive("ZR001", 5, idempotency_key="order-1")

        [record] = [r for r in captured_logs() if r["message"] == "idempotent_replay"]
        assert record["movement_id"] == str(first.id)
        assert record["idempotency_key"] == "order-1"

    def test_record_binds_key_to_movement(self, coordinator, session):
        movement = coordinator.receive("ZR001", 5, idempotency_key="order-1")
        record = session.execute(select(IdempotencyRecord)).scalar_one()
        assert record.idempotency_key == "order-1"
        assert record.movement_id == movement.id
        assert len(record.payload_hash) == 64


class TestReuse:

    @pytest.mark.parametrize(
        "kwargs",
        [
            dict(product_code="ZR002", quantity=5),
            dict(product_code="ZR001", quantity=6),
            dict(product_code="ZR001", quantity=5, lot_number="L1"),
            dict(product_code="ZR001", quantity=5, expiration_date="2025-06-30"),
        ],
    )
    def test_different_request_is_rejected(self, coordinator, session, kwargs):
        first = coordinator.receive("ZR001", 5, idempotency_key="order-1")

        with pytest.raises(IdempotencyKeyReusedError) as exc_info:
            coordinator.receive(idempotency_key="order-1", **kwargs)

        exc = exc_info.value
        assert isinstance(exc, ConflictError)
        assert exc.code == "IDEMPOTENCY_KEY_REUSED"
        assert exc.movement_id == str(first.id)
        assert exc.expected_hash != exc.received_hash
        assert _movement_count(session) == 1

    def test_direction_change_is_rejected(self, coordinator):
        coordinator.receive("ZR001", 5, idempotency_key="k")
        with pytest.raises(IdempotencyKeyReusedError):
            coordinator.issue("ZR001", 5, idempotency_key="k")

    def test_failed_request_does_not_consume_key(self, coordinator):
        from inventory_kernel.exceptions import InsufficientStockError

        with pytest.raises(InsufficientStockError):
            coordinator.issue("ZR001", 1, idempotency_key="k")
        coordinator.receive("ZR001", 3)
        movement = coordinator.issue("ZR001", 1, idempotency_key="k")
        assert movement.balance_after == 2

    def test_blank_key_is_invalid(self, coordinator):
        with pytest.raises(InventoryValidationError) as exc_info:
            coordinator.receive("ZR001", 1, idempotency_key=" ")
        assert exc_info.value.fields == ("idempotency_key",)
