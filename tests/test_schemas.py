"""
Tests for mapping stored rows onto orders.
"""
from datetime import datetime, timezone

import pytest

from app.core.exceptions import RecordMappingError
from app.models.schemas import (
    ORDER_SCHEMA_VERSION, CartLine, DeliveryType, OrderStatus, PaymentMethod, PaymentStatus,
    new_order_record, order_from_record, order_item_record, order_to_record
)

from tests.conftest import TENANT_ID, make_customer, make_order


def minimal_record(**overrides):
    record = {
        "id": "order-9",
        "tenant_id": TENANT_ID,
        "status": "pending",
        "created_at": "2024-05-10T12:00:00Z",
        "total": 42,
    }
    record.update(overrides)
    return record


class TestOrderFromRecord:

    def test_optional_columns_fall_back_to_defaults(self):
        order = order_from_record(minimal_record())

        assert order.payment_method == PaymentMethod.CASH
        assert order.payment_status == PaymentStatus.PENDING
        assert order.customer.delivery_type == DeliveryType.PICKUP
        assert order.status_changed_at == order.created_at
        assert order.delivery_fee == 0
        assert order.discount == 0
        assert order.subtotal == 42
        assert order.items == []

    def test_naive_timestamps_are_utc(self):
        order = order_from_record(minimal_record(created_at=datetime(2024, 5, 10, 12, 0)))
        assert order.created_at.tzinfo == timezone.utc

    @pytest.mark.parametrize("missing", ["id", "tenant_id", "status", "created_at", "total"])
    def test_missing_required_column_is_rejected(self, missing):
        record = minimal_record()
        del record[missing]

        with pytest.raises(RecordMappingError) as exc_info:
            order_from_record(record)
        assert missing in exc_info.value.reason

    def test_unknown_status_is_rejected(self):
        with pytest.raises(RecordMappingError):
            order_from_record(minimal_record(status="delivered"))

    def test_unknown_payment_method_is_rejected(self):
        with pytest.raises(RecordMappingError):
            order_from_record(minimal_record(payment_method="bitcoin"))

    def test_newer_schema_version_is_rejected(self):
        with pytest.raises(RecordMappingError):
            order_from_record(minimal_record(schema_version=ORDER_SCHEMA_VERSION + 1))

    def test_non_numeric_total_is_rejected(self):
        with pytest.raises(RecordMappingError):
            order_from_record(minimal_record(total="lots"))

    def test_items_are_attached(self):
        items = [{
            "id": "item-1", "order_id": "order-9", "menu_item_id": "ham", "name": "Ham",
            "price": 5.0, "quantity": 1, "weight": 1.5, "weight_unit": "kg", "subtotal": 7.5,
        }]

        order = order_from_record(minimal_record(), items)

        assert order.items[0].weight == 1.5
        assert order.items[0].subtotal == 7.5

    def test_item_without_subtotal_is_rejected(self):
        with pytest.raises(RecordMappingError):
            order_from_record(minimal_record(), [{"order_id": "order-9", "menu_item_id": "ham",
                                                  "name": "Ham", "price": 5.0}])


class TestRecordBuilders:

    def test_to_record_and_back_keeps_the_order(self):
        order = make_order(status=OrderStatus.READY, payment_method=PaymentMethod.MERCADOPAGO,
                           payment_status=PaymentStatus.PAID, mercadopago_payment_id="PAY-1")

        restored = order_from_record(order_to_record(order), [item.model_dump() for item in order.items])

        assert restored == order

    def test_new_order_record_starts_pending_and_unpaid(self):
        record = new_order_record(TENANT_ID, make_customer(), 30.0, order_number=7, delivery_fee=5.0, discount=2.0)

        assert record["status"] == "pending"
        assert record["payment_status"] == "pending"
        assert record["total"] == 33.0
        assert record["status_changed_at"] == record["created_at"]

    def test_order_item_record_freezes_the_line(self):
        line = CartLine(item_id="ham", name="Ham", unit_price=5.0, sold_by_weight=True, weight=1.5, weight_unit="kg")

        record = order_item_record("order-1", TENANT_ID, line)

        assert record["menu_item_id"] == "ham"
        assert record["subtotal"] == 7.5
        assert record["weight"] == 1.5
        assert record["tenant_id"] == TENANT_ID
