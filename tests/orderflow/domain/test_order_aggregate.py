"""Tests for the Order aggregate: placement, item ledger and status history."""

import pytest
from orderflow.exceptions import IllegalStateError, NotFoundError
from orderflow.order.order import Order, OrderPaymentStatus, PaymentMethod
from orderflow.order.status import ItemStatus
from protean.exceptions import ValidationError

ADDRESS = {"name": "Asha Rao", "street": "12 MG Road", "city": "Bengaluru", "postal_code": "560001"}


def _place(items=None, payment_method="COD"):
    return Order.place(
        customer_id="cust-001",
        items_data=items
        or [
            {"product_id": "prod-1", "color_id": "black", "size": "M", "quantity": 5, "unit_amount": 100.0},
            {"product_id": "prod-2", "color_id": "white", "size": "L", "quantity": 1, "unit_amount": 250.0},
        ],
        shipping_address=ADDRESS,
        payment_method=payment_method,
    )


def _row(order, product_id="prod-1", status=ItemStatus.ORDERED):
    return next(i for i in order.items_in(status) if str(i.product_id) == product_id)


class TestPlaceOrder:
    def test_every_item_starts_ordered(self):
        order = _place()
        assert len(order.items) == 2
        assert all(i.order_status == ItemStatus.ORDERED.value for i in order.items)

    def test_line_amounts(self):
        order = _place()
        row = _row(order)
        assert row.quantity == 5
        assert row.line_quantity == 5
        assert row.total_amount == 500.0
        assert order.grand_total == 750.0

    def test_payment_starts_pending_without_reference(self):
        order = _place(payment_method="ONLINE")
        assert order.payment_status == OrderPaymentStatus.PENDING.value
        assert order.payment_provider is None
        assert order.transaction_id is None
        assert order.is_online

    def test_records_order_placed_history(self):
        order = _place()
        row = _row(order)
        history = order.history_for(row.id)
        assert len(history) == 1
        assert history[0].status == "Ordered"
        assert history[0].note == "Order placed"

    def test_raises_order_placed_event(self):
        order = _place()
        assert order._events[-1].__class__.__name__ == "OrderPlaced"

    def test_rejects_empty_order(self):
        with pytest.raises(ValidationError) as exc_info:
            Order.place(customer_id="cust-001", items_data=[], shipping_address=ADDRESS, payment_method="COD")
        assert "items" in exc_info.value.messages

    def test_rejects_duplicate_lines(self):
        line = {"product_id": "prod-1", "color_id": "black", "size": "M", "quantity": 1, "unit_amount": 10.0}
        with pytest.raises(ValidationError) as exc_info:
            _place(items=[line, dict(line)])
        assert "items" in exc_info.value.messages

    def test_rejects_unknown_payment_method(self):
        with pytest.raises(ValidationError):
            _place(payment_method="CHEQUE")

    def test_rejects_zero_quantity(self):
        with pytest.raises(ValidationError):
            _place(items=[{"product_id": "p", "color_id": "c", "size": "S", "quantity": 0, "unit_amount": 10.0}])


class TestFullQuantityTransition:
    def test_updates_row_in_place(self):
        order = _place()
        row = _row(order, "prod-2")
        moved = order.transition_item(row.id, 1, ItemStatus.CANCELLED, note="Changed my mind")

        assert moved.id == row.id
        assert moved.order_status == "Cancelled"
        assert len(order.items) == 2

    def test_appends_history(self):
        order = _place()
        row = _row(order, "prod-2")
        order.transition_item(row.id, 1, "Cancelled", note="Changed my mind")

        history = order.history_for(row.id)
        assert [h.status for h in history] == ["Ordered", "Cancelled"]
        assert history[-1].note == "Changed my mind"
        assert history[-1].quantity == 1

    def test_raises_item_status_changed(self):
        order = _place()
        row = _row(order, "prod-2")
        order.transition_item(row.id, 1, "Shipped")

        event = order._events[-1]
        assert event.__class__.__name__ == "ItemStatusChanged"
        assert event.previous_status == "Ordered"
        assert event.new_status == "Shipped"
        assert event.quantity == 1


class TestPartialQuantityTransition:
    def test_splits_row(self):
        order = _place()
        row = _row(order)
        moved = order.transition_item(row.id, 2, ItemStatus.SHIPPED)

        assert moved.id != row.id
        assert moved.quantity == 2
        assert moved.order_status == "Shipped"
        assert str(moved.parent_item_id) == str(row.id)
        assert row.quantity == 3
        assert row.order_status == "Ordered"

    def test_split_rows_carry_their_own_amounts(self):
        order = _place()
        row = _row(order)
        moved = order.transition_item(row.id, 2, ItemStatus.SHIPPED)

        assert moved.total_amount == 200.0
        assert row.total_amount == 300.0
        assert order.grand_total == 750.0

    def test_line_quantity_is_conserved_across_splits(self):
        order = _place()
        row = _row(order)
        shipped = order.transition_item(row.id, 3, ItemStatus.SHIPPED)
        order.transition_item(row.id, 1, ItemStatus.CANCELLED)
        order.transition_item(shipped.id, 1, ItemStatus.DELIVERED)

        rows = [i for i in order.items if str(i.product_id) == "prod-1"]
        assert len(rows) == 4
        assert sum(i.quantity for i in rows) == 5

    def test_new_row_history_points_to_parent(self):
        order = _place()
        row = _row(order)
        moved = order.transition_item(row.id, 2, ItemStatus.CANCELLED, note="Two too many")

        history = order.history_for(moved.id)
        assert len(history) == 1
        assert history[0].status == "Cancelled"
        assert str(history[0].parent_item_id) == str(row.id)

    def test_further_transitions_move_the_split_row(self):
        order = _place()
        row = _row(order)
        shipped = order.transition_item(row.id, 2, ItemStatus.SHIPPED)
        delivered = order.transition_item(shipped.id, 2, ItemStatus.DELIVERED)

        assert delivered.id == shipped.id
        assert [h.status for h in order.history_for(shipped.id)] == ["Shipped", "Delivered"]


class TestStatusHistoryLedger:
    @staticmethod
    def _entries(order):
        return [(str(h.item_id), h.status, h.quantity, h.changed_at) for h in order.status_history]

    def test_history_only_grows_in_time_order(self):
        order = _place()
        row = _row(order)
        shorts = _row(order, "prod-2")
        steps = [
            lambda: order.transition_item(row.id, 2, ItemStatus.SHIPPED),
            lambda: order.transition_item(row.id, 1, ItemStatus.CANCELLED),
            lambda: order.transition_item(shorts.id, 1, ItemStatus.SHIPPED),
            lambda: order.transition_item(shorts.id, 1, ItemStatus.DELIVERED),
            lambda: order.transition_item(shorts.id, 1, ItemStatus.RETURN_REQUESTED),
            lambda: order.transition_item(row.id, 2, ItemStatus.SHIPPED),
        ]

        seen = self._entries(order)
        for step in steps:
            step()
            current = self._entries(order)
            assert len(current) == len(seen) + 1
            assert current[: len(seen)] == seen
            seen = current

        timestamps = [entry[3] for entry in seen]
        assert timestamps == sorted(timestamps)

    def test_rejected_transition_adds_no_history(self):
        order = _place()
        before = self._entries(order)
        with pytest.raises(IllegalStateError):
            order.transition_item(_row(order).id, 1, ItemStatus.DELIVERED)
        assert self._entries(order) == before


class TestTransitionGuards:
    def test_illegal_transition(self):
        order = _place()
        row = _row(order)
        with pytest.raises(IllegalStateError) as exc_info:
            order.transition_item(row.id, 1, ItemStatus.DELIVERED)
        assert "must pass through Shipped" in str(exc_info.value)

    def test_illegal_transition_leaves_order_untouched(self):
        order = _place()
        row = _row(order)
        with pytest.raises(IllegalStateError):
            order.transition_item(row.id, 2, ItemStatus.REFUNDED)
        assert row.quantity == 5
        assert len(order.items) == 2
        assert len(order.history_for(row.id)) == 1

    def test_terminal_status_cannot_move(self):
        order = _place()
        row = _row(order, "prod-2")
        order.transition_item(row.id, 1, ItemStatus.CANCELLED)
        order.transition_item(row.id, 1, ItemStatus.REFUNDED)
        with pytest.raises(IllegalStateError) as exc_info:
            order.transition_item(row.id, 1, ItemStatus.ORDERED)
        assert "final" in str(exc_info.value)

    @pytest.mark.parametrize("quantity", [0, -1, 6])
    def test_quantity_out_of_range(self, quantity):
        order = _place()
        row = _row(order)
        with pytest.raises(ValidationError) as exc_info:
            order.transition_item(row.id, quantity, ItemStatus.SHIPPED)
        assert "quantity" in exc_info.value.messages

    def test_unknown_target_status(self):
        order = _place()
        row = _row(order)
        with pytest.raises(ValidationError):
            order.transition_item(row.id, 1, "Lost")

    def test_unknown_item(self):
        order = _place()
        with pytest.raises(NotFoundError):
            order.transition_item("no-such-item", 1, ItemStatus.SHIPPED)


class TestLineConservationInvariant:
    def test_rows_must_add_up_to_line_quantity(self):
        order = _place()
        row = _row(order)
        with pytest.raises(ValidationError) as exc_info:
            row.quantity = 4
        assert "items" in exc_info.value.messages


class TestPaymentMethodChoices:
    def test_enum_values(self):
        assert {m.value for m in PaymentMethod} == {"COD", "ONLINE"}
