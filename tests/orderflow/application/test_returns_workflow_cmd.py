"""Application tests for the cancellation, return and item refund workflow."""

import pytest
from orderflow.exceptions import ExternalProviderError, IllegalStateError
from orderflow.gateway import get_gateway
from orderflow.order.loading import load_order
from orderflow.order.returns import (
    RequestItemReturn,
    approve_return,
    cancel_item,
    cancel_return,
    receive_return,
    refund_item,
    request_return,
    return_queue,
)
from orderflow.order.transition import apply_transition
from orderflow.payment.loading import load_transaction
from orderflow.payment.refund import refund_payment
from protean import current_domain
from protean.exceptions import ValidationError


def _deliver(order_id, item_id, quantity):
    apply_transition(order_id, item_id, quantity, "Shipped")
    apply_transition(order_id, item_id, quantity, "Delivered")


class TestCancelItem:
    def test_cancel_ordered_item(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        result = cancel_item(order_id, item_id_for(order_id), 1, note="Found it cheaper")
        assert result["order_status"] == "Cancelled"
        assert result["quantity"] == 1

    def test_shipped_item_cannot_be_cancelled(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id, "prod-2")
        apply_transition(order_id, item_id, 1, "Shipped")
        with pytest.raises(IllegalStateError):
            cancel_item(order_id, item_id, 1)


class TestReturnLifecycle:
    def test_request_return_needs_a_reason(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id, "prod-2")
        _deliver(order_id, item_id, 1)
        with pytest.raises(ValidationError):
            current_domain.process(
                RequestItemReturn(order_id=order_id, item_id=item_id, quantity=1),
                asynchronous=False,
            )

    def test_only_delivered_items_can_be_returned(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        with pytest.raises(IllegalStateError):
            request_return(order_id, item_id_for(order_id), 1, note="Wrong size")

    def test_partial_return(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id)
        _deliver(order_id, item_id, 3)

        returned = request_return(order_id, item_id, 1, note="Wrong size")
        approve_return(order_id, returned["item_id"], 1)
        receive_return(order_id, returned["item_id"], 1, note="Received at warehouse")

        order = load_order(order_id)
        assert order.find_item(item_id).order_status == "Delivered"
        assert order.find_item(item_id).quantity == 2
        assert order.find_item(returned["item_id"]).order_status == "Returned"

    def test_customer_withdraws_return(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id, "prod-2")
        _deliver(order_id, item_id, 1)
        request_return(order_id, item_id, 1, note="Wrong colour")

        result = cancel_return(order_id, item_id, 1, note="Kept it after all")
        assert result["order_status"] == "Return Cancelled"

    def test_return_cancelled_after_pickup(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id, "prod-2")
        _deliver(order_id, item_id, 1)
        request_return(order_id, item_id, 1, note="Wrong colour")
        approve_return(order_id, item_id, 1)
        assert cancel_return(order_id, item_id, 1)["order_status"] == "Return Cancelled"

    def test_returned_item_cannot_be_cancelled(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id, "prod-2")
        _deliver(order_id, item_id, 1)
        request_return(order_id, item_id, 1, note="Wrong colour")
        approve_return(order_id, item_id, 1)
        receive_return(order_id, item_id, 1)
        with pytest.raises(IllegalStateError):
            cancel_return(order_id, item_id, 1)


class TestReturnQueue:
    def test_lists_items_in_return_statuses(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        first = item_id_for(order_id)
        second = item_id_for(order_id, "prod-2")
        _deliver(order_id, first, 3)
        _deliver(order_id, second, 1)
        request_return(order_id, first, 1, note="Wrong size")
        request_return(order_id, second, 1, note="Changed my mind")
        approve_return(order_id, second, 1)

        queue = return_queue()
        assert {row["order_status"] for row in queue} == {"Return Requested", "Departed For Returning"}
        requested = return_queue("Return Requested")
        assert len(requested) == 1
        assert requested[0]["note"] == "Wrong size"
        assert requested[0]["order_id"] == order_id

    def test_non_return_status_is_rejected(self):
        with pytest.raises(ValidationError):
            return_queue("Shipped")


class TestCodRefund:
    def test_returned_cod_item_is_refunded_without_provider(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id, "prod-2")
        _deliver(order_id, item_id, 1)
        request_return(order_id, item_id, 1, note="Defective")
        approve_return(order_id, item_id, 1)
        receive_return(order_id, item_id, 1)

        result = refund_item(order_id, item_id, 1, note="Cash returned at store")
        assert result["order_status"] == "Refunded"
        assert get_gateway("razorpay").calls == []

    def test_cancelled_cod_item_has_nothing_to_refund(self, place_cod_order, item_id_for):
        order_id = place_cod_order()
        item_id = item_id_for(order_id, "prod-2")
        cancel_item(order_id, item_id, 1)
        with pytest.raises(IllegalStateError):
            refund_item(order_id, item_id, 1)


class TestOnlineRefund:
    def test_cancelled_item_refunds_through_provider(self, paid_online_order, item_id_for):
        order_id, transaction_id = paid_online_order()
        item_id = item_id_for(order_id)
        cancel_item(order_id, item_id, 2)
        cancelled_id = item_id_for(order_id, status="Cancelled")

        result = refund_item(order_id, cancelled_id, 2)

        assert result["order_status"] == "Refunded"
        txn = load_transaction(transaction_id)
        assert txn.status == "refunded"
        assert txn.refunded_amount == 200.0
        assert txn.unallocated_refund == 0.0
        assert load_order(order_id).payment_status == "REFUNDED"
        assert get_gateway("razorpay").calls[-1]["amount"] == 200.0

    def test_second_item_draws_from_larger_refund(self, paid_online_order, item_id_for):
        order_id, transaction_id = paid_online_order()
        first = item_id_for(order_id)
        second = item_id_for(order_id, "prod-2")
        cancel_item(order_id, first, 3)
        cancel_item(order_id, second, 1)

        refund_item(order_id, first, 3, amount=550.0)
        refund_item(order_id, second, 1)

        txn = load_transaction(transaction_id)
        assert txn.allocated_refund == 550.0
        refund_calls = [c for c in get_gateway("razorpay").calls if c["method"] == "refund"]
        assert len(refund_calls) == 1

    def test_item_not_covered_by_earlier_refund(self, paid_online_order, item_id_for):
        order_id, _ = paid_online_order()
        first = item_id_for(order_id)
        second = item_id_for(order_id, "prod-2")
        cancel_item(order_id, first, 3)
        cancel_item(order_id, second, 1)
        refund_item(order_id, first, 3)

        with pytest.raises(IllegalStateError):
            refund_item(order_id, second, 1)
        assert load_order(order_id).find_item(second).order_status == "Cancelled"

    def test_refund_amount_must_cover_item(self, paid_online_order, item_id_for):
        order_id, _ = paid_online_order()
        item_id = item_id_for(order_id, "prod-2")
        cancel_item(order_id, item_id, 1)
        with pytest.raises(ValidationError):
            refund_item(order_id, item_id, 1, amount=100.0)

    def test_provider_failure_keeps_item_cancelled(self, paid_online_order, item_id_for):
        order_id, transaction_id = paid_online_order()
        item_id = item_id_for(order_id, "prod-2")
        cancel_item(order_id, item_id, 1)
        get_gateway("razorpay").configure(should_succeed=False, failure_reason="Provider down")

        with pytest.raises(ExternalProviderError):
            refund_item(order_id, item_id, 1)

        assert load_order(order_id).find_item(item_id).order_status == "Cancelled"
        assert load_transaction(transaction_id).status == "success"

    def test_generic_transition_to_refunded_needs_provider_refund(self, paid_online_order, item_id_for):
        order_id, transaction_id = paid_online_order()
        item_id = item_id_for(order_id, "prod-2")
        cancel_item(order_id, item_id, 1)
        with pytest.raises(IllegalStateError):
            apply_transition(order_id, item_id, 1, "Refunded")

        refund_payment(transaction_id, amount=250.0)
        assert apply_transition(order_id, item_id, 1, "Refunded")["order_status"] == "Refunded"

    def test_unpaid_online_order_has_nothing_to_refund(self, place_online_order, item_id_for):
        order_id = place_online_order()
        item_id = item_id_for(order_id, "prod-2")
        cancel_item(order_id, item_id, 1)
        with pytest.raises(IllegalStateError):
            refund_item(order_id, item_id, 1)
