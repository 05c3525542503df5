"""Shipping saga state — where an order stands in the provider flow.

The provider flow has three steps that must run in order:

    NOT_STARTED ──create adhoc order──▶ ADHOC_CREATED ──assign AWB──▶
    AWB_ASSIGNED ──generate pickup──▶ PICKUP_GENERATED

The state is derived from the order's persisted progress flags, so an
interrupted flow resumes at the first step whose flag is not set.
"""

from enum import Enum


class ShippingState(Enum):
    NOT_STARTED = "NotStarted"
    ADHOC_CREATED = "AdhocCreated"
    AWB_ASSIGNED = "AWBAssigned"
    PICKUP_GENERATED = "PickupGenerated"


class ShippingStep(Enum):
    CREATE_ADHOC_ORDER = "create_adhoc_order"
    ASSIGN_AWB = "assign_awb"
    GENERATE_PICKUP = "generate_pickup"
    COMPLETE = "complete"


_NEXT_STEP = {
    ShippingState.NOT_STARTED: ShippingStep.CREATE_ADHOC_ORDER,
    ShippingState.ADHOC_CREATED: ShippingStep.ASSIGN_AWB,
    ShippingState.AWB_ASSIGNED: ShippingStep.GENERATE_PICKUP,
    ShippingState.PICKUP_GENERATED: ShippingStep.COMPLETE,
}


def shipping_state(progress) -> ShippingState:
    """Derive the saga state from a ShippingProgress (or None)."""
    if progress is None or not progress.adhoc_order_created:
        return ShippingState.NOT_STARTED
    if not progress.awb_assigned:
        return ShippingState.ADHOC_CREATED
    if not progress.pickup_generated:
        return ShippingState.AWB_ASSIGNED
    return ShippingState.PICKUP_GENERATED


def next_step(state: ShippingState) -> ShippingStep:
    return _NEXT_STEP[state]
