"""Order item status table.

The table is the single source of truth for which status an order item may
move to next. Callers ask ``available_transitions`` for the permitted next
statuses (with the label to show for each) instead of hardcoding the table.

    Ordered → {Cancelled, Shipped}
    Shipped → Delivered
    Delivered → Return Requested
    Cancelled → Refunded
    Return Requested → {Departed For Returning, Return Cancelled}
    Departed For Returning → {Returned, Return Cancelled}
    Returned → Refunded
    Return Cancelled, Refunded: terminal
"""

from enum import Enum

from protean.exceptions import ValidationError


class ItemStatus(Enum):
    ORDERED = "Ordered"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    RETURN_REQUESTED = "Return Requested"
    DEPARTED_FOR_RETURNING = "Departed For Returning"
    RETURNED = "Returned"
    RETURN_CANCELLED = "Return Cancelled"
    REFUNDED = "Refunded"


# Targets are kept in display order.
_VALID_TRANSITIONS: dict[ItemStatus, tuple[ItemStatus, ...]] = {
    ItemStatus.ORDERED: (ItemStatus.CANCELLED, ItemStatus.SHIPPED),
    ItemStatus.SHIPPED: (ItemStatus.DELIVERED,),
    ItemStatus.DELIVERED: (ItemStatus.RETURN_REQUESTED,),
    ItemStatus.CANCELLED: (ItemStatus.REFUNDED,),
    ItemStatus.RETURN_REQUESTED: (ItemStatus.DEPARTED_FOR_RETURNING, ItemStatus.RETURN_CANCELLED),
    ItemStatus.DEPARTED_FOR_RETURNING: (ItemStatus.RETURNED, ItemStatus.RETURN_CANCELLED),
    ItemStatus.RETURNED: (ItemStatus.REFUNDED,),
    ItemStatus.RETURN_CANCELLED: (),  # terminal
    ItemStatus.REFUNDED: (),  # terminal
}

_TRANSITION_LABELS = {
    ItemStatus.SHIPPED: "Mark as Shipped",
    ItemStatus.DELIVERED: "Mark as Delivered",
    ItemStatus.CANCELLED: "Cancel Item",
    ItemStatus.RETURN_REQUESTED: "Request Return",
    ItemStatus.DEPARTED_FOR_RETURNING: "Approve Return Pickup",
    ItemStatus.RETURNED: "Mark as Returned",
    ItemStatus.RETURN_CANCELLED: "Cancel Return",
    ItemStatus.REFUNDED: "Mark as Refunded",
}

RETURN_STATUSES = frozenset(
    {
        ItemStatus.RETURN_REQUESTED,
        ItemStatus.DEPARTED_FOR_RETURNING,
        ItemStatus.RETURNED,
        ItemStatus.RETURN_CANCELLED,
    }
)


def to_status(value) -> ItemStatus:
    """Coerce a status value (enum or display string) into an ``ItemStatus``."""
    if isinstance(value, ItemStatus):
        return value
    try:
        return ItemStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in ItemStatus)
        raise ValidationError({"target_status": [f"Unknown item status '{value}'. Expected one of: {valid}"]}) from None


def is_valid_transition(current, target) -> bool:
    """Return True when ``target`` is a permitted next status of ``current``."""
    try:
        current, target = ItemStatus(current), ItemStatus(target)
    except ValueError:
        return False
    return target in _VALID_TRANSITIONS[current]


def next_statuses(current) -> tuple[ItemStatus, ...]:
    return _VALID_TRANSITIONS[to_status(current)]


def is_terminal(status) -> bool:
    return not next_statuses(status)


def transition_label(target) -> str:
    return _TRANSITION_LABELS[to_status(target)]


def available_transitions(current) -> list[dict]:
    """List the permitted next statuses of ``current`` with their action labels."""
    return [{"status": target.value, "label": _TRANSITION_LABELS[target]} for target in next_statuses(current)]


def path_between(current, target) -> list[ItemStatus] | None:
    """Shortest chain of statuses leading from ``current`` to ``target``.

    The returned list excludes ``current`` and ends with ``target``. Returns
    None when ``target`` is unreachable.
    """
    current, target = to_status(current), to_status(target)
    frontier = [[current]]
    seen = {current}
    while frontier:
        path = frontier.pop(0)
        for candidate in _VALID_TRANSITIONS[path[-1]]:
            if candidate in seen:
                continue
            if candidate is target:
                return path[1:] + [candidate]
            seen.add(candidate)
            frontier.append(path + [candidate])
    return None


def describe_illegal_transition(current, target) -> str:
    """Explain why ``current`` cannot move to ``target`` and what is allowed instead."""
    current, target = to_status(current), to_status(target)
    allowed = next_statuses(current)
    if not allowed:
        return f"Item is {current.value}, which is final; no further status changes are allowed"

    message = f"Cannot move item from {current.value} to {target.value}"
    path = path_between(current, target)
    if path and len(path) > 1:
        missing = " → ".join(s.value for s in path[:-1])
        message += f"; it must pass through {missing} first"
    else:
        message += f"; allowed next statuses: {', '.join(s.value for s in allowed)}"
    return message
