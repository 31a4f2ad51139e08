"""Order status transitions.

pending -> confirmed | cancelled
confirmed -> shipped
shipped -> delivered

delivered and cancelled are terminal. The orders_status_transition trigger
enforces the same table in the database.
"""

from typing import Dict, FrozenSet, Union

from errors import ConstraintViolation
from models import OrderStatus

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: Union[str, OrderStatus], new: Union[str, OrderStatus]) -> bool:
    current, new = OrderStatus(current), OrderStatus(new)
    return new in TRANSITIONS[current]


def validate_transition(current: Union[str, OrderStatus], new: Union[str, OrderStatus]) -> OrderStatus:
    """Return the new status, or raise if the move is not allowed.

    Raises:
        ConstraintViolation: On an unknown status or a disallowed transition
    """
    try:
        current_status = OrderStatus(current)
        new_status = OrderStatus(new)
    except ValueError:
        raise ConstraintViolation(
            f"Unknown order status: {new}",
            field='status',
            value=new,
            constraint='orders_status_check'
        )

    if not can_transition(current_status, new_status):
        raise ConstraintViolation(
            f"Cannot move order from {current_status.value} to {new_status.value}",
            field='status',
            value=new_status.value,
            constraint='orders_status_check'
        )
    return new_status


def is_terminal(status: Union[str, OrderStatus]) -> bool:
    return not TRANSITIONS[OrderStatus(status)]


__all__ = ['TRANSITIONS', 'can_transition', 'validate_transition', 'is_terminal']
