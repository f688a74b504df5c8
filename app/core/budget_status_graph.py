# app/core/budget_status_graph.py
from __future__ import annotations

from typing import Dict, FrozenSet, Union

from app.core.errors import InvalidTransition
from app.models.enums import BudgetStatus

ALLOWED_STATUS_TRANSITIONS: Dict[BudgetStatus, FrozenSet[BudgetStatus]] = {
    BudgetStatus.DRAFT: frozenset({
        BudgetStatus.SUBMITTED,
        BudgetStatus.LOCKED,
    }),

    BudgetStatus.SUBMITTED: frozenset({
        BudgetStatus.APPROVED,
        BudgetStatus.REJECTED,
        BudgetStatus.DRAFT,
    }),

    BudgetStatus.APPROVED: frozenset({
        BudgetStatus.LOCKED,
    }),

    BudgetStatus.REJECTED: frozenset({
        BudgetStatus.DRAFT,
    }),

    BudgetStatus.LOCKED: frozenset(),
}


def assert_status_transition(
    current: Union[BudgetStatus, str],
    next_status: Union[BudgetStatus, str],
) -> BudgetStatus:
    """
    Pure check over ALLOWED_STATUS_TRANSITIONS; no other budget field matters.
    Returns the validated target status.
    """
    try:
        src = BudgetStatus(current)
        dst = BudgetStatus(next_status)
    except ValueError:
        raise InvalidTransition(
            f"Invalid status transition: {current} -> {next_status}",
            details={"from": getattr(current, "value", current), "to": getattr(next_status, "value", next_status)},
        )

    if dst not in ALLOWED_STATUS_TRANSITIONS[src]:
        raise InvalidTransition(
            f"Invalid status transition: {src.value} -> {dst.value}",
            details={"from": src.value, "to": dst.value},
        )
    return dst
