# app/core/contract_state_graph.py
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Union

from app.core.errors import InvalidTransition, Locked
from app.models.enums import ContractState


class ContractOperation(str, Enum):
    GENERATE = "generate"
    SUBMIT_FOR_APPROVAL = "submit_for_approval"
    MARK_APPROVED = "mark_approved"
    SEND_FOR_SIGN = "send_for_sign"
    MARK_SIGNED = "mark_signed"
    ACTIVATE = "activate"
    CANCEL = "cancel"


class OperationRule(NamedTuple):
    required: FrozenSet[ContractState]
    target: ContractState


# Exact-match requirements: states are not totally ordered (see CANCEL).
CONTRACT_OPERATIONS: Dict[ContractOperation, OperationRule] = {
    ContractOperation.GENERATE: OperationRule(
        frozenset({ContractState.DRAFT}), ContractState.GENERATED
    ),
    ContractOperation.SUBMIT_FOR_APPROVAL: OperationRule(
        frozenset({ContractState.GENERATED}), ContractState.SUBMITTED_FOR_APPROVAL
    ),
    ContractOperation.MARK_APPROVED: OperationRule(
        frozenset({ContractState.SUBMITTED_FOR_APPROVAL}), ContractState.APPROVED
    ),
    ContractOperation.SEND_FOR_SIGN: OperationRule(
        frozenset({ContractState.APPROVED}), ContractState.SENT_FOR_SIGN
    ),
    ContractOperation.MARK_SIGNED: OperationRule(
        frozenset({ContractState.SENT_FOR_SIGN}), ContractState.SIGNED
    ),
    ContractOperation.ACTIVATE: OperationRule(
        frozenset({ContractState.SIGNED}), ContractState.ACTIVE
    ),
    ContractOperation.CANCEL: OperationRule(
        frozenset({
            ContractState.DRAFT,
            ContractState.GENERATED,
            ContractState.SUBMITTED_FOR_APPROVAL,
            ContractState.APPROVED,
            ContractState.SENT_FOR_SIGN,
        }),
        ContractState.CANCELLED,
    ),
}

POST_SIGN_STATES: FrozenSet[ContractState] = frozenset({ContractState.SIGNED, ContractState.ACTIVE})


def assert_operation_allowed(
    operation: ContractOperation,
    current: Union[ContractState, str],
) -> ContractState:
    """Returns the target state, or raises InvalidTransition / Locked."""
    rule = CONTRACT_OPERATIONS[operation]
    state = ContractState(current)

    if state in rule.required:
        return rule.target

    if operation is ContractOperation.CANCEL and state in POST_SIGN_STATES:
        raise Locked(
            "Only pre-sign contracts can be cancelled.",
            details={"state": state.value},
        )

    expected = ", ".join(sorted(s.value for s in rule.required))
    raise InvalidTransition(
        f"Cannot {operation.value} a contract in state {state.value}; requires {expected}.",
        details={"operation": operation.value, "state": state.value},
    )
