from __future__ import annotations
"""Simple finite state machine utility for enforcing allowed outcome actions.

The graph maps a derived state to the set of actions allowed from it. Used by the
staff outcome handlers (RepairItem outcome):
    from vhc.utils.fsm import TransitionValidator
    OUTCOME_FSM = TransitionValidator({
        'incomplete': {'delete'},
        'ready': {'authorise', 'defer', 'decline', 'delete'},
        'authorised': {'reset'},
    }, field_name='outcome')
    OUTCOME_FSM.assert_can_transition(current_outcome, 'authorise')

Aborts with 409 (state conflict) if the action is not offered from the current state.
"""
from typing import Dict, Set
from flask import abort

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status', status_code: int = 409):
        self.graph = graph
        self.field_name = field_name
        self.status_code = status_code

    def allowed(self, current: str) -> Set[str]:
        return set(self.graph.get(current, set()))

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(self.status_code, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
