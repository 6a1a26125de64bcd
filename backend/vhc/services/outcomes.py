from __future__ import annotations
"""Outcome calculation for repair items.

`calculate_outcome` is the single place the visible lifecycle state of an item is
derived. Closure gating, eligibility checks and serialization all call it; the derived
value is never written back to storage.

Priority:
  1. deleted_at set                -> deleted (nothing else is consulted)
  2. explicit outcome_status       -> that value
  3. legacy customer_approved      -> authorised (True) / declined (False)
  4. labour & parts satisfied      -> ready, otherwise incomplete
"""
from typing import Iterable
from sqlalchemy import and_
from vhc.models.repair_item import RepairItem
from vhc.utils.fsm import TransitionValidator

INCOMPLETE = 'incomplete'
READY = 'ready'
AUTHORISED = RepairItem.OUTCOME_AUTHORISED
DEFERRED = RepairItem.OUTCOME_DEFERRED
DECLINED = RepairItem.OUTCOME_DECLINED
DELETED = RepairItem.OUTCOME_DELETED
ALL_OUTCOMES = (INCOMPLETE, READY, AUTHORISED, DEFERRED, DECLINED, DELETED)
PENDING_OUTCOMES = (INCOMPLETE, READY)
TERMINAL_OUTCOMES = (AUTHORISED, DEFERRED, DECLINED, DELETED)

# Staff actions
ACTION_AUTHORISE = 'authorise'
ACTION_DEFER = 'defer'
ACTION_DECLINE = 'decline'
ACTION_DELETE = 'delete'
ACTION_RESET = 'reset'

OUTCOME_FSM = TransitionValidator({
    INCOMPLETE: {ACTION_DELETE},
    READY: {ACTION_AUTHORISE, ACTION_DEFER, ACTION_DECLINE, ACTION_DELETE},
    AUTHORISED: {ACTION_RESET},
    DEFERRED: {ACTION_RESET},
    DECLINED: {ACTION_RESET},
    DELETED: set(),
}, field_name='outcome')


def labour_satisfied(item: RepairItem) -> bool:
    return item.labour_status == RepairItem.WORK_COMPLETE or bool(item.no_labour_required)


def parts_satisfied(item: RepairItem) -> bool:
    return item.parts_status == RepairItem.WORK_COMPLETE or bool(item.no_parts_required)


def _leaf_ready(item: RepairItem) -> bool:
    return labour_satisfied(item) and parts_satisfied(item)


def _group_ready(item: RepairItem) -> bool:
    live_children = [c for c in item.children if c.deleted_at is None]
    if not live_children:
        return _leaf_ready(item)
    return all(_leaf_ready(c) for c in live_children)


def calculate_outcome(item: RepairItem) -> str:
    if item.deleted_at is not None:
        return DELETED
    if item.outcome_status in RepairItem.EXPLICIT_OUTCOMES:
        return item.outcome_status
    if item.customer_approved is True:
        return AUTHORISED
    if item.customer_approved is False:
        return DECLINED
    ready = _group_ready(item) if item.is_group else _leaf_ready(item)
    return READY if ready else INCOMPLETE


def is_undecided(item: RepairItem) -> bool:
    """No decision recorded by anyone: open for the customer to approve or decline."""
    return item.deleted_at is None and item.outcome_status is None and item.customer_approved is None


def undecided_clause():
    """SQL twin of `is_undecided`, evaluated inside conditional UPDATEs at write time."""
    return and_(
        RepairItem.deleted_at.is_(None),
        RepairItem.outcome_status.is_(None),
        RepairItem.customer_approved.is_(None),
    )


def count_by_outcome(items: Iterable[RepairItem]):
    counts = {o: 0 for o in ALL_OUTCOMES}
    for item in items:
        counts[calculate_outcome(item)] += 1
    return counts

__all__ = [
    'calculate_outcome', 'is_undecided', 'undecided_clause', 'count_by_outcome',
    'labour_satisfied', 'parts_satisfied', 'OUTCOME_FSM',
    'INCOMPLETE', 'READY', 'AUTHORISED', 'DEFERRED', 'DECLINED', 'DELETED',
    'ALL_OUTCOMES', 'PENDING_OUTCOMES', 'TERMINAL_OUTCOMES',
    'ACTION_AUTHORISE', 'ACTION_DEFER', 'ACTION_DECLINE', 'ACTION_DELETE', 'ACTION_RESET',
]
