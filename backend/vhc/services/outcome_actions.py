from __future__ import annotations
"""Outcome writes shared by staff handlers, bulk handlers and the customer link.

Every outcome change is a conditional UPDATE: the WHERE clause repeats the state the
caller checked (e.g. "still undecided"), so a decision that landed between our read and
our write is never overwritten. A write that matches no row means someone else won; the
single-item handlers turn that into 409, bulk handlers report it per item.
"""
from typing import Any, Dict, Optional
from flask import abort, current_app
from sqlalchemy import update, or_, and_
from vhc.models.repair_item import RepairItem
from vhc.services.outcomes import (
    OUTCOME_FSM, calculate_outcome, undecided_clause,
    ACTION_AUTHORISE, ACTION_DEFER, ACTION_DECLINE, ACTION_DELETE, ACTION_RESET,
)
from vhc.utils.clock import utcnow

CONFLICT_MESSAGE = 'Repair item was changed by someone else, reload and try again'


def decided_clause():
    """Live item carrying a decision that reset can clear."""
    return and_(
        RepairItem.deleted_at.is_(None),
        or_(RepairItem.outcome_status.isnot(None), RepairItem.customer_approved.isnot(None)),
    )


def conditional_update(session, item_id: int, guard, values: Dict[str, Any]) -> bool:
    result = session.execute(
        update(RepairItem)
        .where(RepairItem.id == item_id, guard)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def authorise_values(user_id: Optional[int], source: str = RepairItem.SOURCE_MANUAL) -> Dict[str, Any]:
    now = utcnow()
    return {
        'outcome_status': RepairItem.OUTCOME_AUTHORISED,
        'outcome_set_at': now,
        'outcome_set_by': user_id,
        'outcome_source': source,
        'customer_approved': True,
        'customer_approved_at': now,
    }


def defer_values(user_id: int, deferred_until, notes: Optional[str]) -> Dict[str, Any]:
    return {
        'outcome_status': RepairItem.OUTCOME_DEFERRED,
        'outcome_set_at': utcnow(),
        'outcome_set_by': user_id,
        'outcome_source': RepairItem.SOURCE_MANUAL,
        'deferred_until': deferred_until,
        'deferred_notes': notes,
    }


def decline_values(user_id: Optional[int], reason=None, notes: Optional[str] = None,
                   source: str = RepairItem.SOURCE_MANUAL) -> Dict[str, Any]:
    now = utcnow()
    values = {
        'outcome_status': RepairItem.OUTCOME_DECLINED,
        'outcome_set_at': now,
        'outcome_set_by': user_id,
        'outcome_source': source,
        'customer_approved': False,
        'customer_approved_at': now,
    }
    if source == RepairItem.SOURCE_MANUAL:
        values['declined_reason_id'] = reason.id if reason is not None else None
        values['declined_notes'] = notes
        values['customer_declined_reason'] = reason.reason if reason is not None else None
    return values


def delete_values(user_id: int, reason, notes: Optional[str]) -> Dict[str, Any]:
    now = utcnow()
    return {
        'outcome_status': RepairItem.OUTCOME_DELETED,
        'outcome_set_at': now,
        'outcome_set_by': user_id,
        'outcome_source': RepairItem.SOURCE_MANUAL,
        'deleted_reason_id': reason.id,
        'deleted_notes': notes,
        'deleted_at': now,
        'deleted_by': user_id,
    }


def reset_values() -> Dict[str, Any]:
    return {
        'outcome_status': None,
        'outcome_set_at': None,
        'outcome_set_by': None,
        'outcome_source': None,
        'deferred_until': None,
        'deferred_notes': None,
        'declined_reason_id': None,
        'declined_notes': None,
        'customer_approved': None,
        'customer_approved_at': None,
        'customer_declined_reason': None,
        'customer_notes': None,
    }


_GUARDS = {
    ACTION_AUTHORISE: undecided_clause,
    ACTION_DEFER: undecided_clause,
    ACTION_DECLINE: undecided_clause,
    ACTION_DELETE: undecided_clause,
    ACTION_RESET: decided_clause,
}


def apply_staff_action(session, item: RepairItem, action: str, values: Dict[str, Any]) -> RepairItem:
    """Check the transition against the item's current outcome, then write it conditionally.

    Aborts 409 when the transition is not allowed or the item changed underneath us.
    Does not commit.
    """
    OUTCOME_FSM.assert_can_transition(calculate_outcome(item), action)
    if not conditional_update(session, item.id, _GUARDS[action](), values):
        current_app.logger.info('Lost conditional %s on repair item %s', action, item.id)
        abort(409, description=CONFLICT_MESSAGE)
    return item

__all__ = [
    'apply_staff_action', 'conditional_update', 'decided_clause',
    'authorise_values', 'defer_values', 'decline_values', 'delete_values', 'reset_values',
    'CONFLICT_MESSAGE',
]
