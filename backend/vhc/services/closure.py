from __future__ import annotations
"""Closure gate for health checks.

Only top-level, non-deleted items take part; children are accounted for through their
group. The gate is all-or-nothing: either every check passes and the health check is
closed in one commit, or a ClosureBlocked error lists exactly what is outstanding.
"""
from typing import Iterable, List, Optional
from vhc.models.health_check import HealthCheck
from vhc.models.repair_item import RepairItem
from vhc.services.outcomes import calculate_outcome, PENDING_OUTCOMES as PENDING, AUTHORISED
from vhc.utils.clock import utcnow
from vhc.utils.errors import ClosureBlocked, PENDING_OUTCOMES, INCOMPLETE_WORK


def closure_candidates(items: Iterable[RepairItem]) -> List[RepairItem]:
    return [i for i in items if i.is_top_level and i.deleted_at is None]


def _brief(item: RepairItem, outcome: str):
    return {'id': item.id, 'name': item.name, 'outcome': outcome}


def evaluate_closure(items: Iterable[RepairItem]) -> Optional[ClosureBlocked]:
    """Return the blocking error for these items, or None if the health check may close."""
    candidates = closure_candidates(items)
    outcomes = [(item, calculate_outcome(item)) for item in candidates]
    pending = [_brief(i, o) for i, o in outcomes if o in PENDING]
    if pending:
        plural = 's' if len(pending) != 1 else ''
        return ClosureBlocked(
            PENDING_OUTCOMES, pending,
            f"Cannot close: {len(pending)} repair item{plural} need an outcome",
        )
    unfinished = [_brief(i, o) for i, o in outcomes if o == AUTHORISED and i.work_completed_at is None]
    if unfinished:
        return ClosureBlocked(
            INCOMPLETE_WORK, unfinished,
            'Cannot close health check: some authorised work is not complete',
        )
    return None


def close_health_check(session, hc: HealthCheck, items: Iterable[RepairItem], user_id: int) -> HealthCheck:
    blocked = evaluate_closure(items)
    if blocked is not None:
        raise blocked
    hc.status = HealthCheck.STATUS_CLOSED
    hc.closed_at = utcnow()
    hc.closed_by = user_id
    session.commit()
    return hc

__all__ = ['evaluate_closure', 'close_health_check', 'closure_candidates']
