from __future__ import annotations
"""Side records of customer actions on the public link.

- customer activity rows (who/what/which device) for the staff timeline
- legacy authorization records, one per decided item
- health check response status (partial_response / authorized / declined)
"""
import re
from typing import Any, Dict, Iterable, Optional
from flask import request
from vhc.models.health_check import HealthCheck, CustomerActivity
from vhc.models.repair_item import RepairItem, AuthorizationRecord
from vhc.services.outcomes import calculate_outcome, is_undecided, DECLINED
from vhc.utils.clock import utcnow

_IP_RE = re.compile(r'^[\d.:a-fA-F]+$')
_MOBILE_RE = re.compile(r'mobile', re.IGNORECASE)
_TABLET_RE = re.compile(r'tablet|ipad', re.IGNORECASE)


def client_ip() -> Optional[str]:
    forwarded = request.headers.get('X-Forwarded-For', '')
    raw = forwarded.split(',')[0].strip() or request.headers.get('X-Real-IP') or request.remote_addr
    if raw and _IP_RE.match(raw):
        return raw
    return None


def device_type(user_agent: str) -> str:
    if _MOBILE_RE.search(user_agent):
        return 'mobile'
    if _TABLET_RE.search(user_agent):
        return 'tablet'
    return 'desktop'


def track_activity(session, hc: HealthCheck, activity_type: str, repair_item_id: Optional[int] = None, meta: Optional[Dict[str, Any]] = None):
    user_agent = request.headers.get('User-Agent', '')
    activity = CustomerActivity(
        health_check_id=hc.id,
        activity_type=activity_type,
        repair_item_id=repair_item_id,
        meta=dict(meta or {}),
        ip_address=client_ip(),
        user_agent=user_agent[:255],
        device_type=device_type(user_agent),
    )
    session.add(activity)
    return activity


def record_authorization(session, item: RepairItem, decision: str, when=None):
    rec = AuthorizationRecord(
        health_check_id=item.health_check_id,
        repair_item_id=item.id,
        decision=decision,
        decided_at=when or utcnow(),
        has_signature=False,
    )
    session.add(rec)
    return rec


def refresh_response_status(hc: HealthCheck, items: Iterable[RepairItem]):
    """Move the health check along partial_response -> authorized/declined.

    Looks at customer-visible items only. Closed health checks are left alone.
    """
    if hc.status == HealthCheck.STATUS_CLOSED:
        return hc.status
    visible = [i for i in items if i.is_top_level and i.deleted_at is None]
    pending = [i for i in visible if is_undecided(i)]
    decided = [i for i in visible if not is_undecided(i)]
    if not decided:
        return hc.status
    now = utcnow()
    if hc.first_response_at is None:
        hc.first_response_at = now
    if pending:
        hc.status = HealthCheck.STATUS_PARTIAL_RESPONSE
        return hc.status
    if all(calculate_outcome(i) == DECLINED for i in decided):
        hc.status = HealthCheck.STATUS_DECLINED
    else:
        hc.status = HealthCheck.STATUS_AUTHORIZED
    hc.fully_responded_at = now
    return hc.status

__all__ = ['track_activity', 'record_authorization', 'refresh_response_status', 'client_ip', 'device_type']
