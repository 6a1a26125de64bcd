from __future__ import annotations
import secrets
from datetime import timedelta
from typing import Dict, Iterable
from flask import abort, current_app
from sqlalchemy import select
from vhc.models.health_check import HealthCheck, Finding
from vhc.services.policy import assert_org_access
from vhc.utils.clock import utcnow, as_utc, isoformat


def get_health_check(session, hc_id: int) -> HealthCheck:
    hc = session.execute(
        select(HealthCheck).where(HealthCheck.id == hc_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not hc:
        abort(404, description='Health check not found')
    assert_org_access(hc.organization_id)
    return hc


def assert_open(hc: HealthCheck):
    if hc.status == HealthCheck.STATUS_CLOSED:
        abort(409, description='Health check is closed')


def rag_counts(findings: Iterable[Finding]) -> Dict[str, int]:
    counts = {r: 0 for r in Finding.ALL_RAG}
    for f in findings:
        if f.rag_status in counts:
            counts[f.rag_status] += 1
    return counts


def issue_public_token(hc: HealthCheck) -> HealthCheck:
    """Fresh customer link; any previous token stops resolving."""
    ttl_days = int(current_app.config.get('PUBLIC_TOKEN_TTL_DAYS', 14))
    hc.public_token = secrets.token_urlsafe(32)
    hc.token_expires_at = utcnow() + timedelta(days=ttl_days)
    if hc.status == HealthCheck.STATUS_OPEN:
        hc.status = HealthCheck.STATUS_SENT
    return hc


def token_expired(hc: HealthCheck) -> bool:
    expires = as_utc(hc.token_expires_at)
    return expires is not None and expires <= utcnow()


def health_check_json(hc: HealthCheck) -> Dict:
    return {
        'id': hc.id,
        'organization_id': hc.organization_id,
        'status': hc.status,
        'token_expires_at': isoformat(hc.token_expires_at),
        'first_response_at': isoformat(hc.first_response_at),
        'fully_responded_at': isoformat(hc.fully_responded_at),
        'signed_at': isoformat(hc.signed_at),
        'closed_at': isoformat(hc.closed_at),
        'closed_by': hc.closed_by,
    }

__all__ = ['get_health_check', 'assert_open', 'rag_counts', 'issue_public_token', 'token_expired', 'health_check_json']
