from __future__ import annotations
"""Lazy materialization of repair items from red/amber findings.

Runs when a health check's detail is read. It fires only while the health check has no
repair items at all (manual ones included) and at least one red/amber finding, creating
one leaf item per qualifying finding.

Best effort: a failure is logged and rolled back, and the surrounding read continues with
whatever exists. Two readers racing on the same empty health check may both generate; that
rare duplicate is accepted rather than serialising reads behind a lock.
"""
from typing import List
from flask import current_app
from sqlalchemy import select, func
from vhc.models.health_check import HealthCheck, Finding
from vhc.models.repair_item import RepairItem, repair_item_findings
from vhc.services.severity import QUALIFYING


def _repair_item_count(session, health_check_id: int) -> int:
    return session.execute(
        select(func.count(RepairItem.id)).where(RepairItem.health_check_id == health_check_id)
    ).scalar_one()


def _qualifying_findings(session, health_check_id: int):
    return session.execute(
        select(Finding)
        .where(Finding.health_check_id == health_check_id, Finding.rag_status.in_(QUALIFYING))
        .order_by(Finding.id)
    ).scalars().all()


def _item_name(finding: Finding) -> str:
    return f"{finding.location} {finding.name}" if finding.location else finding.name


def _create_from_findings(session, hc: HealthCheck, findings) -> List[RepairItem]:
    created = []
    for finding in findings:
        item = RepairItem(
            health_check_id=hc.id,
            organization_id=hc.organization_id,
            name=_item_name(finding),
            description=finding.notes,
            origin=RepairItem.ORIGIN_FINDING,
            is_group=False,
            labour_status=RepairItem.WORK_PENDING,
            parts_status=RepairItem.WORK_PENDING,
        )
        item.findings.append(finding)
        session.add(item)
        created.append(item)
    session.commit()
    return created


def generate_repair_items(session, hc: HealthCheck) -> int:
    """Create items for an empty health check. Returns the number created."""
    if _repair_item_count(session, hc.id) > 0:
        return 0
    findings = _qualifying_findings(session, hc.id)
    if not findings:
        return 0
    return len(_create_from_findings(session, hc, findings))


def generate_for_unlinked(session, hc: HealthCheck) -> List[RepairItem]:
    """Staff-triggered generation: one item per red/amber finding no item links to yet."""
    linked = set(session.execute(
        select(repair_item_findings.c.finding_id)
        .join(RepairItem, RepairItem.id == repair_item_findings.c.repair_item_id)
        .where(RepairItem.health_check_id == hc.id)
    ).scalars().all())
    findings = [f for f in _qualifying_findings(session, hc.id) if f.id not in linked]
    if not findings:
        return []
    return _create_from_findings(session, hc, findings)


def ensure_repair_items(session, hc: HealthCheck) -> int:
    if not current_app.config.get('AUTO_GENERATE_REPAIR_ITEMS', True):
        return 0
    try:
        created = generate_repair_items(session, hc)
    except Exception:
        session.rollback()
        current_app.logger.exception('Auto-generate repair items failed for health check %s', hc.id)
        return 0
    if created:
        current_app.logger.info('Auto-generated %s repair items for health check %s', created, hc.id)
    return created

__all__ = ['ensure_repair_items', 'generate_repair_items', 'generate_for_unlinked']
