from __future__ import annotations
"""Loading and serialization of repair items with their derived state.

Derived values (severity, outcome, effective price) are computed on every read from
the stored facts; nothing derived is persisted.
"""
from typing import Dict, Iterable, List
from flask import abort
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from vhc.models.repair_item import RepairItem
from vhc.services.outcomes import calculate_outcome, ALL_OUTCOMES, DELETED
from vhc.services.pricing import effective_price
from vhc.services.severity import derive_severity
from vhc.services.policy import assert_org_access
from vhc.utils.clock import isoformat


def load_repair_items(session, health_check_id: int) -> List[RepairItem]:
    """All items of a health check (children included), refreshed from storage."""
    stmt = (
        select(RepairItem)
        .where(RepairItem.health_check_id == health_check_id)
        .options(
            selectinload(RepairItem.options),
            selectinload(RepairItem.findings),
            selectinload(RepairItem.children),
        )
        .order_by(RepairItem.id)
        .execution_options(populate_existing=True)
    )
    return list(session.execute(stmt).scalars().all())


def get_repair_item(session, item_id: int) -> RepairItem:
    item = session.execute(
        select(RepairItem)
        .where(RepairItem.id == item_id)
        .options(
            selectinload(RepairItem.options),
            selectinload(RepairItem.findings),
            selectinload(RepairItem.children).selectinload(RepairItem.findings),
        )
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not item:
        abort(404, description='Repair item not found')
    assert_org_access(item.organization_id)
    return item


def option_json(opt) -> Dict:
    return {
        'id': opt.id,
        'name': opt.name,
        'description': opt.description,
        'labour_cents': opt.labour_cents,
        'parts_cents': opt.parts_cents,
        'subtotal_cents': opt.subtotal_cents,
        'vat_cents': opt.vat_cents,
        'total_cents': opt.total_cents,
        'is_recommended': bool(opt.is_recommended),
        'sort_order': opt.sort_order,
    }


def repair_item_json(item: RepairItem) -> Dict:
    body = {
        'id': item.id,
        'health_check_id': item.health_check_id,
        'name': item.name,
        'description': item.description,
        'is_group': bool(item.is_group),
        'parent_repair_item_id': item.parent_repair_item_id,
        'finding_ids': [f.id for f in item.findings],
        'severity': derive_severity(item),
        'outcome': calculate_outcome(item),
        'price': effective_price(item),
        'options': [option_json(o) for o in item.options],
        'selected_option_id': item.selected_option_id,
        'labour_status': item.labour_status,
        'parts_status': item.parts_status,
        'no_labour_required': bool(item.no_labour_required),
        'no_parts_required': bool(item.no_parts_required),
        'outcome_status': item.outcome_status,
        'outcome_set_at': isoformat(item.outcome_set_at),
        'outcome_set_by': item.outcome_set_by,
        'outcome_source': item.outcome_source,
        'deferred_until': isoformat(item.deferred_until),
        'deferred_notes': item.deferred_notes,
        'declined_reason_id': item.declined_reason_id,
        'deleted_reason_id': item.deleted_reason_id,
        'deleted_at': isoformat(item.deleted_at),
        'customer_approved': item.customer_approved,
        'work_completed_at': isoformat(item.work_completed_at),
        'work_completed_by': item.work_completed_by,
    }
    if item.is_group:
        body['children'] = [repair_item_json(c) for c in item.children]
    return body


def summarize(items: Iterable[RepairItem]) -> Dict:
    """Counts and value totals by outcome over top-level items.

    Deleted items are counted but never contribute to value totals.
    """
    counts = {o: 0 for o in ALL_OUTCOMES}
    totals = {o: 0 for o in ALL_OUTCOMES if o != DELETED}
    grand_total = 0
    for item in items:
        if not item.is_top_level:
            continue
        outcome = calculate_outcome(item)
        counts[outcome] += 1
        if outcome == DELETED:
            continue
        value = effective_price(item)['total_cents']
        totals[outcome] += value
        grand_total += value
    return {
        'counts': counts,
        'totals_cents': totals,
        'total_cents': grand_total,
    }

__all__ = ['load_repair_items', 'get_repair_item', 'repair_item_json', 'option_json', 'summarize']
