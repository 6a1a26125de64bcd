from __future__ import annotations
from flask import Blueprint, request, abort, current_app
from sqlalchemy import select
from vhc.decorators.auth import require_permissions
from vhc.decorators.audit import audit_log
from vhc.services.policy import current_user_id
from vhc.services.health_checks import (
    get_health_check, assert_open, rag_counts, issue_public_token, health_check_json,
)
from vhc.services.repair_items import load_repair_items, get_repair_item, repair_item_json, summarize
from vhc.services.autogen import ensure_repair_items, generate_for_unlinked
from vhc.services.closure import evaluate_closure, close_health_check
from vhc.services.pricing import compute_totals
from vhc import get_db
from vhc.models.health_check import HealthCheck, Finding
from vhc.models.repair_item import RepairItem, RepairOption
from vhc.utils.clock import utcnow
from vhc.utils.validation import validate_status, non_negative_cents, require_int

vhc_bp = Blueprint('health_checks', __name__)


def _finding_json(f: Finding):
    return {
        'id': f.id,
        'name': f.name,
        'location': f.location,
        'rag_status': f.rag_status,
        'notes': f.notes,
    }


def _items_payload(items):
    return {
        'repair_items': [repair_item_json(i) for i in items if i.is_top_level],
        'summary': summarize(items),
    }


@vhc_bp.get('/<int:hc_id>')
@require_permissions('VHC.READ')
def get_detail(hc_id: int):
    session = get_db()
    hc = get_health_check(session, hc_id)
    ensure_repair_items(session, hc)
    items = load_repair_items(session, hc.id)
    body = health_check_json(hc)
    body['rag_counts'] = rag_counts(hc.findings)
    body['findings'] = [_finding_json(f) for f in hc.findings]
    body.update(_items_payload(items))
    return body


@vhc_bp.get('/<int:hc_id>/repair-items')
@require_permissions('VHC.READ')
def list_repair_items(hc_id: int):
    session = get_db()
    hc = get_health_check(session, hc_id)
    ensure_repair_items(session, hc)
    return _items_payload(load_repair_items(session, hc.id))


@vhc_bp.post('/<int:hc_id>/repair-items/generate')
@require_permissions('RPR.MANAGE')
def generate_items(hc_id: int):
    session = get_db()
    hc = get_health_check(session, hc_id)
    assert_open(hc)
    created = generate_for_unlinked(session, hc)
    if created:
        current_app.logger.info('Generated %s repair items for health check %s', len(created), hc.id)
    return {'created': len(created), 'repair_item_ids': [i.id for i in created]}


@vhc_bp.get('/<int:hc_id>/can-close')
@require_permissions('VHC.READ')
def can_close(hc_id: int):
    session = get_db()
    hc = get_health_check(session, hc_id)
    blocked = evaluate_closure(load_repair_items(session, hc.id))
    if blocked is None:
        return {'can_close': hc.status != HealthCheck.STATUS_CLOSED, 'status': hc.status}
    body = {'can_close': False, 'status': hc.status, 'detail': blocked.description}
    body.update(blocked.extra)
    return body


@vhc_bp.post('/<int:hc_id>/close')
@require_permissions('VHC.CLOSE')
@audit_log('VHC.CLOSE', entity='HealthCheck', entity_id_key='id', meta_keys=['status', 'closed_at'])
def close(hc_id: int):
    session = get_db()
    hc = get_health_check(session, hc_id)
    if hc.status == HealthCheck.STATUS_CLOSED:
        abort(409, description='Health check is already closed')
    close_health_check(session, hc, load_repair_items(session, hc.id), current_user_id())
    return health_check_json(hc)


@vhc_bp.post('/<int:hc_id>/publish')
@require_permissions('VHC.PUBLISH')
@audit_log('VHC.PUBLISH', entity='HealthCheck', entity_id_key='id', meta_keys=['token_expires_at'])
def publish(hc_id: int):
    session = get_db()
    hc = get_health_check(session, hc_id)
    assert_open(hc)
    issue_public_token(hc)
    session.commit()
    body = health_check_json(hc)
    body['public_token'] = hc.public_token
    return body, 201


# --- Manual repair entry ---

def _linked_findings(session, hc: HealthCheck, finding_ids):
    if not finding_ids:
        return []
    ids = [require_int(f, 'finding_ids') for f in finding_ids]
    rows = session.execute(
        select(Finding).where(Finding.id.in_(ids), Finding.health_check_id == hc.id)
    ).scalars().all()
    if len(rows) != len(set(ids)):
        abort(400, description='finding_ids must belong to this health check')
    return rows


def _children(session, hc: HealthCheck, child_ids):
    if not child_ids:
        return []
    ids = [require_int(c, 'child_ids') for c in child_ids]
    rows = session.execute(
        select(RepairItem).where(RepairItem.id.in_(ids), RepairItem.health_check_id == hc.id)
    ).scalars().all()
    if len(rows) != len(set(ids)):
        abort(400, description='child_ids must belong to this health check')
    for child in rows:
        if child.is_group or not child.is_top_level or child.deleted_at is not None:
            abort(400, description=f'Repair item {child.id} cannot join a group')
    return rows


def _priced(data, vat_rate: float):
    return compute_totals(
        non_negative_cents(data.get('labour_cents'), 'labour_cents'),
        non_negative_cents(data.get('parts_cents'), 'parts_cents'),
        vat_rate,
    )


@vhc_bp.post('/<int:hc_id>/repair-items')
@require_permissions('RPR.MANAGE')
@audit_log('RPR.ITEM.CREATE', entity='RepairItem', entity_id_key='id', meta_keys=['name', 'is_group', 'health_check_id'])
def create_repair_item(hc_id: int):
    session = get_db()
    data = request.json or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    is_group = bool(data.get('is_group'))
    hc = get_health_check(session, hc_id)
    assert_open(hc)
    if is_group and data.get('finding_ids'):
        abort(400, description='Groups cannot link findings directly')
    if not is_group and data.get('child_ids'):
        abort(400, description='child_ids only allowed for groups')
    rag_status = data.get('rag_status')
    if rag_status is not None:
        validate_status(rag_status, Finding.ALL_RAG, 'rag_status')
    vat_rate = float(current_app.config.get('VAT_RATE', 0.20))
    findings = _linked_findings(session, hc, data.get('finding_ids'))
    children = _children(session, hc, data.get('child_ids'))
    raw_options = data.get('options') or []
    if not isinstance(raw_options, list):
        abort(400, description='options must be a list')
    options = []
    for idx, raw in enumerate(raw_options):
        opt_name = (raw.get('name') or '').strip() if isinstance(raw, dict) else ''
        if not opt_name:
            abort(400, description='option name required')
        options.append(RepairOption(
            name=opt_name,
            description=raw.get('description'),
            is_recommended=bool(raw.get('is_recommended')),
            sort_order=require_int(raw.get('sort_order', idx), 'sort_order'),
            **_priced(raw, vat_rate),
        ))
    item = RepairItem(
        health_check_id=hc.id,
        organization_id=hc.organization_id,
        name=name,
        description=data.get('description'),
        origin=RepairItem.ORIGIN_MANUAL,
        is_group=is_group,
        rag_status=rag_status,
        labour_status=RepairItem.WORK_PENDING,
        parts_status=RepairItem.WORK_PENDING,
        **_priced(data, vat_rate),
    )
    item.findings.extend(findings)
    item.options.extend(options)
    session.add(item)
    session.flush()
    for child in children:
        child.parent_repair_item_id = item.id
    session.commit()
    return repair_item_json(get_repair_item(session, item.id)), 201


# --- Work completion ---

def _item_of(session, hc_id: int, item_id: int) -> RepairItem:
    hc = get_health_check(session, hc_id)
    assert_open(hc)
    item = get_repair_item(session, item_id)
    if item.health_check_id != hc.id:
        abort(404, description='Repair item not found')
    if item.deleted_at is not None:
        abort(409, description='Repair item is deleted')
    return item


@vhc_bp.post('/<int:hc_id>/repair-items/<int:item_id>/work-done')
@require_permissions('RPR.WORK')
@audit_log('RPR.ITEM.WORK_DONE', entity='RepairItem', entity_id_key='id', meta_keys=['work_completed_at'])
def mark_work_done(hc_id: int, item_id: int):
    session = get_db()
    item = _item_of(session, hc_id, item_id)
    item.work_completed_at = utcnow()
    item.work_completed_by = current_user_id()
    session.commit()
    return repair_item_json(get_repair_item(session, item_id))


@vhc_bp.delete('/<int:hc_id>/repair-items/<int:item_id>/work-done')
@require_permissions('RPR.WORK')
@audit_log('RPR.ITEM.WORK_UNDONE', entity='RepairItem', entity_id_key='id')
def unmark_work_done(hc_id: int, item_id: int):
    session = get_db()
    item = _item_of(session, hc_id, item_id)
    item.work_completed_at = None
    item.work_completed_by = None
    session.commit()
    return repair_item_json(get_repair_item(session, item_id))
