from __future__ import annotations
"""Customer link: no login, the health check's public token is the only credential.

Every handler resolves the token first (404 unknown, 410 expired) and only ever touches
top-level, non-deleted items of that one health check. Decisions are conditional writes
on "still undecided" so a staff decision made in the meantime is never overwritten.
"""
from flask import Blueprint, request, abort, current_app
from sqlalchemy import select
from vhc import get_db
from vhc.models.health_check import HealthCheck
from vhc.models.repair_item import RepairItem, AuthorizationRecord
from vhc.services.audit import add_audit
from vhc.services.health_checks import assert_open, token_expired, rag_counts
from vhc.services.repair_items import load_repair_items, option_json, summarize
from vhc.services.outcomes import calculate_outcome, is_undecided, undecided_clause
from vhc.services.outcome_actions import conditional_update, authorise_values, decline_values
from vhc.services.pricing import resolve_option, effective_price
from vhc.services.severity import derive_severity
from vhc.services.customer_response import track_activity, record_authorization, refresh_response_status
from vhc.utils.clock import isoformat, utcnow
from vhc.utils.validation import optional_int, require_int, clean_notes

public_bp = Blueprint('public', __name__)


def _resolve_token(session, token: str) -> HealthCheck:
    hc = session.execute(
        select(HealthCheck).where(HealthCheck.public_token == token).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not hc:
        abort(404, description='Health check not found')
    if token_expired(hc):
        abort(410, description='Link has expired')
    return hc


def _visible(items):
    return [i for i in items if i.is_top_level and i.deleted_at is None]


def _visible_item(items, item_id: int) -> RepairItem:
    for item in _visible(items):
        if item.id == item_id:
            return item
    abort(404, description='Repair item not found')


def _customer_item_json(item: RepairItem):
    body = {
        'id': item.id,
        'name': item.name,
        'description': item.description,
        'is_group': bool(item.is_group),
        'severity': derive_severity(item),
        'outcome': calculate_outcome(item),
        'price': effective_price(item),
        'options': [option_json(o) for o in item.options],
        'selected_option_id': item.selected_option_id,
        'customer_approved': item.customer_approved,
        'customer_notes': item.customer_notes,
    }
    if item.is_group:
        body['children'] = [
            {'id': c.id, 'name': c.name, 'severity': derive_severity(c)}
            for c in item.children if c.deleted_at is None
        ]
    return body


def _selected_option_id(item: RepairItem, override):
    try:
        opt = resolve_option(item, override)
    except ValueError as e:
        abort(400, description=str(e))
    return opt.id if opt is not None else None


def _after_decisions(session, hc: HealthCheck):
    """Refresh the health check's response status from what is now stored."""
    session.flush()
    refresh_response_status(hc, load_repair_items(session, hc.id))


@public_bp.get('/vhc/<token>')
def view(token: str):
    session = get_db()
    hc = _resolve_token(session, token)
    items = _visible(load_repair_items(session, hc.id))
    track_activity(session, hc, 'viewed')
    session.commit()
    return {
        'health_check': {
            'id': hc.id,
            'status': hc.status,
            'token_expires_at': isoformat(hc.token_expires_at),
            'signed_at': isoformat(hc.signed_at),
            'rag_counts': rag_counts(hc.findings),
        },
        'repair_items': [_customer_item_json(i) for i in items],
        'summary': summarize(items),
        'pending_count': len([i for i in items if is_undecided(i)]),
    }


@public_bp.post('/vhc/<token>/repair-items/<int:item_id>/approve')
def approve(token: str, item_id: int):
    session = get_db()
    data = request.json or {}
    override = optional_int(data.get('selected_option_id'), 'selected_option_id')
    notes = clean_notes(data.get('notes'))
    hc = _resolve_token(session, token)
    assert_open(hc)
    item = _visible_item(load_repair_items(session, hc.id), item_id)
    option_id = _selected_option_id(item, override)
    if not is_undecided(item):
        abort(409, description='Repair item has already been decided')
    values = authorise_values(None, RepairItem.SOURCE_ONLINE)
    values.update({'selected_option_id': option_id, 'customer_notes': notes, 'customer_declined_reason': None})
    if not conditional_update(session, item.id, undecided_clause(), values):
        current_app.logger.info('Customer approve lost on repair item %s', item.id)
        abort(409, description='Repair item has already been decided')
    record_authorization(session, item, AuthorizationRecord.DECISION_APPROVED)
    track_activity(session, hc, 'repair_item_approved', item.id, {'selected_option_id': option_id, 'notes': notes})
    add_audit('RPR.ITEM.CUSTOMER_APPROVE', 'RepairItem', item.id, {'selected_option_id': option_id})
    _after_decisions(session, hc)
    session.commit()
    return {'repair_item_id': item.id, 'selected_option_id': option_id, 'status': hc.status}


@public_bp.post('/vhc/<token>/repair-items/<int:item_id>/decline')
def decline(token: str, item_id: int):
    session = get_db()
    data = request.json or {}
    reason = clean_notes(data.get('reason'))
    notes = clean_notes(data.get('notes'))
    hc = _resolve_token(session, token)
    assert_open(hc)
    item = _visible_item(load_repair_items(session, hc.id), item_id)
    if not is_undecided(item):
        abort(409, description='Repair item has already been decided')
    values = decline_values(None, source=RepairItem.SOURCE_ONLINE)
    values.update({'selected_option_id': None, 'customer_declined_reason': reason, 'customer_notes': notes})
    if not conditional_update(session, item.id, undecided_clause(), values):
        current_app.logger.info('Customer decline lost on repair item %s', item.id)
        abort(409, description='Repair item has already been decided')
    record_authorization(session, item, AuthorizationRecord.DECISION_DECLINED)
    track_activity(session, hc, 'repair_item_declined', item.id, {'reason': reason, 'notes': notes})
    add_audit('RPR.ITEM.CUSTOMER_DECLINE', 'RepairItem', item.id, {'reason': reason})
    _after_decisions(session, hc)
    session.commit()
    return {'repair_item_id': item.id, 'status': hc.status}


def _selection_map(raw):
    if raw is None:
        return {}
    if not isinstance(raw, list):
        abort(400, description='selections must be a list')
    selections = {}
    for sel in raw:
        if not isinstance(sel, dict):
            abort(400, description='selections entries must be objects')
        item_id = require_int(sel.get('repair_item_id'), 'repair_item_id')
        selections[item_id] = optional_int(sel.get('selected_option_id'), 'selected_option_id')
    return selections


@public_bp.post('/vhc/<token>/repair-items/approve-all')
def approve_all(token: str):
    session = get_db()
    data = request.json or {}
    selections = _selection_map(data.get('selections'))
    hc = _resolve_token(session, token)
    assert_open(hc)
    items = _visible(load_repair_items(session, hc.id))
    by_id = {i.id: i for i in items}
    for item_id in selections:
        if item_id not in by_id:
            abort(404, description='Repair item not found')
    pending = [i for i in items if is_undecided(i)]
    if not pending:
        abort(400, description='No pending repair items')
    # validate every selection before the first write
    chosen = {i.id: _selected_option_id(i, selections.get(i.id)) for i in pending}
    approved_ids, skipped_ids = [], []
    for item in pending:
        values = authorise_values(None, RepairItem.SOURCE_ONLINE)
        values.update({'selected_option_id': chosen[item.id], 'customer_declined_reason': None})
        if conditional_update(session, item.id, undecided_clause(), values):
            record_authorization(session, item, AuthorizationRecord.DECISION_APPROVED)
            approved_ids.append(item.id)
        else:
            skipped_ids.append(item.id)
    if skipped_ids:
        current_app.logger.info('Approve-all skipped items decided concurrently: %s', skipped_ids)
    track_activity(session, hc, 'approve_all', None, {'approved_count': len(approved_ids)})
    add_audit('RPR.ITEM.CUSTOMER_APPROVE_ALL', 'HealthCheck', hc.id, {'repair_item_ids': approved_ids})
    _after_decisions(session, hc)
    session.commit()
    return {
        'approved_count': len(approved_ids),
        'approved_ids': approved_ids,
        'skipped_ids': skipped_ids,
        'status': hc.status,
    }


@public_bp.post('/vhc/<token>/repair-items/decline-all')
def decline_all(token: str):
    session = get_db()
    data = request.json or {}
    reason = clean_notes(data.get('reason')) or 'Declined all'
    hc = _resolve_token(session, token)
    assert_open(hc)
    pending = [i for i in _visible(load_repair_items(session, hc.id)) if is_undecided(i)]
    declined_ids = []
    for item in pending:
        values = decline_values(None, source=RepairItem.SOURCE_ONLINE)
        values.update({'selected_option_id': None, 'customer_declined_reason': reason})
        if conditional_update(session, item.id, undecided_clause(), values):
            record_authorization(session, item, AuthorizationRecord.DECISION_DECLINED)
            declined_ids.append(item.id)
    track_activity(session, hc, 'decline_all', None, {'declined_count': len(declined_ids), 'reason': reason})
    add_audit('RPR.ITEM.CUSTOMER_DECLINE_ALL', 'HealthCheck', hc.id, {'repair_item_ids': declined_ids})
    _after_decisions(session, hc)
    session.commit()
    return {'declined_count': len(declined_ids), 'declined_ids': declined_ids, 'status': hc.status}


@public_bp.post('/vhc/<token>/repair-items/sign')
def sign(token: str):
    session = get_db()
    data = request.json or {}
    signature = data.get('signature_data')
    if not signature or not isinstance(signature, str):
        abort(400, description='Signature data is required')
    hc = _resolve_token(session, token)
    assert_open(hc)
    items = _visible(load_repair_items(session, hc.id))
    pending = [i.id for i in items if is_undecided(i)]
    if pending:
        abort(409, description=f'{len(pending)} repair item(s) still need a decision before signing')
    now = utcnow()
    hc.signature_data = signature
    hc.signed_at = now
    approved_ids = [i.id for i in items if calculate_outcome(i) == RepairItem.OUTCOME_AUTHORISED]
    if approved_ids:
        records = session.execute(
            select(AuthorizationRecord).where(
                AuthorizationRecord.health_check_id == hc.id,
                AuthorizationRecord.repair_item_id.in_(approved_ids),
                AuthorizationRecord.decision == AuthorizationRecord.DECISION_APPROVED,
            )
        ).scalars().all()
        for rec in records:
            rec.has_signature = True
    track_activity(session, hc, 'signed')
    add_audit('VHC.SIGN', 'HealthCheck', hc.id, {'approved_count': len(approved_ids)})
    _after_decisions(session, hc)
    session.commit()
    return {'signed_at': isoformat(now), 'status': hc.status}
