from __future__ import annotations
from flask import Blueprint, request, abort
from werkzeug.exceptions import HTTPException
from vhc.decorators.auth import require_permissions
from vhc.decorators.audit import audit_log
from vhc.services.audit import add_audit
from vhc.services.policy import current_user_id
from vhc.services.repair_items import get_repair_item, repair_item_json
from vhc.services.health_checks import get_health_check, assert_open
from vhc.services.outcomes import (
    calculate_outcome, ACTION_AUTHORISE, ACTION_DEFER, ACTION_DECLINE, ACTION_DELETE, ACTION_RESET,
)
from vhc.services.outcome_actions import (
    apply_staff_action, authorise_values, defer_values, decline_values, delete_values, reset_values,
)
from vhc.services.pricing import find_option
from vhc import get_db
from vhc.models.repair_item import RepairItem
from vhc.models.reasons import DeclinedReason, DeletedReason
from vhc.utils.validation import (
    validate_status, require_int, optional_int, require_int_list, clean_notes,
    validate_reason_notes, parse_future_datetime,
)

rpr_bp = Blueprint('repair_items', __name__)


def _snapshot(item_id):
    session = get_db()
    item = session.get(RepairItem, item_id, populate_existing=True)
    if not item:
        return {}
    return {'outcome': calculate_outcome(item)}


def _load_open_item(session, item_id: int) -> RepairItem:
    item = get_repair_item(session, item_id)
    assert_open(get_health_check(session, item.health_check_id))
    return item


def _reason(session, model, reason_id: int, organization_id: int, label: str):
    reason = session.get(model, reason_id)
    if not reason or not reason.is_active or reason.organization_id != organization_id:
        abort(404, description=f'{label} reason not found')
    return reason


def _respond(session, item_id: int):
    return repair_item_json(get_repair_item(session, item_id))


# --- Single item outcomes ---

@rpr_bp.post('/<int:item_id>/authorise')
@require_permissions('RPR.OUTCOME')
@audit_log('RPR.ITEM.AUTHORISE', entity='RepairItem', entity_id_key='id', diff_keys=['outcome'], pre_fetch=lambda a, kw: _snapshot(kw.get('item_id')))
def authorise_item(item_id: int):
    session = get_db()
    item = _load_open_item(session, item_id)
    apply_staff_action(session, item, ACTION_AUTHORISE, authorise_values(current_user_id()))
    session.commit()
    return _respond(session, item_id)


@rpr_bp.post('/<int:item_id>/defer')
@require_permissions('RPR.OUTCOME')
@audit_log('RPR.ITEM.DEFER', entity='RepairItem', entity_id_key='id', diff_keys=['outcome'], pre_fetch=lambda a, kw: _snapshot(kw.get('item_id')), meta_keys=['deferred_until'])
def defer_item(item_id: int):
    session = get_db()
    data = request.json or {}
    deferred_until = parse_future_datetime(data.get('deferred_until'), 'deferred_until')
    notes = clean_notes(data.get('notes'))
    item = _load_open_item(session, item_id)
    apply_staff_action(session, item, ACTION_DEFER, defer_values(current_user_id(), deferred_until, notes))
    session.commit()
    return _respond(session, item_id)


@rpr_bp.post('/<int:item_id>/decline')
@require_permissions('RPR.OUTCOME')
@audit_log('RPR.ITEM.DECLINE', entity='RepairItem', entity_id_key='id', diff_keys=['outcome'], pre_fetch=lambda a, kw: _snapshot(kw.get('item_id')), meta_keys=['declined_reason_id'])
def decline_item(item_id: int):
    session = get_db()
    data = request.json or {}
    reason_id = require_int(data.get('declined_reason_id'), 'declined_reason_id')
    notes = clean_notes(data.get('notes'))
    item = _load_open_item(session, item_id)
    reason = _reason(session, DeclinedReason, reason_id, item.organization_id, 'Declined')
    validate_reason_notes(reason, notes)
    apply_staff_action(session, item, ACTION_DECLINE, decline_values(current_user_id(), reason, notes))
    session.commit()
    return _respond(session, item_id)


@rpr_bp.post('/<int:item_id>/delete')
@require_permissions('RPR.OUTCOME')
@audit_log('RPR.ITEM.DELETE', entity='RepairItem', entity_id_key='id', diff_keys=['outcome'], pre_fetch=lambda a, kw: _snapshot(kw.get('item_id')), meta_keys=['deleted_reason_id'])
def delete_item(item_id: int):
    session = get_db()
    data = request.json or {}
    reason_id = require_int(data.get('deleted_reason_id'), 'deleted_reason_id')
    notes = clean_notes(data.get('notes'))
    item = _load_open_item(session, item_id)
    reason = _reason(session, DeletedReason, reason_id, item.organization_id, 'Deleted')
    validate_reason_notes(reason, notes)
    apply_staff_action(session, item, ACTION_DELETE, delete_values(current_user_id(), reason, notes))
    session.commit()
    return _respond(session, item_id)


@rpr_bp.post('/<int:item_id>/reset')
@require_permissions('RPR.OUTCOME')
@audit_log('RPR.ITEM.RESET', entity='RepairItem', entity_id_key='id', diff_keys=['outcome'], pre_fetch=lambda a, kw: _snapshot(kw.get('item_id')))
def reset_item(item_id: int):
    session = get_db()
    item = _load_open_item(session, item_id)
    apply_staff_action(session, item, ACTION_RESET, reset_values())
    session.commit()
    return _respond(session, item_id)


# --- Bulk outcomes ---

def _bulk_apply(session, item_ids, action, values_for, audit_action, meta=None):
    """Apply one action to each item independently.

    A failing item (not found, other organization, wrong state, lost race) is reported and
    skipped; it never undoes the items already written.
    """
    updated_ids, failed = [], []
    for item_id in dict.fromkeys(item_ids):
        try:
            item = _load_open_item(session, item_id)
            apply_staff_action(session, item, action, values_for(item))
            updated_ids.append(item_id)
        except HTTPException as e:
            failed.append({'id': item_id, 'error': e.description})
    audit_meta = dict(meta or {})
    audit_meta.update({'repair_item_ids': updated_ids, 'count': len(updated_ids), 'failed': len(failed)})
    add_audit(audit_action, 'RepairItem', None, audit_meta)
    session.commit()
    return {'updated_ids': updated_ids, 'updated_count': len(updated_ids), 'failed': failed}


@rpr_bp.post('/bulk-authorise')
@require_permissions('RPR.OUTCOME')
def bulk_authorise():
    session = get_db()
    data = request.json or {}
    item_ids = require_int_list(data.get('repair_item_ids'), 'repair_item_ids')
    user_id = current_user_id()
    return _bulk_apply(
        session, item_ids, ACTION_AUTHORISE,
        lambda item: authorise_values(user_id),
        'RPR.ITEM.BULK_AUTHORISE',
    )


@rpr_bp.post('/bulk-defer')
@require_permissions('RPR.OUTCOME')
def bulk_defer():
    session = get_db()
    data = request.json or {}
    item_ids = require_int_list(data.get('repair_item_ids'), 'repair_item_ids')
    deferred_until = parse_future_datetime(data.get('deferred_until'), 'deferred_until')
    notes = clean_notes(data.get('notes'))
    user_id = current_user_id()
    return _bulk_apply(
        session, item_ids, ACTION_DEFER,
        lambda item: defer_values(user_id, deferred_until, notes),
        'RPR.ITEM.BULK_DEFER',
        {'deferred_until': data.get('deferred_until')},
    )


@rpr_bp.post('/bulk-decline')
@require_permissions('RPR.OUTCOME')
def bulk_decline():
    session = get_db()
    data = request.json or {}
    item_ids = require_int_list(data.get('repair_item_ids'), 'repair_item_ids')
    reason_id = require_int(data.get('declined_reason_id'), 'declined_reason_id')
    notes = clean_notes(data.get('notes'))
    reason = session.get(DeclinedReason, reason_id)
    if not reason or not reason.is_active:
        abort(404, description='Declined reason not found')
    validate_reason_notes(reason, notes)
    user_id = current_user_id()

    def values_for(item):
        # reason catalogs are per organization
        _reason(session, DeclinedReason, reason_id, item.organization_id, 'Declined')
        return decline_values(user_id, reason, notes)

    return _bulk_apply(
        session, item_ids, ACTION_DECLINE, values_for,
        'RPR.ITEM.BULK_DECLINE',
        {'declined_reason_id': reason_id},
    )


# --- Pricing and progress ---

@rpr_bp.post('/<int:item_id>/select-option')
@require_permissions('RPR.MANAGE')
def select_option(item_id: int):
    session = get_db()
    data = request.json or {}
    option_id = optional_int(data.get('option_id'), 'option_id')
    item = _load_open_item(session, item_id)
    if option_id is not None and find_option(item, option_id) is None:
        abort(400, description='Invalid option selected')
    item.selected_option_id = option_id
    session.commit()
    return _respond(session, item_id)


def _set_progress(item_id: int, field_name: str):
    session = get_db()
    data = request.json or {}
    status = validate_status(data.get('status'), RepairItem.WORK_STATUSES, field_name)
    item = _load_open_item(session, item_id)
    setattr(item, field_name, status)
    session.commit()
    return _respond(session, item_id)


def _set_flag(item_id: int, field_name: str, value: bool):
    session = get_db()
    item = _load_open_item(session, item_id)
    setattr(item, field_name, value)
    session.commit()
    return _respond(session, item_id)


@rpr_bp.post('/<int:item_id>/labour-status')
@require_permissions('RPR.MANAGE')
def set_labour_status(item_id: int):
    return _set_progress(item_id, 'labour_status')


@rpr_bp.post('/<int:item_id>/parts-status')
@require_permissions('RPR.MANAGE')
def set_parts_status(item_id: int):
    return _set_progress(item_id, 'parts_status')


@rpr_bp.post('/<int:item_id>/no-labour-required')
@require_permissions('RPR.MANAGE')
def mark_no_labour_required(item_id: int):
    return _set_flag(item_id, 'no_labour_required', True)


@rpr_bp.delete('/<int:item_id>/no-labour-required')
@require_permissions('RPR.MANAGE')
def clear_no_labour_required(item_id: int):
    return _set_flag(item_id, 'no_labour_required', False)


@rpr_bp.post('/<int:item_id>/no-parts-required')
@require_permissions('RPR.MANAGE')
def mark_no_parts_required(item_id: int):
    return _set_flag(item_id, 'no_parts_required', True)


@rpr_bp.delete('/<int:item_id>/no-parts-required')
@require_permissions('RPR.MANAGE')
def clear_no_parts_required(item_id: int):
    return _set_flag(item_id, 'no_parts_required', False)


@rpr_bp.get('/<int:item_id>')
@require_permissions('VHC.READ')
def get_item(item_id: int):
    session = get_db()
    return _respond(session, item_id)
