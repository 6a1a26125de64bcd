from __future__ import annotations
"""Audit logging decorator for staff mutation handlers.

Usage examples:

@audit_log('RPR.ITEM.AUTHORISE', entity='RepairItem', entity_id_key='id',
           diff_keys=['outcome'], pre_fetch=lambda a, kw: _snapshot(kw.get('item_id')))
def authorise_item(item_id): ...

@audit_log('VHC.CLOSE', entity='HealthCheck', entity_id_key='id', meta_keys=['status', 'closed_at'])
def close(hc_id): ...

Parameters:
  action: required audit action code (e.g. RPR.ITEM.DEFER)
  entity: optional entity label (RepairItem, HealthCheck)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  meta_keys: keys projected from the returned JSON into meta (shallow copy).
  diff_keys / pre_fetch: pre_fetch(args, kwargs) snapshots values before the handler runs;
    changed diff_keys are stored under meta['changes'] as {before, after}.

Only successful handlers are audited: an aborted request raises before the entry is built.
The entry is committed separately after the handler's own commit, so a failing audit write
is logged and never turns a completed mutation into an error response.
"""

from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from flask import current_app
from vhc.services.audit import add_audit
from vhc import get_db


def _extract_payload(rv: Any):
    """Return (data, original_rv) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        return rv[0], rv
    return rv, rv


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    changes = {}
    for k in keys:
        if k in before and k in after and before.get(k) != after.get(k):
            changes[k] = {'before': before.get(k), 'after': after.get(k)}
    return changes


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = None
            if diff_keys and pre_fetch:
                before_snapshot = pre_fetch(args, kwargs)
            rv = fn(*args, **kwargs)
            data, _ = _extract_payload(rv)
            if not isinstance(data, dict):
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            meta = None
            if meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            if diff_keys and isinstance(before_snapshot, dict):
                changes = _diff(before_snapshot, data, diff_keys)
                if changes:
                    meta = dict(meta or {})
                    meta['changes'] = changes
            session = get_db()
            add_audit(action, entity, entity_id, meta)
            try:
                session.commit()
            except Exception:
                session.rollback()
                current_app.logger.exception('Audit write failed for %s', action)
            return rv
        return wrapper
    return outer
