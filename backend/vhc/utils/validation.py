from __future__ import annotations
"""Reusable validation helpers for request payloads.

Every helper aborts with 400 on bad input so handlers can use them inline and keep
the "validation errors never change state" rule: validate everything first, write last.
"""
from typing import Any, Iterable, List, Optional
from flask import abort
from vhc.utils.clock import parse_datetime, utcnow


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or aborts with 400.
    """
    if new_status not in allowed:
        abort(400, description=f"{field_name} invalid")
    return new_status


def require_int(value: Any, field_name: str) -> int:
    if value is None or isinstance(value, bool):
        abort(400, description=f"{field_name} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f"{field_name} must be int")


def optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None:
        return None
    return require_int(value, field_name)


def require_int_list(value: Any, field_name: str) -> List[int]:
    if not isinstance(value, list) or not value:
        abort(400, description=f"{field_name} array is required")
    return [require_int(v, field_name) for v in value]


def clean_notes(notes: Any) -> Optional[str]:
    if notes is None:
        return None
    if not isinstance(notes, str):
        abort(400, description='notes must be a string')
    return notes.strip() or None


def validate_reason_notes(reason, notes: Optional[str]):
    """Reasons flagged requires_notes (the catalog's "Other") need non-empty notes."""
    if reason.requires_notes and not notes:
        abort(400, description='Notes are required when selecting "Other" reason')


def parse_future_datetime(raw: Any, field_name: str):
    if not raw:
        abort(400, description=f"{field_name} date is required")
    try:
        value = parse_datetime(raw)
    except ValueError:
        abort(400, description=f"Invalid date format for {field_name}")
    if value <= utcnow():
        abort(400, description=f"{field_name} must be a future date")
    return value


def non_negative_cents(value: Any, field_name: str) -> int:
    cents = require_int(value if value is not None else 0, field_name)
    if cents < 0:
        abort(400, description=f"{field_name} must be >= 0")
    return cents

__all__ = [
    'validate_status', 'require_int', 'optional_int', 'require_int_list', 'clean_notes',
    'validate_reason_notes', 'parse_future_datetime', 'non_negative_cents'
]
