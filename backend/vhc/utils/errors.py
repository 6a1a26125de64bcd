from __future__ import annotations
"""HTTP errors that carry a structured payload beyond the standard detail string.

The unified error handler in `vhc.create_app` merges `extra` into the `error` object.
"""
from typing import Any, Dict, List
from werkzeug.exceptions import BadRequest

PENDING_OUTCOMES = 'PENDING_OUTCOMES'
INCOMPLETE_WORK = 'INCOMPLETE_WORK'


class ClosureBlocked(BadRequest):
    def __init__(self, code: str, items: List[Dict[str, Any]], description: str):
        super().__init__(description=description)
        self.extra = {
            'code': code,
            'items': items,
            'count': len(items),
        }

__all__ = ['ClosureBlocked', 'PENDING_OUTCOMES', 'INCOMPLETE_WORK']
