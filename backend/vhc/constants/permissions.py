"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently. Create new ones and deprecate old via migration if needed.
"""
from __future__ import annotations
from typing import List, Dict

SERVICE_ACTIONS = {
    # Health check: detail + can-close preview, customer link, closure
    'VHC': ['READ', 'PUBLISH', 'CLOSE'],
    # Repair items: create/price/progress, staff outcomes, work completion
    'RPR': ['MANAGE', 'OUTCOME', 'WORK'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

ROLE_PRESETS: Dict[str, List[str]] = {
    'Technician': ['VHC.READ', 'RPR.MANAGE', 'RPR.WORK'],
    # ServiceAdvisor: talks to the customer, records outcomes and closes the check
    'ServiceAdvisor': [
        'VHC.READ', 'VHC.PUBLISH', 'VHC.CLOSE',
        'RPR.MANAGE', 'RPR.OUTCOME', 'RPR.WORK',
    ],
    'Owner': ['*']
}

# Default reason catalogs seeded per organization. "Other" always requires notes.
DEFAULT_DECLINED_REASONS = [
    ('Too expensive', False),
    ('Will do it elsewhere', False),
    ('Not needed right now', False),
    ('Other', True),
]

DEFAULT_DELETED_REASONS = [
    ('Added in error', False),
    ('Duplicate item', False),
    ('No longer required', False),
    ('Other', True),
]
