from __future__ import annotations
"""Effective price resolution.

Every place a price is displayed or summed (staff detail, summaries, customer view,
approve-all default selection) goes through `resolve_option` / `effective_price` so the
fallback order cannot drift between call sites:

  explicit override -> stored selected_option_id -> recommended option -> first by sort order

Items without options use their own stored totals.
"""
from typing import Dict, Optional
from vhc.models.repair_item import RepairItem, RepairOption

PRICE_FIELDS = ('labour_cents', 'parts_cents', 'subtotal_cents', 'vat_cents', 'total_cents')


def _sorted_options(item: RepairItem):
    return sorted(item.options, key=lambda o: (o.sort_order or 0, o.id or 0))


def find_option(item: RepairItem, option_id: Optional[int]) -> Optional[RepairOption]:
    if option_id is None:
        return None
    for opt in item.options:
        if opt.id == option_id:
            return opt
    return None


def resolve_option(item: RepairItem, selection_override: Optional[int] = None) -> Optional[RepairOption]:
    """Return the option whose price applies, or None when the item has no options.

    Raises ValueError if `selection_override` does not name one of the item's own options.
    """
    options = _sorted_options(item)
    if not options:
        if selection_override is not None:
            raise ValueError('Invalid option selected')
        return None
    if selection_override is not None:
        opt = find_option(item, selection_override)
        if opt is None:
            raise ValueError('Invalid option selected')
        return opt
    selected = find_option(item, item.selected_option_id)
    if selected is not None:
        return selected
    for opt in options:
        if opt.is_recommended:
            return opt
    return options[0]


def effective_price(item: RepairItem, selection_override: Optional[int] = None) -> Dict[str, Optional[int]]:
    opt = resolve_option(item, selection_override)
    source = opt if opt is not None else item
    price = {f: int(getattr(source, f) or 0) for f in PRICE_FIELDS}
    price['option_id'] = opt.id if opt is not None else None
    return price


def compute_totals(labour_cents: int, parts_cents: int, vat_rate: float) -> Dict[str, int]:
    """Derive subtotal / VAT / total in minor units for manually priced work."""
    subtotal = labour_cents + parts_cents
    vat = int(round(subtotal * vat_rate))
    return {
        'labour_cents': labour_cents,
        'parts_cents': parts_cents,
        'subtotal_cents': subtotal,
        'vat_cents': vat,
        'total_cents': subtotal + vat,
    }

__all__ = ['resolve_option', 'effective_price', 'find_option', 'compute_totals', 'PRICE_FIELDS']
