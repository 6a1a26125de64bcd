from __future__ import annotations
"""Severity derivation for repair items from their linked findings.

red overrides amber overrides nothing. A leaf item looks at its own findings; a group
looks at the findings of its non-deleted children and stops at the first red. When no
finding yields a severity the item's stored `rag_status` is used (items created
without findings).
"""
from typing import Iterable, Optional
from vhc.models.health_check import Finding
from vhc.models.repair_item import RepairItem

QUALIFYING = (Finding.RAG_RED, Finding.RAG_AMBER)


def _scan(findings: Iterable[Finding]) -> Optional[str]:
    found = None
    for f in findings:
        if f.rag_status == Finding.RAG_RED:
            return Finding.RAG_RED
        if f.rag_status == Finding.RAG_AMBER:
            found = Finding.RAG_AMBER
    return found


def _leaf_severity(item: RepairItem) -> Optional[str]:
    return _scan(item.findings)


def _group_severity(item: RepairItem) -> Optional[str]:
    found = None
    for child in item.children:
        if child.deleted_at is not None:
            continue
        sev = _scan(child.findings)
        if sev == Finding.RAG_RED:
            return Finding.RAG_RED
        if sev == Finding.RAG_AMBER:
            found = Finding.RAG_AMBER
    return found


def derive_severity(item: RepairItem) -> Optional[str]:
    derived = _group_severity(item) if item.is_group else _leaf_severity(item)
    if derived:
        return derived
    if item.rag_status in QUALIFYING:
        return item.rag_status
    return None

__all__ = ['derive_severity']
