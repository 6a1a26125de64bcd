from __future__ import annotations
from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, Table, Column, func
from vhc.models.authz import Base

repair_item_findings = Table(
    'repair_item_findings',
    Base.metadata,
    Column('repair_item_id', ForeignKey('repair_items.id', ondelete='CASCADE'), primary_key=True),
    Column('finding_id', ForeignKey('findings.id', ondelete='CASCADE'), primary_key=True),
)


class RepairItem(Base):
    __tablename__ = 'repair_items'
    # Work progress
    WORK_PENDING = 'pending'
    WORK_IN_PROGRESS = 'in_progress'
    WORK_COMPLETE = 'complete'
    WORK_STATUSES = (WORK_PENDING, WORK_IN_PROGRESS, WORK_COMPLETE)
    # Explicit outcome overrides (the derived states live in services.outcomes)
    OUTCOME_AUTHORISED = 'authorised'
    OUTCOME_DEFERRED = 'deferred'
    OUTCOME_DECLINED = 'declined'
    OUTCOME_DELETED = 'deleted'
    EXPLICIT_OUTCOMES = (OUTCOME_AUTHORISED, OUTCOME_DEFERRED, OUTCOME_DECLINED, OUTCOME_DELETED)
    SOURCE_MANUAL = 'manual'
    SOURCE_ONLINE = 'online'
    # Origin of the item itself
    ORIGIN_MANUAL = 'manual'
    ORIGIN_FINDING = 'finding'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    health_check_id: Mapped[int] = mapped_column(ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False, index=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    origin: Mapped[str] = mapped_column(String(16), nullable=False, default=ORIGIN_MANUAL)
    is_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_repair_item_id: Mapped[Optional[int]] = mapped_column(ForeignKey('repair_items.id'), nullable=True, index=True)
    # Fallback severity for items not linked to findings
    rag_status: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    # No FK: options reference the item, a constraint back would be circular
    selected_option_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    labour_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parts_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vat_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    labour_status: Mapped[str] = mapped_column(String(16), nullable=False, default=WORK_PENDING)
    parts_status: Mapped[str] = mapped_column(String(16), nullable=False, default=WORK_PENDING)
    no_labour_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    no_parts_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    outcome_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True, index=True)
    outcome_set_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    outcome_set_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    outcome_source: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    deferred_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deferred_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    declined_reason_id: Mapped[Optional[int]] = mapped_column(ForeignKey('declined_reasons.id'), nullable=True)
    declined_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted_reason_id: Mapped[Optional[int]] = mapped_column(ForeignKey('deleted_reasons.id'), nullable=True)
    deleted_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Legacy tri-state projection of outcome_status (True=authorised, False=declined)
    customer_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    customer_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    customer_declined_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    work_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    work_completed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    options = relationship('RepairOption', back_populates='repair_item', order_by='RepairOption.sort_order', cascade='all, delete-orphan')
    findings = relationship('Finding', secondary=repair_item_findings, order_by='Finding.id')
    children = relationship('RepairItem', back_populates='parent', order_by='RepairItem.id')
    parent = relationship('RepairItem', back_populates='children', remote_side='RepairItem.id')

    @property
    def is_top_level(self) -> bool:
        return self.parent_repair_item_id is None

# Outcome flow: incomplete -> ready -> authorised | deferred | declined (reset back), deleted from either
# open state. The derived state is never stored; see services.outcomes.calculate_outcome.


class RepairOption(Base):
    __tablename__ = 'repair_options'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[int] = mapped_column(ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    labour_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parts_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vat_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_recommended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    repair_item = relationship('RepairItem', back_populates='options')


class AuthorizationRecord(Base):
    """Append-only log of customer decisions, kept for older clients."""
    __tablename__ = 'authorizations'
    DECISION_APPROVED = 'approved'
    DECISION_DECLINED = 'declined'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    health_check_id: Mapped[int] = mapped_column(ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False, index=True)
    repair_item_id: Mapped[int] = mapped_column(ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False, index=True)
    decision: Mapped[str] = mapped_column(String(16), nullable=False)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    has_signature: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
