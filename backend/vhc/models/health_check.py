from __future__ import annotations
from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, JSON, DateTime, ForeignKey, func
from vhc.models.authz import Base


class HealthCheck(Base):
    """Inspection record. Owned by the surrounding application; this service only
    reads its findings, issues the customer link and closes it."""
    __tablename__ = 'health_checks'
    # Status constants
    STATUS_OPEN = 'open'
    STATUS_SENT = 'sent'
    STATUS_PARTIAL_RESPONSE = 'partial_response'
    STATUS_AUTHORIZED = 'authorized'
    STATUS_DECLINED = 'declined'
    STATUS_CLOSED = 'closed'
    ALL_STATUSES = (STATUS_OPEN, STATUS_SENT, STATUS_PARTIAL_RESPONSE, STATUS_AUTHORIZED, STATUS_DECLINED, STATUS_CLOSED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_OPEN, index=True)
    public_token: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True, index=True)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    fully_responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    signature_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    findings = relationship('Finding', back_populates='health_check', order_by='Finding.id')


class Finding(Base):
    """A single inspected item's result (red/amber/green)."""
    __tablename__ = 'findings'
    RAG_RED = 'red'
    RAG_AMBER = 'amber'
    RAG_GREEN = 'green'
    ALL_RAG = (RAG_RED, RAG_AMBER, RAG_GREEN)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    health_check_id: Mapped[int] = mapped_column(ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    rag_status: Mapped[str] = mapped_column(String(8), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    health_check = relationship('HealthCheck', back_populates='findings')


class CustomerActivity(Base):
    __tablename__ = 'customer_activities'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    health_check_id: Mapped[int] = mapped_column(ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    repair_item_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, default=dict)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    device_type: Mapped[str] = mapped_column(String(16), nullable=False, default='desktop')
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
