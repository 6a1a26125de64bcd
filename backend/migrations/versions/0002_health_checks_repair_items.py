"""health checks, findings, repair items, options, reasons, customer records

Revision ID: 0002_health_checks_repair_items
Revises: 0001_initial_authz
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0002_health_checks_repair_items'
down_revision = '0001_initial_authz'
branch_labels = None
depends_on = None

_CENTS = ('labour_cents', 'parts_cents', 'subtotal_cents', 'vat_cents', 'total_cents')


def _cents_columns():
    return [sa.Column(name, sa.Integer(), nullable=False, server_default='0') for name in _CENTS]


def upgrade():
    op.create_table('health_checks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='open'),
        sa.Column('public_token', sa.String(length=64), nullable=True, unique=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fully_responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('signature_data', sa.Text(), nullable=True),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_health_checks_organization_id', 'health_checks', ['organization_id'])
    op.create_index('ix_health_checks_status', 'health_checks', ['status'])
    op.create_index('ix_health_checks_public_token', 'health_checks', ['public_token'])

    op.create_table('findings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('health_check_id', sa.Integer(), sa.ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('rag_status', sa.String(length=8), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=64), nullable=True)
    )
    op.create_index('ix_findings_health_check_id', 'findings', ['health_check_id'])

    for table in ('declined_reasons', 'deleted_reasons'):
        op.create_table(table,
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('reason', sa.String(length=120), nullable=False),
            sa.Column('requires_notes', sa.Boolean(), nullable=False, server_default=sa.text('0')),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1'))
        )
        op.create_index(f'ix_{table}_organization_id', table, ['organization_id'])

    op.create_table('repair_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('health_check_id', sa.Integer(), sa.ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('origin', sa.String(length=16), nullable=False, server_default='manual'),
        sa.Column('is_group', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('parent_repair_item_id', sa.Integer(), sa.ForeignKey('repair_items.id'), nullable=True),
        sa.Column('rag_status', sa.String(length=8), nullable=True),
        sa.Column('selected_option_id', sa.Integer(), nullable=True),
        *_cents_columns(),
        sa.Column('labour_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('parts_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('no_labour_required', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('no_parts_required', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('outcome_status', sa.String(length=16), nullable=True),
        sa.Column('outcome_set_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('outcome_set_by', sa.Integer(), nullable=True),
        sa.Column('outcome_source', sa.String(length=16), nullable=True),
        sa.Column('deferred_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deferred_notes', sa.Text(), nullable=True),
        sa.Column('declined_reason_id', sa.Integer(), sa.ForeignKey('declined_reasons.id'), nullable=True),
        sa.Column('declined_notes', sa.Text(), nullable=True),
        sa.Column('deleted_reason_id', sa.Integer(), sa.ForeignKey('deleted_reasons.id'), nullable=True),
        sa.Column('deleted_notes', sa.Text(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.Integer(), nullable=True),
        sa.Column('customer_approved', sa.Boolean(), nullable=True),
        sa.Column('customer_approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('customer_declined_reason', sa.String(length=255), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('work_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('work_completed_by', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_repair_items_health_check_id', 'repair_items', ['health_check_id'])
    op.create_index('ix_repair_items_organization_id', 'repair_items', ['organization_id'])
    op.create_index('ix_repair_items_parent_repair_item_id', 'repair_items', ['parent_repair_item_id'])
    op.create_index('ix_repair_items_outcome_status', 'repair_items', ['outcome_status'])

    op.create_table('repair_item_findings',
        sa.Column('repair_item_id', sa.Integer(), sa.ForeignKey('repair_items.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('finding_id', sa.Integer(), sa.ForeignKey('findings.id', ondelete='CASCADE'), primary_key=True)
    )

    op.create_table('repair_options',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_item_id', sa.Integer(), sa.ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_cents_columns(),
        sa.Column('is_recommended', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0')
    )
    op.create_index('ix_repair_options_repair_item_id', 'repair_options', ['repair_item_id'])

    op.create_table('authorizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('health_check_id', sa.Integer(), sa.ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('repair_item_id', sa.Integer(), sa.ForeignKey('repair_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('decision', sa.String(length=16), nullable=False),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('has_signature', sa.Boolean(), nullable=False, server_default=sa.text('0'))
    )
    op.create_index('ix_authorizations_health_check_id', 'authorizations', ['health_check_id'])
    op.create_index('ix_authorizations_repair_item_id', 'authorizations', ['repair_item_id'])

    op.create_table('customer_activities',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('health_check_id', sa.Integer(), sa.ForeignKey('health_checks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('activity_type', sa.String(length=32), nullable=False),
        sa.Column('repair_item_id', sa.Integer(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('device_type', sa.String(length=16), nullable=False, server_default='desktop'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_customer_activities_health_check_id', 'customer_activities', ['health_check_id'])


def downgrade():
    for tbl in [
        'customer_activities', 'authorizations', 'repair_options', 'repair_item_findings',
        'repair_items', 'deleted_reasons', 'declined_reasons', 'findings', 'health_checks',
    ]:
        op.drop_table(tbl)
