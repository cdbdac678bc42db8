"""agency_authorization_tables

Revision ID: a1c4e7d2b9f0
Revises:
Create Date: 2026-10-19 09:12:44.518203

Creates companies, contacts, users, agency-client authorizations, their audit
log and jobs with attribution columns. Only creates tables that do not exist.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7d2b9f0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STATUSES = ('pending', 'pending_client_confirm', 'pending_admin_review', 'active', 'expired', 'revoked', 'rejected')
OPEN_PAIR_WHERE = sa.text("status NOT IN ('expired', 'rejected', 'revoked')")


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade() -> None:
    if not table_exists('companies'):
        op.create_table('companies',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('account_type', sa.String(length=50), nullable=False, server_default='direct'),
            sa.Column('email', sa.String(length=255), nullable=True),
            sa.Column('gst_number', sa.String(length=20), nullable=True),
            sa.Column('pan_number', sa.String(length=20), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_companies_id'), 'companies', ['id'], unique=False)
        op.create_index(op.f('ix_companies_name'), 'companies', ['name'], unique=False)
        op.create_index(op.f('ix_companies_gst_number'), 'companies', ['gst_number'], unique=False)

    if not table_exists('company_contacts'):
        op.create_table('company_contacts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('company_id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('company_id', 'email', name='uq_company_contact_email')
        )
        op.create_index(op.f('ix_company_contacts_id'), 'company_contacts', ['id'], unique=False)
        op.create_index(op.f('ix_company_contacts_company_id'), 'company_contacts', ['company_id'], unique=False)

    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('full_name', sa.String(), nullable=False),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('company_id', sa.Integer(), nullable=True),
            sa.Column('role', sa.String(), nullable=False, server_default='member'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
        op.create_index(op.f('ix_users_company_id'), 'users', ['company_id'], unique=False)

    if not table_exists('agency_client_authorizations'):
        status_values = ", ".join(f"'{status}'" for status in STATUSES)
        op.create_table('agency_client_authorizations',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('agency_company_id', sa.Integer(), nullable=False),
            sa.Column('client_company_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
            sa.Column('contract_start_date', sa.Date(), nullable=True),
            sa.Column('contract_end_date', sa.Date(), nullable=True),
            sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('can_post_jobs', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('can_edit_jobs', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('can_delete_jobs', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('can_view_applications', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('max_active_jobs', sa.Integer(), nullable=True),
            sa.Column('job_categories', sa.JSON(), nullable=False),
            sa.Column('allowed_locations', sa.JSON(), nullable=False),
            sa.Column('authorization_letter_url', sa.String(length=500), nullable=True),
            sa.Column('service_agreement_url', sa.String(length=500), nullable=True),
            sa.Column('client_gst_url', sa.String(length=500), nullable=True),
            sa.Column('client_pan_url', sa.String(length=500), nullable=True),
            sa.Column('additional_documents', sa.JSON(), nullable=False),
            sa.Column('verification_method', sa.String(length=50), nullable=False, server_default='manual_review'),
            sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('verified_by', sa.Integer(), nullable=True),
            sa.Column('verification_notes', sa.Text(), nullable=True),
            sa.Column('client_contact_email', sa.String(length=255), nullable=True),
            sa.Column('client_contact_name', sa.String(length=255), nullable=True),
            sa.Column('client_contact_phone', sa.String(length=50), nullable=True),
            sa.Column('confirmation_allowed_emails', sa.JSON(), nullable=False),
            sa.Column('client_verification_token', sa.String(length=255), nullable=True),
            sa.Column('client_verification_token_expiry', sa.DateTime(timezone=True), nullable=True),
            sa.Column('client_verification_action', sa.String(length=50), nullable=True),
            sa.Column('client_confirmed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('client_confirmed_by', sa.String(length=255), nullable=True),
            sa.Column('admin_approved_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('admin_approved_by', sa.Integer(), nullable=True),
            sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('rejected_by', sa.Integer(), nullable=True),
            sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('revoked_by', sa.Integer(), nullable=True),
            sa.Column('revocation_reason', sa.Text(), nullable=True),
            sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('renewed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('renewal_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('jobs_posted', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('active_jobs_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_applications', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_job_posted_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('last_reminder_sent_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('internal_notes', sa.Text(), nullable=True),
            sa.Column('rejection_reason', sa.Text(), nullable=True),
            *timestamps(),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            sa.ForeignKeyConstraint(['agency_company_id'], ['companies.id'], ),
            sa.ForeignKeyConstraint(['client_company_id'], ['companies.id'], ),
            sa.ForeignKeyConstraint(['verified_by'], ['users.id'], ),
            sa.ForeignKeyConstraint(['admin_approved_by'], ['users.id'], ),
            sa.ForeignKeyConstraint(['rejected_by'], ['users.id'], ),
            sa.ForeignKeyConstraint(['revoked_by'], ['users.id'], ),
            sa.CheckConstraint(f"status IN ({status_values})", name='ck_agency_auth_status'),
            sa.CheckConstraint(
                'contract_start_date IS NULL OR contract_end_date IS NULL OR contract_start_date <= contract_end_date',
                name='ck_agency_auth_contract_window'
            ),
            sa.CheckConstraint('max_active_jobs IS NULL OR max_active_jobs >= 0', name='ck_agency_auth_max_jobs'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_agency_client_authorizations_id'), 'agency_client_authorizations', ['id'], unique=False)
        op.create_index(op.f('ix_agency_client_authorizations_agency_company_id'), 'agency_client_authorizations', ['agency_company_id'], unique=False)
        op.create_index(op.f('ix_agency_client_authorizations_client_company_id'), 'agency_client_authorizations', ['client_company_id'], unique=False)
        op.create_index(op.f('ix_agency_client_authorizations_status'), 'agency_client_authorizations', ['status'], unique=False)
        op.create_index(op.f('ix_agency_client_authorizations_client_verification_token'), 'agency_client_authorizations', ['client_verification_token'], unique=False)
        op.create_index(
            'uq_agency_client_open',
            'agency_client_authorizations',
            ['agency_company_id', 'client_company_id'],
            unique=True,
            sqlite_where=OPEN_PAIR_WHERE,
            postgresql_where=OPEN_PAIR_WHERE,
        )

    if not table_exists('authorization_audit_logs'):
        op.create_table('authorization_audit_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('authorization_id', sa.Integer(), nullable=False),
            sa.Column('event', sa.String(length=50), nullable=False),
            sa.Column('from_status', sa.String(length=50), nullable=True),
            sa.Column('to_status', sa.String(length=50), nullable=False),
            sa.Column('actor_user_id', sa.Integer(), nullable=True),
            sa.Column('actor_email', sa.String(length=255), nullable=True),
            sa.Column('reason', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['authorization_id'], ['agency_client_authorizations.id'], ),
            sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_authorization_audit_logs_id'), 'authorization_audit_logs', ['id'], unique=False)
        op.create_index(op.f('ix_authorization_audit_logs_authorization_id'), 'authorization_audit_logs', ['authorization_id'], unique=False)
        op.create_index(op.f('ix_authorization_audit_logs_created_at'), 'authorization_audit_logs', ['created_at'], unique=False)
        op.create_index('idx_audit_authorization_created', 'authorization_audit_logs', ['authorization_id', 'created_at'], unique=False)

    if not table_exists('jobs'):
        op.create_table('jobs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('company_id', sa.Integer(), nullable=False),
            sa.Column('created_by_user_id', sa.Integer(), nullable=True),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('category', sa.String(length=100), nullable=True),
            sa.Column('location', sa.String(length=255), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
            sa.Column('hiring_company_id', sa.Integer(), nullable=True),
            sa.Column('posted_by_agency_id', sa.Integer(), nullable=True),
            sa.Column('is_agency_posted', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('authorization_id', sa.Integer(), nullable=True),
            *timestamps(),
            sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
            sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['hiring_company_id'], ['companies.id'], ),
            sa.ForeignKeyConstraint(['posted_by_agency_id'], ['companies.id'], ),
            sa.ForeignKeyConstraint(['authorization_id'], ['agency_client_authorizations.id'], ),
            sa.CheckConstraint(
                '(posted_by_agency_id IS NULL AND authorization_id IS NULL) OR '
                '(posted_by_agency_id IS NOT NULL AND authorization_id IS NOT NULL '
                'AND hiring_company_id IS NOT NULL AND hiring_company_id <> posted_by_agency_id)',
                name='ck_jobs_agency_attribution'
            ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_jobs_id'), 'jobs', ['id'], unique=False)
        op.create_index(op.f('ix_jobs_company_id'), 'jobs', ['company_id'], unique=False)
        op.create_index(op.f('ix_jobs_hiring_company_id'), 'jobs', ['hiring_company_id'], unique=False)
        op.create_index(op.f('ix_jobs_posted_by_agency_id'), 'jobs', ['posted_by_agency_id'], unique=False)
        op.create_index(op.f('ix_jobs_authorization_id'), 'jobs', ['authorization_id'], unique=False)
        op.create_index('idx_jobs_agency_hiring', 'jobs', ['posted_by_agency_id', 'hiring_company_id'], unique=False)


def downgrade() -> None:
    for table in ('jobs', 'authorization_audit_logs', 'agency_client_authorizations', 'users', 'company_contacts', 'companies'):
        if table_exists(table):
            op.drop_table(table)
