"""Initial schema

Revision ID: 1f4c2a7b9d10
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

This migration creates:
1. organizations (tenant root) and users
2. Sanitary records: delivery_records, storage_units, storage_records,
   technical_sheets, incidents, corrective_actions
3. Tenant indexes: organization_id alone and compound with created_at and
   the common list filters
4. audit_logs (append-only trail of sensitive operations)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '1f4c2a7b9d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _enum(name: str, *values: str) -> sa.Enum:
    # Stored as VARCHAR + CHECK, matching the models (native_enum=False)
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True)


def _tenant_columns() -> list[sa.Column]:
    """id, organization_id and audit columns shared by every tenant table."""
    return [
        sa.Column('id', sa.Uuid(), primary_key=True, comment='Primary key (UUID)'),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False,
                  comment='Owning organization (tenant isolation key)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('updated_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
    ]


def _soft_delete_columns() -> list[sa.Column]:
    return [
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade database schema."""

    # =========================================================================
    # 1. ORGANIZATIONS AND USERS
    # =========================================================================

    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, comment='Display name'),
        sa.Column('subdomain', sa.String(63), nullable=False, unique=True,
                  comment='Globally unique slug, immutable once assigned'),
        sa.Column('settings', JSON_TYPE, nullable=False),
        sa.Column('plan', _enum('subscription_plan', 'free', 'basic', 'premium'), nullable=False),
        sa.Column('subscription_status', _enum('subscription_status', 'active', 'suspended', 'cancelled'),
                  nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_organizations_subdomain', 'organizations', ['subdomain'])

    op.create_table(
        'users',
        *_tenant_columns(),
        sa.Column('email', sa.String(255), nullable=False, unique=True,
                  comment='Lower-cased email address (used for login)'),
        sa.Column('password_hash', sa.String(255), nullable=False, comment='Bcrypt password hash'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('role', _enum('user_role', 'Admin', 'User', 'ReadOnly'), nullable=False),
        sa.Column('verification_token_hash', sa.String(64), nullable=True),
        sa.Column('verification_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_token_hash', sa.String(64), nullable=True),
        sa.Column('reset_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invitation_token_hash', sa.String(64), nullable=True),
        sa.Column('invitation_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invitation_pending', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lock_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_verification_token_hash', 'users', ['verification_token_hash'])
    op.create_index('ix_users_reset_token_hash', 'users', ['reset_token_hash'])
    op.create_index('ix_users_invitation_token_hash', 'users', ['invitation_token_hash'])

    # =========================================================================
    # 2. SANITARY RECORDS
    # =========================================================================

    op.create_table(
        'delivery_records',
        *_tenant_columns(),
        *_soft_delete_columns(),
        sa.Column('supplier_id', sa.String(100), nullable=False),
        sa.Column('product_type_id', sa.String(100), nullable=False),
        sa.Column('temperature', sa.Float(), nullable=False, comment='Temperature on reception (Celsius)'),
        sa.Column('reception_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('docs_ok', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('albaran_image', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )

    op.create_table(
        'storage_units',
        *_tenant_columns(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('unit_type', _enum('storage_unit_type', 'Cámara Frigorífica', 'Cámara Expositora',
                                     'Cámara de secado'), nullable=False),
        sa.Column('min_temp', sa.Float(), nullable=True),
        sa.Column('max_temp', sa.Float(), nullable=True),
    )

    op.create_table(
        'storage_records',
        *_tenant_columns(),
        *_soft_delete_columns(),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('storage_units.id'), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('temperature', sa.Float(), nullable=False),
        sa.Column('humidity', sa.Float(), nullable=True),
        sa.Column('rotation_check', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mincing_check', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
    )

    op.create_table(
        'technical_sheets',
        *_tenant_columns(),
        sa.Column('product_name', sa.String(100), nullable=False),
        sa.Column('ingredients', JSON_TYPE, nullable=False, comment='List of {name, lot, is_allergen}'),
        sa.Column('elaboration', sa.Text(), nullable=True),
        sa.Column('presentation', sa.Text(), nullable=True),
        sa.Column('shelf_life', sa.String(200), nullable=True),
        sa.Column('labeling', sa.Text(), nullable=True),
    )

    op.create_table(
        'incidents',
        *_tenant_columns(),
        *_soft_delete_columns(),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('detection_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('affected_area', sa.String(50), nullable=False),
        sa.Column('severity', _enum('incident_severity', 'Baja', 'Media', 'Alta', 'Crítica'), nullable=False),
        sa.Column('status', _enum('incident_status', 'Abierta', 'En Proceso', 'Resuelta'), nullable=False),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
    )

    op.create_table(
        'corrective_actions',
        *_tenant_columns(),
        sa.Column('incident_id', sa.Uuid(), sa.ForeignKey('incidents.id'), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('implementation_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('responsible_user', sa.String(100), nullable=True),
        sa.Column('status', _enum('corrective_action_status', 'Pendiente', 'En Progreso', 'Completada'),
                  nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )

    # =========================================================================
    # 3. TENANT INDEXES
    # =========================================================================

    for table in (
        'delivery_records',
        'storage_units',
        'storage_records',
        'technical_sheets',
        'incidents',
        'corrective_actions',
    ):
        op.create_index(f'ix_{table}_organization_id', table, ['organization_id'])

    for table in ('delivery_records', 'storage_records', 'incidents'):
        op.create_index(f'ix_{table}_deleted_at', table, ['deleted_at'])

    op.create_index('ix_delivery_records_org_created', 'delivery_records', ['organization_id', 'created_at'])
    op.create_index('ix_delivery_records_org_reception', 'delivery_records', ['organization_id', 'reception_date'])
    op.create_index('ix_delivery_records_org_created_by', 'delivery_records', ['organization_id', 'created_by'])
    op.create_index('ix_storage_units_org_created', 'storage_units', ['organization_id', 'created_at'])
    op.create_index('ix_storage_units_org_type', 'storage_units', ['organization_id', 'unit_type'])
    op.create_index('ix_storage_records_org_created', 'storage_records', ['organization_id', 'created_at'])
    op.create_index('ix_storage_records_org_recorded', 'storage_records', ['organization_id', 'recorded_at'])
    op.create_index('ix_storage_records_org_unit', 'storage_records', ['organization_id', 'unit_id'])
    op.create_index('ix_technical_sheets_org_created', 'technical_sheets', ['organization_id', 'created_at'])
    op.create_index('ix_technical_sheets_org_product', 'technical_sheets', ['organization_id', 'product_name'])
    op.create_index('ix_incidents_org_created', 'incidents', ['organization_id', 'created_at'])
    op.create_index('ix_incidents_org_status', 'incidents', ['organization_id', 'status'])
    op.create_index('ix_incidents_org_severity', 'incidents', ['organization_id', 'severity'])
    op.create_index('ix_incidents_org_detection', 'incidents', ['organization_id', 'detection_date'])
    op.create_index('ix_corrective_actions_org_incident', 'corrective_actions', ['organization_id', 'incident_id'])

    # =========================================================================
    # 4. AUDIT TRAIL
    # =========================================================================

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True, comment='Primary key (UUID)'),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False,
                  comment='Owning organization (tenant isolation key)'),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action', _enum('audit_action', 'LOGIN', 'LOGOUT', 'REGISTER', 'PASSWORD_RESET',
                                    'CREATE', 'UPDATE', 'DELETE', 'VIEW', 'INVITE_USER',
                                    'REMOVE_USER', 'CHANGE_ROLE', 'UPDATE_ORGANIZATION', 'EXPORT_DATA'),
                  nullable=False),
        sa.Column('resource', _enum('audit_resource', 'Authentication', 'User', 'Organization',
                                      'DeliveryRecord', 'StorageUnit', 'StorageRecord',
                                      'TechnicalSheet', 'Incident', 'CorrectiveAction'),
                  nullable=False),
        sa.Column('resource_id', sa.Uuid(), nullable=True),
        sa.Column('details', JSON_TYPE, nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_audit_logs_organization_id', 'audit_logs', ['organization_id'])
    op.create_index('ix_audit_logs_org_created', 'audit_logs', ['organization_id', 'created_at'])
    op.create_index('ix_audit_logs_org_user_created', 'audit_logs', ['organization_id', 'user_id', 'created_at'])
    op.create_index('ix_audit_logs_org_action_created', 'audit_logs', ['organization_id', 'action', 'created_at'])


def downgrade() -> None:
    """Downgrade database schema."""
    # Indexes are dropped with their tables
    op.drop_table('audit_logs')
    op.drop_table('corrective_actions')
    op.drop_table('incidents')
    op.drop_table('technical_sheets')
    op.drop_table('storage_records')
    op.drop_table('storage_units')
    op.drop_table('delivery_records')
    op.drop_table('users')
    op.drop_table('organizations')
