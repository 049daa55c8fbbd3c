"""Create users, assets, deletion requests and audit log tables

Revision ID: 7c1e94d2b0a5
Revises:
Create Date: 2026-10-18 09:12:44.102387

"""
from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision = '7c1e94d2b0a5'
down_revision = None
branch_labels = None
depends_on = None

DELETION_REQUEST_STATUSES = ('pending', 'approved', 'rejected', 'cancelled')
AUDIT_ACTIONS = (
    'asset_deleted',
    'deletion_request_submitted',
    'deletion_request_cancelled',
    'deletion_request_approved',
    'deletion_request_rejected',
)
AUDIT_ENTITY_TYPES = ('asset', 'deletion_request')


def upgrade() -> None:
    op.create_table('users',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('email', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
    sa.Column('full_name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
    sa.Column('role', sa.Enum('ADMIN', 'USER', name='userrole'), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table('categories',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('created_by', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('departments',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('created_by', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )

    op.create_table('assets',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
    sa.Column('category_id', sa.Integer(), nullable=False),
    sa.Column('department_id', sa.Integer(), nullable=False),
    sa.Column('date_purchased', sa.Date(), nullable=False),
    sa.Column('cost', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('created_by', sa.Integer(), nullable=False),
    sa.Column('updated_by', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('cost > 0', name='ck_assets_cost_positive'),
    sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='RESTRICT'),
    sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='RESTRICT'),
    sa.ForeignKeyConstraint(['created_by'], ['users.id']),
    sa.ForeignKeyConstraint(['updated_by'], ['users.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_assets_category_id'), 'assets', ['category_id'], unique=False)
    op.create_index(op.f('ix_assets_department_id'), 'assets', ['department_id'], unique=False)
    op.create_index(op.f('ix_assets_date_purchased'), 'assets', ['date_purchased'], unique=False)
    op.create_index(op.f('ix_assets_created_by'), 'assets', ['created_by'], unique=False)

    op.create_table('deletion_requests',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('asset_id', sa.Integer(), nullable=True),
    sa.Column('asset_name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
    sa.Column('asset_cost', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('requested_by', sa.Integer(), nullable=False),
    sa.Column('requester_email', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
    sa.Column('justification', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
    sa.Column('status', sa.Enum(*DELETION_REQUEST_STATUSES, name='deletion_request_status', native_enum=False, create_constraint=True, length=20), nullable=False),
    sa.Column('reviewed_by', sa.Integer(), nullable=True),
    sa.Column('reviewer_email', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
    sa.Column('review_comment', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
    sa.Column('reviewed_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "(status IN ('approved', 'rejected') AND reviewed_by IS NOT NULL AND reviewed_at IS NOT NULL)"
        " OR (status IN ('pending', 'cancelled') AND reviewed_by IS NULL AND reviewed_at IS NULL)",
        name='ck_deletion_requests_review_fields'),
    sa.CheckConstraint('length(justification) >= 10', name='ck_deletion_requests_justification_length'),
    sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['requested_by'], ['users.id']),
    sa.ForeignKeyConstraint(['reviewed_by'], ['users.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_deletion_requests_asset_id'), 'deletion_requests', ['asset_id'], unique=False)
    op.create_index(op.f('ix_deletion_requests_requested_by'), 'deletion_requests', ['requested_by'], unique=False)
    op.create_index(op.f('ix_deletion_requests_reviewed_by'), 'deletion_requests', ['reviewed_by'], unique=False)
    op.create_index(op.f('ix_deletion_requests_status'), 'deletion_requests', ['status'], unique=False)
    op.create_index(op.f('ix_deletion_requests_created_at'), 'deletion_requests', ['created_at'], unique=False)
    op.create_index(
        'uq_deletion_requests_pending_asset',
        'deletion_requests',
        ['asset_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table('audit_logs',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('action', sa.Enum(*AUDIT_ACTIONS, name='audit_action', native_enum=False, create_constraint=True, length=50), nullable=False),
    sa.Column('entity_type', sa.Enum(*AUDIT_ENTITY_TYPES, name='audit_entity_type', native_enum=False, create_constraint=True, length=50), nullable=False),
    sa.Column('entity_id', sa.Integer(), nullable=False),
    sa.Column('entity_data', sa.JSON(), nullable=True),
    sa.Column('performed_by', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['performed_by'], ['users.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_type'), 'audit_logs', ['entity_type'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_performed_by'), 'audit_logs', ['performed_by'], unique=False)
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_index('uq_deletion_requests_pending_asset', table_name='deletion_requests')
    op.drop_table('deletion_requests')
    op.drop_table('assets')
    op.drop_table('departments')
    op.drop_table('categories')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
