"""RBAC schema - roles, permissions and assignment tables

Revision ID: 0001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Catalog tables
    for table in ('permissions', 'roles'):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('guard_name', sa.String(255), nullable=False),
            sa.Column('tenant_id', sa.String(64), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint('name', 'guard_name', 'tenant_id', name=f'uq_{table}_name_guard_tenant'),
        )
        op.create_index(f'ix_{table}_tenant_guard', table, ['tenant_id', 'guard_name'])

    # Role grants
    op.create_table(
        'role_has_permissions',
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )

    # Principal assignments
    op.create_table(
        'model_has_roles',
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('model_type', sa.String(255), primary_key=True),
        sa.Column('model_id', sa.String(255), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False),
    )
    op.create_index('ix_model_has_roles_model', 'model_has_roles', ['tenant_id', 'model_type', 'model_id'])

    op.create_table(
        'model_has_permissions',
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('model_type', sa.String(255), primary_key=True),
        sa.Column('model_id', sa.String(255), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False),
    )
    op.create_index(
        'ix_model_has_permissions_model', 'model_has_permissions', ['tenant_id', 'model_type', 'model_id']
    )


def downgrade() -> None:
    op.drop_table('model_has_permissions')
    op.drop_table('model_has_roles')
    op.drop_table('role_has_permissions')
    op.drop_table('roles')
    op.drop_table('permissions')
