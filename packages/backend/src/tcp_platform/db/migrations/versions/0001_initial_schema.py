"""Initial schema: tenancy, invitations, agents, activity logs

Users belong to companies (company_members) and projects
(project_members), one role per scope. Agents belong to a project and
authenticate with a registration token, then a hashed secret.

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TS = sa.DateTime(timezone=True)
JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', TS, nullable=True),
    ]


def upgrade() -> None:
    # ─── Tenancy ─────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False, unique=True),
        *_timestamps(),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True, unique=True),
        sa.Column('stripe_subscription_id', sa.Text(), nullable=True, unique=True),
        sa.Column('stripe_product_id', sa.Text(), nullable=True),
        sa.Column('plan_name', sa.String(50), nullable=True),
        sa.Column('subscription_status', sa.String(20), nullable=True),
    )
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'slug', name='uq_projects_company_slug'),
    )
    op.create_table(
        'company_members',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('joined_at', TS, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('company_id', 'user_id', name='uq_company_members'),
    )
    op.create_table(
        'project_members',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('joined_at', TS, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('project_id', 'user_id', name='uq_project_members'),
    )

    # ─── Invitations ─────────────────────────────────────
    for table, scope_column, scope_table in (
        ('company_invitations', 'company_id', 'companies'),
        ('project_invitations', 'project_id', 'projects'),
    ):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
            sa.Column(scope_column, sa.Integer(), sa.ForeignKey(f'{scope_table}.id'), nullable=False),
            sa.Column('email', sa.String(255), nullable=False),
            sa.Column('role', sa.String(50), nullable=False),
            sa.Column('invited_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('invited_at', TS, server_default=sa.func.now(), nullable=False),
            sa.Column('status', sa.String(20), server_default='pending', nullable=False),
            sa.Column('token', sa.String(255), nullable=False, unique=True),
            sa.Column('expires_at', TS, nullable=False),
        )

    # ─── Agents ──────────────────────────────────────────
    op.create_table(
        'agents',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('agent_id', sa.String(255), nullable=False, unique=True),
        sa.Column('secret_hash', sa.Text(), nullable=True),
        sa.Column('registration_token', sa.String(255), nullable=True, unique=True),
        sa.Column('registration_token_expires_at', TS, nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('capabilities', JSON, server_default='[]', nullable=False),
        sa.Column('last_seen_at', TS, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'slug', name='uq_agents_project_slug'),
    )
    op.create_index('idx_agents_agent_id', 'agents', ['agent_id'])

    op.create_table(
        'agent_activity_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('agent_id', sa.Integer(), sa.ForeignKey('agents.id'), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('metadata', JSON, server_default='{}', nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('timestamp', TS, server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_agent_activity_agent', 'agent_activity_logs', ['agent_id', 'timestamp'])

    op.create_table(
        'agent_telemetry',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('agent_id', sa.Integer(), sa.ForeignKey('agents.id'), nullable=False),
        sa.Column('timestamp', TS, server_default=sa.func.now(), nullable=False),
        sa.Column('metrics', JSON, server_default='{}', nullable=False),
        sa.Column('metadata', JSON, server_default='{}', nullable=False),
    )
    op.create_index('idx_agent_telemetry_agent', 'agent_telemetry', ['agent_id', 'timestamp'])

    # ─── User activity ───────────────────────────────────
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('metadata', JSON, server_default='{}', nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('timestamp', TS, server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_activity_company', 'activity_logs', ['company_id', 'timestamp'])


def downgrade() -> None:
    op.drop_index('idx_activity_company', table_name='activity_logs')
    op.drop_table('activity_logs')
    op.drop_index('idx_agent_telemetry_agent', table_name='agent_telemetry')
    op.drop_table('agent_telemetry')
    op.drop_index('idx_agent_activity_agent', table_name='agent_activity_logs')
    op.drop_table('agent_activity_logs')
    op.drop_index('idx_agents_agent_id', table_name='agents')
    op.drop_table('agents')
    op.drop_table('project_invitations')
    op.drop_table('company_invitations')
    op.drop_table('project_members')
    op.drop_table('company_members')
    op.drop_table('projects')
    op.drop_table('companies')
    op.drop_table('users')
