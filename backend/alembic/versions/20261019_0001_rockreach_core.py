"""Create provider settings, usage, audit, agent task and lead tables.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Per-tenant provider configuration with encrypted API key envelope
    op.create_table(
        'provider_settings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('provider_kind', sa.String(32), nullable=False, index=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('base_url', sa.String(500), nullable=True),
        sa.Column('api_key_encrypted', sa.JSON(), nullable=True),
        sa.Column('default_model', sa.String(100), nullable=True),
        sa.Column('daily_limit', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('concurrency', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('retry_policy', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'provider_kind', name='uq_provider_settings_tenant_kind'),
    )

    # Append-only outbound call log
    op.create_table(
        'api_usage',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('provider', sa.String(32), nullable=False, server_default='rocketreach'),
        sa.Column('endpoint', sa.String(500), nullable=False),
        sa.Column('method', sa.String(10), nullable=False),
        sa.Column('units', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_api_usage_tenant_created', 'api_usage', ['tenant_id', 'created_at'])
    op.create_index('idx_api_usage_provider_created', 'api_usage', ['provider', 'created_at'])

    # Append-only admin audit trail
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('actor_id', sa.String(64), nullable=True),
        sa.Column('actor_email', sa.String(255), nullable=True),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('target', sa.String(64), nullable=True),
        sa.Column('target_id', sa.String(64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_audit_tenant_created', 'audit_log', ['tenant_id', 'created_at'])
    op.create_index('idx_audit_actor_created', 'audit_log', ['actor_id', 'created_at'])

    op.create_table(
        'agent_tasks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('type', sa.String(32), nullable=False, server_default='custom'),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('ai_provider', sa.String(32), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending', index=True),
        sa.Column('steps', sa.JSON(), nullable=False),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('idx_agent_tasks_tenant_created', 'agent_tasks', ['tenant_id', 'created_at'])

    op.create_table(
        'leads',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('person_id', sa.String(64), nullable=True, index=True),
        sa.Column('source', sa.String(32), nullable=False, server_default='ai-agent'),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('company', sa.String(200), nullable=True),
        sa.Column('title', sa.String(200), nullable=True),
        sa.Column('linkedin_url', sa.String(500), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='new'),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_leads_tenant_email'),
    )

    op.create_table(
        'lead_searches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('query', sa.JSON(), nullable=False),
        sa.Column('filters', sa.JSON(), nullable=False),
        sa.Column('result_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('executed_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now(), index=True),
    )

    op.create_table(
        'sent_emails',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('message_id', sa.String(255), nullable=False),
        sa.Column('to_address', sa.String(255), nullable=False),
        sa.Column('from_address', sa.String(255), nullable=False),
        sa.Column('subject', sa.String(500), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='sent'),
        sa.Column('tracking_id', sa.String(100), nullable=True),
        sa.Column('sent_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    op.drop_table('sent_emails')
    op.drop_table('lead_searches')
    op.drop_table('leads')
    op.drop_index('idx_agent_tasks_tenant_created', table_name='agent_tasks')
    op.drop_table('agent_tasks')
    op.drop_index('idx_audit_actor_created', table_name='audit_log')
    op.drop_index('idx_audit_tenant_created', table_name='audit_log')
    op.drop_table('audit_log')
    op.drop_index('idx_api_usage_provider_created', table_name='api_usage')
    op.drop_index('idx_api_usage_tenant_created', table_name='api_usage')
    op.drop_table('api_usage')
    op.drop_table('provider_settings')
