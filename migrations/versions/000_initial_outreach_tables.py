"""Create review outreach tables

Revision ID: 000_initial_outreach_tables
Revises:
Create Date: 2026-03-02

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '000_initial_outreach_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('account',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('tier', sa.String(length=20), nullable=False),
        sa.Column('review_cooldown_days', sa.Integer(), nullable=False),
        sa.Column('timezone', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('quota_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=False),
        sa.Column('reserved', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'period', name='uq_quota_usage_account_period')
    )

    op.create_table('customer',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('email', sa.String(length=200), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('phone_status', sa.String(length=20), nullable=True),
        sa.Column('opted_out', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('timezone', sa.String(length=50), nullable=True),
        sa.Column('last_sent_at', sa.DateTime(), nullable=True),
        sa.Column('send_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customer_account_id', 'customer', ['account_id'], unique=False)

    op.create_table('job',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('service_type', sa.String(length=50), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('campaign_override', sa.String(length=50), nullable=True),
        sa.Column('enrollment_resolution', sa.String(length=30), nullable=True),
        sa.Column('conflict_detected_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customer.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_job_account_id', 'job', ['account_id'], unique=False)
    op.create_index('ix_job_customer_id', 'job', ['customer_id'], unique=False)
    op.create_index('ix_job_enrollment_resolution', 'job', ['enrollment_resolution'], unique=False)

    op.create_table('message_template',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('channel', sa.String(length=10), nullable=False),
        sa.Column('subject', sa.String(length=300), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('campaign',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('service_type', sa.String(length=50), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_campaign_account_id', 'campaign', ['account_id'], unique=False)

    op.create_table('campaign_touch',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('touch_number', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(length=10), nullable=False),
        sa.Column('delay_hours', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaign.id'], ),
        sa.ForeignKeyConstraint(['template_id'], ['message_template.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('campaign_id', 'touch_number', name='uq_campaign_touch_number')
    )

    op.create_table('campaign_enrollment',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('current_touch', sa.Integer(), nullable=False),
        sa.Column('touch_plan', sa.JSON(), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(), nullable=False),
        sa.Column('last_touch_at', sa.DateTime(), nullable=True),
        sa.Column('next_touch_due_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('stopped_at', sa.DateTime(), nullable=True),
        sa.Column('stop_reason', sa.String(length=50), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaign.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customer.id'], ),
        sa.ForeignKeyConstraint(['job_id'], ['job.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'uq_campaign_enrollment_active_customer',
        'campaign_enrollment',
        ['customer_id'],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'")
    )
    op.create_index('ix_campaign_enrollment_due', 'campaign_enrollment', ['status', 'next_touch_due_at'], unique=False)

    op.create_table('send_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=True),
        sa.Column('campaign_enrollment_id', sa.Integer(), nullable=True),
        sa.Column('touch_number', sa.Integer(), nullable=True),
        sa.Column('template_id', sa.Integer(), nullable=True),
        sa.Column('channel', sa.String(length=10), nullable=False),
        sa.Column('subject', sa.String(length=300), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('provider_id', sa.String(length=200), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.ForeignKeyConstraint(['campaign_enrollment_id'], ['campaign_enrollment.id'], ),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaign.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customer.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('campaign_enrollment_id', 'touch_number', name='uq_send_log_enrollment_touch')
    )
    op.create_index('ix_send_log_account_id', 'send_log', ['account_id'], unique=False)
    op.create_index('ix_send_log_created_at', 'send_log', ['created_at'], unique=False)

    op.create_table('scheduled_send',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('customer_ids', sa.JSON(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=True),
        sa.Column('channel', sa.String(length=10), nullable=False),
        sa.Column('custom_subject', sa.String(length=300), nullable=True),
        sa.Column('custom_body', sa.Text(), nullable=True),
        sa.Column('scheduled_for', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('executed_at', sa.DateTime(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_scheduled_send_account_id', 'scheduled_send', ['account_id'], unique=False)
    op.create_index('ix_scheduled_send_scheduled_for', 'scheduled_send', ['scheduled_for'], unique=False)


def downgrade():
    op.drop_index('ix_scheduled_send_scheduled_for', table_name='scheduled_send')
    op.drop_index('ix_scheduled_send_account_id', table_name='scheduled_send')
    op.drop_table('scheduled_send')
    op.drop_index('ix_send_log_created_at', table_name='send_log')
    op.drop_index('ix_send_log_account_id', table_name='send_log')
    op.drop_table('send_log')
    op.drop_index('ix_campaign_enrollment_due', table_name='campaign_enrollment')
    op.drop_index('uq_campaign_enrollment_active_customer', table_name='campaign_enrollment')
    op.drop_table('campaign_enrollment')
    op.drop_table('campaign_touch')
    op.drop_index('ix_campaign_account_id', table_name='campaign')
    op.drop_table('campaign')
    op.drop_table('message_template')
    op.drop_index('ix_job_enrollment_resolution', table_name='job')
    op.drop_index('ix_job_customer_id', table_name='job')
    op.drop_index('ix_job_account_id', table_name='job')
    op.drop_table('job')
    op.drop_index('ix_customer_account_id', table_name='customer')
    op.drop_table('customer')
    op.drop_table('quota_usage')
    op.drop_table('user')
    op.drop_table('account')
