"""Create alert engine tables.

Revision ID: c4a7e2f91b03
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'c4a7e2f91b03'
down_revision = None
branch_labels = None
depends_on = None


ENUM_TYPES = {
    'alertmetric': ('capacity_factor', 'generation', 'availability', 'price', 'capture_rate', 'wind_speed', 'data_quality'),
    'alertcondition': ('above', 'below', 'change_by_percent', 'outside_range'),
    'alertscope': ('specific_windfarm', 'portfolio', 'all_windfarms'),
    'alertseverity': ('low', 'medium', 'high', 'critical'),
    'alerttriggerstatus': ('active', 'acknowledged', 'resolved'),
    'notificationchannel': ('in_app', 'email', 'email_digest'),
    'notificationstatus': ('unread', 'read', 'archived'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def upgrade() -> None:
    # alertmetric may already exist from the core platform's metric store
    for name, values in ENUM_TYPES.items():
        labels = ", ".join(f"'{value}'" for value in values)
        op.execute(f"""
            DO $$ BEGIN
                CREATE TYPE {name} AS ENUM ({labels});
            EXCEPTION
                WHEN duplicate_object THEN null;
            END $$;
        """)

    # Create alert_rules table
    op.create_table(
        'alert_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metric', _enum('alertmetric'), nullable=False),
        sa.Column('condition', _enum('alertcondition'), nullable=False),
        sa.Column('threshold_value', sa.Float(), nullable=False),
        sa.Column('threshold_value_upper', sa.Float(), nullable=True),
        sa.Column('scope', _enum('alertscope'), nullable=False, server_default='all_windfarms'),
        sa.Column('windfarm_id', sa.Integer(), nullable=True),
        sa.Column('portfolio_id', sa.Integer(), nullable=True),
        sa.Column('severity', _enum('alertseverity'), nullable=False, server_default='medium'),
        sa.Column('channels', sa.JSON(), nullable=False, server_default='["in_app"]'),
        sa.Column('sustained_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_triggered_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['windfarm_id'], ['windfarms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['portfolio_id'], ['portfolios.id'], ondelete='CASCADE'),
        sa.CheckConstraint('sustained_minutes >= 0', name='ck_alert_rules_sustained_minutes'),
    )
    op.create_index('ix_alert_rules_id', 'alert_rules', ['id'])
    op.create_index('ix_alert_rules_user_id', 'alert_rules', ['user_id'])
    op.create_index('ix_alert_rules_windfarm_id', 'alert_rules', ['windfarm_id'])
    op.create_index('ix_alert_rules_portfolio_id', 'alert_rules', ['portfolio_id'])
    op.create_index('ix_alert_rules_deleted_at', 'alert_rules', ['deleted_at'])

    # Create alert_triggers table
    op.create_table(
        'alert_triggers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rule_id', sa.Integer(), nullable=False),
        sa.Column('windfarm_id', sa.Integer(), nullable=False),
        sa.Column('open_key', sa.String(64), nullable=True),
        sa.Column('triggered_value', sa.Float(), nullable=False),
        sa.Column('threshold_value', sa.Float(), nullable=False),
        sa.Column('threshold_value_upper', sa.Float(), nullable=True),
        sa.Column('severity', _enum('alertseverity'), nullable=False, server_default='medium'),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', _enum('alerttriggerstatus'), nullable=False, server_default='active'),
        sa.Column('triggered_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['rule_id'], ['alert_rules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['windfarm_id'], ['windfarms.id'], ondelete='CASCADE'),
        # At most one open trigger per (rule, windfarm)
        sa.UniqueConstraint('open_key', name='uq_alert_trigger_open_key'),
    )
    op.create_index('ix_alert_triggers_id', 'alert_triggers', ['id'])
    op.create_index('ix_alert_triggers_rule_id', 'alert_triggers', ['rule_id'])
    op.create_index('ix_alert_triggers_windfarm_id', 'alert_triggers', ['windfarm_id'])
    op.create_index('ix_alert_triggers_status', 'alert_triggers', ['status'])

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('trigger_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('severity', _enum('alertseverity'), nullable=False, server_default='medium'),
        sa.Column('notification_type', sa.String(50), nullable=False, server_default='alert'),
        sa.Column('entity_type', sa.String(50), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('channel', _enum('notificationchannel'), nullable=False, server_default='in_app'),
        sa.Column('status', _enum('notificationstatus'), nullable=False, server_default='unread'),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('delivery_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['trigger_id'], ['alert_triggers.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('trigger_id', 'channel', 'user_id', name='uq_notification_trigger_channel_user'),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_status', 'notifications', ['status'])
    op.create_index('ix_notifications_channel', 'notifications', ['channel'])
    op.create_index('ix_notifications_trigger_id', 'notifications', ['trigger_id'])

    # Create notification_preferences table
    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('email_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('email_digest_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('in_app_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('digest_frequency_hours', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('last_digest_sent_at', sa.DateTime(), nullable=True),
        sa.Column('quiet_hours_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('quiet_hours_start', sa.Integer(), nullable=True),
        sa.Column('quiet_hours_end', sa.Integer(), nullable=True),
        sa.Column('min_severity', _enum('alertseverity'), nullable=False, server_default='low'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', name='uq_user_notification_preferences'),
    )
    op.create_index('ix_notification_preferences_id', 'notification_preferences', ['id'])
    op.create_index('ix_notification_preferences_user_id', 'notification_preferences', ['user_id'])


def downgrade() -> None:
    op.drop_table('notification_preferences')
    op.drop_table('notifications')
    op.drop_table('alert_triggers')
    op.drop_table('alert_rules')

    # alertmetric is left for the metric store
    for name in ('notificationstatus', 'notificationchannel', 'alerttriggerstatus', 'alertseverity', 'alertscope', 'alertcondition'):
        op.execute(f'DROP TYPE IF EXISTS {name}')
