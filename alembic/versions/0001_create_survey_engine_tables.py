"""create survey engine tables

Revision ID: 0001_create_survey_engine_tables
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_create_survey_engine_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _option_set_columns():
    return [
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('options', JSONType, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('metadata', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema - create survey engine tables."""

    # Survey configs
    op.create_table(
        'survey_configs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sections', JSONType, nullable=False),
        sa.Column('version', sa.String(length=50), nullable=False, server_default='1.0.0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('metadata', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Survey instances
    op.create_table(
        'survey_instances',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('config_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('slug', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('config_valid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('validation_in_progress', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('active_date_range', JSONType, nullable=True),
        sa.Column('metadata', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['config_id'], ['survey_configs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug')
    )
    op.create_index('ix_survey_instances_config_id', 'survey_instances', ['config_id'])
    op.create_index('ix_survey_instances_validation_in_progress', 'survey_instances', ['validation_in_progress'])

    # Sessions
    op.create_table(
        'survey_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('survey_instance_id', sa.String(length=36), nullable=False),
        sa.Column('session_token', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='started'),
        sa.Column('current_section', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_sections', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('metadata', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['survey_instance_id'], ['survey_instances.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_token')
    )
    op.create_index('ix_survey_sessions_survey_instance_id', 'survey_sessions', ['survey_instance_id'])
    op.create_index('ix_survey_sessions_status_activity', 'survey_sessions', ['status', 'last_activity_at'])

    # Responses
    op.create_table(
        'survey_responses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('survey_instance_id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.String(length=36), nullable=True),
        sa.Column('config_version', sa.String(length=50), nullable=False, server_default='1.0.0'),
        sa.Column('responses', JSONType, nullable=False),
        sa.Column('completion_status', sa.String(length=20), nullable=False, server_default='completed'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('metadata', JSONType, nullable=False),
        sa.ForeignKeyConstraint(['survey_instance_id'], ['survey_instances.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['session_id'], ['survey_sessions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_survey_responses_survey_instance_id', 'survey_responses', ['survey_instance_id'])

    # Option-set catalogs
    op.create_table('rating_scales', *_option_set_columns(), sa.PrimaryKeyConstraint('id'))
    op.create_table('radio_option_sets', *_option_set_columns(), sa.PrimaryKeyConstraint('id'))
    op.create_table(
        'select_option_sets',
        *_option_set_columns(),
        sa.Column('allow_multiple', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'multi_select_option_sets',
        *_option_set_columns(),
        sa.Column('min_selections', sa.Integer(), nullable=True),
        sa.Column('max_selections', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Activation audit trail
    op.create_table(
        'survey_instance_status_changes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('instance_id', sa.String(length=36), nullable=False),
        sa.Column('old_status', sa.Boolean(), nullable=True),
        sa.Column('new_status', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.String(length=100), nullable=False),
        sa.Column('changed_by', sa.String(length=255), nullable=False, server_default='system'),
        sa.Column('details', JSONType, nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['instance_id'], ['survey_instances.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_survey_instance_status_changes_instance_id', 'survey_instance_status_changes', ['instance_id'])


def downgrade() -> None:
    """Downgrade schema - drop survey engine tables."""

    # Drop tables in reverse order
    op.drop_index('ix_survey_instance_status_changes_instance_id', 'survey_instance_status_changes')
    op.drop_table('survey_instance_status_changes')

    op.drop_table('multi_select_option_sets')
    op.drop_table('select_option_sets')
    op.drop_table('radio_option_sets')
    op.drop_table('rating_scales')

    op.drop_index('ix_survey_responses_survey_instance_id', 'survey_responses')
    op.drop_table('survey_responses')

    op.drop_index('ix_survey_sessions_status_activity', 'survey_sessions')
    op.drop_index('ix_survey_sessions_survey_instance_id', 'survey_sessions')
    op.drop_table('survey_sessions')

    op.drop_index('ix_survey_instances_validation_in_progress', 'survey_instances')
    op.drop_index('ix_survey_instances_config_id', 'survey_instances')
    op.drop_table('survey_instances')

    op.drop_table('survey_configs')
