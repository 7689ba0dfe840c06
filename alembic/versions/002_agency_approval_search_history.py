"""Agency approval fields and destination search history

Revision ID: 002_agency_approval_search_history
Revises: 001_initial_schema
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_agency_approval_search_history'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('agencies') as batch:
        batch.add_column(sa.Column('is_approved', sa.Boolean, nullable=False, server_default=sa.false()))
        batch.add_column(sa.Column('approved_by_id', sa.String(36), nullable=True))
        batch.add_column(sa.Column('approved_at', sa.DateTime, nullable=True))
        batch.add_column(sa.Column('notes', sa.String(1000), nullable=True))

    op.create_table(
        'search_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('agency_id', sa.String(36), nullable=True),
        sa.Column('destination', sa.String(200), nullable=False),
        sa.Column('params', sa.JSON, nullable=False),
        sa.Column('result_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_search_history_user_id', 'search_history', ['user_id'])
    op.create_index('ix_search_history_created_at', 'search_history', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_search_history_created_at', table_name='search_history')
    op.drop_index('ix_search_history_user_id', table_name='search_history')
    op.drop_table('search_history')

    with op.batch_alter_table('agencies') as batch:
        batch.drop_column('notes')
        batch.drop_column('approved_at')
        batch.drop_column('approved_by_id')
        batch.drop_column('is_approved')
