"""Create indexed store tables: sections, tasks, projects, sync metadata

Revision ID: 3f9c1a7e2b4d
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f9c1a7e2b4d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'section_record',
        sa.Column('id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('date', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.JSON(), nullable=True),
        sa.Column('blockers', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_section_record_date'), 'section_record', ['date'], unique=False)

    op.create_table(
        'task_record',
        sa.Column('id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('section_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('list_name', sqlmodel.sql.sqltypes.AutoString(), nullable=False, server_default='priorities'),
        sa.Column('previous_list', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('content', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('status', sqlmodel.sql.sqltypes.AutoString(), nullable=False, server_default='pending'),
        sa.Column('project', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('assignee', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('due_date', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('priority', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('rolled_from_date', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_task_record_section_id'), 'task_record', ['section_id'], unique=False)
    op.create_index(op.f('ix_task_record_status'), 'task_record', ['status'], unique=False)
    op.create_index(op.f('ix_task_record_due_date'), 'task_record', ['due_date'], unique=False)

    op.create_table(
        'project_record',
        sa.Column('id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('tag', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False, server_default=''),
        sa.Column('color', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_project_record_tag'), 'project_record', ['tag'], unique=True)

    op.create_table(
        'sync_metadata',
        sa.Column('key', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade() -> None:
    op.drop_table('sync_metadata')
    op.drop_index(op.f('ix_project_record_tag'), table_name='project_record')
    op.drop_table('project_record')
    op.drop_index(op.f('ix_task_record_due_date'), table_name='task_record')
    op.drop_index(op.f('ix_task_record_status'), table_name='task_record')
    op.drop_index(op.f('ix_task_record_section_id'), table_name='task_record')
    op.drop_table('task_record')
    op.drop_index(op.f('ix_section_record_date'), table_name='section_record')
    op.drop_table('section_record')
