"""sql editor: stored procedures, versions and templates

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Stored procedures table
    op.create_table(
        'stored_procedures',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('workspace_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('sql_draft', sa.Text(), nullable=False, server_default=''),
        sa.Column('sql_published', sa.Text(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('workspace_id', 'name', name='uq_stored_procedures_workspace_name'),
        sa.CheckConstraint("status IN ('draft', 'published')", name='valid_procedure_status'),
    )
    op.create_index(
        'ix_stored_procedures_workspace_updated', 'stored_procedures', ['workspace_id', 'updated_at']
    )

    # Version snapshots
    op.create_table(
        'stored_procedure_versions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('procedure_id', sa.Uuid(), nullable=False),
        sa.Column('workspace_id', sa.Uuid(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sql_text', sa.Text(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['procedure_id'], ['stored_procedures.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('procedure_id', 'version', name='uq_procedure_version'),
        sa.CheckConstraint("source IN ('draft', 'published')", name='valid_version_source'),
    )
    op.create_index(
        'ix_stored_procedure_versions_procedure_id', 'stored_procedure_versions', ['procedure_id']
    )

    # Platform-wide procedure templates
    op.create_table(
        'procedure_templates',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sql_template', sa.Text(), nullable=False),
        sa.Column('params_schema', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('name', name='uq_procedure_templates_name'),
        sa.CheckConstraint('length(trim(sql_template)) > 0', name='sql_template_not_empty'),
    )


def downgrade() -> None:
    op.drop_table('procedure_templates')
    op.drop_index('ix_stored_procedure_versions_procedure_id', table_name='stored_procedure_versions')
    op.drop_table('stored_procedure_versions')
    op.drop_index('ix_stored_procedures_workspace_updated', table_name='stored_procedures')
    op.drop_table('stored_procedures')
