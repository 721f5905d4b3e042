"""prompt library: prompts, compound components and tags

Revision ID: 001_prompt_library
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_prompt_library'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'prompts',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('slug', sa.String(length=120), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('prompt_text', sa.Text(), nullable=True),
        sa.Column('example_output', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('author_name', sa.String(length=255), nullable=False),
        sa.Column('author_url', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_compound', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_depth', sa.Integer(), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('copy_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_prompts_slug', 'prompts', ['slug'], unique=True)
    op.create_index('ix_prompts_status_created_at', 'prompts', ['status', 'created_at'])
    op.create_index('ix_prompts_is_compound', 'prompts', ['is_compound'])

    op.create_table(
        'compound_prompt_components',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('compound_prompt_id', sa.String(length=36), nullable=False),
        sa.Column('component_prompt_id', sa.String(length=36), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('custom_text_before', sa.Text(), nullable=True),
        sa.Column('custom_text_after', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['compound_prompt_id'], ['prompts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['component_prompt_id'], ['prompts.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('compound_prompt_id', 'position', name='uq_compound_component_position'),
        sa.CheckConstraint('compound_prompt_id != component_prompt_id', name='ck_component_not_self'),
    )
    op.create_index(
        'ix_compound_components_order', 'compound_prompt_components', ['compound_prompt_id', 'position']
    )
    op.create_index(
        'ix_compound_prompt_components_component_prompt_id',
        'compound_prompt_components',
        ['component_prompt_id'],
    )

    op.create_table(
        'tags',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=50), nullable=False, unique=True),
        sa.Column('slug', sa.String(length=50), nullable=False),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_tags_slug', 'tags', ['slug'], unique=True)

    op.create_table(
        'prompt_tags',
        sa.Column('prompt_id', sa.String(length=36), primary_key=True),
        sa.Column('tag_id', sa.String(length=36), primary_key=True),
        sa.ForeignKeyConstraint(['prompt_id'], ['prompts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ondelete='CASCADE'),
    )


def downgrade() -> None:
    op.drop_table('prompt_tags')
    op.drop_index('ix_tags_slug', table_name='tags')
    op.drop_table('tags')
    op.drop_index('ix_compound_prompt_components_component_prompt_id', table_name='compound_prompt_components')
    op.drop_index('ix_compound_components_order', table_name='compound_prompt_components')
    op.drop_table('compound_prompt_components')
    op.drop_index('ix_prompts_is_compound', table_name='prompts')
    op.drop_index('ix_prompts_status_created_at', table_name='prompts')
    op.drop_index('ix_prompts_slug', table_name='prompts')
    op.drop_table('prompts')
