"""Initial database schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

This migration creates the tenant, WhatsApp account, bot and flow graph tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    """Create all initial tables."""

    # =========================================================================
    # Organizations
    # =========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), unique=True, nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # =========================================================================
    # WhatsApp Accounts
    # =========================================================================
    op.create_table(
        'whatsapp_accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('waba_id', sa.String(64), nullable=False),
        sa.Column('phone_number_id', sa.String(64), nullable=False),
        sa.Column('display_phone_number', sa.String(32), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('verified_name', sa.String(255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('quality_rating', sa.String(20), default='UNKNOWN'),
        sa.Column('status', sa.String(20), default='PENDING'),
        sa.Column('messaging_limit', sa.Integer(), default=1000),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_whatsapp_accounts_org', 'whatsapp_accounts', ['organization_id'])
    op.create_index('ix_whatsapp_accounts_phone_number_id', 'whatsapp_accounts', ['phone_number_id'])

    # =========================================================================
    # Bots
    # =========================================================================
    op.create_table(
        'bots',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('whatsapp_account_id', sa.String(36), sa.ForeignKey('whatsapp_accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=False),
        sa.Column('version', sa.Integer(), nullable=False, default=1),
        sa.Column('welcome_message', sa.Text(), nullable=False),
        sa.Column('fallback_message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_bots_org', 'bots', ['organization_id'])
    op.create_index('ix_bots_org_updated', 'bots', ['organization_id', 'updated_at'])

    # =========================================================================
    # Flow Graph
    # =========================================================================
    op.create_table(
        'bot_nodes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('bot_id', sa.String(36), sa.ForeignKey('bots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('node_id', sa.String(100), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('label', sa.String(255), nullable=True),
        sa.Column('data', JSONType, nullable=False),
        sa.Column('position', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('bot_id', 'node_id', name='uq_bot_nodes_bot_node'),
    )
    op.create_index('ix_bot_nodes_bot', 'bot_nodes', ['bot_id'])

    op.create_table(
        'bot_edges',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('bot_id', sa.String(36), sa.ForeignKey('bots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('edge_id', sa.String(100), nullable=False),
        sa.Column('source', sa.String(100), nullable=False),
        sa.Column('target', sa.String(100), nullable=False),
        sa.Column('condition', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('bot_id', 'edge_id', name='uq_bot_edges_bot_edge'),
    )
    op.create_index('ix_bot_edges_bot', 'bot_edges', ['bot_id'])


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table('bot_edges')
    op.drop_table('bot_nodes')
    op.drop_table('bots')
    op.drop_table('whatsapp_accounts')
    op.drop_table('organizations')
