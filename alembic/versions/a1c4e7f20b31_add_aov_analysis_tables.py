"""Add order snapshot and AOV analysis tables

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7f20b31'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # shopify_orders
    op.create_table(
        'shopify_orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('workspace_id', sa.String(), nullable=False),
        sa.Column('connection_id', sa.String(), nullable=True),
        sa.Column('shopify_order_id', sa.BigInteger(), nullable=False),
        sa.Column('order_number', sa.Integer(), nullable=True),
        sa.Column('financial_status', sa.String(), nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('subtotal_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('total_shipping', sa.Numeric(10, 2), nullable=True),
        sa.Column('line_items', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('workspace_id', 'shopify_order_id', name='uq_shopify_order_workspace'),
    )
    op.create_index('ix_shopify_orders_id', 'shopify_orders', ['id'])
    op.create_index('ix_shopify_orders_workspace_id', 'shopify_orders', ['workspace_id'])
    op.create_index('ix_shopify_orders_connection_id', 'shopify_orders', ['connection_id'])
    op.create_index('ix_shopify_orders_shopify_order_id', 'shopify_orders', ['shopify_order_id'])
    op.create_index('ix_shopify_orders_order_number', 'shopify_orders', ['order_number'])
    op.create_index('ix_shopify_orders_financial_status', 'shopify_orders', ['financial_status'])
    op.create_index('ix_shopify_orders_created_at', 'shopify_orders', ['created_at'])

    # aov_analyses
    op.create_table(
        'aov_analyses',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('workspace_id', sa.String(), nullable=False),
        sa.Column('connection_id', sa.String(), nullable=True),
        sa.Column('total_orders', sa.Integer(), nullable=False),
        sa.Column('total_revenue', sa.Float(), nullable=False),
        sa.Column('average_order_value', sa.Float(), nullable=False),
        sa.Column('median_order_value', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('period_start', sa.DateTime(), nullable=True),
        sa.Column('period_end', sa.DateTime(), nullable=True),
        sa.Column('parameters', sa.JSON(), nullable=True),
        sa.Column('notes', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_aov_analyses_id', 'aov_analyses', ['id'])
    op.create_index('ix_aov_analyses_workspace_id', 'aov_analyses', ['workspace_id'])
    op.create_index('ix_aov_analyses_connection_id', 'aov_analyses', ['connection_id'])
    op.create_index('ix_aov_analyses_created_at', 'aov_analyses', ['created_at'])

    # order_clusters
    op.create_table(
        'order_clusters',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('analysis_id', sa.Integer(), sa.ForeignKey('aov_analyses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('workspace_id', sa.String(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('cluster_name', sa.String(), nullable=False),
        sa.Column('min_value', sa.Float(), nullable=False),
        sa.Column('max_value', sa.Float(), nullable=True),
        sa.Column('order_count', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False),
        sa.Column('avg_order_value', sa.Float(), nullable=False),
        sa.Column('total_revenue', sa.Float(), nullable=False),
    )
    op.create_index('ix_order_clusters_id', 'order_clusters', ['id'])
    op.create_index('ix_order_clusters_analysis_id', 'order_clusters', ['analysis_id'])
    op.create_index('ix_order_clusters_workspace_id', 'order_clusters', ['workspace_id'])

    # product_affinities
    op.create_table(
        'product_affinities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('analysis_id', sa.Integer(), sa.ForeignKey('aov_analyses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('workspace_id', sa.String(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_a_id', sa.String(), nullable=False),
        sa.Column('product_a_title', sa.String(), nullable=True),
        sa.Column('product_b_id', sa.String(), nullable=False),
        sa.Column('product_b_title', sa.String(), nullable=True),
        sa.Column('co_occurrence_count', sa.Integer(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('lift', sa.Float(), nullable=False),
    )
    op.create_index('ix_product_affinities_id', 'product_affinities', ['id'])
    op.create_index('ix_product_affinities_analysis_id', 'product_affinities', ['analysis_id'])
    op.create_index('ix_product_affinities_workspace_id', 'product_affinities', ['workspace_id'])
    op.create_index('ix_product_affinities_product_a_id', 'product_affinities', ['product_a_id'])
    op.create_index('ix_product_affinities_product_b_id', 'product_affinities', ['product_b_id'])

    # aov_opportunities
    op.create_table(
        'aov_opportunities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('analysis_id', sa.Integer(), sa.ForeignKey('aov_analyses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('workspace_id', sa.String(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('opportunity_type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('potential_impact', sa.String(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=False),
        sa.Column('data_support', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
    )
    op.create_index('ix_aov_opportunities_id', 'aov_opportunities', ['id'])
    op.create_index('ix_aov_opportunities_analysis_id', 'aov_opportunities', ['analysis_id'])
    op.create_index('ix_aov_opportunities_workspace_id', 'aov_opportunities', ['workspace_id'])
    op.create_index('ix_aov_opportunities_opportunity_type', 'aov_opportunities', ['opportunity_type'])
    op.create_index('ix_aov_opportunities_priority', 'aov_opportunities', ['priority'])
    op.create_index('ix_aov_opportunities_status', 'aov_opportunities', ['status'])


def downgrade() -> None:
    op.drop_table('aov_opportunities')
    op.drop_table('product_affinities')
    op.drop_table('order_clusters')
    op.drop_table('aov_analyses')
    op.drop_table('shopify_orders')
