"""
AOV Analysis Models

Stores completed order value analyses: the run summary plus its clusters,
product affinities and opportunities. Rows are written once per run;
opportunity status is the only field edited afterwards.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from aov_insights.models.base import Base


class AOVAnalysis(Base):
    """One order value analysis run"""
    __tablename__ = "aov_analyses"

    id = Column(Integer, primary_key=True, index=True)

    workspace_id = Column(String, index=True, nullable=False)
    connection_id = Column(String, index=True, nullable=True)

    # Summary
    total_orders = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Float, nullable=False, default=0)
    average_order_value = Column(Float, nullable=False, default=0)
    median_order_value = Column(Float, nullable=False, default=0)
    currency = Column(String, default='USD')
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)

    # Run parameters and low-data markers
    parameters = Column(JSON, nullable=True)  # {min_confidence, cluster_band_count, max_affinity_pairs}
    notes = Column(JSON, nullable=True)  # [{code, message}, ...]

    created_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)

    clusters = relationship(
        "OrderCluster", back_populates="analysis", cascade="all, delete-orphan", order_by="OrderCluster.position"
    )
    affinities = relationship(
        "ProductAffinity", back_populates="analysis", cascade="all, delete-orphan", order_by="ProductAffinity.position"
    )
    opportunities = relationship(
        "AOVOpportunity", back_populates="analysis", cascade="all, delete-orphan", order_by="AOVOpportunity.position"
    )


class OrderCluster(Base):
    """Order value band"""
    __tablename__ = "order_clusters"

    id = Column(Integer, primary_key=True, index=True)
    analysis_id = Column(Integer, ForeignKey('aov_analyses.id', ondelete='CASCADE'), index=True, nullable=False)
    workspace_id = Column(String, index=True, nullable=False)
    position = Column(Integer, nullable=False)

    cluster_name = Column(String, nullable=False)
    min_value = Column(Float, nullable=False)
    max_value = Column(Float, nullable=True)  # NULL = open-ended top band
    order_count = Column(Integer, nullable=False)
    percentage = Column(Float, nullable=False)  # 0-100
    avg_order_value = Column(Float, nullable=False)
    total_revenue = Column(Float, nullable=False)

    analysis = relationship("AOVAnalysis", back_populates="clusters")


class ProductAffinity(Base):
    """Products bought together"""
    __tablename__ = "product_affinities"

    id = Column(Integer, primary_key=True, index=True)
    analysis_id = Column(Integer, ForeignKey('aov_analyses.id', ondelete='CASCADE'), index=True, nullable=False)
    workspace_id = Column(String, index=True, nullable=False)
    position = Column(Integer, nullable=False)

    product_a_id = Column(String, index=True, nullable=False)
    product_a_title = Column(String, nullable=True)
    product_b_id = Column(String, index=True, nullable=False)
    product_b_title = Column(String, nullable=True)
    co_occurrence_count = Column(Integer, nullable=False)
    confidence = Column(Float, nullable=False)  # P(B|A)
    lift = Column(Float, nullable=False)

    analysis = relationship("AOVAnalysis", back_populates="affinities")


class AOVOpportunity(Base):
    """Ranked opportunity to raise average order value"""
    __tablename__ = "aov_opportunities"

    id = Column(Integer, primary_key=True, index=True)
    analysis_id = Column(Integer, ForeignKey('aov_analyses.id', ondelete='CASCADE'), index=True, nullable=False)
    workspace_id = Column(String, index=True, nullable=False)
    position = Column(Integer, nullable=False)

    opportunity_type = Column(String, index=True, nullable=False)  # free_shipping, bundle, upsell, cross_sell
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    potential_impact = Column(String, nullable=True)
    priority = Column(Integer, index=True, nullable=False)  # 1 = highest
    confidence_score = Column(Float, nullable=False)
    data_support = Column(JSON, nullable=True)

    # Manual follow-up, edited from the dashboard
    status = Column(String, default='open', index=True)  # open, testing, done, dismissed

    analysis = relationship("AOVAnalysis", back_populates="opportunities")
