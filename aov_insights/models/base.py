"""
Base database model and session management
"""
import os
from typing import List

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import NullPool
from sqlalchemy.orm import declarative_base, sessionmaker

from aov_insights.config import get_settings
from aov_insights.utils.logger import log

settings = get_settings()


def resolve_database_url(url: str) -> str:
    """Relative SQLite paths become absolute so a cwd change can't move the database"""
    if url.startswith("sqlite:///") and not url.startswith("sqlite:////"):
        return "sqlite:///" + os.path.abspath(url[len("sqlite:///"):])
    return url


def build_engine(url: str):
    url = resolve_database_url(url)
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 60},
            poolclass=NullPool,
            pool_pre_ping=True,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=3,
        max_overflow=5,
        pool_recycle=300,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def add_missing_columns(bind=None) -> List[str]:
    """
    Add model columns that an existing table lacks; returns "table.column" for each.

    create_all() only creates whole tables, so a column added to one of the
    analysis models after its table was created is added here instead.
    """
    bind = bind or engine
    inspector = inspect(bind)
    added = []
    with bind.begin() as conn:
        for table_name, table in Base.metadata.tables.items():
            if not inspector.has_table(table_name):
                continue
            existing = {c["name"] for c in inspector.get_columns(table_name)}
            for col in table.columns:
                if col.name in existing:
                    continue
                col_type = col.type.compile(dialect=bind.dialect)
                conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {col.name} {col_type}"))
                added.append(f"{table_name}.{col.name}")

    if added:
        log.info(f"Added missing columns: {', '.join(added)}")
    return added


def init_db(bind=None) -> List[str]:
    """Create the order snapshot and analysis tables, then add any missing columns"""
    import aov_insights.models  # noqa: F401  registers every model on Base.metadata

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    return add_missing_columns(bind)
