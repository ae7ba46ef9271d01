"""
Shared fixtures.

Settings are read once at import time, so the log directory and default
database are pointed at a scratch directory before anything under
aov_insights is imported.
"""
import os
import tempfile

_SCRATCH = tempfile.mkdtemp(prefix="aov_insights_tests_")
os.environ.setdefault("LOG_DIR", os.path.join(_SCRATCH, "logs"))
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(_SCRATCH, "aov_insights.db"))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from aov_insights.ml.entities import LineItem, Order  # noqa: E402
from aov_insights.models.base import init_db  # noqa: E402


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database shared across threads"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_order():
    """Order builder: make_order("1001", 45.0, ["1", "2"])"""

    def _make(order_id, total, products=(), currency="USD", created_at=None, shipping=None):
        items = tuple(
            LineItem(product_id=str(pid), title=f"Product {pid}", quantity=1, unit_price=10.0)
            for pid in products
        )
        return Order(
            id=str(order_id),
            total_price=float(total),
            currency=currency,
            created_at=created_at,
            line_items=items,
            shipping_price=shipping,
        )

    return _make
