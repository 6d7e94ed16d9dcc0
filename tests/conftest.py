import os

# Keep the module-level engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REINDEX_URL", "")
os.environ.setdefault("WEBHOOK_SECRET", "")

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from crvs_bridge.models import registry  # noqa: E402,F401
from crvs_bridge.models.database import Base, make_engine  # noqa: E402


@pytest.fixture
def db_session():
    """Fresh in-memory registry per test."""
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
