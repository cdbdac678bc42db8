from app.db.session import engine
from app.db.base import Base
import app.db.models  # noqa: F401  registers every model on Base.metadata


def init_db(bind=None):
    """Create all tables that do not exist yet (local/dev databases)."""
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    init_db()
