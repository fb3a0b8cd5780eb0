from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from .config import settings

_database_url = settings.resolved_database_url

# check_same_thread=False: SQLite connections are shared across FastAPI worker threads
engine = create_engine(
    _database_url,
    connect_args={"check_same_thread": False} if _database_url.startswith("sqlite") else {},
)


# Foreign keys are off by default in SQLite
@event.listens_for(engine, "connect")
def enable_sqlite_fk(dbapi_connection, _):
    if not _database_url.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Slot views outlive the session that loaded them
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)


def init_db() -> None:
    """Create tables that do not exist yet."""
    from .models.generated import Base
    Base.metadata.create_all(bind=engine)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
