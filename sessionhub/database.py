from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sessionhub.config import get_settings

settings = get_settings()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build an engine for the given URL.

    SQLite has no row locks, so every transaction is opened with
    BEGIN IMMEDIATE: the write lock is taken up front and concurrent
    read-then-write sequences (capacity checks, uniqueness checks)
    are serialized across connections. Other backends rely on
    SELECT ... FOR UPDATE and unique constraints.
    """
    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": 30} if is_sqlite else {},
        pool_pre_ping=not is_sqlite,
        echo=echo
    )
    
    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # Take over transaction control from pysqlite
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        
        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    
    return engine


engine = create_db_engine(settings.database_url, echo=settings.debug)

# Session factory for database operations
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db():
    """
    Dependency that provides database session to route handlers.
    Ensures session is properly closed after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """
    Initialize database schema.
    Creates all tables defined in models.
    Call this on application startup.
    """
    # Register models on Base.metadata
    import sessionhub.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
