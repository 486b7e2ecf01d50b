from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from .config import DATABASE_URL, DB_ECHO, DB_POOL_SIZE
from .dialects import DialectAdapter, adapter_for

Base = declarative_base()


def make_engine(url: str = DATABASE_URL) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(url, echo=DB_ECHO, connect_args={"check_same_thread": False})

        # SQLite enforces foreign keys per connection
        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(url, echo=DB_ECHO, pool_pre_ping=True, pool_size=DB_POOL_SIZE)


# One pool per process, shared by every request
engine = make_engine()
db: DialectAdapter = adapter_for(engine)
