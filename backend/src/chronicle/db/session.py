from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from chronicle.config import settings

DATABASE_URL = settings.database_url


def enable_sqlite_foreign_keys(eng: Engine) -> None:
    # SQLite ignores FOREIGN KEY clauses unless the pragma is set per connection
    if eng.dialect.name != "sqlite":
        return

    @event.listens_for(eng, "connect")
    def _set_pragma(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_engine(
    DATABASE_URL,
    echo=settings.sql_echo,
    future=True,
)
enable_sqlite_foreign_keys(engine)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
