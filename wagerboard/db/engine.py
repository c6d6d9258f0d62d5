from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..config import ROOT_DIR, load_settings
from .metadata import metadata_obj  # noqa: F401
from .utils import resolve_sqlite_url

DEFAULT_SQLITE_URL = resolve_sqlite_url(load_settings().db_url, ROOT_DIR)


def make_engine(database_url: Optional[str] = None, echo: bool = False):
    url = database_url or DEFAULT_SQLITE_URL
    engine = create_engine(
        url,
        echo=echo,
        future=True,
    )
    if url.startswith("sqlite"):
        # SQLite leaves FK enforcement off unless asked per connection
        from sqlalchemy import event

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_sessionmaker(engine):
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Keep objects accessible after commit for dev convenience
        future=True,
    )
