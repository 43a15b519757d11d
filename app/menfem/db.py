from __future__ import annotations

import logging
from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, g
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.menfem.config import Settings

logger = logging.getLogger(__name__)


class Store:
    """
    Owns the engine and session factory for one configured database.
    Construct with explicit settings; call dispose() on teardown.
    """

    def __init__(self, settings: Settings, *, echo: bool = False):
        self.settings = settings
        self.engine: Engine = build_engine(settings.database_url, echo=echo)
        self.sessionmaker = sessionmaker(
            bind=self.engine,
            class_=Session,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    def session(self) -> Session:
        return self.sessionmaker()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Yields a session and commits/rolls back.
        """
        s: Session = self.sessionmaker()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    def create_all(self) -> None:
        from app.menfem.models import Base

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        from app.menfem.models import Base

        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def build_engine(db_url: str, *, echo: bool = False) -> Engine:
    is_postgres = db_url.startswith("postgres")
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
        "echo": echo,
    }
    if is_postgres:
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    engine = create_engine(db_url, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        # SQLite ignores FK clauses (cascade/restrict/set null) unless enabled per connection.
        @event.listens_for(engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, connection_record):  # type: ignore[no-redef]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_db(app: Flask) -> Store:
    store = Store(app.config["SETTINGS"])
    if app.config.get("ENV") != "production":
        @event.listens_for(store.engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            app.logger.debug("DB connection checkout from pool")
    app.extensions["store"] = store
    return store


def get_store(app: Flask | None = None) -> Store:
    if app is None:
        from flask import current_app

        app = current_app
    return app.extensions["store"]


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if hasattr(g, "db_session") and g.db_session is not None:
        return g.db_session
    g.db_session = get_store(app).session()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        try:
            s.close()
        except Exception:
            logger.exception("Failed to close request DB session")
        g.db_session = None
