"""SQLAlchemy async engine and session factory."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from actionflow.config import settings


def _build_engine_kwargs(db_url: str) -> dict:
    """Return engine kwargs appropriate for the configured URL."""
    kwargs: dict = {"echo": settings.DEBUG, "future": True}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in db_url:
            # One shared connection, otherwise every session sees an empty database.
            kwargs["poolclass"] = StaticPool
    return kwargs


def build_engine(db_url: str) -> AsyncEngine:
    new_engine = create_async_engine(db_url, **_build_engine_kwargs(db_url))

    if db_url.startswith("sqlite") and ":memory:" not in db_url:
        # WAL lets the API read while a run is writing node results;
        # busy_timeout makes SQLite wait instead of raising "database is locked".
        @event.listens_for(new_engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn, _conn_rec):  # type: ignore[misc]
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DB_URL)
async_session = build_session_factory(engine)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """FastAPI dependency — yields a session and commits/rollbacks."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
