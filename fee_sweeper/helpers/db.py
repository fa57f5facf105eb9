"""Database connection helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


Base = declarative_base()


def create_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create the async engine (connection pool) shared by the stores.

    Args:
        database_url: SQLAlchemy async URL, e.g. ``postgresql+psycopg://...``
        **kwargs: Extra ``create_async_engine`` arguments

    Returns:
        AsyncEngine: Pooled engine
    """
    return create_async_engine(database_url, echo=False, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on ``Base`` if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _insert_for(session: AsyncSession, db_model_class: type[Any]) -> Any:
    """Pick the dialect-specific INSERT construct supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(db_model_class)
    if dialect == "sqlite":
        return sqlite_insert(db_model_class)
    msg = f"Upsert is not supported on dialect {dialect!r}"
    raise ValueError(msg)


async def upsert_models[DBModelType](
    session: AsyncSession,
    db_model_class: type[DBModelType],
    rows: Sequence[dict[str, Any]],
    update_columns: Iterable[str] | None = None,
) -> None:
    """Upsert rows using INSERT ... ON CONFLICT DO UPDATE.

    The statement is executed inside the caller's transaction; committing is
    left to the caller so that several writes can be made atomic.

    Args:
        session: Session whose transaction the upsert joins
        db_model_class: The SQLAlchemy model class (e.g., FeeNoteDB)
        rows: Column dicts to upsert
        update_columns: Columns refreshed on conflict; defaults to every
            non-primary-key column present in the rows. An empty iterable
            turns the upsert into INSERT ... ON CONFLICT DO NOTHING.

    Raises:
        ValueError: If the database model class cannot be inspected
    """
    if not rows:
        return

    mapper = inspect(db_model_class)
    if not mapper:
        msg = f"Cannot inspect {db_model_class}"
        raise ValueError(msg)
    pk_columns = [col.name for col in mapper.primary_key]

    if update_columns is None:
        update_columns = [col for col in rows[0] if col not in pk_columns]
    else:
        update_columns = list(update_columns)

    stmt = _insert_for(session, db_model_class).values(list(rows))

    if update_columns:
        stmt = stmt.on_conflict_do_update(
            index_elements=pk_columns,
            set_={col: stmt.excluded[col] for col in update_columns},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=pk_columns)

    await session.execute(stmt)


__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "create_tables",
    "upsert_models",
]
