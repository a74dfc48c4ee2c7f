"""
Insert helpers shared by the repositories.
"""

from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.models.base import Base


def _dialect_insert(session: AsyncSession, model: Type[Base]):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    return None


async def insert_if_absent(
    session: AsyncSession,
    model: Type[Base],
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
) -> Optional[int]:
    """
    Insert one row unless it collides with a unique constraint.

    Returns the new primary key, or None when a row with the same
    ``conflict_columns`` already exists. The database decides, so two
    concurrent callers can never both insert.
    """
    stmt = _dialect_insert(session, model)
    if stmt is not None:
        stmt = (
            stmt.values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
            .returning(model.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    # Other backends: plain insert inside a savepoint
    try:
        async with session.begin_nested():
            result = await session.execute(insert(model).values(**values).returning(model.id))
            return result.scalar_one()
    except IntegrityError:
        return None


async def insert_many_if_absent(
    session: AsyncSession,
    model: Type[Base],
    rows: List[Dict[str, Any]],
    conflict_columns: Sequence[str],
) -> None:
    """Insert link rows, skipping the ones already present."""
    if not rows:
        return
    stmt = _dialect_insert(session, model)
    if stmt is not None:
        await session.execute(
            stmt.values(rows).on_conflict_do_nothing(index_elements=list(conflict_columns))
        )
        return

    for row in rows:
        try:
            async with session.begin_nested():
                await session.execute(insert(model).values(**row))
        except IntegrityError:
            continue
