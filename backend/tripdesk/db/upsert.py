from typing import Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


async def insert_ignore(session: AsyncSession, model, values: dict, conflict_columns: Iterable[str]):
    """
    INSERT ... ON CONFLICT DO NOTHING against a unique key.

    Used where two requests may race to create the same row: the loser's
    insert becomes a no-op and both re-select the winner.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model)
    else:
        raise NotImplementedError(f"insert_ignore not supported for dialect {dialect}")

    stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns))
    return await session.execute(stmt)
