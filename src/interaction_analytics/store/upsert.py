"""Dialect-aware INSERT ... ON CONFLICT helpers."""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERT_BUILDERS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def dialect_insert(session: AsyncSession, table: Any):
    """Return an ``insert()`` construct that supports ``on_conflict_do_update``.

    Raises:
        NotImplementedError: If the bound dialect has no ON CONFLICT support
    """
    dialect = session.get_bind().dialect.name
    try:
        builder = _INSERT_BUILDERS[dialect]
    except KeyError:
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'") from None
    return builder(table)
