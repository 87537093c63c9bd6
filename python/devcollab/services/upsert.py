"""Dialect-aware INSERT ... ON CONFLICT DO NOTHING.

PostgreSQL in deployment and SQLite in tests both support the clause; the
statement builder differs per dialect.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_ignore(db: Session, model, index_elements: list[str]):
    """Build a Core insert into `model`'s table that silently skips conflicting rows."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model.__table__)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model.__table__)
    else:
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")
    return stmt.on_conflict_do_nothing(index_elements=index_elements)
