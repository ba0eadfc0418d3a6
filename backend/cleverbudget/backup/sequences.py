from __future__ import annotations

import logging

from sqlalchemy import Column, func, literal, select
from sqlalchemy.engine import Connection, Dialect

from .. import db

logger = logging.getLogger(__name__)

# Auto-increment keys restored with explicit values.
SEQUENCE_COLUMNS: list[Column] = [
    db.categories.c.id,
    db.budgets.c.id,
    db.goals.c.id,
    db.recurring_transactions.c.id,
    db.transactions.c.id,
    db.user_claims.c.id,
    db.role_claims.c.id,
]


def supports_sequence_repair(dialect: Dialect) -> bool:
    return dialect.name == "postgresql"


def repair_sequences(conn: Connection) -> list[str]:
    if not supports_sequence_repair(conn.dialect):
        return []
    repaired: list[str] = []
    for column in SEQUENCE_COLUMNS:
        table = column.table
        sequence = func.pg_get_serial_sequence(literal(table.name), literal(column.name))
        highest = func.coalesce(select(func.max(column)).scalar_subquery(), 1)
        conn.execute(select(func.setval(sequence, highest)))
        repaired.append(f"{table.name}.{column.name}")
    logger.debug("Sequences repaired: %s", ", ".join(repaired))
    return repaired
