from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Table, select
from sqlalchemy.engine import Connection, Engine

from .. import db
from ..config import BackupOptions
from .codec import encode_snapshot
from .snapshot import (
    CURRENT_VERSION,
    BudgetSnapshot,
    CategorySnapshot,
    DatabaseSnapshot,
    GoalSnapshot,
    RecurringTransactionSnapshot,
    RoleClaimSnapshot,
    RoleSnapshot,
    SnapshotKind,
    SnapshotRecord,
    TransactionSnapshot,
    UserClaimSnapshot,
    UserLoginSnapshot,
    UserRoleSnapshot,
    UserSnapshot,
    UserTokenSnapshot,
)
from .storage import BackupStorage, build_file_name

logger = logging.getLogger(__name__)

IDENTITY_SOURCES: list[tuple[str, Table, type[SnapshotRecord]]] = [
    ("users", db.users, UserSnapshot),
    ("roles", db.roles, RoleSnapshot),
    ("user_roles", db.user_roles, UserRoleSnapshot),
    ("user_claims", db.user_claims, UserClaimSnapshot),
    ("user_logins", db.user_logins, UserLoginSnapshot),
    ("user_tokens", db.user_tokens, UserTokenSnapshot),
    ("role_claims", db.role_claims, RoleClaimSnapshot),
]

DOMAIN_SOURCES: list[tuple[str, Table, type[SnapshotRecord]]] = [
    ("categories", db.categories, CategorySnapshot),
    ("transactions", db.transactions, TransactionSnapshot),
    ("goals", db.goals, GoalSnapshot),
    ("budgets", db.budgets, BudgetSnapshot),
    ("recurring_transactions", db.recurring_transactions, RecurringTransactionSnapshot),
]


@dataclass(frozen=True)
class BackupResult:
    file_name: str
    content: bytes
    stored_path: Optional[str] = None
    kind: SnapshotKind = SnapshotKind.full
    generated_at: Optional[datetime] = None


def _read_records(conn: Connection, table: Table, record_type: type[SnapshotRecord]) -> list[SnapshotRecord]:
    stmt = select(table).order_by(*table.primary_key.columns)
    return [record_type.model_validate(dict(row)) for row in conn.execute(stmt).mappings()]


class BackupProducer:
    def __init__(self, engine: Engine, storage: BackupStorage, options: BackupOptions) -> None:
        self.engine = engine
        self.storage = storage
        self.options = options

    def read_snapshot(self, include_identity: bool = True) -> DatabaseSnapshot:
        sources = DOMAIN_SOURCES + (IDENTITY_SOURCES if include_identity else [])
        conn = self.engine.connect()
        if self.engine.dialect.name == "postgresql":
            conn = conn.execution_options(isolation_level="REPEATABLE READ", postgresql_readonly=True)
        with conn:
            collections = {name: _read_records(conn, table, record_type) for name, table, record_type in sources}
        return DatabaseSnapshot(
            version=CURRENT_VERSION,
            generated_at_utc=datetime.now(timezone.utc),
            kind=SnapshotKind.full if include_identity else SnapshotKind.data_only,
            **collections,
        )

    def create_backup(self, persist_to_disk: bool = True, include_identity: bool = True) -> BackupResult:
        snapshot = self.read_snapshot(include_identity=include_identity)
        file_name = build_file_name(snapshot.generated_at_utc)
        content = encode_snapshot(snapshot)

        stored_path: Optional[str] = None
        if persist_to_disk:
            stored_path = str(self.storage.persist(file_name, content))
            self.storage.prune(self.options.retention_days)

        logger.info("Backup generated (%s, kind=%s)", file_name, snapshot.kind)
        return BackupResult(
            file_name=file_name,
            content=content,
            stored_path=stored_path,
            kind=SnapshotKind(snapshot.kind),
            generated_at=snapshot.generated_at_utc,
        )
