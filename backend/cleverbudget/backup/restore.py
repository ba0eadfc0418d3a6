"""All-or-nothing restore of a backup snapshot into the live store.

Restore runs in a fixed order: validate input, decode, classify the snapshot
as full or data-only, guard data-only restores against missing accounts, then
inside one transaction wipe, reinsert phase by phase and repair sequences.
Anything failing inside the transaction rolls the store back to exactly what
it was before the call.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Optional

from sqlalchemy import Table, delete, func, select
from sqlalchemy.engine import Connection, Engine

from .. import db
from .codec import MAX_SNAPSHOT_BYTES, read_snapshot
from .errors import IncompatibleBackupError, InvalidBackupInputError, MalformedBackupError, RestoreFailedError
from .sequences import repair_sequences
from .snapshot import CURRENT_VERSION, DatabaseSnapshot, SnapshotKind

logger = logging.getLogger(__name__)

RESTORE_LOCK_KEY = 7_311_020_251


@dataclass(frozen=True)
class RestorePhase:
    collection: str
    table: Table
    identity: bool = False

    def wipe(self, conn: Connection) -> None:
        conn.execute(delete(self.table))

    def insert(self, conn: Connection, snapshot: DatabaseSnapshot) -> int:
        rows = [record.to_row() for record in getattr(snapshot, self.collection)]
        if rows:
            conn.execute(self.table.insert(), rows)
        return len(rows)


# Parents before children; wiping walks the list backwards.
RESTORE_PHASES: list[RestorePhase] = [
    RestorePhase("roles", db.roles, identity=True),
    RestorePhase("users", db.users, identity=True),
    RestorePhase("role_claims", db.role_claims, identity=True),
    RestorePhase("user_claims", db.user_claims, identity=True),
    RestorePhase("user_logins", db.user_logins, identity=True),
    RestorePhase("user_tokens", db.user_tokens, identity=True),
    RestorePhase("user_roles", db.user_roles, identity=True),
    RestorePhase("categories", db.categories),
    RestorePhase("budgets", db.budgets),
    RestorePhase("goals", db.goals),
    RestorePhase("recurring_transactions", db.recurring_transactions),
    RestorePhase("transactions", db.transactions),
]


@dataclass(frozen=True)
class RestoreSummary:
    kind: SnapshotKind
    version: int
    generated_at: Optional[datetime]
    counts: dict[str, int] = field(default_factory=dict)


def classify_snapshot(snapshot: DatabaseSnapshot) -> SnapshotKind:
    populated = snapshot.populated_identity_collections()
    if populated and not snapshot.users:
        raise MalformedBackupError(f"backup has identity data ({', '.join(populated)}) but no users")
    if snapshot.kind == SnapshotKind.data_only:
        if populated:
            raise MalformedBackupError(f"data-only backup carries identity data: {', '.join(populated)}")
        return SnapshotKind.data_only
    if snapshot.kind == SnapshotKind.full or populated:
        if not snapshot.users and snapshot.referenced_user_ids():
            raise MalformedBackupError("full backup has owned records but no users")
        return SnapshotKind.full
    return SnapshotKind.data_only


def _is_readable(stream: object) -> bool:
    if getattr(stream, "closed", False):
        return False
    readable = getattr(stream, "readable", None)
    if callable(readable):
        try:
            return bool(readable())
        except ValueError:
            return False
    return callable(getattr(stream, "read", None))


class RestoreEngine:
    def __init__(self, engine: Engine, max_snapshot_bytes: int = MAX_SNAPSHOT_BYTES) -> None:
        self.engine = engine
        self.max_snapshot_bytes = max_snapshot_bytes
        self._lock = threading.Lock()

    def restore_backup(self, stream: Optional[BinaryIO]) -> RestoreSummary:
        if stream is None or not _is_readable(stream):
            raise InvalidBackupInputError("backup stream is missing or not readable")
        snapshot = read_snapshot(stream, self.max_snapshot_bytes)
        return self.restore_snapshot(snapshot)

    def restore_snapshot(self, snapshot: DatabaseSnapshot) -> RestoreSummary:
        if snapshot.version != CURRENT_VERSION:
            logger.warning("Backup version differs from current version (%s != %s)", snapshot.version, CURRENT_VERSION)

        kind = classify_snapshot(snapshot)
        full = kind == SnapshotKind.full
        with self._lock:
            if not full:
                self._ensure_accounts_exist(snapshot)
            try:
                with self.engine.begin() as conn:
                    self._lock_store(conn)
                    for phase in reversed(RESTORE_PHASES):
                        if phase.identity and not full:
                            continue
                        phase.wipe(conn)
                    for phase in RESTORE_PHASES:
                        if phase.identity and not full:
                            continue
                        phase.insert(conn, snapshot)
                    repair_sequences(conn)
            except Exception as exc:
                logger.exception("Backup restore failed; transaction rolled back")
                raise RestoreFailedError(f"backup restore failed and was rolled back: {exc.__class__.__name__}") from exc

        if not full:
            logger.warning("Backup restored without identity data; existing accounts were kept")
        logger.info("Backup restored (generated at %s, kind=%s)", snapshot.generated_at_utc, kind.value)
        return RestoreSummary(kind=kind, version=snapshot.version, generated_at=snapshot.generated_at_utc, counts=snapshot.counts())

    def _ensure_accounts_exist(self, snapshot: DatabaseSnapshot) -> None:
        required = snapshot.referenced_user_ids()
        if not required:
            return
        with self.engine.connect() as conn:
            existing = set(conn.execute(select(db.users.c.id).where(db.users.c.id.in_(sorted(required)))).scalars())
        missing = required - existing
        if missing:
            raise IncompatibleBackupError(
                "backup has no identity data and the target store lacks "
                f"{len(missing)} referenced account(s); restore a full backup into an empty store instead",
                missing,
            )

    def _lock_store(self, conn: Connection) -> None:
        if conn.dialect.name == "postgresql":
            conn.execute(select(func.pg_advisory_xact_lock(RESTORE_LOCK_KEY)))
