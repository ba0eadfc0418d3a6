from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from ..config import BackupOptions
from .producer import BackupProducer
from .restore import RestoreEngine
from .storage import BackupStorage


@dataclass
class BackupService:
    options: BackupOptions
    storage: BackupStorage
    producer: BackupProducer
    restore: RestoreEngine

    def run_scheduled_backup(self) -> None:
        self.producer.create_backup(persist_to_disk=True, include_identity=True)


def build_backup_service(engine: Engine, options: BackupOptions, content_root: str | Path, storage: Optional[BackupStorage] = None) -> BackupService:
    storage = storage or BackupStorage(options.root_path, content_root)
    return BackupService(
        options=options,
        storage=storage,
        producer=BackupProducer(engine, storage, options),
        restore=RestoreEngine(engine, max_snapshot_bytes=options.max_snapshot_bytes),
    )
