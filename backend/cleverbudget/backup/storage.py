from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .errors import InvalidBackupInputError

logger = logging.getLogger(__name__)

FILE_PREFIX = "cleverbudget-backup"
FILE_SUFFIX = ".json.gz"
FILE_GLOB = f"{FILE_PREFIX}-*{FILE_SUFFIX}"
SAFE_FILE_NAME = re.compile(r"^[a-z0-9\-_.]+$", re.IGNORECASE)


@dataclass(frozen=True)
class BackupFileInfo:
    file_name: str
    size_bytes: int
    created_at_utc: datetime


def build_file_name(generated_at: datetime) -> str:
    stamp = generated_at.astimezone(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{FILE_PREFIX}-{stamp}{FILE_SUFFIX}"


def _file_timestamp(path: Path) -> datetime:
    # Artifacts are written once, so mtime stands in for creation time.
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


class BackupStorage:
    def __init__(self, root_path: str | Path, content_root: str | Path) -> None:
        self.root_path = Path(root_path)
        self.content_root = Path(content_root)

    def resolve_root(self) -> Path:
        if self.root_path.is_absolute():
            return self.root_path
        return self.content_root / self.root_path

    def persist(self, file_name: str, content: bytes) -> Path:
        root = self.resolve_root()
        root.mkdir(parents=True, exist_ok=True)
        file_path = root / file_name
        file_path.write_bytes(content)
        logger.info("Backup written to %s (%d bytes)", file_path, len(content))
        return file_path

    def prune(self, retention_days: int, now: datetime | None = None) -> list[str]:
        if retention_days <= 0:
            return []
        root = self.resolve_root()
        if not root.exists():
            return []
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
        removed: list[str] = []
        for file_path in root.glob(FILE_GLOB):
            try:
                if _file_timestamp(file_path) >= cutoff:
                    continue
                file_path.unlink()
            except OSError:
                logger.warning("Could not remove old backup %s", file_path.name, exc_info=True)
                continue
            logger.info("Removed old backup %s", file_path.name)
            removed.append(file_path.name)
        return removed

    def list_backups(self) -> list[BackupFileInfo]:
        root = self.resolve_root()
        if not root.exists():
            return []
        files = [
            BackupFileInfo(file_name=p.name, size_bytes=p.stat().st_size, created_at_utc=_file_timestamp(p))
            for p in root.glob(FILE_GLOB)
            if p.is_file()
        ]
        return sorted(files, key=lambda info: (info.created_at_utc, info.file_name), reverse=True)

    def open_backup(self, file_name: str) -> Path:
        if not file_name or not SAFE_FILE_NAME.match(file_name):
            raise InvalidBackupInputError(f"invalid backup file name: {file_name!r}")
        file_path = self.resolve_root() / file_name
        if not file_path.is_file():
            raise FileNotFoundError(file_name)
        return file_path

    def check_health(self) -> dict[str, Any]:
        root = self.resolve_root()
        root.mkdir(parents=True, exist_ok=True)
        try:
            available = shutil.disk_usage(root).free
        except OSError:
            available = -1
        return {"path": str(root.resolve()), "availableSpaceBytes": available}
