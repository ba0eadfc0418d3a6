from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .backup.snapshot import SnapshotKind


class ApiErrorDetail(BaseModel):
    field: str
    message: str


class ApiErrorPayload(BaseModel):
    code: str
    message: str
    details: list[ApiErrorDetail] = Field(default_factory=list)


class ApiErrorResponse(BaseModel):
    error: ApiErrorPayload


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: str


class BackupStorageHealthResponse(BaseModel):
    status: str
    path: str
    availableSpaceBytes: int


class BackupFileMetadata(BaseModel):
    fileName: str
    sizeBytes: int
    createdAtUtc: datetime
    createdAt: datetime


class BackupCreatedResponse(BaseModel):
    fileName: str
    storedOnDisk: bool
    kind: SnapshotKind
    storedPath: Optional[str] = None


class BackupRestoreResponse(BaseModel):
    replaced: bool
    kind: SnapshotKind
    version: int
    generatedAtUtc: Optional[datetime] = None
    counts: dict[str, int]
