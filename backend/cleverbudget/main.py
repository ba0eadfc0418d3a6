import hashlib
import io
import json
import logging
from typing import Any

from fastapi import Depends, FastAPI, File, Query, Request, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse

from .backup.errors import BackupError, BackupTooLargeError, IncompatibleBackupError, InvalidBackupInputError
from .backup.scheduler import BackupScheduler
from .backup.service import BackupService, build_backup_service
from .config import BackupOptions, configure_logging, settings
from .db import get_engine, metadata
from .schemas import (
    ApiErrorDetail,
    ApiErrorPayload,
    ApiErrorResponse,
    BackupCreatedResponse,
    BackupFileMetadata,
    BackupRestoreResponse,
    BackupStorageHealthResponse,
    HealthResponse,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="CleverBudget Backup API",
    version="0.3.0",
    description="Backup creation, download, listing and all-or-nothing restore for CleverBudget.",
)

GZIP_MEDIA_TYPE = "application/gzip"

engine = get_engine()
backup_service = build_backup_service(engine, BackupOptions.from_env(), settings.content_root)
backup_scheduler: BackupScheduler | None = None


def get_backup_service() -> BackupService:
    return backup_service


def build_error_response(
    code: str,
    message: str,
    status_code: int,
    details: list[ApiErrorDetail] | None = None,
) -> JSONResponse:
    payload = ApiErrorResponse(error=ApiErrorPayload(code=code, message=message, details=details or []))
    return JSONResponse(status_code=status_code, content=payload.model_dump())


def listing_etag(content: Any) -> str:
    body = json.dumps(content, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return f'"{hashlib.md5(body).hexdigest()}"'


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
        details.append(ApiErrorDetail(field=loc or "body", message=err.get("msg", "validation error")))
    return build_error_response("VALIDATION_ERROR", "Invalid request payload", status.HTTP_422_UNPROCESSABLE_ENTITY, details)


@app.exception_handler(BackupError)
async def backup_error_exception_handler(request: Request, exc: BackupError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    if isinstance(exc, IncompatibleBackupError):
        details = [ApiErrorDetail(field="userId", message=user_id) for user_id in sorted(exc.missing_user_ids)]
    return build_error_response(exc.code, str(exc), exc.status_code, details)


@app.get("/api/v2/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/api/v2/health/backup-storage", response_model=BackupStorageHealthResponse)
async def backup_storage_health(service: BackupService = Depends(get_backup_service)) -> BackupStorageHealthResponse:
    probe = await run_in_threadpool(service.storage.check_health)
    return BackupStorageHealthResponse(status="ok", **probe)


@app.get("/api/v2/backups", response_model=list[BackupFileMetadata])
async def list_backups(request: Request, service: BackupService = Depends(get_backup_service)) -> Response:
    entries = [
        BackupFileMetadata(
            fileName=info.file_name,
            sizeBytes=info.size_bytes,
            createdAtUtc=info.created_at_utc,
            createdAt=info.created_at_utc.astimezone(),
        )
        for info in service.storage.list_backups()
    ]
    content = jsonable_encoder(entries)
    etag = listing_etag(content)
    if request.headers.get("If-None-Match") == etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers={"ETag": etag})
    return JSONResponse(content=content, headers={"ETag": etag})


@app.post("/api/v2/backups", status_code=201, response_model=None)
async def create_backup(
    download: bool = Query(default=False),
    include_identity: bool = Query(default=True, alias="includeIdentity"),
    service: BackupService = Depends(get_backup_service),
) -> Any:
    result = await run_in_threadpool(
        service.producer.create_backup,
        persist_to_disk=not download,
        include_identity=include_identity,
    )
    if download:
        return Response(
            content=result.content,
            media_type=GZIP_MEDIA_TYPE,
            headers={"Content-Disposition": f"attachment; filename={result.file_name}"},
        )
    return BackupCreatedResponse(
        fileName=result.file_name,
        storedOnDisk=result.stored_path is not None,
        kind=result.kind,
        storedPath=result.stored_path,
    )


@app.post("/api/v2/backups/restore", response_model=BackupRestoreResponse)
async def restore_backup(
    file: UploadFile = File(...),
    service: BackupService = Depends(get_backup_service),
) -> BackupRestoreResponse:
    limit = service.options.max_upload_bytes
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise BackupTooLargeError(f"uploaded backup exceeds the {limit} byte limit")
    if not content:
        raise InvalidBackupInputError("uploaded backup file is empty")
    summary = await run_in_threadpool(service.restore.restore_backup, io.BytesIO(content))
    return BackupRestoreResponse(
        replaced=True,
        kind=summary.kind,
        version=summary.version,
        generatedAtUtc=summary.generated_at,
        counts=summary.counts,
    )


@app.get("/api/v2/backups/{file_name}", response_model=None)
async def download_backup(file_name: str, service: BackupService = Depends(get_backup_service)) -> Response:
    try:
        file_path = service.storage.open_backup(file_name)
    except FileNotFoundError:
        return build_error_response("BACKUP_NOT_FOUND", f"backup {file_name} does not exist", status.HTTP_404_NOT_FOUND)
    return FileResponse(file_path, media_type=GZIP_MEDIA_TYPE, filename=file_name)


@app.on_event("startup")
async def on_startup() -> None:
    global backup_scheduler
    configure_logging(settings.log_level)
    if settings.storage_backend != "postgres":
        metadata.create_all(engine)
    if backup_scheduler is None:
        backup_scheduler = BackupScheduler(backup_service.run_scheduled_backup, BackupOptions.from_env)
        backup_scheduler.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    global backup_scheduler
    if backup_scheduler is not None:
        await backup_scheduler.stop()
        backup_scheduler = None
