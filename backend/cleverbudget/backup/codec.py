from __future__ import annotations

import gzip
import io
import zlib
from typing import BinaryIO

from pydantic import ValidationError

from .errors import CorruptBackupError
from .snapshot import DatabaseSnapshot

COMPRESS_LEVEL = 9
READ_CHUNK_SIZE = 64 * 1024
MAX_SNAPSHOT_BYTES = 1024 * 1024 * 1024


def write_snapshot(snapshot: DatabaseSnapshot, fileobj: BinaryIO) -> None:
    with gzip.GzipFile(fileobj=fileobj, mode="wb", compresslevel=COMPRESS_LEVEL) as gz:
        gz.write(snapshot.model_dump_json(by_alias=True).encode("utf-8"))


def encode_snapshot(snapshot: DatabaseSnapshot) -> bytes:
    buffer = io.BytesIO()
    write_snapshot(snapshot, buffer)
    return buffer.getvalue()


def _decompress(stream: BinaryIO, max_bytes: int) -> bytes:
    payload = bytearray()
    try:
        with gzip.GzipFile(fileobj=stream, mode="rb") as gz:
            while True:
                chunk = gz.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                payload.extend(chunk)
                if len(payload) > max_bytes:
                    raise CorruptBackupError(f"backup expands beyond the {max_bytes} byte limit")
    except (OSError, EOFError, zlib.error) as exc:
        raise CorruptBackupError(f"backup is not a readable gzip stream: {exc}") from exc
    return bytes(payload)


def read_snapshot(stream: BinaryIO, max_bytes: int = MAX_SNAPSHOT_BYTES) -> DatabaseSnapshot:
    payload = _decompress(stream, max_bytes)
    if not payload.strip():
        raise CorruptBackupError("backup contains no snapshot")
    try:
        return DatabaseSnapshot.model_validate_json(payload)
    except ValidationError as exc:
        raise CorruptBackupError(f"backup snapshot is corrupt or incompatible: {exc.error_count()} error(s)") from exc


def decode_snapshot(content: bytes, max_bytes: int = MAX_SNAPSHOT_BYTES) -> DatabaseSnapshot:
    return read_snapshot(io.BytesIO(content), max_bytes)
