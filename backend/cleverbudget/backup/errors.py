class BackupError(Exception):
    code = "BACKUP_ERROR"
    status_code = 500


class InvalidBackupInputError(BackupError):
    code = "INVALID_BACKUP_INPUT"
    status_code = 400


class BackupTooLargeError(InvalidBackupInputError):
    code = "BACKUP_TOO_LARGE"
    status_code = 413


class CorruptBackupError(BackupError):
    code = "CORRUPT_BACKUP"
    status_code = 400


class MalformedBackupError(CorruptBackupError):
    """Decodes fine but mixes full and data-only content."""

    code = "MALFORMED_BACKUP"


class IncompatibleBackupError(BackupError):
    """Data-only backup references accounts missing from the target store."""

    code = "INCOMPATIBLE_BACKUP"
    status_code = 409

    def __init__(self, message: str, missing_user_ids: set[str]) -> None:
        super().__init__(message)
        self.missing_user_ids = missing_user_ids


class RestoreFailedError(BackupError):
    code = "RESTORE_FAILED"
    status_code = 500
