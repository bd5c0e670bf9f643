from __future__ import annotations


class EntryError(Exception):
    """Base for failures surfaced by the entry lifecycle.

    Each subclass carries a stable `error_code` and the HTTP status the API maps it to.
    """

    error_code = "entry_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(EntryError):
    error_code = "validation_failed"
    status_code = 400

    def __init__(self, missing_fields: list[str] | None = None, message: str | None = None):
        self.missing_fields = list(missing_fields or [])
        if message is None:
            message = "missing required fields: " + ", ".join(self.missing_fields)
        super().__init__(message)


class UploadFailure(EntryError):
    error_code = "upload_failed"
    status_code = 502

    def __init__(self, cause: BaseException | str, message: str = "failed to upload image"):
        self.cause = cause
        super().__init__(message)


class DeletionFailure(EntryError):
    error_code = "deletion_failed"
    status_code = 502

    def __init__(self, cause: BaseException | str, message: str = "failed to delete image"):
        self.cause = cause
        super().__init__(message)


class NotFound(EntryError):
    error_code = "not_found"
    status_code = 404

    def __init__(self, message: str = "entry not found"):
        super().__init__(message)


class PersistenceFailure(EntryError):
    error_code = "persistence_failed"
    status_code = 500

    def __init__(self, cause: BaseException | str, message: str = "failed to save entry"):
        self.cause = cause
        super().__init__(message)


class LikesDisabled(EntryError):
    error_code = "likes_disabled"
    status_code = 404

    def __init__(self, message: str = "likes are disabled"):
        super().__init__(message)
