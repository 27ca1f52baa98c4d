from __future__ import annotations


class MediaError(Exception):
    """Base class for failures surfaced to API callers as a structured error."""

    status_code: int = 500
    code: str = "media_error"

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class MediaValidationError(MediaError):
    status_code = 400
    code = "validation_error"


class PlaceholderNotFoundError(MediaError):
    status_code = 404
    code = "not_found"


class RemoteStoreError(MediaError):
    """A management or delivery call failed; `status_code` mirrors the upstream reply."""

    status_code = 502
    code = "remote_store_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        operation: str = "",
        public_id: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.operation = operation
        self.public_id = public_id


class ConfigSyncError(MediaError):
    status_code = 500
    code = "persistence_error"


class MarkerNotFoundError(ConfigSyncError):
    pass
