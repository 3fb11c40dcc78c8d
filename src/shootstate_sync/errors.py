"""Errors raised by the store clients and the reconciler."""


class StoreError(Exception):
    """A failed call against a cluster API. Retryable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(StoreError):
    """The requested object does not exist."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ConflictError(StoreError):
    """The object changed since it was read (optimistic lock)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=409)

