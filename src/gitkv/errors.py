"""Structured error types for gitkv."""

from __future__ import annotations

from datetime import datetime


class GitKVError(Exception):
    """Base error for all gitkv errors."""


class UnsupportedTypeError(GitKVError, TypeError):
    """Raised when a value cannot be mapped to one of the supported type tags."""

    def __init__(self, value_type: str) -> None:
        self.value_type = value_type
        super().__init__(f"Unsupported parameter type: {value_type}")


class IntegrityFaultError(GitKVError):
    """Raised when the store's object id disagrees with the locally computed one."""

    def __init__(self, local: str, upstream: str) -> None:
        self.local = local
        self.upstream = upstream
        super().__init__(
            f"Upstream commit hash {upstream} doesn't match locally computed {local}"
        )


class TransactionConflictError(GitKVError):
    """Raised when an atomic multi-ref update is rejected by the store."""

    def __init__(self, detail: str = "Failed") -> None:
        self.detail = detail
        super().__init__(detail)


class NotInitializedError(GitKVError):
    """Raised when the canonical type commits were never published to the store."""

    def __init__(self, repository: str) -> None:
        self.repository = repository
        super().__init__(
            f"Database not initialized for '{repository}'. Run `gitkv init` or db.init() first."
        )


class KeyExistsError(GitKVError):
    """Raised when create(..., overwrite=False) finds the key already present."""

    def __init__(self) -> None:
        super().__init__("Key exists")


class NothingToOverwriteError(GitKVError):
    """Raised when create(..., overwrite=True) finds no key to overwrite."""

    def __init__(self) -> None:
        super().__init__("Nothing to overwrite")


class NothingToExpireError(GitKVError):
    """Raised when expire() targets a key that does not exist."""

    def __init__(self) -> None:
        super().__init__("Nothing to expire")


class ModifierFailedError(GitKVError):
    """Raised when the modifier passed to update() raises; nothing is published."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__('modifier() threw error. See "cause" for details.')


class StorageBackendError(GitKVError):
    """Raised when backend transport operations fail."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage backend error during {operation}: {detail}")


class RateLimitedError(StorageBackendError):
    """Raised when the API rate-limit budget is exhausted until `reset_at`."""

    def __init__(self, reset_at: datetime) -> None:
        self.reset_at = reset_at
        super().__init__("request", f"Ratelimited. Try after {reset_at.isoformat()}.")
