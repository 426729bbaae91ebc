"""gitkv: typed key-value database stored in the refs of a GitHub repository."""

__version__ = "0.1.0"

from gitkv.config import GitKVConfig
from gitkv.crypto import AesGcmCodec
from gitkv.database import CreateResult, Database, ReadResult, UpdateResult
from gitkv.errors import (
    GitKVError,
    IntegrityFaultError,
    KeyExistsError,
    ModifierFailedError,
    NotInitializedError,
    NothingToExpireError,
    NothingToOverwriteError,
    RateLimitedError,
    StorageBackendError,
    TransactionConflictError,
    UnsupportedTypeError,
)
from gitkv.github import GitHubRepository, RefUpdate
from gitkv.types import ABSENT, Blob, ValueType

__all__ = [
    "__version__",
    "Database",
    "CreateResult",
    "ReadResult",
    "UpdateResult",
    "GitHubRepository",
    "RefUpdate",
    "GitKVConfig",
    "AesGcmCodec",
    "ABSENT",
    "Blob",
    "ValueType",
    "GitKVError",
    "UnsupportedTypeError",
    "IntegrityFaultError",
    "TransactionConflictError",
    "NotInitializedError",
    "KeyExistsError",
    "NothingToOverwriteError",
    "NothingToExpireError",
    "ModifierFailedError",
    "StorageBackendError",
    "RateLimitedError",
]
