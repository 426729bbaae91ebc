"""Key-value engine over a GitHub repository.

Every key owns four refs, derived from a content-addressed UUID
(`<Type>/<base64url of the key commit>`):

- `refs/tags/kv/<uuid>`: existence marker, points at the key commit
- `refs/heads/kv/<uuid>/value/bytes`: commit holding the value bytes
- `refs/heads/kv/<uuid>/value/type`: canonical commit of the value's type tag
- `refs/heads/kv/<uuid>/expiry`: commit holding the expiry day index, absent without TTL

All four are written by one atomic `updateRefs` call. The shared `kv/` prefix and
the fixed suffixes keep both prefix and suffix ref searches cheap.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NoReturn

from gitkv import expiry as expiry_codec
from gitkv.config import GitKVConfig
from gitkv.conversions import base64url_to_hex, bytes_to_text, hex_to_base64url
from gitkv.errors import (
    KeyExistsError,
    ModifierFailedError,
    NotInitializedError,
    NothingToExpireError,
    NothingToOverwriteError,
    TransactionConflictError,
    UnsupportedTypeError,
)
from gitkv.github import NULL_OID, GitHubRepository, RefUpdate, ValueMetadata
from gitkv.registry import TypeRegistry
from gitkv.types import (
    ABSENT,
    TYPES,
    EncodedValue,
    ValueType,
    bytes_to_typed,
    clone_value,
    decode_commit_message,
    encode_commit_message,
    typed_to_bytes,
)

logger = logging.getLogger(__name__)

# UUID prefix for untagged raw bytes.
BYTES_TAG = "Bytes"

VIEW_PATHS: tuple[str, ...] = ("bytes", "view.txt", "view.json")


@dataclass(frozen=True)
class KeyRefs:
    key: str
    bytes: str
    type: str
    expiry: str

    @classmethod
    def for_uuid(cls, uuid: str) -> KeyRefs:
        return cls(
            key=f"refs/tags/kv/{uuid}",
            bytes=f"refs/heads/kv/{uuid}/value/bytes",
            type=f"refs/heads/kv/{uuid}/value/type",
            expiry=f"refs/heads/kv/{uuid}/expiry",
        )

    def all(self) -> tuple[str, str, str, str]:
        return (self.key, self.bytes, self.type, self.expiry)


@dataclass
class CreateResult:
    uuid: str
    cdn_links: list[str] = field(default_factory=list)
    expiry: datetime | None = None


@dataclass
class ReadResult:
    found: bool
    value: Any = ABSENT
    expiry: datetime | None = None


@dataclass
class UpdateResult:
    old_value: Any
    new_value: Any
    uuid: str
    cdn_links: list[str] = field(default_factory=list)
    expiry: datetime | None = None


def value_paths(encoded: EncodedValue) -> list[str]:
    """Canonical path plus view aliases; all share one blob."""
    paths = list(VIEW_PATHS)
    if encoded.type is ValueType.BLOB and encoded.extension:
        paths.append(f"view.{encoded.extension}")
    return list(dict.fromkeys(paths))


def _type_tag(encoded: EncodedValue) -> str:
    return encoded.type.value if encoded.type is not None else BYTES_TAG


async def _resolve(awaitable: Any) -> Any:
    return await awaitable


class Database:
    """Typed key-value store whose state lives entirely in refs of one repository."""

    def __init__(
        self, repository: GitHubRepository, *, config: GitKVConfig | None = None
    ) -> None:
        self.repo = repository
        self.config = config or GitKVConfig()
        self.registry = TypeRegistry()
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="gitkv"
        )

    @classmethod
    def instantiate(
        cls,
        owner_repo: str,
        *,
        auth: str | None = None,
        encrypt: Callable[[bytes], bytes] | None = None,
        decrypt: Callable[[bytes], bytes] | None = None,
        config: GitKVConfig | None = None,
        **repo_kwargs: Any,
    ) -> Database:
        config = config or GitKVConfig()
        repository = GitHubRepository.instantiate(
            owner_repo, auth=auth, encrypt=encrypt, decrypt=decrypt, config=config, **repo_kwargs
        )
        database = cls(repository, config=config)
        database._ensure_registry()
        return database

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        self.repo.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Type registry ---

    def _type_commit(self, value_type: ValueType, *, push: bool = False) -> str:
        # Committed as an unencrypted String so every store agrees on the canonical commit.
        return self._commit_value(value_type.value, push=push, encrypt=False)[0]

    def _ensure_registry(self) -> None:
        self.registry.ensure_populated(self._type_commit)

    def init(self) -> dict[ValueType, str]:
        """Publish the canonical commit of every type tag and pin it with a tag ref."""
        futures = {t: self._pool.submit(self._type_commit, t, push=True) for t in TYPES}
        commits = {t: future.result() for t, future in futures.items()}
        self.registry.ensure_populated(commits.__getitem__)
        self.repo.update_refs(
            RefUpdate(f"refs/tags/kv/types/{t.value}", after_oid=commit)
            for t, commit in commits.items()
        )
        logger.info("Initialized %s with %d type commits", self.repo.full_name, len(commits))
        return commits

    def is_initialized(self) -> bool:
        self._ensure_registry()
        futures = [
            self._pool.submit(self.repo.has_commit, commit) for _, commit in self.registry.items()
        ]
        return all(future.result() for future in futures)

    # --- Keys ---

    def _commit_value(
        self, value: Any, *, push: bool = True, encrypt: bool | None = None
    ) -> tuple[str, EncodedValue]:
        encoded = typed_to_bytes(value)
        commit = self.repo.commit_bytes(
            encoded.bytes,
            message=encode_commit_message(encoded.mime_type, encoded.extension),
            paths=value_paths(encoded),
            encrypt=encrypt,
            push=push,
        )
        return commit, encoded

    def _key_commit(self, key: Any, *, push: bool = False) -> tuple[str, str]:
        commit, encoded = self._commit_value(key, push=push)
        return commit, f"{_type_tag(encoded)}/{hex_to_base64url(commit)}"

    def key_to_uuid(self, key: Any) -> str:
        """Content-derived UUID of a key. Structurally equal keys share one UUID."""
        return self._key_commit(key)[1]

    def uuid_to_key(self, uuid: str) -> Any:
        """Recover a key from its UUID; ABSENT when the key commit is not in the store."""
        tag, sep, encoded_commit = uuid.partition("/")
        if not sep or not encoded_commit:
            raise ValueError(f"Malformed uuid: '{uuid}'")
        value_type = None if tag == BYTES_TAG else ValueType(tag)
        commit = base64url_to_hex(encoded_commit)
        data = self.repo.fetch_commit_content(commit)
        if data is None:
            return ABSENT
        mime_type = None
        if value_type is ValueType.BLOB:
            mime_type, _ = decode_commit_message(self.repo.fetch_commit_message(commit))
        return bytes_to_typed(data, value_type, mime_type)

    # --- Expiry ---

    def _commit_expiry_index(self, index: int, *, push: bool = True) -> str:
        # An unencrypted Number, stored as text so the combined metadata query can read it.
        return self._commit_value(index, push=push, encrypt=False)[0]

    def _commit_expiry(self, ttl: int | float, *, push: bool = True) -> tuple[str, datetime]:
        expires = expiry_codec.get_expiry(ttl)
        return self._commit_expiry_index(expiry_codec.date_to_id(expires), push=push), expires

    # --- Operations ---

    def create(
        self,
        key: Any,
        value: Any,
        *,
        overwrite: bool | None = None,
        ttl: int | float | None = None,
        old_value: Any = ABSENT,
    ) -> CreateResult:
        """Publish `value` under `key` in one atomic transaction.

        overwrite=True requires the key to exist, overwrite=False requires it to be
        absent, None accepts both. `value=ABSENT` deletes the key. Passing
        `old_value` makes the write conditional on the current value.
        ttl=None stores the value without expiry. An out-of-range ttl, or
        `old_value` combined with overwrite=False, raises ValueError before
        anything is published.
        """
        self._ensure_registry()
        deleting = value is ABSENT
        if overwrite is False and old_value is not ABSENT:
            raise ValueError("Cannot have old_value when overwrite=False")
        # Validated before anything is pushed.
        expires = expiry_codec.get_expiry(ttl) if ttl is not None and not deleting else None

        # With overwrite=True the key commit is already upstream.
        push_key = not deleting and overwrite is not True
        key_future = self._pool.submit(self._key_commit, key, push=push_key)
        value_future: Future | None = None
        expiry_future: Future | None = None
        old_future: Future | None = None
        if not deleting:
            value_future = self._pool.submit(self._commit_value, value)
            if expires is not None:
                expiry_future = self._pool.submit(
                    self._commit_expiry_index, expiry_codec.date_to_id(expires)
                )
        if old_value is not ABSENT:
            old_future = self._pool.submit(self._commit_value, old_value, push=False)

        key_commit, uuid = key_future.result()
        value_commit, encoded = value_future.result() if value_future else (None, None)
        expiry_commit = expiry_future.result() if expiry_future else None
        refs = KeyRefs.for_uuid(uuid)

        type_commit = self.registry.commit_for(encoded.type) if encoded else None
        if overwrite is True:
            key_before = key_commit
        elif overwrite is False:
            key_before = NULL_OID
        else:
            key_before = None

        bytes_before = type_before = None
        if old_future is not None:
            old_commit, old_encoded = old_future.result()
            bytes_before = old_commit
            type_before = self.registry.commit_for(old_encoded.type) or NULL_OID

        updates = [
            RefUpdate(refs.key, after_oid=None if deleting else key_commit, before_oid=key_before),
            RefUpdate(refs.bytes, after_oid=value_commit, before_oid=bytes_before),
            RefUpdate(refs.type, after_oid=type_commit, before_oid=type_before),
            RefUpdate(refs.expiry, after_oid=expiry_commit),
        ]
        try:
            self.repo.update_refs(updates)
        except TransactionConflictError as e:
            self._diagnose(e, refs, overwrite, type_commit)

        cdn_links: list[str] = []
        if value_commit is not None:
            path = f"view.{encoded.extension}" if encoded.extension else "bytes"
            cdn_links = self.repo.cdn_links(value_commit, path)
        logger.debug("%s %s", "Deleted" if deleting else "Created", uuid)
        return CreateResult(uuid=uuid, cdn_links=cdn_links, expiry=expires)

    def _diagnose(
        self,
        error: TransactionConflictError,
        refs: KeyRefs,
        overwrite: bool | None,
        type_commit: str | None,
    ) -> NoReturn:
        # Best effort: these reads race with concurrent writers and may name the wrong cause.
        if overwrite is not None:
            exists = self.repo.has_ref(refs.key)
            if overwrite is False and exists:
                raise KeyExistsError() from error
            if overwrite is True and not exists:
                raise NothingToOverwriteError() from error
        if type_commit is not None and not self.repo.has_commit(type_commit):
            raise NotInitializedError(self.repo.full_name) from error
        raise TransactionConflictError("Failed") from error

    def has(self, key: Any) -> bool:
        """Whether the key ref exists. True for expired keys until GC removes them."""
        _, uuid = self._key_commit(key)
        return self.repo.has_ref(KeyRefs.for_uuid(uuid).key)

    def _fetch_metadata(self, refs: KeyRefs) -> ValueMetadata:
        if self.repo.authenticated:
            return self.repo.query_value_metadata(refs.bytes, refs.type, refs.expiry)

        # The GraphQL API refuses anonymous callers; fall back to three REST lookups.
        futures = [
            self._pool.submit(self.repo.ref_to_commit_hash, ref)
            for ref in (refs.bytes, refs.type, refs.expiry)
        ]
        value_commit, type_commit, expiry_commit = (future.result() for future in futures)
        meta = ValueMetadata(
            bytes_commit=value_commit, type_commit=type_commit, expiry_commit=expiry_commit
        )
        if expiry_commit is not None:
            data = self.repo.fetch_commit_content(expiry_commit, decrypt=False)
            meta.expiry_text = bytes_to_text(data) if data is not None else None
        return meta

    def _fetch_value_bytes(self, commit: str, blob: str | None) -> bytes | None:
        if blob is not None and not (self.repo.is_public and self.config.cdn_enabled):
            return self.repo.fetch_blob_content(blob)
        return self.repo.fetch_commit_content(commit)

    def lookup(self, key: Any) -> ReadResult:
        """Value and expiry of `key`, with `found=False` when absent or expired."""
        self._ensure_registry()
        _, uuid = self._key_commit(key)
        refs = KeyRefs.for_uuid(uuid)
        meta = self._fetch_metadata(refs)
        value_commit = meta.bytes_commit
        if value_commit is None:
            return ReadResult(found=False)

        expiry_id = int(meta.expiry_text) if meta.expiry_text is not None else None
        if expiry_codec.is_stale(expiry_id):
            return ReadResult(found=False)

        value_type = self.registry.type_for(meta.type_commit)
        if meta.type_commit is not None and value_type is None:
            raise UnsupportedTypeError(f"type commit {meta.type_commit}")

        data_future = self._pool.submit(self._fetch_value_bytes, value_commit, meta.bytes_blob)
        mime_type = None
        if value_type is ValueType.BLOB:
            message = meta.bytes_message
            if message is None:
                message = self.repo.fetch_commit_message(value_commit)
            mime_type, _ = decode_commit_message(message)
        data = data_future.result()
        if data is None:
            # Deleted between resolving the ref and fetching the content.
            return ReadResult(found=False)

        return ReadResult(
            found=True,
            value=bytes_to_typed(data, value_type, mime_type),
            expiry=expiry_codec.id_to_date(expiry_id) if expiry_id is not None else None,
        )

    def read(self, key: Any, default: Any = None) -> Any:
        """Current value of `key`, or `default` when it is absent or expired."""
        result = self.lookup(key)
        return result.value if result.found else default

    def update(
        self,
        key: Any,
        modifier: Callable[[Any], Any],
        *,
        keep_ttl: bool = False,
        ttl: int | float | None = None,
    ) -> UpdateResult:
        """Replace the value with `modifier(current)`, conditional on `current` being unchanged.

        The modifier receives a copy and may return an awaitable. If it raises,
        nothing is published and ModifierFailedError carries the cause. Returning
        ABSENT deletes the key. keep_ttl=True keeps the current expiry and wins over `ttl`.
        """
        current = self.lookup(key)
        if not current.found:
            raise NothingToOverwriteError()
        old_value = current.value

        try:
            new_value = modifier(clone_value(old_value))
            if inspect.isawaitable(new_value):
                new_value = asyncio.run(_resolve(new_value))
        except Exception as e:
            raise ModifierFailedError(e) from e

        if keep_ttl:
            ttl = (
                expiry_codec.get_ttl_days(current.expiry) if current.expiry is not None else None
            )

        if new_value is ABSENT:
            result = self.create(key, ABSENT, old_value=old_value)
        else:
            result = self.create(key, new_value, overwrite=True, ttl=ttl, old_value=old_value)
        return UpdateResult(
            old_value=old_value,
            new_value=new_value,
            uuid=result.uuid,
            cdn_links=result.cdn_links,
            expiry=result.expiry,
        )

    def increment(self, key: Any, incr: int | float = 1) -> UpdateResult:
        def add(value: Any) -> int | float:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"Value must be a Number, got {type(value).__name__}")
            return value + incr

        return self.update(key, add)

    def toggle(self, key: Any) -> UpdateResult:
        def flip(value: Any) -> bool:
            if not isinstance(value, bool):
                raise TypeError(f"Value must be a Boolean, got {type(value).__name__}")
            return not value

        return self.update(key, flip)

    def delete(self, key: Any, value: Any = ABSENT) -> CreateResult:
        """Remove all refs of `key`; with `value` given, only if that is the current value."""
        return self.create(key, ABSENT, old_value=value)

    def expire(self, key: Any, ttl: int | float | None) -> datetime | None:
        """Set a new TTL on an existing key without touching its value. ttl=None persists it."""
        key_commit, uuid = self._key_commit(key)
        refs = KeyRefs.for_uuid(uuid)
        expiry_commit, expires = self._commit_expiry(ttl) if ttl is not None else (None, None)
        try:
            self.repo.update_refs(
                [
                    RefUpdate(refs.key, after_oid=key_commit, before_oid=key_commit),
                    RefUpdate(refs.expiry, after_oid=expiry_commit),
                ]
            )
        except TransactionConflictError as e:
            if not self.repo.has_ref(refs.key):
                raise NothingToExpireError() from e
            raise
        return expires

    def gc(self, now: datetime | None = None, *, batch_size: int | None = None) -> int:
        """Delete every key that expired yesterday and return how many were removed.

        All keys expiring on one day share one expiry commit, so listing the branches
        whose head is that commit finds them all.
        """
        batch_size = batch_size or self.config.gc_batch_size
        stale_commit = self._commit_expiry_index(expiry_codec.yesterday_id(now), push=False)
        uuids = [
            branch[len("kv/") : -len("/expiry")]
            for branch in self.repo.list_branches_to(stale_commit)
            if branch.startswith("kv/") and branch.endswith("/expiry")
        ]

        futures = []
        for start in range(0, len(uuids), batch_size):
            batch = uuids[start : start + batch_size]
            updates = [
                RefUpdate(ref) for uuid in batch for ref in KeyRefs.for_uuid(uuid).all()
            ]
            futures.append(self._pool.submit(self.repo.update_refs, updates))
        for future in futures:
            future.result()

        logger.info("Garbage collected %d expired keys", len(uuids))
        return len(uuids)
