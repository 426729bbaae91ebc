"""GitHub repository backend: content-addressed objects plus atomic multi-ref updates.

Everything the database needs from the remote store goes through
`GitHubRepository`: computing and publishing blob/tree/commit objects,
compare-and-swap updates over several refs at once, and reading ref targets
and object content through the cheapest available path (combined GraphQL
metadata query, public CDN, or the authenticated REST API).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel

from gitkv import git_hash
from gitkv.cache import ByteLRUCache, LRUCache
from gitkv.config import GitKVConfig
from gitkv.conversions import base64_to_bytes, bytes_to_base64
from gitkv.errors import (
    IntegrityFaultError,
    RateLimitedError,
    StorageBackendError,
    TransactionConflictError,
)
from gitkv.git_hash import Person, TreeEntry

logger = logging.getLogger(__name__)

NULL_OID = "0" * 40

# Name and email use the same letter for better compression; the fixed date keeps
# commits reproducible and therefore deduplicated.
DEFAULT_COMMITTER = Person(name="a a", email="a@a.a", date="2025-01-01T00:00:00Z")

CDN_TEMPLATES: tuple[str, ...] = (
    "https://cdn.jsdelivr.net/gh/{owner}/{repo}@{commit}/{path}",
    "https://cdn.statically.io/gh/{owner}/{repo}/{commit}/{path}",
    "https://rawcdn.githack.com/{owner}/{repo}/{commit}/{path}",
    "https://esm.sh/gh/{owner}/{repo}@{commit}/{path}",
    "https://raw.githubusercontent.com/{owner}/{repo}/{commit}/{path}",
)

_UPDATE_REFS_MUTATION = """
mutation($repositoryId: ID!, $refUpdates: [RefUpdate!]!) {
  updateRefs(input: { repositoryId: $repositoryId, refUpdates: $refUpdates }) {
    clientMutationId
  }
}
"""

_VALUE_METADATA_QUERY = """
query($id: ID!, $bytesBranch: String!, $typeBranch: String!, $expiryBranch: String!, $path: String!) {
  node(id: $id) {
    ... on Repository {
      bytes: ref(qualifiedName: $bytesBranch) {
        target {
          oid
          ... on Commit {
            message
            file(path: $path) {
              oid
            }
          }
        }
      }
      type: ref(qualifiedName: $typeBranch) {
        target {
          oid
        }
      }
      expiry: ref(qualifiedName: $expiryBranch) {
        target {
          oid
          ... on Commit {
            file(path: $path) {
              object {
                ... on Blob {
                  text
                }
              }
            }
          }
        }
      }
    }
  }
}
"""


def qualify_ref(ref: str) -> str:
    """Fully qualify a ref name; bare names are branches."""
    return ref if ref.startswith("refs/") else f"refs/heads/{ref}"


def _ref_path(ref: str) -> str:
    return ref[len("refs/") :] if ref.startswith("refs/") else f"heads/{ref}"


class RepositoryInfo(BaseModel):
    node_id: str
    full_name: str
    visibility: str = "public"
    created_at: datetime


@dataclass
class RefUpdate:
    """One leg of an atomic updateRefs call.

    `before_oid=None` leaves the current target unconstrained, `NULL_OID` requires
    that the ref does not exist yet. `after_oid=None` deletes the ref.
    """

    name: str
    after_oid: str | None = None
    before_oid: str | None = None
    force: bool = True

    def to_input(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": qualify_ref(self.name),
            "afterOid": self.after_oid or NULL_OID,
            "force": self.force,
        }
        if self.before_oid is not None:
            payload["beforeOid"] = self.before_oid
        return payload


@dataclass
class RateLimit:
    """Last-seen API rate-limit budget, from the x-ratelimit-* response headers."""

    remaining: int | None = None
    reset: int | None = None
    used: int | None = None
    retry_after: int | None = None

    def update(self, headers: httpx.Headers) -> None:
        self.remaining = _int_header(headers, "x-ratelimit-remaining")
        self.reset = _int_header(headers, "x-ratelimit-reset")
        self.used = _int_header(headers, "x-ratelimit-used")
        self.retry_after = _int_header(headers, "retry-after")

    def exhausted(self, now: float | None = None) -> bool:
        if self.remaining != 0 or self.reset is None:
            return False
        return (time.time() if now is None else now) < self.reset

    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset or 0, tz=timezone.utc)


def _int_header(headers: httpx.Headers, name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class ValueMetadata:
    """Result of the combined ref query for one key."""

    bytes_commit: str | None = None
    bytes_message: str | None = None
    bytes_blob: str | None = None
    type_commit: str | None = None
    expiry_commit: str | None = None
    expiry_text: str | None = None


class GitHubRepository:
    """A GitHub repository used as a content-addressed store."""

    def __init__(
        self,
        owner_repo: str,
        *,
        auth: str | None = None,
        encrypt: Callable[[bytes], bytes] | None = None,
        decrypt: Callable[[bytes], bytes] | None = None,
        committer: Person | None = None,
        author: Person | None = None,
        config: GitKVConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        cdn_transport: httpx.BaseTransport | None = None,
    ) -> None:
        owner, sep, name = owner_repo.partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Expected '<owner>/<repo>', got '{owner_repo}'")
        self.owner = owner
        self.name = name
        self.authenticated = bool(auth)
        self.committer = committer or author or DEFAULT_COMMITTER
        self.author = author or self.committer
        self.encrypted = encrypt is not None or decrypt is not None
        self._encrypt = encrypt
        self._decrypt = decrypt
        self._config = config or GitKVConfig()
        self.ratelimit = RateLimit()

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self._config.api_version,
        }
        if auth:
            headers["Authorization"] = f"Bearer {auth}"
        self._client = httpx.Client(
            base_url=self._config.api_url,
            headers=headers,
            timeout=self._config.request_timeout_s,
            transport=transport,
        )
        # CDN fetches never carry the token.
        self._cdn = httpx.Client(
            timeout=self._config.request_timeout_s,
            follow_redirects=True,
            transport=cdn_transport if cdn_transport is not None else transport,
        )

        self.content_cache = ByteLRUCache(
            self._config.content_cache_max_entries,
            self._config.content_cache_max_bytes,
            self._config.content_cache_max_entry_bytes,
        )
        self.message_cache: LRUCache[str] = LRUCache(self._config.message_cache_max_entries)

        self.id: str | None = None
        self.is_public = False
        self.created: datetime | None = None

    @classmethod
    def instantiate(cls, owner_repo: str, **kwargs: Any) -> GitHubRepository:
        """Construct and load repository info in one step."""
        instance = cls(owner_repo, **kwargs)
        try:
            instance.load_info()
        except Exception:
            instance.close()
            raise
        return instance

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def load_info(self) -> RepositoryInfo:
        # REST rather than GraphQL so that unauthenticated reads work.
        response = self._request(
            "GET", self._repo_path(), operation="load_info", not_found_ok=False
        )
        info = RepositoryInfo.model_validate(response.json())
        self.id = info.node_id
        self.is_public = info.visibility == "public"
        self.created = info.created_at
        return info

    def close(self) -> None:
        self._client.close()
        self._cdn.close()

    def __enter__(self) -> GitHubRepository:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Transport ---

    def _repo_path(self, suffix: str = "") -> str:
        return f"/repos/{self.owner}/{self.name}{suffix}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Any = None,
        params: dict[str, str] | None = None,
        not_found_ok: bool = True,
        absent_statuses: tuple[int, ...] = (404,),
    ) -> httpx.Response | None:
        if self.ratelimit.exhausted():
            reset_at = self.ratelimit.reset_at()
            logger.warning("Skipping %s: rate limit exhausted until %s", operation, reset_at)
            raise RateLimitedError(reset_at)
        try:
            response = self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise StorageBackendError(operation, str(e)) from e

        self.ratelimit.update(response.headers)
        status = response.status_code
        if status in absent_statuses and not_found_ok:
            return None
        if status in (403, 429) and self.ratelimit.remaining == 0:
            raise RateLimitedError(self.ratelimit.reset_at())
        if response.is_error:
            raise StorageBackendError(operation, f"HTTP {status}: {response.text[:256]}")
        return response

    def _graphql_payload(
        self, query: str, variables: dict[str, Any], *, operation: str
    ) -> dict[str, Any]:
        response = self._request(
            "POST",
            "/graphql",
            json={"query": query, "variables": variables},
            operation=operation,
            not_found_ok=False,
        )
        return response.json()

    def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its `data`; GraphQL errors raise."""
        payload = self._graphql_payload(query, variables, operation="graphql")
        if payload.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in payload["errors"])
            raise StorageBackendError("graphql", messages)
        return payload.get("data") or {}

    # --- Object existence ---

    def has_commit(self, commit: str) -> bool:
        response = self._request(
            "HEAD", self._repo_path(f"/git/commits/{commit}"), operation="has_commit"
        )
        return response is not None

    def has_ref(self, ref: str) -> bool:
        response = self._request(
            "HEAD", self._repo_path(f"/git/ref/{_ref_path(ref)}"), operation="has_ref"
        )
        return response is not None

    # --- Writes ---

    def commit_bytes(
        self,
        data: bytes,
        *,
        message: str = "",
        paths: Sequence[str] = ("bytes",),
        encrypt: bool | None = None,
        push: bool = True,
        parents: Sequence[str] = (),
    ) -> str:
        """Put `data` at every path of a reproducible commit and return the commit id.

        With push=False only the id is computed. Otherwise the commit is created
        upstream unless it already exists.
        """
        if encrypt is None:
            encrypt = self.encrypted
        if message and not message.endswith("\n"):
            message += "\n"

        cipher = self._encrypt(bytes(data)) if encrypt and self._encrypt else bytes(data)
        blob = git_hash.blob_hash(cipher)
        unique_paths = list(dict.fromkeys(paths))
        tree = git_hash.tree_hash({path: TreeEntry("blob", blob) for path in unique_paths})
        commit = git_hash.commit_hash(
            tree=tree,
            author=self.author,
            committer=self.committer,
            message=message,
            parents=list(parents),
        )
        if not push or self.has_commit(commit):
            return commit

        logger.debug("Pushing commit %s (%d bytes at %s)", commit, len(cipher), unique_paths)
        self._request(
            "POST",
            self._repo_path("/git/blobs"),
            json={"content": bytes_to_base64(cipher), "encoding": "base64"},
            operation="create_blob",
            not_found_ok=False,
        )
        self._request(
            "POST",
            self._repo_path("/git/trees"),
            json={
                "tree": [
                    {"path": path, "type": "blob", "mode": "100644", "sha": blob}
                    for path in unique_paths
                ]
            },
            operation="create_tree",
            not_found_ok=False,
        )
        response = self._request(
            "POST",
            self._repo_path("/git/commits"),
            json={
                "message": message,
                "tree": tree,
                "author": self.author.as_dict(),
                "committer": self.committer.as_dict(),
                "parents": list(parents),
            },
            operation="create_commit",
            not_found_ok=False,
        )
        upstream = response.json()["sha"]
        if upstream != commit:
            raise IntegrityFaultError(commit, upstream)
        return upstream

    def update_refs(self, updates: Iterable[RefUpdate]) -> None:
        """Apply all ref updates atomically: they all succeed or all fail.

        A rejected transaction raises TransactionConflictError without saying which
        leg failed.
        """
        ref_updates = [update.to_input() for update in updates]
        if not ref_updates:
            return
        logger.debug("updateRefs: %s", [u["name"] for u in ref_updates])
        payload = self._graphql_payload(
            _UPDATE_REFS_MUTATION,
            {"repositoryId": self.id, "refUpdates": ref_updates},
            operation="update_refs",
        )
        if payload.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in payload["errors"])
            raise TransactionConflictError(messages)

    # --- Reads ---

    def ref_to_commit_hash(self, ref: str) -> str | None:
        response = self._request(
            "GET", self._repo_path(f"/git/ref/{_ref_path(ref)}"), operation="ref_to_commit_hash"
        )
        if response is None:
            return None
        return response.json()["object"]["sha"]

    def _maybe_decrypt(self, data: bytes, decrypt: bool) -> bytes:
        if decrypt and self._decrypt:
            return self._decrypt(data)
        return data

    def fetch_blob_content(self, blob: str, *, decrypt: bool | None = None) -> bytes | None:
        if decrypt is None:
            decrypt = self.encrypted
        cache_key = ("blob", blob, decrypt)
        cached = self.content_cache.get(cache_key)
        if cached is not None:
            return cached

        response = self._request(
            "GET", self._repo_path(f"/git/blobs/{blob}"), operation="fetch_blob_content"
        )
        if response is None:
            return None
        data = self._maybe_decrypt(base64_to_bytes(response.json()["content"]), decrypt)
        self.content_cache.put(cache_key, data)
        return data

    def fetch_commit_content(
        self, commit: str, *, decrypt: bool | None = None, path: str = "bytes"
    ) -> bytes | None:
        """Bytes stored at `path` in `commit`, or None when the commit does not exist."""
        if decrypt is None:
            decrypt = self.encrypted
        cache_key = ("commit", commit, path, decrypt)
        cached = self.content_cache.get(cache_key)
        if cached is not None:
            return cached

        if not self.is_public or not self._config.cdn_enabled:
            # The contents API mangles arbitrary binary content; take the blob id from it
            # and fetch the blob itself.
            response = self._request(
                "GET",
                self._repo_path(f"/contents/{path}"),
                params={"ref": commit},
                operation="fetch_commit_content",
            )
            if response is None:
                return None
            data = self.fetch_blob_content(response.json()["sha"], decrypt=decrypt)
        else:
            data = self._fetch_from_cdn(commit, path)
            if data is not None:
                data = self._maybe_decrypt(data, decrypt)

        if data is not None:
            self.content_cache.put(cache_key, data)
        return data

    def _fetch_from_cdn(self, commit: str, path: str) -> bytes | None:
        for url in self.cdn_links(commit, path):
            try:
                response = self._cdn.get(url)
            except httpx.HTTPError as e:
                logger.warning("CDN fetch failed for %s: %s", url, e)
                continue
            if response.status_code == 404:
                # The origin is authoritative: a missing commit is missing on every CDN.
                return None
            if response.is_error:
                logger.warning("CDN fetch failed for %s: HTTP %d", url, response.status_code)
                continue
            return response.content
        raise StorageBackendError("fetch_commit_content", "Unexpected failure with CDNs")

    def fetch_commit_message(self, commit: str) -> str | None:
        cached = self.message_cache.get(commit)
        if cached is not None:
            return cached
        response = self._request(
            "GET", self._repo_path(f"/git/commits/{commit}"), operation="fetch_commit_message"
        )
        if response is None:
            return None
        message = response.json().get("message", "")
        self.message_cache.put(commit, message)
        return message

    def cdn_links(self, commit: str, path: str = "bytes") -> list[str]:
        """Interchangeable public CDN URLs for `path` in `commit`; empty for private repos."""
        if not isinstance(path, str) or not path or path.startswith("./"):
            raise ValueError("Pass proper path parameter")
        if not self.is_public:
            return []
        return [
            template.format(owner=self.owner, repo=self.name, commit=commit, path=path)
            for template in CDN_TEMPLATES
        ]

    def list_branches_to(self, commit: str) -> list[str]:
        """Names of all branches whose head is `commit`."""
        response = self._request(
            "GET",
            self._repo_path(f"/commits/{commit}/branches-where-head"),
            operation="list_branches_to",
            # 422 when the commit was never pushed: nothing points at it.
            absent_statuses=(404, 422),
        )
        if response is None:
            return []
        return [item["name"] for item in response.json()]

    def query_value_metadata(
        self, bytes_ref: str, type_ref: str, expiry_ref: str, *, path: str = "bytes"
    ) -> ValueMetadata:
        """Resolve the value, type and expiry refs of a key in one GraphQL round trip.

        Costs a single rate-limit point, against three for the equivalent REST calls.
        Requires authentication.
        """
        data = self.graphql(
            _VALUE_METADATA_QUERY,
            {
                "id": self.id,
                "bytesBranch": qualify_ref(bytes_ref),
                "typeBranch": qualify_ref(type_ref),
                "expiryBranch": qualify_ref(expiry_ref),
                "path": path,
            },
        )
        node = data.get("node") or {}
        value_target = (node.get("bytes") or {}).get("target") or {}
        type_target = (node.get("type") or {}).get("target") or {}
        expiry_target = (node.get("expiry") or {}).get("target") or {}
        expiry_object = (expiry_target.get("file") or {}).get("object") or {}
        metadata = ValueMetadata(
            bytes_commit=value_target.get("oid"),
            bytes_message=value_target.get("message"),
            bytes_blob=(value_target.get("file") or {}).get("oid"),
            type_commit=type_target.get("oid"),
            expiry_commit=expiry_target.get("oid"),
            expiry_text=expiry_object.get("text"),
        )
        if metadata.bytes_commit and metadata.bytes_message is not None:
            self.message_cache.put(metadata.bytes_commit, metadata.bytes_message)
        return metadata
