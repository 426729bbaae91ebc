"""Shared test fixtures for gitkv tests.

`FakeGitHub` is an in-memory GitHub served through `httpx.MockTransport`. It
stores blobs, trees and commits under their real Git ids, applies updateRefs
atomically with before/after checks, answers the combined metadata query and
serves the CDN paths of public repositories.
"""

from __future__ import annotations

import base64
import json
import re
import threading
from typing import Any

import httpx
import pytest

from gitkv import Database, GitHubRepository
from gitkv.git_hash import Person, TreeEntry, blob_hash, commit_hash, tree_hash
from gitkv.github import NULL_OID

API_HOST = "api.github.com"
_CDN_PATH = re.compile(r"[@/]([0-9a-f]{40})/(.+)$")


class FakeGitHub:
    def __init__(self, owner: str = "octo", name: str = "kv", *, public: bool = True) -> None:
        self.owner = owner
        self.name = name
        self.public = public
        self.node_id = "R_kgDOFake0001"
        self.blobs: dict[str, bytes] = {}
        self.trees: dict[str, dict[str, str]] = {}
        self.commits: dict[str, dict[str, Any]] = {}
        self.refs: dict[str, str] = {}
        self.requests: list[tuple[str, str, str]] = []
        self.ratelimit_remaining = 5000
        self.ratelimit_reset = 0
        self.upstream_commit_override: str | None = None
        self.failing_hosts: set[str] = set()
        self._lock = threading.Lock()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def api_requests(self, method: str | None = None) -> list[tuple[str, str, str]]:
        return [
            r for r in self.requests if r[1] == API_HOST and (method is None or r[0] == method)
        ]

    def branches(self) -> list[str]:
        return sorted(r for r in self.refs if r.startswith("refs/heads/"))

    def tags(self) -> list[str]:
        return sorted(r for r in self.refs if r.startswith("refs/tags/"))

    def file(self, commit: str, path: str) -> bytes | None:
        data = self.commits.get(commit)
        if data is None:
            return None
        blob = self.trees[data["tree"]].get(path)
        return self.blobs.get(blob) if blob else None

    # --- Dispatch ---

    def handle(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append((request.method, request.url.host, request.url.path))
            if request.url.host != API_HOST:
                return self._cdn(request)
            if self.ratelimit_remaining == 0:
                return self._api_response(403, {"message": "API rate limit exceeded"})
            if request.url.path == "/graphql":
                return self._graphql(request)
            return self._rest(request)

    def _api_response(self, status: int, payload: Any = None) -> httpx.Response:
        headers = {
            "x-ratelimit-remaining": str(self.ratelimit_remaining),
            "x-ratelimit-reset": str(self.ratelimit_reset),
            "x-ratelimit-used": "1",
        }
        if payload is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, headers=headers, json=payload)

    def _rest(self, request: httpx.Request) -> httpx.Response:
        prefix = f"/repos/{self.owner}/{self.name}"
        path = request.url.path
        if not path.startswith(prefix):
            return self._api_response(404, {"message": "Not Found"})
        rest = path[len(prefix) :]
        method = request.method
        body = json.loads(request.content) if request.content else None

        if rest == "" and method == "GET":
            return self._api_response(
                200,
                {
                    "node_id": self.node_id,
                    "full_name": self.full_name,
                    "visibility": "public" if self.public else "private",
                    "private": not self.public,
                    "created_at": "2025-01-01T00:00:00Z",
                },
            )
        if rest == "/git/blobs" and method == "POST":
            return self._create_blob(body)
        if rest == "/git/trees" and method == "POST":
            return self._create_tree(body)
        if rest == "/git/commits" and method == "POST":
            return self._create_commit(body)
        if rest.startswith("/git/commits/"):
            sha = rest[len("/git/commits/") :]
            if sha not in self.commits:
                return self._api_response(404, {"message": "Not Found"})
            if method == "HEAD":
                return self._api_response(200)
            return self._api_response(
                200, {"sha": sha, "message": self.commits[sha]["message"]}
            )
        if rest.startswith("/git/ref/"):
            ref = "refs/" + rest[len("/git/ref/") :]
            if ref not in self.refs:
                return self._api_response(404, {"message": "Not Found"})
            if method == "HEAD":
                return self._api_response(200)
            return self._api_response(
                200, {"ref": ref, "object": {"sha": self.refs[ref], "type": "commit"}}
            )
        if rest.startswith("/git/blobs/"):
            sha = rest[len("/git/blobs/") :]
            if sha not in self.blobs:
                return self._api_response(404, {"message": "Not Found"})
            content = base64.b64encode(self.blobs[sha]).decode("ascii")
            return self._api_response(200, {"sha": sha, "content": content, "encoding": "base64"})
        if rest.startswith("/contents/"):
            file_path = rest[len("/contents/") :]
            commit = request.url.params.get("ref", "")
            data = self.commits.get(commit)
            blob = self.trees[data["tree"]].get(file_path) if data else None
            if blob is None:
                return self._api_response(404, {"message": "Not Found"})
            return self._api_response(200, {"sha": blob, "path": file_path, "type": "file"})
        match = re.fullmatch(r"/commits/([0-9a-f]{40})/branches-where-head", rest)
        if match:
            sha = match.group(1)
            if sha not in self.commits:
                return self._api_response(422, {"message": "No commit found for SHA"})
            names = [
                ref[len("refs/heads/") :]
                for ref, target in self.refs.items()
                if ref.startswith("refs/heads/") and target == sha
            ]
            return self._api_response(200, [{"name": name} for name in names])
        return self._api_response(404, {"message": "Not Found"})

    # --- Object creation ---

    def _create_blob(self, body: dict[str, Any]) -> httpx.Response:
        data = base64.b64decode(body["content"])
        sha = blob_hash(data)
        self.blobs[sha] = data
        return self._api_response(201, {"sha": sha})

    def _create_tree(self, body: dict[str, Any]) -> httpx.Response:
        entries = {item["path"]: item["sha"] for item in body["tree"]}
        if any(sha not in self.blobs for sha in entries.values()):
            return self._api_response(422, {"message": "Invalid tree info"})
        sha = tree_hash({path: TreeEntry("blob", blob) for path, blob in entries.items()})
        self.trees[sha] = entries
        return self._api_response(201, {"sha": sha})

    def _create_commit(self, body: dict[str, Any]) -> httpx.Response:
        if body["tree"] not in self.trees:
            return self._api_response(422, {"message": "Tree SHA does not exist"})
        sha = commit_hash(
            tree=body["tree"],
            author=Person(**body["author"]),
            committer=Person(**body["committer"]),
            message=body["message"],
            parents=body["parents"],
        )
        self.commits[sha] = {"tree": body["tree"], "message": body["message"]}
        return self._api_response(201, {"sha": self.upstream_commit_override or sha})

    # --- GraphQL ---

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        if "authorization" not in request.headers:
            return self._api_response(401, {"message": "Requires authentication"})
        payload = json.loads(request.content)
        variables = payload.get("variables") or {}
        if "updateRefs" in payload["query"]:
            return self._update_refs(variables)
        return self._value_metadata(variables)

    def _update_refs(self, variables: dict[str, Any]) -> httpx.Response:
        if variables.get("repositoryId") != self.node_id:
            return self._graphql_error("Could not resolve to a node")
        updates = variables["refUpdates"]
        for update in updates:
            current = self.refs.get(update["name"])
            before = update.get("beforeOid")
            if before == NULL_OID and current is not None:
                return self._graphql_error(f"A ref named {update['name']} already exists")
            if before not in (None, NULL_OID) and current != before:
                return self._graphql_error(f"Ref {update['name']} is at an unexpected oid")
            after = update["afterOid"]
            if after != NULL_OID and after not in self.commits:
                return self._graphql_error(f"Object {after} does not exist")
        for update in updates:
            if update["afterOid"] == NULL_OID:
                self.refs.pop(update["name"], None)
            else:
                self.refs[update["name"]] = update["afterOid"]
        return self._api_response(200, {"data": {"updateRefs": {"clientMutationId": None}}})

    def _graphql_error(self, message: str) -> httpx.Response:
        return self._api_response(
            200, {"data": {"updateRefs": None}, "errors": [{"message": message}]}
        )

    def _value_metadata(self, variables: dict[str, Any]) -> httpx.Response:
        path = variables["path"]

        def target(ref: str, expiry: bool = False) -> dict[str, Any] | None:
            sha = self.refs.get(ref)
            if sha is None:
                return None
            data = self.commits[sha]
            blob = self.trees[data["tree"]].get(path)
            if expiry:
                text = self.blobs[blob].decode("utf-8") if blob else None
                return {"target": {"oid": sha, "file": {"object": {"text": text}}}}
            return {
                "target": {
                    "oid": sha,
                    "message": data["message"],
                    "file": {"oid": blob} if blob else None,
                }
            }

        node = {
            "bytes": target(variables["bytesBranch"]),
            "type": target(variables["typeBranch"]),
            "expiry": target(variables["expiryBranch"], expiry=True),
        }
        return self._api_response(200, {"data": {"node": node}})

    # --- CDN ---

    def _cdn(self, request: httpx.Request) -> httpx.Response:
        if request.url.host in self.failing_hosts or not self.public:
            return httpx.Response(503)
        match = _CDN_PATH.search(request.url.path)
        data = self.file(match.group(1), match.group(2)) if match else None
        if data is None:
            return httpx.Response(404)
        return httpx.Response(200, content=data)


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def private_github():
    return FakeGitHub(public=False)


@pytest.fixture
def repo(fake_github):
    repository = GitHubRepository.instantiate(
        fake_github.full_name, auth="test-token", transport=fake_github.transport()
    )
    yield repository
    repository.close()


@pytest.fixture
def db(fake_github):
    database = Database.instantiate(
        fake_github.full_name, auth="test-token", transport=fake_github.transport()
    )
    database.init()
    yield database
    database.close()


@pytest.fixture
def anonymous_db(fake_github, db):
    """Unauthenticated reader of the same (public) store as `db`."""
    database = Database.instantiate(fake_github.full_name, transport=fake_github.transport())
    yield database
    database.close()


@pytest.fixture
def private_db(private_github):
    database = Database.instantiate(
        private_github.full_name, auth="test-token", transport=private_github.transport()
    )
    database.init()
    yield database
    database.close()
