"""Git object hashing: blob, tree, commit and annotated tag ids computed locally.

The ids are the SHA-1 digests Git itself assigns, so an object can be addressed
(and its existence checked upstream) before anything is pushed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping

from gitkv.conversions import text_to_bytes

MODES: dict[str, str] = {
    "tree": "40000",
    "blob": "100644",
    "file": "100644",
    "exec": "100755",
    "sym": "120000",
    "commit": "160000",
}


@dataclass(frozen=True)
class Person:
    """Author/committer/tagger identity. `date` is an ISO-8601 string or a raw Git date."""

    name: str
    email: str
    date: str

    def as_dict(self) -> dict[str, str]:
        return {"name": self.name, "email": self.email, "date": self.date}


@dataclass(frozen=True)
class TreeEntry:
    type: str
    hash: str


def git_hash(body: bytes, object_type: str = "blob") -> str:
    header = text_to_bytes(f"{object_type} {len(body)}\x00")
    return hashlib.sha1(header + body).hexdigest()


def blob_hash(content: bytes | str) -> str:
    if isinstance(content, str):
        content = text_to_bytes(content)
    return git_hash(bytes(content), "blob")


def _sort_name(name: str, mode: str) -> str:
    # Git orders sub-trees as if their names carried a trailing slash.
    return name + "/" if mode == MODES["tree"] else name


def tree_hash(entries: Mapping[str, TreeEntry]) -> str:
    """Hash a flat tree given as {name: TreeEntry(type, hash)}; names carry no trailing slash."""
    rows = []
    for name, entry in entries.items():
        try:
            mode = MODES[entry.type]
        except KeyError:
            raise ValueError(f"Unknown tree entry type '{entry.type}' for '{name}'") from None
        if not name or "/" in name:
            raise ValueError(f"Invalid tree entry name '{name}'")
        rows.append((_sort_name(name, mode), name, mode, entry.hash))
    rows.sort(key=lambda row: row[0].encode("utf-8"))

    body = bytearray()
    for _sort_key, name, mode, sha in rows:
        body += text_to_bytes(f"{mode} {name}\x00")
        body += bytes.fromhex(sha)
    return git_hash(bytes(body), "tree")


def format_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    seconds = int(value.timestamp())
    return f"{seconds} +0000"


def format_person(person: Person) -> str:
    # ISO strings are converted to Git's "<epoch> <offset>"; anything else is used verbatim.
    try:
        parsed = datetime.fromisoformat(person.date.replace("Z", "+00:00"))
    except ValueError:
        git_date = person.date
    else:
        git_date = format_date(parsed)
    return f"{person.name} <{person.email}> {git_date}"


def commit_hash(
    *,
    tree: str,
    author: Person,
    committer: Person,
    message: str = "",
    parents: list[str] | tuple[str, ...] = (),
) -> str:
    lines = [f"tree {tree}"]
    lines.extend(f"parent {parent}" for parent in parents)
    lines.append(f"author {format_person(author)}")
    lines.append(f"committer {format_person(committer)}")
    content = "\n".join(lines) + "\n\n"
    if message:
        content += message if message.endswith("\n") else message + "\n"
    return git_hash(text_to_bytes(content), "commit")


def tag_hash(*, object_hash: str, object_type: str, tag: str, tagger: Person, message: str) -> str:
    content = f"object {object_hash}\n"
    content += f"type {object_type}\n"
    content += f"tag {tag}\n"
    content += f"tagger {format_person(tagger)}\n"
    content += "\n" + (message if message.endswith("\n") else message + "\n")
    return git_hash(text_to_bytes(content), "tag")
