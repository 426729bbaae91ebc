"""Example 02: Updates, Optimistic Concurrency and Error Handling.

This example demonstrates:
- update() with a modifier that receives a copy of the current value
- increment() and toggle()
- KeyExistsError / NothingToOverwriteError from create(overwrite=...)
- ModifierFailedError and retrying on TransactionConflictError
- Conditional delete()
"""

import os

from dotenv import load_dotenv

from gitkv import (
    Database,
    KeyExistsError,
    ModifierFailedError,
    NothingToOverwriteError,
    TransactionConflictError,
)


def add_tag(tag):
    def modifier(profile):
        profile.setdefault("tags", []).append(tag)
        return profile

    return modifier


def update_with_retry(db, key, modifier, attempts=3):
    for attempt in range(1, attempts + 1):
        try:
            return db.update(key, modifier)
        except TransactionConflictError:
            print(f"  Conflict on attempt {attempt}, retrying")
    raise RuntimeError(f"Gave up on {key!r} after {attempts} attempts")


def main():
    """Run the updates example."""
    load_dotenv()
    with Database.instantiate(os.environ["GH_REPO"], auth=os.environ["GH_TOKEN"]) as db:
        db.create("profile:1", {"name": "Ada"})

        result = update_with_retry(db, "profile:1", add_tag("admin"))
        print(f"✓ old={result.old_value} new={result.new_value}")

        db.create("counter", 0)
        db.increment("counter", 5)
        print(f"✓ counter={db.read('counter')}")

        db.create("flag", False)
        db.toggle("flag")
        print(f"✓ flag={db.read('flag')}")

        try:
            db.create("profile:1", {}, overwrite=False)
        except KeyExistsError as e:
            print(f"✓ {e}")

        try:
            db.create("profile:404", {}, overwrite=True)
        except NothingToOverwriteError as e:
            print(f"✓ {e}")

        try:
            db.increment("profile:1")
        except ModifierFailedError as e:
            print(f"✓ {e} cause={e.cause!r}")

        try:
            db.delete("counter", 999)
        except TransactionConflictError:
            print("✓ Conditional delete refused: counter is not 999")
        db.delete("counter", 5)
        print(f"✓ counter exists: {db.has('counter')}")


if __name__ == "__main__":
    main()
