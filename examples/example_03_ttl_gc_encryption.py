"""Example 03: TTL, Garbage Collection and Encryption.

This example demonstrates:
- create(ttl=...) and expire()
- Expired keys read as absent while has() still sees them until gc()
- gc() removing every key that expired yesterday
- An encrypted store using AesGcmCodec
"""

import os

from dotenv import load_dotenv

from gitkv import AesGcmCodec, Database


def main():
    """Run the TTL and encryption example."""
    load_dotenv()
    repo, token = os.environ["GH_REPO"], os.environ["GH_TOKEN"]

    with Database.instantiate(repo, auth=token) as db:
        result = db.create("session:abc", {"user": 1}, ttl=7)
        print(f"✓ session expires {result.expiry:%Y-%m-%d}")

        db.expire("session:abc", 30)
        print(f"✓ extended to {db.lookup('session:abc').expiry:%Y-%m-%d}")

        # ttl=-1 yields an already-expired key, which is what gc() collects.
        db.create("scratch", "tmp", ttl=-1)
        print(f"  read={db.read('scratch')!r} has={db.has('scratch')}")
        print(f"✓ gc removed {db.gc()} keys; has={db.has('scratch')}")

    codec = AesGcmCodec(os.environ.get("GITKV_PASSWORD", "change me"), repo.encode())
    with Database.instantiate(
        repo, auth=token, encrypt=codec.encrypt, decrypt=codec.decrypt
    ) as secure:
        secure.create("api-key", "s3cr3t")
        print(f"✓ decrypted read: {secure.read('api-key')}")


if __name__ == "__main__":
    main()
