"""Example 01: Basic Usage - gitkv Fundamentals.

This example demonstrates the fundamental operations:
- Opening a database on a GitHub repository with Database.instantiate()
- Publishing the canonical type commits with db.init()
- Storing typed values with db.create() and reading them with db.read()
- Structured keys, binary blobs and CDN links

Requires GH_REPO (<owner>/<repo>) and GH_TOKEN in the environment or a .env file.
"""

import os

from dotenv import load_dotenv

from gitkv import Blob, Database


def main():
    """Run the basic usage example."""
    load_dotenv()
    print("=" * 80)
    print("GITKV BASIC USAGE EXAMPLE")
    print("=" * 80)

    with Database.instantiate(os.environ["GH_REPO"], auth=os.environ["GH_TOKEN"]) as db:
        # Step 1: Initialize once per repository.
        if not db.is_initialized():
            db.init()
            print("\n✓ Published type commits")

        # Step 2: Keys and values can be any supported type.
        result = db.create({"hello": "world"}, {"how": "are you?"})
        print(f"\n✓ Stored under {result.uuid}")
        print(f"  Value: {db.read({'hello': 'world'})}")

        # Step 3: Numbers, booleans and strings are stored as readable text.
        db.create("visits", 0)
        db.create("enabled", True)
        print(f"  visits={db.read('visits')} enabled={db.read('enabled')}")

        # Step 4: Blobs keep their MIME type and get a typed view path on the CDN.
        logo = Blob(b"<svg xmlns='http://www.w3.org/2000/svg'/>", "image/svg+xml")
        result = db.create("logo", logo)
        for link in result.cdn_links:
            print(f"  {link}")

        # Step 5: Identical values share one commit.
        first = db.create("a", "same")
        second = db.create("b", "same")
        print(f"\n✓ Deduplicated: {first.cdn_links == second.cdn_links}")


if __name__ == "__main__":
    main()
