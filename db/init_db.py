#!/usr/bin/env python3
"""Initialize the optional database schema.

Creates the operation outcome tables defined in db/models against the
database pointed to by DATABASE_URL.

Usage:
  python -m db.init_db

Requirements:
  - DATABASE_URL must be set
"""

from __future__ import annotations

from flashlev.storage import OperationStore, StorageConfig


def main() -> int:
    config = StorageConfig.from_env()
    if config is None:
        raise SystemExit("DATABASE_URL is not set")

    OperationStore(config=config).create_schema()

    print("✅ Database schema applied")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
