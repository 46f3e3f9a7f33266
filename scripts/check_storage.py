"""
Storage connectivity probe: writes, reads back, checks and deletes one object
using the configured backend (STORAGE_BACKEND=local|s3).

Usage:
  python scripts/check_storage.py
"""
from __future__ import annotations

import sys
import uuid
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.champion.config import load_config
from app.champion.storage import StorageError, storage_from_config


def probe(config: dict) -> None:
    storage = storage_from_config(config)
    key = f"healthchecks/probe-{uuid.uuid4().hex}.txt"
    payload = b"mindful-champion storage probe"

    storage.put_bytes(key, payload, content_type="text/plain")
    print(f"write  ok: {key}")
    fh = storage.open(key)
    try:
        data = fh.read()
    finally:
        fh.close()
    if data != payload:
        raise StorageError(f"read back {len(data)} bytes, expected {len(payload)}")
    print("read   ok")
    if not storage.exists(key):
        raise StorageError("object missing after write")
    print("exists ok")
    storage.delete(key)
    print("delete ok")


def main() -> None:
    load_dotenv()
    config = load_config()
    backend = config.get("STORAGE_BACKEND") or "local"
    print(f"STORAGE_BACKEND={backend}")
    if backend == "s3":
        print(f"S3_ENDPOINT={config.get('S3_ENDPOINT') or '(aws default)'} S3_BUCKET={config.get('S3_BUCKET') or '(unset)'}")
    try:
        probe(config)
    except StorageError as e:
        print(f"STORAGE CHECK FAILED: {e}")
        sys.exit(1)
    print("Storage check passed.")


if __name__ == "__main__":
    main()
