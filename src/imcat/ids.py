from __future__ import annotations

import base64
import binascii
import hashlib
from pathlib import Path
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


def sha1_file(path: Path) -> bytes:
    h = hashlib.sha1()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.digest()


def parse_checksum(value: str | bytes) -> bytes:
    """Accept a raw digest, its hex form or its base64 form (as mobile clients send it)."""
    if isinstance(value, bytes):
        if not value:
            raise ValueError("empty checksum")
        return value
    text = value.strip()
    if len(text) == 40:
        try:
            return bytes.fromhex(text)
        except ValueError:
            pass
    try:
        raw = base64.b64decode(text, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid checksum: {value}") from exc
    if not raw:
        raise ValueError(f"invalid checksum: {value}")
    return raw


def checksum_hex(value: bytes) -> str:
    return value.hex()
