"""Core primitives for certledger.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization for hash commitments
- YAML/JSON loading with consistent encoding
- Path resolution for shipped package data

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import re
from datetime import datetime, timezone
from typing import Any, Union

import yaml

# Package root, computed once at module load
PACKAGE_ROOT = pathlib.Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"

SHA256_HEX_RE = re.compile(r"^[a-f0-9]{64}$")


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    """Compute SHA-256 hash of the UTF-8 encoding of ``text``."""
    return sha256_bytes(text.encode("utf-8"))


def is_valid_sha256(digest: str) -> bool:
    """Check if string is a valid SHA-256 hex digest."""
    return bool(SHA256_HEX_RE.match(digest or ""))


def load_yaml(path: Union[str, pathlib.Path]) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: Union[str, pathlib.Path]) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected

    Used for hash-chain commitments (audit trail). Ledger records use the
    fixed field order of ``models.encode_asset`` instead.
    """
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def utc_now() -> datetime:
    """Default clock: the current instant in UTC."""
    return datetime.now(timezone.utc)
