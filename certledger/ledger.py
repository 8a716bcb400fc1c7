"""Ledger gateway: the key-value store of record.

The lifecycle engine consumes the ledger only through ``LedgerGateway``:

    get(key) -> bytes | None
    put(key, value)
    delete(key)
    scan(start, end) -> [(key, value), ...]   start inclusive, end exclusive,
                                              "" = open bound, key order
    write_batch(puts, deletes)                all-or-nothing multi-key write

Consensus, replication and block production are properties of a real
ledger and are out of scope here. Two local collaborators are provided:

- ``InMemoryLedger``: a dict guarded by an RLock. Per-key writes are
  serialized and ``write_batch`` is applied under a single lock hold.
- ``JsonFileLedger``: the same keyspace persisted to one JSON file, rewritten
  atomically on every mutation, so a CLI can keep state between runs.

Collaborator failures surface as ``LedgerError``.
"""

from __future__ import annotations

import json
import os
import pathlib
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from certledger.errors import LedgerError
from certledger.observability import Layer, get_logger

logger = get_logger("ledger", Layer.LEDGER)


def _check_key(key: str) -> str:
    if not isinstance(key, str) or not key:
        raise LedgerError(f"ledger keys must be non-empty strings, got {key!r}")
    return key


class LedgerGateway(ABC):
    """Abstract key-value ledger."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the value under ``key`` or None when absent."""

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Upsert ``value`` under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; deleting an absent key is a no-op."""

    @abstractmethod
    def scan(self, start: str = "", end: str = "") -> List[Tuple[str, bytes]]:
        """Return ``(key, value)`` pairs with ``start <= key < end`` in key order."""

    @abstractmethod
    def write_batch(
        self,
        puts: Optional[Mapping[str, bytes]] = None,
        deletes: Iterable[str] = (),
    ) -> None:
        """Apply deletes then puts atomically."""

    def is_empty(self) -> bool:
        return not self.scan("", "")


def _in_range(key: str, start: str, end: str) -> bool:
    if start and key < start:
        return False
    if end and key >= end:
        return False
    return True


class InMemoryLedger(LedgerGateway):
    """Thread-safe in-process ledger."""

    def __init__(self, initial: Optional[Mapping[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(_check_key(key))

    def put(self, key: str, value: bytes) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise LedgerError(f"ledger values must be bytes, got {type(value).__name__}")
        with self._lock:
            self._data[_check_key(key)] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(_check_key(key), None)

    def scan(self, start: str = "", end: str = "") -> List[Tuple[str, bytes]]:
        with self._lock:
            return [(k, self._data[k]) for k in sorted(self._data) if _in_range(k, start, end)]

    def write_batch(
        self,
        puts: Optional[Mapping[str, bytes]] = None,
        deletes: Iterable[str] = (),
    ) -> None:
        puts = dict(puts or {})
        deletes = [_check_key(k) for k in deletes]
        for k, v in puts.items():
            _check_key(k)
            if not isinstance(v, (bytes, bytearray)):
                raise LedgerError(f"ledger values must be bytes, got {type(v).__name__}")
        with self._lock:
            for k in deletes:
                self._data.pop(k, None)
            for k, v in puts.items():
                self._data[k] = bytes(v)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class JsonFileLedger(InMemoryLedger):
    """
    File-backed ledger.

    The keyspace is stored as ``{"entries": {key: utf8-text}}``. Every
    mutation rewrites the whole file through a temp file and ``os.replace``,
    so a crash leaves either the old or the new keyspace on disk. A failed
    write rolls the in-memory keyspace back to match the file.
    """

    def __init__(self, path: Union[str, pathlib.Path]):
        self.path = pathlib.Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, bytes]:
        if not self.path.exists():
            return {}
        try:
            doc = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LedgerError(f"cannot read ledger file {self.path}: {exc}") from exc
        entries = doc.get("entries") if isinstance(doc, dict) else None
        if not isinstance(entries, dict):
            raise LedgerError(f"ledger file {self.path} has no 'entries' mapping")
        logger.debug("Loaded ledger file", path=str(self.path), keys=len(entries))
        return {str(k): str(v).encode("utf-8") for k, v in entries.items()}

    def _flush(self) -> None:
        try:
            entries = {k: v.decode("utf-8") for k, v in sorted(self._data.items())}
        except UnicodeDecodeError as exc:
            raise LedgerError(f"ledger file values must be UTF-8 text: {exc}") from exc
        text = json.dumps({"entries": entries}, indent=2, ensure_ascii=False) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".ledger-", dir=str(self.path.parent))
        except OSError as exc:
            raise LedgerError(f"cannot write ledger file {self.path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except OSError as exc:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise LedgerError(f"cannot write ledger file {self.path}: {exc}") from exc

    @contextmanager
    def _persisting(self) -> Iterator[None]:
        with self._lock:
            snapshot = dict(self._data)
            try:
                yield
                self._flush()
            except LedgerError:
                self._data = snapshot
                raise

    def put(self, key: str, value: bytes) -> None:
        with self._persisting():
            super().put(key, value)

    def delete(self, key: str) -> None:
        with self._persisting():
            super().delete(key)

    def write_batch(
        self,
        puts: Optional[Mapping[str, bytes]] = None,
        deletes: Iterable[str] = (),
    ) -> None:
        with self._persisting():
            super().write_batch(puts, deletes)
