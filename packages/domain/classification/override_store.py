"""
Override Store - user-confirmed corrections keyed by product name

Keys compare case-insensitively, but the stored name keeps the casing of
whoever created the entry first. Later feedback for the same name
replaces the code in place and never renames the entry.

Storage is pluggable (OverrideBackend): a JSON file for single-node
deployments, Postgres (override_repository.py) when several API workers
share one store. Overrides are read fresh from the backend on every call.
"""
import asyncio
import json
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Protocol

import structlog
from pydantic import ValidationError

from packages.domain.classification.errors import PersistenceFailure
from packages.domain.classification.schemas import Override, normalize_product_key

logger = structlog.get_logger()


class OverrideBackend(Protocol):
    """Storage contract the store needs"""

    async def read_all(self) -> List[Override]:
        """
        Return every stored override.

        A backing store that does not exist yet reads as empty.

        Raises:
            PersistenceFailure: Store exists but cannot be read
        """
        ...

    async def upsert(self, override: Override) -> Override:
        """
        Insert the override, or replace the code of the entry with the same key.

        Returns:
            The stored override (existing product_name casing wins)

        Raises:
            PersistenceFailure: Write failed
        """
        ...


def merge_override(existing: List[Override], incoming: Override) -> List[Override]:
    """Replace-in-place or append; returns a new list"""
    merged = list(existing)
    for index, current in enumerate(merged):
        if current.key == incoming.key:
            merged[index] = Override(
                product_name=current.product_name,
                correct_code=incoming.correct_code,
            )
            return merged
    merged.append(incoming)
    return merged


class JsonFileOverrideBackend:
    """
    Overrides kept in one JSON array file: [{"productName": ..., "correctCode": ...}].

    Every key shares the file, so writes are serialized by a single lock
    and land atomically (temp file + os.replace); readers never see a
    half-written file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._write_lock = asyncio.Lock()

    async def read_all(self) -> List[Override]:
        return await asyncio.to_thread(self._read_sync)

    async def upsert(self, override: Override) -> Override:
        async with self._write_lock:
            return await asyncio.to_thread(self._upsert_sync, override)

    def _read_sync(self) -> List[Override]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceFailure(f"Cannot read overrides from {self.path}: {e}") from e

        if not raw.strip():
            return []

        try:
            records = json.loads(raw)
            if not isinstance(records, list):
                raise PersistenceFailure(f"{self.path} must contain a JSON array")
            return [Override.model_validate(record) for record in records]
        except (json.JSONDecodeError, ValidationError) as e:
            raise PersistenceFailure(f"Overrides file {self.path} is malformed: {e}") from e

    def _upsert_sync(self, override: Override) -> Override:
        merged = merge_override(self._read_sync(), override)
        payload = json.dumps(
            [o.model_dump(by_alias=True) for o in merged],
            indent=2,
            ensure_ascii=False,
        )

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".overrides-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, self.path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceFailure(f"Cannot write overrides to {self.path}: {e}") from e

        return next(o for o in merged if o.key == override.key)


class InMemoryOverrideBackend:
    """Process-local backend (tests, demos)"""

    def __init__(self, overrides: Optional[List[Override]] = None):
        self._overrides: List[Override] = list(overrides or [])

    async def read_all(self) -> List[Override]:
        return list(self._overrides)

    async def upsert(self, override: Override) -> Override:
        self._overrides = merge_override(self._overrides, override)
        return next(o for o in self._overrides if o.key == override.key)


class OverrideStore:
    """
    Lookup / upsert / serialize over an OverrideBackend.

    Upserts for the same normalized name are serialized by a per-key lock
    so near-simultaneous corrections resolve last-write-wins instead of
    racing. Different keys do not wait on each other here (the backend may
    still serialize them). A key's lock lives only while an upsert for that
    key is pending.
    """

    def __init__(self, backend: OverrideBackend):
        self.backend = backend
        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._key_locks[key]

    async def all(self) -> List[Override]:
        return await self.backend.read_all()

    async def lookup(self, product_name: str) -> Optional[Override]:
        """Exact case-insensitive match, or None"""
        key = normalize_product_key(product_name)
        for override in await self.backend.read_all():
            if override.key == key:
                logger.debug("override_hit",
                             product=product_name,
                             code=override.correct_code)
                return override

        logger.debug("override_miss", product=product_name)
        return None

    async def upsert(self, product_name: str, correct_code: str) -> Override:
        """
        Create or update the override for product_name.

        Raises:
            PersistenceFailure: Backend could not store the correction
        """
        incoming = Override(product_name=product_name, correct_code=correct_code)

        async with self._key_lock(incoming.key):
            try:
                stored = await self.backend.upsert(incoming)
            except PersistenceFailure:
                logger.error("override_upsert_failed",
                             product=product_name,
                             code=correct_code,
                             exc_info=True)
                raise

        logger.info("override_upserted",
                    product=stored.product_name,
                    code=stored.correct_code)

        return stored

    async def serialize(self, overrides: Optional[List[Override]] = None) -> str:
        """Full override table as a JSON array for the inference prompt"""
        if overrides is None:
            overrides = await self.backend.read_all()
        return serialize_overrides(overrides)


def serialize_overrides(overrides: List[Override]) -> str:
    return json.dumps(
        [o.model_dump(by_alias=True) for o in overrides],
        indent=2,
        ensure_ascii=False,
    )
