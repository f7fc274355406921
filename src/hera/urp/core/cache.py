# hera/urp/core/cache.py
"""
Per-organization result cache backing recipe results and materialized views.

Keys are namespaced by organization so one tenant can never read or
invalidate another tenant's entries. Every part is percent-encoded, so
names containing ":" or glob characters cannot reach into another part:

    urp:{org}:recipe:{recipe}:{parameter_hash}
    urp:{org}:view:{view}
    urp:{org}:viewdata:{view}
"""
from __future__ import annotations

import copy
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from fnmatch import fnmatchcase
from typing import Any, Callable, Mapping
from urllib.parse import quote

from hera.urp.contracts.recipe import NEVER_EXPIRE
from hera.urp.core.utils import utc_now

logger = logging.getLogger(__name__)

KEY_PREFIX = "urp"


@dataclass
class CacheEntry:
    key: str
    payload: Any
    created_at: datetime
    expires_at: datetime | None = None
    organization_id: str | None = None
    recipe_name: str | None = None
    parameter_hash: str | None = None

    def expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "evictions": self.evictions,
        }


class CacheBackend(ABC):

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None: ...

    @abstractmethod
    async def set(self, entry: CacheEntry) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def keys(self, pattern: str = "*") -> list[str]: ...


class MemoryCacheBackend(CacheBackend):
    def __init__(self):
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def set(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def keys(self, pattern: str = "*") -> list[str]:
        return [k for k in self._entries if fnmatchcase(k, pattern)]


def get_cache_backend(backend_type: str = "memory") -> CacheBackend:
    if backend_type == "memory":
        return MemoryCacheBackend()
    raise ValueError(f"cache backend {backend_type} not supported")


def parameter_hash(parameters: Mapping[str, Any] | None) -> str:
    """Stable hash of a parameter bag; key order does not matter."""
    canonical = json.dumps(
        parameters or {}, sort_keys=True, default=str, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _part(value: str) -> str:
    # Percent-encoding leaves no ':' or glob characters inside a key part
    return quote(str(value), safe="")


def recipe_key(organization_id: str, recipe_name: str, param_hash: str) -> str:
    return f"{KEY_PREFIX}:{_part(organization_id)}:recipe:{_part(recipe_name)}:{param_hash}"


def view_key(organization_id: str, view_name: str) -> str:
    return f"{KEY_PREFIX}:{_part(organization_id)}:view:{_part(view_name)}"


def view_data_key(organization_id: str, view_name: str) -> str:
    return f"{KEY_PREFIX}:{_part(organization_id)}:viewdata:{_part(view_name)}"


class CacheManager:
    """
    TTL cache over a ``CacheBackend``.

    Payloads are deep-copied on the way in and out, so callers can mutate
    what they get back without corrupting the cache. ``ttl`` is in seconds:
    ``None`` uses ``default_ttl``, ``0`` skips the write and ``-1`` never
    expires.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        default_ttl: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend or MemoryCacheBackend()
        self.default_ttl = default_ttl
        self.clock = clock
        self.stats = CacheStats()

    # -- recipe results ----------------------------------------------------

    async def get(
        self, organization_id: str, recipe_name: str, parameters: Mapping[str, Any] | None
    ) -> Any | None:
        key = recipe_key(organization_id, recipe_name, parameter_hash(parameters))
        entry = await self._read(key)
        if entry is None:
            self.stats.misses += 1
            logger.debug("Cache miss: %s", key)
            return None
        self.stats.hits += 1
        logger.debug("Cache hit: %s", key)
        return copy.deepcopy(entry.payload)

    async def set(
        self,
        organization_id: str,
        recipe_name: str,
        parameters: Mapping[str, Any] | None,
        payload: Any,
        ttl: int | None = None,
    ) -> None:
        p_hash = parameter_hash(parameters)
        key = recipe_key(organization_id, recipe_name, p_hash)
        stored = await self._write(
            key,
            payload,
            ttl,
            organization_id=organization_id,
            recipe_name=recipe_name,
            parameter_hash=p_hash,
        )
        if stored:
            logger.debug("Cached %s (ttl=%s)", key, self.default_ttl if ttl is None else ttl)

    async def invalidate(self, organization_id: str, recipe_name: str | None = None) -> int:
        """Drop recipe results of one organization (all recipes when no name)."""
        recipe = _part(recipe_name) if recipe_name else "*"
        pattern = f"{KEY_PREFIX}:{_part(organization_id)}:recipe:{recipe}:*"
        removed = await self.delete_pattern(pattern)
        logger.info(
            "Invalidated %d cache entries for org=%s recipe=%s",
            removed,
            organization_id,
            recipe_name or "*",
        )
        return removed

    async def delete_pattern(self, pattern: str) -> int:
        removed = 0
        for key in await self.backend.keys(pattern):
            if await self.backend.delete(key):
                removed += 1
        return removed

    # -- materialized views ------------------------------------------------

    async def get_view(self, organization_id: str, view_name: str) -> dict[str, Any] | None:
        entry = await self._read(view_key(organization_id, view_name))
        return copy.deepcopy(entry.payload) if entry else None

    async def set_view(self, organization_id: str, view_name: str, descriptor: Mapping[str, Any]) -> None:
        await self._write(
            view_key(organization_id, view_name),
            dict(descriptor),
            NEVER_EXPIRE,
            organization_id=organization_id,
        )

    async def list_views(self, organization_id: str) -> list[dict[str, Any]]:
        pattern = f"{KEY_PREFIX}:{_part(organization_id)}:view:*"
        views: list[dict[str, Any]] = []
        for key in sorted(await self.backend.keys(pattern)):
            entry = await self._read(key)
            if entry is not None:
                views.append(copy.deepcopy(entry.payload))
        return views

    async def get_view_data(self, organization_id: str, view_name: str) -> CacheEntry | None:
        entry = await self._read(view_data_key(organization_id, view_name))
        return copy.deepcopy(entry) if entry else None

    async def set_view_data(self, organization_id: str, view_name: str, payload: Any) -> None:
        await self._write(
            view_data_key(organization_id, view_name),
            payload,
            NEVER_EXPIRE,
            organization_id=organization_id,
        )

    async def delete_view(self, organization_id: str, view_name: str) -> bool:
        found = await self.backend.delete(view_key(organization_id, view_name))
        await self.backend.delete(view_data_key(organization_id, view_name))
        return found

    # -- internals ---------------------------------------------------------

    async def _read(self, key: str) -> CacheEntry | None:
        entry = await self.backend.get(key)
        if entry is None:
            return None
        if entry.expired(self.clock()):
            await self.backend.delete(key)
            self.stats.evictions += 1
            logger.debug("Evicted expired entry: %s", key)
            return None
        return entry

    async def _write(self, key: str, payload: Any, ttl: int | None, **meta: Any) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl == 0:
            return False
        now = self.clock()
        expires_at = None if ttl == NEVER_EXPIRE else now + timedelta(seconds=ttl)
        await self.backend.set(
            CacheEntry(
                key=key,
                payload=copy.deepcopy(payload),
                created_at=now,
                expires_at=expires_at,
                **meta,
            )
        )
        self.stats.writes += 1
        return True
