"""Serialization of booking writes per bookable entity.

Two layers: an asyncio lock per resource key for writers in this process,
and a transaction-scoped PostgreSQL advisory lock for writers in other
processes. The partial unique index on appointments backs both.
"""
import asyncio
import hashlib
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Weak values: a lock lives only while some writer holds or awaits it
_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def advisory_lock_id(resource_key: str) -> int:
    """Stable signed 64-bit id for pg_advisory_xact_lock."""
    digest = hashlib.blake2b(resource_key.encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


@asynccontextmanager
async def resource_lock(resource_key: str) -> AsyncIterator[None]:
    lock = _locks.get(resource_key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[resource_key] = lock
    async with lock:
        yield


async def acquire_advisory_lock(session: AsyncSession, resource_key: str) -> None:
    """Block other processes writing the same resource until this transaction ends."""
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(:lock_id)"),
        {"lock_id": advisory_lock_id(resource_key)},
    )
