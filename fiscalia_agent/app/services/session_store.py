"""
Session Store
==============

Process-memory map of sender_id → CaseContext, owned by the orchestration
layer. Nothing is persisted: a restart forgets every open case.

Idle contexts are dropped after SESSION_TTL_MINUTES: lazily when the same
sender writes again, and in a sweep over all senders at most once per TTL
period (run from get_or_create, or directly via purge_expired).

Turns for one sender must run one at a time. Callers hold turn(sender_id)
around read → handle_turn → replace; different senders never wait on
each other.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Optional

import structlog

from app.models.case_context import CaseContext

logger = structlog.get_logger(__name__)


class InMemorySessionStore:
    """Holds one CaseContext per sender.

    `_lock` guards the session map itself. `turn()` hands out one lock per
    sender so a second message waits until the first turn has finished
    mutating the shared context.
    """

    def __init__(self, ttl_minutes: int = 60):
        self.ttl = timedelta(minutes=ttl_minutes)
        self._sessions: Dict[str, CaseContext] = {}
        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = datetime.now(timezone.utc)

    def __len__(self) -> int:
        return len(self._sessions)

    # ─── Turn Serialization ───────────────────────────────────────────────

    @asynccontextmanager
    async def turn(self, sender_id: str) -> AsyncIterator[None]:
        """Hold the sender's turn lock for the duration of one message."""
        lock = self._turn_locks.setdefault(sender_id, asyncio.Lock())
        if lock.locked():
            logger.info("turn_waiting", sender_id=_mask(sender_id))
        async with lock:
            yield

    # ─── Session Lifecycle ────────────────────────────────────────────────

    async def get_or_create(self, sender_id: str, now: Optional[datetime] = None) -> CaseContext:
        """Return the sender's context, starting a new one if absent or idle."""
        now = now or datetime.now(timezone.utc)
        async with self._lock:
            if now - self._last_sweep >= self.ttl:
                self._purge(now, keep=sender_id)
            context = self._sessions.get(sender_id)
            if context is not None and self._expired(context, now):
                logger.info("session_expired", sender_id=_mask(sender_id))
                context = None
            if context is None:
                context = CaseContext()
                self._sessions[sender_id] = context
                logger.info("session_created", sender_id=_mask(sender_id))
            return context

    async def replace(self, sender_id: str, context: CaseContext) -> None:
        """Store a context wholesale (used when a new case starts)."""
        async with self._lock:
            self._sessions[sender_id] = context

    async def clear_session(self, sender_id: str) -> bool:
        """Forget a sender's context.

        Returns:
            True if a context existed.
        """
        async with self._lock:
            deleted = self._sessions.pop(sender_id, None) is not None
        logger.info("session_cleared", sender_id=_mask(sender_id), deleted=deleted)
        return deleted

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Drop every context idle longer than the TTL.

        Returns:
            Number of contexts removed.
        """
        now = now or datetime.now(timezone.utc)
        async with self._lock:
            return self._purge(now)

    # ─── Internals (call with _lock held) ─────────────────────────────────

    def _expired(self, context: CaseContext, now: datetime) -> bool:
        return now - context.updated_at > self.ttl

    def _purge(self, now: datetime, keep: Optional[str] = None) -> int:
        self._last_sweep = now
        stale = [
            sid for sid, ctx in self._sessions.items()
            if sid != keep and self._expired(ctx, now)
        ]
        for sid in stale:
            del self._sessions[sid]
            lock = self._turn_locks.get(sid)
            if lock is not None and not lock.locked():
                del self._turn_locks[sid]
        if stale:
            logger.info("sessions_purged", count=len(stale))
        return len(stale)


def _mask(sender_id: str) -> str:
    return sender_id[:8] + "..." if len(sender_id) > 8 else sender_id


def _default_ttl() -> int:
    from config import settings

    return settings.session_ttl_minutes


# Global singleton instance
session_store = InMemorySessionStore(ttl_minutes=_default_ttl())
