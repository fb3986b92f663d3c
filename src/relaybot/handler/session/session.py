"""In-memory context store — ordered conversation history per (channel, user).

Each context is an append-only list of ``ContextEntry`` values:
    [ContextEntry(user, "..."), ContextEntry(assistant, "..."), ...]

A context comes into existence the first time an entry is appended for its
key and is never destroyed here. Appends are atomic: concurrent writers for
the same key interleave but never lose or merge entries, and writers for
different keys never wait on each other.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence

from loguru import logger

from relaybot.handler.messages import Channel, ContextEntry, Role

ContextKey = tuple[Channel, str]


class _Context:
    __slots__ = ("entries", "lock")

    def __init__(self) -> None:
        self.entries: list[ContextEntry] = []
        self.lock = threading.Lock()


class ContextStore:
    """Holds the bounded-or-unbounded, ordered history of every user."""

    def __init__(self, max_history: int | None = None) -> None:
        """
        Args:
            max_history: Storage-side retention bound per context (oldest
                         entries dropped first). ``None`` keeps everything.
        """
        if max_history is not None and max_history < 1:
            raise ValueError("max_history must be a positive integer or None")
        self._contexts: dict[ContextKey, _Context] = {}
        self._registry_lock = threading.Lock()
        self._max_history = max_history

    def append(
        self,
        channel: Channel,
        user_id: str,
        role: Role,
        text: str,
    ) -> None:
        """Append one entry to the end of the user's context."""
        entry = ContextEntry(role=role, text=text)
        ctx = self._context_for((Channel(channel), user_id))

        with ctx.lock:
            ctx.entries.append(entry)
            self._trim(ctx)
            total = len(ctx.entries)

        logger.trace(
            "Context {}:{} | added {} entry (total: {})",
            channel.value if isinstance(channel, Channel) else channel,
            user_id,
            entry.role.value,
            total,
        )

    def read(self, channel: Channel, user_id: str) -> Sequence[ContextEntry]:
        """Return a snapshot of the user's context, oldest entry first.

        Reading never consumes anything; the full history can be re-read
        at any time. Unknown users get an empty sequence.
        """
        ctx = self._contexts.get((Channel(channel), user_id))
        if ctx is None:
            return ()
        with ctx.lock:
            return tuple(ctx.entries)

    def iter_entries(self, channel: Channel, user_id: str) -> Iterator[ContextEntry]:
        """Lazily iterate a snapshot of the user's context."""
        return iter(self.read(channel, user_id))

    @property
    def active_contexts(self) -> int:
        """Number of (channel, user) pairs with stored history."""
        return len(self._contexts)

    def _context_for(self, key: ContextKey) -> _Context:
        ctx = self._contexts.get(key)
        if ctx is not None:
            return ctx
        with self._registry_lock:
            return self._contexts.setdefault(key, _Context())

    def _trim(self, ctx: _Context) -> None:
        """Keep only the last ``max_history`` entries (caller holds the lock)."""
        if self._max_history is None:
            return
        excess = len(ctx.entries) - self._max_history
        if excess > 0:
            del ctx.entries[:excess]
            logger.debug("Context trimmed {} old entries", excess)
