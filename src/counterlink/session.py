"""
Session Store - single source of truth for the presentation layer.

The session is published as immutable Session snapshots. Every write
builds a complete new snapshot and swaps it in, so readers never observe a
half-applied change. Only ConnectionManager and TransactionController (and
the owning DappContext) write through commit().
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import AsyncIterator, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkSnapshot:
    chain_id: str
    is_correct_network: bool
    expected_network: str


@dataclass(frozen=True)
class Session:
    connected: bool = False
    account: Optional[str] = None
    network: Optional[NetworkSnapshot] = None
    counter_value: int = 0
    loading: bool = False
    error: Optional[str] = None
    initialized: bool = False

    def __post_init__(self) -> None:
        if not self.connected and self.account is not None:
            raise ValueError("A disconnected session cannot hold an account")
        if self.connected and self.account is None:
            raise ValueError("A connected session requires an account")
        if self.counter_value < 0:
            raise ValueError("Counter value must be non-negative")

    @property
    def is_correct_network(self) -> bool:
        return self.network is not None and self.network.is_correct_network


Listener = Callable[[Session], None]


class SessionStore:
    def __init__(self) -> None:
        self._session = Session()
        self._listeners: list[Listener] = []
        self._in_flight = 0

    @property
    def snapshot(self) -> Session:
        return self._session

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def commit(self, **changes) -> Session:
        """
        Replace the session with a copy carrying ``changes``.

        Raises:
            ValueError: If the resulting session violates an invariant;
                the current session is left untouched
        """
        updated = replace(self._session, **changes)
        if updated == self._session:
            return updated
        self._session = updated
        self._notify()
        return updated

    def commit_counter(self, value: int) -> Session:
        """Record a counter read. Reads below the known value are stale and ignored."""
        if value < self._session.counter_value:
            logger.debug(
                "Ignoring stale counter read %s (known %s)", value, self._session.counter_value
            )
            return self._session
        return self.commit(counter_value=value)

    def mark_initialized(self) -> Session:
        if self._session.initialized:
            return self._session
        return self.commit(initialized=True)

    def reset(self) -> Session:
        """Start a fresh session, as after a full reload."""
        self._session = Session(loading=self._in_flight > 0)
        self._notify()
        return self._session

    @asynccontextmanager
    async def busy(self) -> AsyncIterator[None]:
        """Hold ``loading`` true while the body runs; nests across concurrent operations."""
        self._in_flight += 1
        if self._in_flight == 1:
            self.commit(loading=True)
        try:
            yield
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self.commit(loading=False)

    def _notify(self) -> None:
        session = self._session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")
