"""Counter store interface.

Describes the capabilities the admission controller needs from a shared
key-value store: presence flags with TTL, windowed collections with a
cardinality read, and one indivisible conditional increment spanning two
collections.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCounterStore(ABC):
    """Interface for shared counter stores.

    Implementations must be safe for concurrent use by many callers and must
    raise ``StoreAppError`` for transport or server failures.
    """

    #: Short backend name used in logs and readiness responses.
    backend: str = "abstract"

    @abstractmethod
    async def is_flag_set(self, key: str) -> bool:
        """Return True when the flag ``key`` exists (its value is irrelevant)."""
        raise NotImplementedError

    @abstractmethod
    async def set_flag(self, key: str, ttl_seconds: float) -> None:
        """Create or overwrite the flag ``key`` expiring after ``ttl_seconds``."""
        raise NotImplementedError

    @abstractmethod
    async def cardinality(self, key: str, *, now: float, window_seconds: float) -> int:
        """Count the members of collection ``key`` still inside the window.

        Args:
            key: Collection key.
            now: Current UNIX time in seconds.
            window_seconds: Window size; members older than this are ignored.

        Returns:
            Number of live members (0 when the collection does not exist).
        """
        raise NotImplementedError

    @abstractmethod
    async def try_atomic_dual_increment(
        self,
        identity_key: str,
        scope_key: str,
        *,
        identity_cap: int,
        scope_cap: int,
        now: float,
        window_seconds: float,
    ) -> bool:
        """Conditionally add one member to both collections as a single unit.

        Both collections gain a member and have their TTL refreshed to the
        window only if each one's live cardinality is below its cap. Otherwise
        nothing is written.

        Returns:
            True when the increment was applied, False when it was aborted.
        """
        raise NotImplementedError

    async def ping(self) -> bool:
        """Return True when the store is reachable. Never raises."""
        return True

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
