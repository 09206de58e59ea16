"""
Node Registry - exclusive ownership of node identities.

Each node identity (its public key) may be managed by at most one supervisor
at a time. A supervisor claims the identity before touching the gateway and
releases it before every retry and when it stops. The registry is also the
list of live sessions that the coordinator closes at shutdown.

Every operation holds the lock for a single dict operation only, so callers
never lock anything themselves and may come from any task or thread.

Example usage:
    registry = NodeRegistry()

    if registry.try_claim("pub-key-1", client):
        ...  # we own pub-key-1
        registry.release("pub-key-1")

    for pub_key, client in registry.snapshot():
        await client.stop_session(pub_key)
"""

import threading
from typing import Generic, TypeVar

from bless_fleet.metrics import ACTIVE_NODES

B = TypeVar("B")


class NodeRegistry(Generic[B]):
    """Concurrent map of node identity -> client binding."""

    def __init__(self) -> None:
        self._entries: dict[str, B] = {}
        self._lock = threading.Lock()

    def try_claim(self, pub_key: str, binding: B) -> bool:
        """
        Atomically claim a node identity.

        Args:
            pub_key: Node identity.
            binding: Client that will manage the node.

        Returns:
            True if the identity was free and is now ours, False if another
            supervisor already holds it (state is left untouched).
        """
        with self._lock:
            if pub_key in self._entries:
                return False
            self._entries[pub_key] = binding
            count = len(self._entries)
        ACTIVE_NODES.set(count)
        return True

    def release(self, pub_key: str) -> None:
        """Drop the claim for a node identity. Releasing a free identity is a no-op."""
        with self._lock:
            self._entries.pop(pub_key, None)
            count = len(self._entries)
        ACTIVE_NODES.set(count)

    def snapshot(self) -> list[tuple[str, B]]:
        """Point-in-time copy of every (identity, binding) pair."""
        with self._lock:
            return list(self._entries.items())

    def get(self, pub_key: str) -> B | None:
        with self._lock:
            return self._entries.get(pub_key)

    def identities(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, pub_key: object) -> bool:
        with self._lock:
            return pub_key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
