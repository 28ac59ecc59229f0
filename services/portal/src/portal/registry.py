from __future__ import annotations

from typing import Any, Protocol


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ConnectionRegistry:
    """In-memory map of identity id to its single live connection.

    Mutated only from the event loop that owns the connections.
    """

    def __init__(self) -> None:
        self._bindings: dict[str, Connection] = {}

    def register(self, identity_id: str, connection: Connection) -> Connection | None:
        previous = self._bindings.get(identity_id)
        self._bindings[identity_id] = connection
        return previous

    def resolve(self, identity_id: str) -> Connection | None:
        return self._bindings.get(identity_id)

    def unregister(self, identity_id: str, connection: Connection | None = None) -> bool:
        current = self._bindings.get(identity_id)
        if current is None:
            return False
        if connection is not None and current is not connection:
            return False
        del self._bindings[identity_id]
        return True

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._bindings
