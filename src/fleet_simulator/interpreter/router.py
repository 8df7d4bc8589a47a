"""Base-command to simulator routing table."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Generic, TypeVar

THandler = TypeVar("THandler")


class CommandRouter(Generic[THandler]):
    """Exact-name lookup; registering a name twice keeps the later handler."""

    def __init__(self) -> None:
        self._handlers: dict[str, THandler] = {}

    def register(self, name: str, handler: THandler) -> None:
        normalized = name.strip()
        if not normalized:
            raise ValueError("command name must not be empty")
        self._handlers[normalized] = handler

    def register_many(self, names: Iterable[str], handler: THandler) -> None:
        for name in names:
            self.register(name, handler)

    def resolve(self, name: str) -> THandler | None:
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))


__all__ = ["CommandRouter"]
