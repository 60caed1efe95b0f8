"""Monotonic request generations used to discard superseded responses."""

from __future__ import annotations


class RequestGeneration:
    """Counter stamped onto every outgoing request of one kind.

    A response is applied only while its stamp is still the latest issued.

    Usage:
        gen = generations.next()
        result = await service.fetch(...)
        if not generations.is_current(gen):
            return  # superseded
    """

    def __init__(self, name: str = "request") -> None:
        self.name = name
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def next(self) -> int:
        self._value += 1
        return self._value

    def invalidate(self) -> None:
        """Supersede whatever is in flight without issuing a new request."""
        self._value += 1

    def is_current(self, generation: int) -> bool:
        return generation == self._value

    def __repr__(self) -> str:
        return f"RequestGeneration({self.name!r}, current={self._value})"
