"""RingBuffer: fixed-capacity circular buffer with chronological read-out."""

from __future__ import annotations

from typing import Generic, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity circular buffer.

    Appends are O(1). Once full, each append overwrites the oldest slot.

    Usage::

        buf = RingBuffer(capacity=32)
        buf.append(0.5)
        recent = buf.last(8)
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"RingBuffer capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._storage: list[T | None] = [None] * capacity
        self._head = 0  # next write position
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def is_full(self) -> bool:
        return self._count == self.capacity

    def append(self, value: T) -> None:
        self._storage[self._head] = value
        self._head = (self._head + 1) % self.capacity
        if self._count < self.capacity:
            self._count += 1

    def extend(self, values) -> None:
        for value in values:
            self.append(value)

    def to_list(self) -> list[T]:
        """Return all stored elements, oldest first, as a new list."""
        if self._count < self.capacity:
            return list(self._storage[: self._count])
        # When full, the oldest element sits at the write head
        return self._storage[self._head:] + self._storage[: self._head]

    def last(self, n: int) -> list[T]:
        """Return the last ``n`` elements in chronological order."""
        items = self.to_list()
        if n >= len(items):
            return items
        if n <= 0:
            return []
        return items[len(items) - n:]

    def clear(self) -> None:
        self._storage = [None] * self.capacity
        self._head = 0
        self._count = 0
