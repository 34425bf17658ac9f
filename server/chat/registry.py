"""
Connection registry module.

Holds every live connection in an index-stable slot map. Free slots are kept
in a min-heap so admission reuses the lowest free index, and every slot
carries a generation counter so a handle taken before a removal never
resolves to the record that later reuses the index.
"""

import heapq
import socket
from dataclasses import dataclass, field
from typing import Iterator, List, NamedTuple, Optional, Tuple, Union

from common.constants import DEFAULT_CAPACITY, DEFAULT_EXPAND_SIZE, SERVER_IDENT
from common.protocol_definitions import PacketReader


class RegistryError(Exception):
    """Raised when the registry cannot grow to admit another connection."""


class ConnectionHandle(NamedTuple):
    """Opaque reference to a registry slot."""
    index: int
    generation: int


@dataclass(eq=False)
class ConnectionRecord:
    """State of one accepted connection."""
    sock: socket.socket
    address: tuple
    identity: str = ''
    identified: bool = False
    reader: PacketReader = field(default_factory=PacketReader)
    handle: Optional[ConnectionHandle] = None

    def describe(self) -> str:
        """Human readable label for log lines."""
        if self.identified:
            return f"'{self.identity}' {self.address}"
        return f"unidentified {self.address}"


@dataclass
class _Slot:
    record: Optional[ConnectionRecord] = None
    generation: int = 0


class ConnectionRegistry:
    """Growable slot map of connection records."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, expand_size: int = DEFAULT_EXPAND_SIZE,
                 max_capacity: Optional[int] = None):
        if capacity < 0 or expand_size <= 0:
            raise ValueError("capacity must be >= 0 and expand_size > 0")
        self.expand_size = expand_size
        self.max_capacity = max_capacity
        self._slots: List[_Slot] = []
        self._free: List[int] = []
        self._size = 0
        self.expand(capacity)

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    def expand(self, by_count: int):
        """Grow capacity by `by_count` free slots, keeping existing slots in place."""
        if by_count <= 0:
            raise ValueError(f"by_count must be > 0, got {by_count}")
        new_capacity = self.capacity + by_count
        if self.max_capacity is not None and new_capacity > self.max_capacity:
            raise RegistryError(
                f"Cannot grow registry to {new_capacity} slots (limit {self.max_capacity})"
            )
        start = self.capacity
        self._slots.extend(_Slot() for _ in range(by_count))
        for index in range(start, new_capacity):
            heapq.heappush(self._free, index)

    def add(self, record: ConnectionRecord) -> ConnectionHandle:
        """Store a record in the lowest free slot, growing if none is free."""
        if not self._free:
            self.expand(self.expand_size)
        index = heapq.heappop(self._free)
        slot = self._slots[index]
        slot.record = record
        record.handle = ConnectionHandle(index, slot.generation)
        self._size += 1
        return record.handle

    def _resolve(self, key: Union[ConnectionHandle, int]) -> Optional[int]:
        if isinstance(key, ConnectionHandle):
            index, generation = key
        else:
            index, generation = key, None
        if not 0 <= index < self.capacity:
            return None
        slot = self._slots[index]
        if slot.record is None:
            return None
        if generation is not None and slot.generation != generation:
            return None
        return index

    def get(self, key: Union[ConnectionHandle, int]) -> Optional[ConnectionRecord]:
        """Return the record for a handle or raw index, or None if not found."""
        index = self._resolve(key)
        return None if index is None else self._slots[index].record

    def remove(self, key: Union[ConnectionHandle, int]) -> ConnectionRecord:
        """Free a slot and return the record it held."""
        index = self._resolve(key)
        if index is None:
            raise KeyError(key)
        slot = self._slots[index]
        record = slot.record
        slot.record = None
        slot.generation += 1
        heapq.heappush(self._free, index)
        self._size -= 1
        record.handle = None
        return record

    def remove_by_record(self, record: ConnectionRecord) -> ConnectionRecord:
        """Free the slot holding this exact record object."""
        if record.handle is None or self.get(record.handle) is not record:
            raise KeyError(record.handle)
        return self.remove(record.handle)

    def find_by_identity(self, name: str) -> Tuple[bool, Optional[ConnectionRecord]]:
        """
        Look up an identified connection by name.

        The reserved server identity is always reported as found, without a
        record, so no client can claim it or be addressed by it.
        """
        for _, record in self:
            if record.identified and record.identity == name:
                return True, record
        if name == SERVER_IDENT:
            return True, None
        return False, None

    def __iter__(self) -> Iterator[Tuple[ConnectionHandle, ConnectionRecord]]:
        """Yield occupied (handle, record) pairs in index order."""
        for index, slot in enumerate(self._slots):
            if slot.record is not None:
                yield ConnectionHandle(index, slot.generation), slot.record

    def records(self) -> List[ConnectionRecord]:
        """Snapshot of occupied records in index order."""
        return [record for _, record in self]
