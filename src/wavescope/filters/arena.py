"""Waveform arena: output slots addressed by (channel id, stream index).

Each slot keeps the producer's data object across refreshes (so buffers are
reused) and a generation counter. Consumers hold a ``WaveformHandle``; once the
producer publishes again or clears the slot, the handle's generation no longer
matches and resolving it yields None instead of data that is being rewritten.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Optional

SlotKey = tuple[int, int]


@dataclass(frozen=True)
class WaveformHandle:
    key: SlotKey
    generation: int


@dataclass
class _Slot:
    data: Any = None
    generation: int = 0
    valid: bool = False


class WaveformArena:
    def __init__(self):
        self._slots: dict[SlotKey, _Slot] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._slots)

    def publish(self, key: SlotKey, data: Any) -> WaveformHandle:
        with self._lock:
            slot = self._slots.setdefault(key, _Slot())
            slot.data = data
            slot.valid = data is not None
            slot.generation += 1
            return WaveformHandle(key, slot.generation)

    def invalidate(self, key: SlotKey):
        """Mark the slot absent, keeping its buffer for later reuse."""
        with self._lock:
            slot = self._slots.get(key)
            if slot is not None:
                slot.valid = False
                slot.generation += 1

    def get(self, key: SlotKey) -> Any:
        with self._lock:
            slot = self._slots.get(key)
            return slot.data if slot is not None and slot.valid else None

    def peek(self, key: SlotKey) -> Any:
        """Data in the slot even if invalidated (for buffer reuse by the producer)."""
        with self._lock:
            slot = self._slots.get(key)
            return slot.data if slot is not None else None

    def handle(self, key: SlotKey) -> Optional[WaveformHandle]:
        with self._lock:
            slot = self._slots.get(key)
            if slot is None or not slot.valid:
                return None
            return WaveformHandle(key, slot.generation)

    def resolve(self, handle: WaveformHandle) -> Any:
        with self._lock:
            slot = self._slots.get(handle.key)
            if slot is None or not slot.valid or slot.generation != handle.generation:
                return None
            return slot.data

    def generation(self, key: SlotKey) -> int:
        with self._lock:
            slot = self._slots.get(key)
            return slot.generation if slot is not None else 0

    def take(self, channel_id: int) -> dict[SlotKey, _Slot]:
        """Remove and return every slot belonging to a channel."""
        with self._lock:
            keys = [k for k in self._slots if k[0] == channel_id]
            return {k: self._slots.pop(k) for k in keys}

    def adopt(self, slots: dict[SlotKey, _Slot]):
        with self._lock:
            self._slots.update(slots)
