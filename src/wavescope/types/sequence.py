"""Acquisition results and the queue that hands them to consumers."""

from __future__ import annotations

import threading
from collections import deque
from typing import Iterator, Optional

from wavescope.types.waveform import Waveform


class SequenceSet(dict[int, Waveform]):
    """All waveforms captured against one trigger, keyed by channel index."""

    def __repr__(self):
        chans = ", ".join(f"{k}: {len(w)} samples" for k, w in self.items())
        return f"SequenceSet({{{chans}}})"


class PendingWaveforms:
    """FIFO of SequenceSets shared between the acquisition and graph threads.

    Guarded by its own lock, independent of the transport and config-cache
    locks. Consumers either ``pop`` (non-blocking) or ``wait`` on the condition.
    """

    def __init__(self, max_depth: int = 0):
        self.max_depth = max_depth
        self._queue: deque[SequenceSet] = deque()
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self.dropped = 0

    def push(self, seq: SequenceSet):
        with self._cond:
            if self.max_depth and len(self._queue) >= self.max_depth:
                self._queue.popleft()
                self.dropped += 1
            self._queue.append(seq)
            self._cond.notify_all()

    def pop(self) -> Optional[SequenceSet]:
        with self._lock:
            if not self._queue:
                return None
            return self._queue.popleft()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until at least one SequenceSet is queued. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: len(self._queue) > 0, timeout=timeout)

    def peek(self) -> Optional[SequenceSet]:
        with self._lock:
            return self._queue[0] if self._queue else None

    def clear(self):
        with self._lock:
            self._queue.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def __iter__(self) -> Iterator[SequenceSet]:
        with self._lock:
            return iter(list(self._queue))
