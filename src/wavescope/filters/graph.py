"""Filter graph scheduling.

The graph is a DAG: ``Filter.set_input`` refuses any edge that would close a
cycle, so a topological order always exists. When instrument channels receive a
new SequenceSet (or a caller marks channels as changed), ``propagate`` visits
every filter downstream of the change in topological order:

- a filter whose inputs are all wired, valid and carrying data is refreshed
  exactly once;
- any other filter has its outputs cleared, so consumers see "no data" rather
  than a stale waveform.

``FilterGraphRunner`` is the consumer side of an instrument session: an asyncio
task that waits for SequenceSets on the session's pending queue and feeds them
through the graph.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from loguru import logger

from wavescope.filters.arena import WaveformArena
from wavescope.filters.channel import Channel
from wavescope.filters.filter import Filter
from wavescope.types.errors import FilterValidationError
from wavescope.types.sequence import SequenceSet

if TYPE_CHECKING:
    from wavescope.device.oscilloscope import Oscilloscope


class FilterGraph:
    def __init__(self):
        self.arena = WaveformArena()
        self.filters: list[Filter] = []
        self.instruments: list[Oscilloscope] = []

    def __repr__(self):
        return f"FilterGraph({len(self.instruments)} instruments, {len(self.filters)} filters)"

    # ------------------------------------------------------------- membership

    def add_instrument(self, scope: Oscilloscope):
        if scope in self.instruments:
            return
        for ch in scope.channels:
            ch.attach_arena(self.arena)
        self.instruments.append(scope)

    def add(self, *filters: Filter) -> Filter:
        for f in filters:
            if f not in self.filters:
                f.attach_arena(self.arena)
                self.filters.append(f)
        return filters[-1]

    def remove(self, f: Filter):
        """Remove a filter and disconnect everything fed by it."""
        if f not in self.filters:
            return
        self.filters.remove(f)
        for other in self.filters:
            for i, s in enumerate(other.inputs):
                if s is not None and s.channel is f:
                    other.set_input(i, None)
        f.clear_outputs()

    def find(self, name: str) -> Optional[Channel]:
        for f in self.filters:
            if f.name == name:
                return f
        for scope in self.instruments:
            for ch in scope.channels:
                if ch.name == name:
                    return ch
        return None

    # -------------------------------------------------------------- ordering

    def consumers(self, ch: Channel) -> list[Filter]:
        return [f for f in self.filters if any(s is not None and s.channel is ch for s in f.inputs)]

    def downstream(self, changed: Iterable[Channel]) -> set[Filter]:
        out: set[Filter] = set()
        todo = deque(changed)
        while todo:
            ch = todo.popleft()
            for f in self.consumers(ch):
                if f not in out:
                    out.add(f)
                    todo.append(f)
        return out

    def topological_order(self, subset: Optional[Iterable[Filter]] = None) -> list[Filter]:
        nodes = list(self.filters if subset is None else subset)
        members = set(nodes)
        indegree = {f: 0 for f in nodes}
        for f in nodes:
            for up in f.upstream():
                if up in members:
                    indegree[f] += 1
        # keep insertion order among ready nodes for deterministic refresh order
        ready = deque(f for f in self.filters if f in members and indegree[f] == 0)
        order = []
        while ready:
            f = ready.popleft()
            order.append(f)
            for g in self.consumers(f):
                if g in members:
                    indegree[g] -= 1
                    if indegree[g] == 0:
                        ready.append(g)
        if len(order) != len(nodes):
            raise FilterValidationError("Filter graph contains a cycle")
        return order

    # ------------------------------------------------------------ evaluation

    def propagate(self, changed: Optional[Iterable[Channel]] = None) -> list[Filter]:
        """Refresh everything downstream of ``changed`` (or the whole graph)."""
        subset = None if changed is None else self.downstream(changed)
        order = self.topological_order(subset)
        for f in order:
            if not f.inputs_ready():
                logger.trace("{}: inputs not ready, output absent", f.name)
                f.clear_outputs()
                continue
            try:
                f.refresh()
            except Exception:
                logger.exception("Error refreshing filter {}", f.name)
                f.clear_outputs()
        return order

    def apply_sequence_set(self, scope: Oscilloscope, seq: SequenceSet) -> list[Filter]:
        """Publish one acquisition on the scope's channels and propagate it."""
        self.add_instrument(scope)
        changed = []
        for ch in scope.channels:
            w = seq.get(ch.index)
            if w is None:
                ch.clear_data(0)
            else:
                ch.set_data(0, w)
            changed.append(ch)
        return self.propagate(changed)


class FilterGraphRunner:
    """Async consumer: pops SequenceSets from a session and runs the graph.

    Parameters
    ----------
    graph : FilterGraph
    scope : Oscilloscope
        Session whose ``pending`` queue is drained.
    wait_timeout : float
        Seconds to block on the queue's condition before checking for stop.
    on_update : callable, optional
        Called with the SequenceSet after each propagation.
    """

    def __init__(
        self,
        graph: FilterGraph,
        scope: Oscilloscope,
        wait_timeout: float = 0.1,
        on_update: Optional[Callable[[SequenceSet], None]] = None,
    ):
        self.graph = graph
        self.scope = scope
        self.wait_timeout = wait_timeout
        self.on_update = on_update
        self.processed = 0
        self._stop_event = asyncio.Event()
        graph.add_instrument(scope)

    def stop(self):
        self._stop_event.set()

    def process_pending(self) -> int:
        """Drain everything currently queued, oldest first."""
        n = 0
        while (seq := self.scope.pending.pop()) is not None:
            self.graph.apply_sequence_set(self.scope, seq)
            self.processed += 1
            n += 1
            if self.on_update is not None:
                self.on_update(seq)
        return n

    async def run(self):
        self._stop_event.clear()
        while not self._stop_event.is_set():
            ready = await asyncio.to_thread(self.scope.pending.wait, self.wait_timeout)
            if ready:
                await asyncio.to_thread(self.process_pending)
