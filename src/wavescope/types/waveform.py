"""Waveform containers.

Waveforms come in four sample layouts, plus one for decoded protocol symbols:

| Class | Samples | Timing |
|---|---|---|
| UniformAnalogWaveform | float32 | sample k starts at ``k*timescale + trigger_phase`` |
| SparseAnalogWaveform | float32 | explicit ``offsets``/``durations`` in timescale units |
| UniformDigitalWaveform | bool | as uniform analog |
| SparseDigitalWaveform | bool | as sparse analog |
| SparseProtocolWaveform | object | as sparse analog |

All time values are integer femtoseconds. The absolute start of a capture is
split into ``start_timestamp`` (whole epoch seconds) and ``start_femtoseconds``
(sub-second remainder) so that no precision is lost to float rounding.

Sample storage is a numpy buffer with spare capacity. ``resize`` only
reallocates when the requested length exceeds the capacity, and grows it
geometrically, so a producer that refreshes the same waveform object with a
constant (or slowly growing) length performs O(log N) allocations in total.
``samples``, ``offsets`` and ``durations`` are views into those buffers and are
only valid until the next ``resize``.

Examples
--------
```python
w = SparseAnalogWaveform(timescale=1)
w.append(offset=0, duration=10, value=1.5)
w.append(offset=10, duration=5, value=2.0)
w.check_invariants()
```
"""

from __future__ import annotations

from typing import Any, Iterator

import numpy as np

from wavescope.types.errors import WaveformInvariantError
from wavescope.util.defaults import FS_PER_SECOND

_MIN_CAPACITY = 16


class Waveform:
    """Base container: timing metadata, dirty flags and a resizable sample buffer."""

    dtype: Any = np.float32
    is_sparse: bool = False
    is_digital: bool = False

    def __init__(
        self,
        timescale: int = 1,
        start_timestamp: int = 0,
        start_femtoseconds: int = 0,
        trigger_phase: int = 0,
        dtype=None,
    ):
        if dtype is not None:
            self.dtype = dtype
        self.timescale = int(timescale)
        self.start_timestamp = int(start_timestamp)
        self.start_femtoseconds = int(start_femtoseconds)
        self.trigger_phase = int(trigger_phase)

        self.samples_modified_from_cpu = False
        self.timestamps_modified_from_cpu = False

        self.allocations = 0
        self._len = 0
        self._samples = np.empty(0, dtype=self.dtype)

    # ------------------------------------------------------------------ storage

    def __len__(self) -> int:
        return self._len

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(len={self._len}, "
            f"timescale={self.timescale}, trigger_phase={self.trigger_phase})"
        )

    @property
    def capacity(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> np.ndarray:
        return self._samples[: self._len]

    @samples.setter
    def samples(self, values):
        values = np.asarray(values)
        self.resize(len(values))
        self._samples[: self._len] = values
        self.samples_modified_from_cpu = True

    def _grow(self, buf: np.ndarray, capacity: int) -> np.ndarray:
        new = np.empty(capacity, dtype=buf.dtype)
        new[: self._len] = buf[: self._len]
        return new

    def _reallocate(self, capacity: int):
        self._samples = self._grow(self._samples, capacity)

    def reserve(self, n: int):
        """Ensure capacity for at least ``n`` samples without changing the length."""
        if n > self.capacity:
            capacity = max(n, 2 * self.capacity, _MIN_CAPACITY)
            self._reallocate(capacity)
            self.allocations += 1

    def resize(self, n: int):
        n = int(n)
        if n < 0:
            raise ValueError(f"Cannot resize waveform to negative length {n}")
        self.reserve(n)
        self._len = n

    def clear(self):
        self.resize(0)

    # ----------------------------------------------------------------- timing

    def copy_timestamps(self, other: Waveform):
        """Copy start time, phase and timescale from another waveform."""
        self.timescale = other.timescale
        self.start_timestamp = other.start_timestamp
        self.start_femtoseconds = other.start_femtoseconds
        self.trigger_phase = other.trigger_phase
        self.timestamps_modified_from_cpu = True

    def shift_start(self, delta_fs: int):
        """Move the capture start by ``delta_fs``, carrying across second boundaries."""
        total = self.start_femtoseconds + int(delta_fs)
        self.start_timestamp += total // FS_PER_SECOND
        self.start_femtoseconds = total % FS_PER_SECOND

    def absolute_time_fs(self, offset_fs: int = 0) -> int:
        """Absolute epoch time of ``offset_fs`` into the capture, as integer fs."""
        return (
            self.start_timestamp * FS_PER_SECOND
            + self.start_femtoseconds
            + int(offset_fs)
        )

    def offsets_fs(self) -> np.ndarray:
        """Start time of every sample in fs, trigger phase included."""
        return np.arange(self._len, dtype=np.int64) * self.timescale + self.trigger_phase

    def durations_fs(self) -> np.ndarray:
        return np.full(self._len, self.timescale, dtype=np.int64)

    # ------------------------------------------------------------ dirty flags

    def mark_modified_from_cpu(self):
        self.samples_modified_from_cpu = True
        self.timestamps_modified_from_cpu = True

    def mark_samples_modified_from_cpu(self):
        self.samples_modified_from_cpu = True

    def mark_timestamps_modified_from_cpu(self):
        self.timestamps_modified_from_cpu = True

    def prepare_for_gpu_access(self):
        # no GPU consumer exists; this is where a device copy would be made
        self.samples_modified_from_cpu = False
        self.timestamps_modified_from_cpu = False


class UniformWaveform(Waveform):
    """Evenly spaced samples, one per ``timescale``."""


class SparseWaveform(Waveform):
    """Samples with explicit per-sample offsets and durations."""

    is_sparse = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._offsets = np.empty(0, dtype=np.int64)
        self._durations = np.empty(0, dtype=np.int64)

    @property
    def offsets(self) -> np.ndarray:
        return self._offsets[: self._len]

    @offsets.setter
    def offsets(self, values):
        values = np.asarray(values, dtype=np.int64)
        self.resize(len(values))
        self._offsets[: self._len] = values
        self.timestamps_modified_from_cpu = True

    @property
    def durations(self) -> np.ndarray:
        return self._durations[: self._len]

    @durations.setter
    def durations(self, values):
        values = np.asarray(values, dtype=np.int64)
        self.resize(len(values))
        self._durations[: self._len] = values
        self.timestamps_modified_from_cpu = True

    def _reallocate(self, capacity: int):
        super()._reallocate(capacity)
        self._offsets = self._grow(self._offsets, capacity)
        self._durations = self._grow(self._durations, capacity)

    def append(self, offset: int, duration: int, value):
        n = self._len
        self.resize(n + 1)
        self._offsets[n] = offset
        self._durations[n] = duration
        self._samples[n] = value

    def set_arrays(self, offsets, durations, samples):
        """Replace the whole content from three equal-length sequences."""
        samples = np.asarray(samples, dtype=self.dtype)
        if not (len(offsets) == len(durations) == len(samples)):
            raise WaveformInvariantError(
                f"Length mismatch: {len(offsets)} offsets, {len(durations)} "
                f"durations, {len(samples)} samples"
            )
        self.resize(len(samples))
        self._offsets[: self._len] = offsets
        self._durations[: self._len] = durations
        self._samples[: self._len] = samples
        self.mark_modified_from_cpu()

    def copy_timestamps(self, other: Waveform):
        super().copy_timestamps(other)
        if other.is_sparse:
            self.resize(len(other))
            self._offsets[: self._len] = other.offsets
            self._durations[: self._len] = other.durations
        else:
            self.resize(len(other))
            self._offsets[: self._len] = np.arange(self._len, dtype=np.int64)
            self._durations[: self._len] = 1

    def offsets_fs(self) -> np.ndarray:
        return self.offsets * self.timescale + self.trigger_phase

    def durations_fs(self) -> np.ndarray:
        return self.durations * self.timescale

    def check_invariants(self):
        """Raise WaveformInvariantError unless samples are ordered and non-overlapping."""
        if not (len(self._offsets) >= self._len and len(self._durations) >= self._len):
            raise WaveformInvariantError("offset/duration buffers shorter than samples")
        if self._len < 2:
            return
        ends = self.offsets[:-1] + self.durations[:-1]
        bad = np.nonzero(self.offsets[1:] < ends)[0]
        if len(bad):
            i = int(bad[0])
            raise WaveformInvariantError(
                f"Sample {i + 1} at offset {self.offsets[i + 1]} overlaps sample {i} "
                f"ending at {ends[i]}"
            )


class AnalogMixin:
    dtype = np.float32


class DigitalMixin:
    dtype = np.bool_
    is_digital = True


class UniformAnalogWaveform(AnalogMixin, UniformWaveform):
    pass


class SparseAnalogWaveform(AnalogMixin, SparseWaveform):
    pass


class UniformDigitalWaveform(DigitalMixin, UniformWaveform):
    def packed(self) -> np.ndarray:
        """Samples packed eight to a byte, MSB first."""
        return np.packbits(self.samples)


class SparseDigitalWaveform(DigitalMixin, SparseWaveform):
    pass


class SparseProtocolWaveform(SparseWaveform):
    """Sparse waveform of decoded symbols or frame segments (arbitrary objects)."""

    dtype = object

    def __iter__(self) -> Iterator[tuple[int, int, Any]]:
        for i in range(self._len):
            yield int(self._offsets[i]), int(self._durations[i]), self._samples[i]


def get_offset(w: Waveform, i: int) -> int:
    return int(w.offsets[i]) if w.is_sparse else i


def get_duration(w: Waveform, i: int) -> int:
    return int(w.durations[i]) if w.is_sparse else 1


def get_offset_scaled(w: Waveform, i: int) -> int:
    """Start of sample ``i`` in fs, including the trigger phase."""
    return get_offset(w, i) * w.timescale + w.trigger_phase


def get_duration_scaled(w: Waveform, i: int) -> int:
    return get_duration(w, i) * w.timescale


def waveform_end_fs(w: Waveform) -> int:
    """Time in fs just past the last sample."""
    if len(w) == 0:
        return w.trigger_phase
    return get_offset_scaled(w, len(w) - 1) + get_duration_scaled(w, len(w) - 1)
