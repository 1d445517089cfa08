"""Shared signal-processing helpers for measurement and decoder filters.

Times returned by the edge finders are float64 femtoseconds measured from the
start of the capture, trigger phase included. Analog crossings are
interpolated linearly between the two samples straddling the threshold:

    t = t[k] + (t[k+1] - t[k]) * (threshold - s[k]) / (s[k+1] - s[k])

which for a uniform waveform is ``k*timescale + timescale*frac + trigger_phase``.
Digital edges are the start of the first sample with the new value; no
interpolation is done.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from numba import njit

from wavescope.types.waveform import (
    SparseAnalogWaveform,
    SparseDigitalWaveform,
    SparseProtocolWaveform,
    SparseWaveform,
    Waveform,
)

N_LEVEL_BINS = 100


# ======================================================================================
# edge extraction
# ======================================================================================


def _crossings(w: Waveform, threshold: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Indices k where samples k and k+1 straddle ``threshold``, interpolated times, rising mask."""
    s = np.asarray(w.samples, dtype=np.float64)
    if len(s) < 2:
        empty = np.empty(0)
        return empty.astype(np.int64), empty, empty.astype(bool)
    above = s > threshold
    k = np.nonzero(above[1:] != above[:-1])[0]
    t = w.offsets_fs().astype(np.float64)
    sa = s[k]
    sb = s[k + 1]
    with np.errstate(divide="ignore", invalid="ignore"):
        frac = np.where(sb != sa, (threshold - sa) / (sb - sa), 0.0)
    frac = np.clip(frac, 0.0, 1.0)
    times = t[k] + frac * (t[k + 1] - t[k])
    return k, times, above[k + 1]


def find_zero_crossings(w: Waveform, threshold: float) -> np.ndarray:
    """Times (fs) at which an analog waveform crosses ``threshold`` in either direction."""
    return _crossings(w, threshold)[1]


def find_rising_edges(w: Waveform, threshold: float) -> np.ndarray:
    _, times, rising = _crossings(w, threshold)
    return times[rising]


def find_falling_edges(w: Waveform, threshold: float) -> np.ndarray:
    _, times, rising = _crossings(w, threshold)
    return times[~rising]


def _digital_transitions(w: Waveform) -> tuple[np.ndarray, np.ndarray]:
    s = np.asarray(w.samples, dtype=bool)
    if len(s) < 2:
        return np.empty(0), np.empty(0, dtype=bool)
    k = np.nonzero(s[1:] != s[:-1])[0] + 1
    return w.offsets_fs()[k].astype(np.float64), s[k]


def find_edges(w: Waveform, threshold: Optional[float] = None) -> np.ndarray:
    """Edge times of a digital waveform, or of an analog one at ``threshold``.

    An analog waveform with no threshold given is sliced at its average voltage.
    """
    if w.is_digital:
        return _digital_transitions(w)[0]
    if threshold is None:
        threshold = get_avg_voltage(w)
    return find_zero_crossings(w, threshold)


def find_edges_with_direction(
    w: Waveform, threshold: Optional[float] = None
) -> tuple[np.ndarray, np.ndarray]:
    """Edge times and a mask that is True for rising edges.

    Analog waveforms default to slicing at their average voltage.
    """
    if w.is_digital:
        return _digital_transitions(w)
    if threshold is None:
        threshold = get_avg_voltage(w)
    _, times, rising = _crossings(w, threshold)
    return times, rising


def find_digital_rising_edges(w: Waveform) -> np.ndarray:
    times, vals = _digital_transitions(w)
    return times[vals]


def find_digital_falling_edges(w: Waveform) -> np.ndarray:
    times, vals = _digital_transitions(w)
    return times[~vals]


def interpolate_time(w: Waveform, k: int, threshold: float) -> float:
    """Fraction of the way from sample ``k`` to ``k+1`` at which ``threshold`` is hit.

    Returns 0 if the two samples do not straddle the threshold.
    """
    fa = float(w.samples[k])
    fb = float(w.samples[k + 1])
    if (fa > threshold) == (fb > threshold) or fb == fa:
        return 0.0
    return (threshold - fa) / (fb - fa)


# ======================================================================================
# levels
# ======================================================================================


def get_min_voltage(w: Waveform) -> float:
    return float(np.min(w.samples)) if len(w) else 0.0


def get_max_voltage(w: Waveform) -> float:
    return float(np.max(w.samples)) if len(w) else 0.0


def get_avg_voltage(w: Waveform) -> float:
    return float(np.mean(np.asarray(w.samples, dtype=np.float64))) if len(w) else 0.0


def make_histogram(w: Waveform, vmin: float, vmax: float, nbins: int = N_LEVEL_BINS) -> np.ndarray:
    hist, _ = np.histogram(np.asarray(w.samples, dtype=np.float64), bins=nbins, range=(vmin, vmax))
    return hist


def _level_from_histogram(w: Waveform, lo: int, hi: int) -> float:
    vmin = get_min_voltage(w)
    vmax = get_max_voltage(w)
    delta = vmax - vmin
    if delta == 0:
        return vmin
    hist = make_histogram(w, vmin, vmax)
    idx = lo + int(np.argmax(hist[lo:hi]))
    return (idx + 0.5) / N_LEVEL_BINS * delta + vmin


def get_base_voltage(w: Waveform) -> float:
    """Most probable low level: histogram peak in the bottom quarter of the range."""
    return _level_from_histogram(w, 0, N_LEVEL_BINS // 4)


def get_top_voltage(w: Waveform) -> float:
    """Most probable high level: histogram peak in the top quarter of the range."""
    return _level_from_histogram(w, (N_LEVEL_BINS * 3) // 4, N_LEVEL_BINS)


# ======================================================================================
# sampling
# ======================================================================================


def _sparse_like(data: Waveform) -> SparseWaveform:
    if isinstance(data, SparseProtocolWaveform):
        return SparseProtocolWaveform()
    if data.is_digital:
        return SparseDigitalWaveform()
    return SparseAnalogWaveform()


def _sample_at(data: Waveform, clock_times: np.ndarray, out: Optional[SparseWaveform]) -> SparseWaveform:
    if out is None:
        out = _sparse_like(data)
    out.timescale = 1
    out.trigger_phase = 0
    out.start_timestamp = data.start_timestamp
    out.start_femtoseconds = data.start_femtoseconds

    starts = data.offsets_fs()
    if len(starts) == 0 or len(clock_times) == 0:
        out.resize(0)
        return out
    times = np.round(clock_times).astype(np.int64)
    idx = np.searchsorted(starts, times, side="right") - 1
    keep = idx >= 0
    times = times[keep]
    idx = idx[keep]

    durations = np.zeros(len(times), dtype=np.int64)
    if len(times) > 1:
        durations[:-1] = np.diff(times)
        durations[-1] = durations[-2]
    out.set_arrays(times, durations, data.samples[idx])
    return out


def sample_on_rising_edges(data: Waveform, clock: Waveform, out: Optional[SparseWaveform] = None) -> SparseWaveform:
    """Sample ``data`` at every rising edge of a digital ``clock``.

    Each output sample lasts until the next clock edge. Output timescale is 1 fs.
    """
    return _sample_at(data, find_digital_rising_edges(clock), out)


def sample_on_falling_edges(data: Waveform, clock: Waveform, out: Optional[SparseWaveform] = None) -> SparseWaveform:
    return _sample_at(data, find_digital_falling_edges(clock), out)


def sample_on_any_edges(data: Waveform, clock: Waveform, out: Optional[SparseWaveform] = None) -> SparseWaveform:
    return _sample_at(data, find_edges(clock), out)


# ======================================================================================
# summation
# ======================================================================================


@njit(cache=True)
def kahan_cumsum(values):
    """Running compensated sum; element i is the sum of values[0..i]."""
    out = np.empty(len(values), dtype=np.float64)
    total = 0.0
    c = 0.0
    for i in range(len(values)):
        y = values[i] - c
        t = total + y
        c = (t - total) - y
        total = t
        out[i] = total
    return out


@njit(cache=True)
def kahan_sum(values):
    total = 0.0
    c = 0.0
    for i in range(len(values)):
        y = values[i] - c
        t = total + y
        c = (t - total) - y
        total = t
    return total


# ======================================================================================
# output emission
# ======================================================================================


def durations_to_next(offsets: np.ndarray, last: Optional[int] = None) -> np.ndarray:
    """Duration of each event up to the next one; the final event repeats the previous
    duration unless ``last`` is given."""
    offsets = np.asarray(offsets, dtype=np.int64)
    out = np.zeros(len(offsets), dtype=np.int64)
    if len(offsets) > 1:
        out[:-1] = np.diff(offsets)
        out[-1] = out[-2]
    if len(offsets) and last is not None:
        out[-1] = last
    return out


def emit_sparse(f, i: int, like: Waveform, offsets, durations, values, cls=SparseAnalogWaveform, dtype=None):
    """Fill output ``i`` of filter ``f`` with fs-resolution sparse samples."""
    kwargs = {} if dtype is None else {"dtype": dtype}
    out = f.setup_empty_output(i, like, cls, **kwargs)
    out.timescale = 1
    out.trigger_phase = 0
    out.set_arrays(
        np.asarray(offsets, dtype=np.int64),
        np.asarray(durations, dtype=np.int64),
        values,
    )
    return out
