"""Full width at half maximum of each peak."""

import numpy as np
from scipy.signal import find_peaks

from wavescope.filters.filter import (
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    filter_kind,
)
from wavescope.filters.helpers import durations_to_next, emit_sparse
from wavescope.types.units import StreamType, Unit


def half_max_bounds(samples: np.ndarray, peaks: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """First and one-past-last sample around each peak that stay above half its height.

    Heights are measured from the waveform minimum.
    """
    norm = samples - np.min(samples)
    first = np.empty(len(peaks), dtype=np.int64)
    stop = np.empty(len(peaks), dtype=np.int64)
    for n, p in enumerate(peaks):
        half = norm[p] / 2
        outside = np.nonzero(norm <= half)[0]
        j = np.searchsorted(outside, p)
        first[n] = outside[j - 1] + 1 if j > 0 else 0
        stop[n] = outside[j] if j < len(outside) else len(norm)
    return first, stop


def half_max_widths(w, peaks: np.ndarray) -> np.ndarray:
    """Time in fs from the start of the first above-half sample to the end of the last.

    Works on uniform and sparse waveforms alike; gaps between sparse samples
    inside the peak count towards its width.
    """
    if len(peaks) == 0:
        return np.empty(0)
    first, stop = half_max_bounds(np.asarray(w.samples, dtype=np.float64), peaks)
    starts = w.offsets_fs()
    ends = starts + w.durations_fs()
    return (ends[stop - 1] - starts[first]).astype(np.float64)


@filter_kind(
    "FWHM",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=[
        OutputSpec("FWHM", Unit.FS, StreamType.ANALOG),
        OutputSpec("Amplitude", Unit.VOLTS, StreamType.ANALOG),
        OutputSpec("Average FWHM", Unit.FS, StreamType.ANALOG_SCALAR),
    ],
    parameters=[ParameterSpec("Peak Threshold", ParameterType.FLOAT, 0.0, unit=Unit.VOLTS)],
)
def refresh_fwhm(f):
    """Width and amplitude of every peak higher than the peak threshold."""
    din = f.require_input(0)
    s = np.asarray(din.samples, dtype=np.float64)
    if len(s) == 0:
        peaks = np.empty(0, dtype=np.int64)
    else:
        peaks, _ = find_peaks(s, height=f.param("Peak Threshold"))
    widths = half_max_widths(din, peaks)
    offsets = din.offsets_fs()[peaks]
    durations = durations_to_next(offsets)
    emit_sparse(f, 0, din, offsets, durations, widths, dtype=np.float64)
    emit_sparse(f, 1, din, offsets, durations, s[peaks])
    f.set_scalar(2, float(np.mean(widths)) if len(widths) else None)
