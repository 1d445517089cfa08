"""S-parameter vectors and two-port networks.

An ``SParameterVector`` is an ordered set of ``(frequency_hz, amplitude,
phase_rad)`` points, amplitude linear. It converts to and from the pair of
streams a filter graph carries: magnitude in dB and angle in degrees, both as
sparse analog waveforms whose offsets are frequencies in Hz (timescale 1).

``SParameters`` groups the four vectors of a two-port network and reads and
writes Touchstone ``.s2p`` files.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from loguru import logger

from wavescope.types.errors import ProtocolError
from wavescope.types.waveform import SparseAnalogWaveform

SPARAM_NAMES = ("S11", "S12", "S21", "S22")


@dataclass(frozen=True)
class SParameterPoint:
    frequency: float
    amplitude: float
    phase: float


class SParameterVector:
    def __init__(self, frequencies=(), amplitudes=(), phases=()):
        self.frequencies = np.asarray(frequencies, dtype=np.float64)
        self.amplitudes = np.asarray(amplitudes, dtype=np.float64)
        self.phases = np.asarray(phases, dtype=np.float64)
        if not (len(self.frequencies) == len(self.amplitudes) == len(self.phases)):
            raise ValueError("frequency, amplitude and phase arrays differ in length")

    def __len__(self):
        return len(self.frequencies)

    def __getitem__(self, i) -> SParameterPoint:
        return SParameterPoint(
            float(self.frequencies[i]), float(self.amplitudes[i]), float(self.phases[i])
        )

    @classmethod
    def from_complex(cls, frequencies, values) -> SParameterVector:
        values = np.asarray(values, dtype=np.complex128)
        return cls(frequencies, np.abs(values), np.angle(values))

    def to_complex(self) -> np.ndarray:
        return self.amplitudes * np.exp(1j * self.phases)

    def interpolate_point(self, frequency: float) -> SParameterPoint:
        """Linear interpolation of amplitude and phase at ``frequency``.

        Below the first point the first amplitude is returned with zero phase;
        above the last point the amplitude is zero. Phase interpolation takes
        the short way around the circle.
        """
        n = len(self)
        if n == 0 or frequency < self.frequencies[0]:
            amp = float(self.amplitudes[0]) if n else 0.0
            return SParameterPoint(frequency, amp, 0.0)
        if frequency > self.frequencies[-1]:
            return SParameterPoint(frequency, 0.0, 0.0)

        hi = int(np.searchsorted(self.frequencies, frequency, side="left"))
        if self.frequencies[hi] == frequency:
            return SParameterPoint(frequency, float(self.amplitudes[hi]), float(self.phases[hi]))
        lo = hi - 1
        flo = self.frequencies[lo]
        frac = (frequency - flo) / (self.frequencies[hi] - flo)

        amp = self.amplitudes[lo] + frac * (self.amplitudes[hi] - self.amplitudes[lo])
        dphase = self.phases[hi] - self.phases[lo]
        if dphase > math.pi:
            dphase -= 2 * math.pi
        elif dphase < -math.pi:
            dphase += 2 * math.pi
        phase = self.phases[lo] + frac * dphase
        phase = (phase + math.pi) % (2 * math.pi) - math.pi
        return SParameterPoint(frequency, float(amp), float(phase))

    def resample(self, frequencies) -> SParameterVector:
        """Interpolate this vector onto another frequency grid."""
        frequencies = np.asarray(frequencies, dtype=np.float64)
        if len(frequencies) == len(self) and np.array_equal(frequencies, self.frequencies):
            return self
        pts = [self.interpolate_point(f) for f in frequencies]
        return SParameterVector(
            frequencies, [p.amplitude for p in pts], [p.phase for p in pts]
        )

    def to_waveforms(
        self,
        mag: SparseAnalogWaveform | None = None,
        angle: SparseAnalogWaveform | None = None,
    ) -> tuple[SparseAnalogWaveform, SparseAnalogWaveform]:
        """Magnitude (dB) and angle (degrees) waveforms over the frequency grid.

        Existing waveforms passed in are refilled so their buffers are reused.
        """
        mag = mag if mag is not None else SparseAnalogWaveform(dtype=np.float64)
        angle = angle if angle is not None else SparseAnalogWaveform(dtype=np.float64)
        offsets = np.round(self.frequencies).astype(np.int64)
        durations = np.zeros(len(self), dtype=np.int64)
        if len(self) > 1:
            durations[:-1] = np.diff(offsets)
            durations[-1] = durations[-2]
        with np.errstate(divide="ignore"):
            db = 20 * np.log10(self.amplitudes)
        for w, vals in ((mag, db), (angle, np.degrees(self.phases))):
            w.timescale = 1
            w.trigger_phase = 0
            w.set_arrays(offsets, durations, vals)
        return mag, angle

    @classmethod
    def from_waveforms(cls, mag, angle) -> SParameterVector:
        n = min(len(mag), len(angle))
        freqs = mag.offsets_fs()[:n].astype(np.float64)
        amps = np.power(10.0, mag.samples[:n].astype(np.float64) / 20)
        phases = np.radians(angle.samples[:n].astype(np.float64))
        return cls(freqs, amps, phases)


class SParameters:
    """A two-port network: one SParameterVector per S-parameter."""

    def __init__(self, params: dict[str, SParameterVector] | None = None):
        self.params: dict[str, SParameterVector] = dict(params or {})

    def __getitem__(self, name: str) -> SParameterVector:
        return self.params[name]

    def __setitem__(self, name: str, vec: SParameterVector):
        self.params[name] = vec

    @property
    def frequencies(self) -> np.ndarray:
        return self.params["S11"].frequencies

    @classmethod
    def identity(cls, frequencies) -> SParameters:
        freqs = np.asarray(frequencies, dtype=np.float64)
        zero = np.zeros(len(freqs))
        one = np.ones(len(freqs))
        return cls(
            {
                "S11": SParameterVector(freqs, zero, zero),
                "S12": SParameterVector(freqs, one, zero),
                "S21": SParameterVector(freqs, one, zero),
                "S22": SParameterVector(freqs, zero, zero),
            }
        )

    @classmethod
    def from_complex(cls, frequencies, s11, s12, s21, s22) -> SParameters:
        return cls(
            {
                name: SParameterVector.from_complex(frequencies, v)
                for name, v in zip(SPARAM_NAMES, (s11, s12, s21, s22))
            }
        )

    def to_complex(self, frequencies=None) -> tuple[np.ndarray, ...]:
        if frequencies is None:
            frequencies = self.frequencies
        return tuple(self.params[n].resample(frequencies).to_complex() for n in SPARAM_NAMES)

    def save_touchstone(self, path, reference_impedance: float = 50.0):
        """Write a Touchstone v1 ``.s2p`` file (Hz, magnitude/angle)."""
        freqs = self.frequencies
        cols = [self.params[n].resample(freqs) for n in ("S11", "S21", "S12", "S22")]
        lines = [f"# HZ S MA R {reference_impedance:g}"]
        for i, f in enumerate(freqs):
            fields = [f"{f:.6f}"]
            for v in cols:
                fields.append(f"{v.amplitudes[i]:.9e}")
                fields.append(f"{math.degrees(v.phases[i]):.9e}")
            lines.append(" ".join(fields))
        Path(path).write_text("\n".join(lines) + "\n")
        logger.debug("Wrote {} points to {}", len(freqs), path)

    @classmethod
    def load_touchstone(cls, path) -> SParameters:
        """Read a two-port Touchstone v1 file in MA, DB or RI format."""
        unit_scale = {"HZ": 1.0, "KHZ": 1e3, "MHZ": 1e6, "GHZ": 1e9}
        scale = 1e9
        fmt = "MA"
        rows = []
        for lineno, raw in enumerate(Path(path).read_text().splitlines(), 1):
            line = raw.split("!", 1)[0].strip()
            if not line:
                continue
            if line.startswith("#"):
                for tok in line[1:].upper().split():
                    if tok in unit_scale:
                        scale = unit_scale[tok]
                    elif tok in ("MA", "DB", "RI"):
                        fmt = tok
                continue
            try:
                rows.append([float(x) for x in line.split()])
            except ValueError as e:
                raise ProtocolError(f"Bad Touchstone data on line {lineno}", raw) from e

        data = np.array([r for r in rows if len(r) == 9], dtype=np.float64)
        if len(data) == 0:
            raise ProtocolError(f"No two-port data found in {path}")
        freqs = data[:, 0] * scale
        out = {}
        for k, name in enumerate(("S11", "S21", "S12", "S22")):
            a = data[:, 1 + 2 * k]
            b = data[:, 2 + 2 * k]
            if fmt == "RI":
                out[name] = SParameterVector.from_complex(freqs, a + 1j * b)
            elif fmt == "DB":
                out[name] = SParameterVector(freqs, np.power(10.0, a / 20), np.radians(b))
            else:
                out[name] = SParameterVector(freqs, a, np.radians(b))
        return cls(out)
