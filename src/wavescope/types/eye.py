"""Eye pattern: a 2-D histogram of voltage against time within the unit interval."""

from __future__ import annotations

import math

import numpy as np

from wavescope.types.waveform import Waveform


class EyeWaveform(Waveform):
    """Accumulated eye pattern.

    The accumulator holds ``width * height`` int64 hit counts in row-major order
    (``accumulator[y * width + x]``). The X axis spans two unit intervals,
    ``-ui_width .. +ui_width``, so the eye opening sits in the middle column.
    Row ``height/2`` is ``center_voltage``; the full height spans
    ``voltage_range`` volts.

    Parameters
    ----------
    width, height : int
        Histogram size in pixels.
    center_voltage : float
        Voltage at the vertical middle of the histogram.
    voltage_range : float
        Full vertical span in volts.
    ui_width : int
        Unit interval in fs.
    """

    dtype = np.int64

    def __init__(
        self,
        width: int,
        height: int,
        center_voltage: float,
        voltage_range: float,
        ui_width: int,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.width = int(width)
        self.height = int(height)
        self.center_voltage = float(center_voltage)
        self.voltage_range = float(voltage_range)
        self.ui_width = int(ui_width)
        self.total_uis = 0
        self.saturation_level = 1.0
        self.resize(self.width * self.height)
        self.samples[:] = 0

    @property
    def accumulator(self) -> np.ndarray:
        return self.samples

    def accumulator_2d(self) -> np.ndarray:
        """View of the accumulator indexed ``[y, x]``."""
        return self.samples.reshape(self.height, self.width)

    @property
    def fs_per_pixel(self) -> float:
        return 2.0 * self.ui_width / self.width

    @property
    def volts_per_pixel(self) -> float:
        return self.voltage_range / self.height

    def voltage_to_row(self, voltage: float) -> int:
        return int(
            round(
                (voltage - self.center_voltage) * self.height / self.voltage_range
                + self.height / 2
            )
        )

    def row_to_voltage(self, row: float) -> float:
        return (row - self.height / 2) * self.voltage_range / self.height + self.center_voltage

    def time_to_column(self, t_fs: float) -> int:
        return int(round((t_fs + self.ui_width) / self.fs_per_pixel))

    def accumulate(self, voltages, phases_fs):
        """Add hits for samples at the given voltages and intra-UI phases (fs).

        Phases are taken modulo one UI and plotted in both UI halves of the
        histogram. Points outside the vertical range are dropped.
        """
        voltages = np.asarray(voltages, dtype=np.float64)
        phases = np.mod(np.asarray(phases_fs, dtype=np.float64), self.ui_width)
        rows = np.round(
            (voltages - self.center_voltage) * self.height / self.voltage_range
            + self.height / 2
        ).astype(np.int64)
        keep = (rows >= 0) & (rows < self.height)
        rows = rows[keep]
        phases = phases[keep]
        acc = self.accumulator_2d()
        for shift in (-self.ui_width, 0):
            cols = np.floor((phases + shift + self.ui_width) / self.fs_per_pixel).astype(
                np.int64
            )
            ok = (cols >= 0) & (cols < self.width)
            np.add.at(acc, (rows[ok], cols[ok]), 1)
        self.total_uis += int(np.count_nonzero(keep))
        self.mark_samples_modified_from_cpu()

    def normalize(self) -> np.ndarray:
        """Return hit density scaled to [0, 1] with saturation."""
        nmax = int(self.accumulator.max()) if len(self) else 0
        if nmax == 0:
            nmax = 1
        norm = 2.0 / nmax * self.saturation_level
        return np.minimum(1.0, self.accumulator.astype(np.float32) * norm)

    def get_ber_at_point(self, x: int, y: int, xmid: int | None = None, ymid: int | None = None) -> float:
        """Fraction of hits between the eye centre and pixel (x, y).

        A ray is cast from the centre through the point to the histogram edge;
        the result is the share of hits along that ray that lie inside the
        point. The centre itself has zero BER by definition.
        """
        if xmid is None:
            xmid = self.width // 2
        if ymid is None:
            ymid = self.height // 2
        ux = x - xmid
        uy = y - ymid
        length = math.hypot(ux, uy)
        if length < 0.5:
            return 0.0
        ux /= length
        uy /= length

        acc = self.accumulator_2d()
        inner = 0
        i = 0
        while i < length:
            px = int(round(xmid + ux * i))
            py = int(round(ymid + uy * i))
            inner += int(acc[py, px])
            i += 1
        total = inner
        while True:
            px = int(round(xmid + ux * i))
            py = int(round(ymid + uy * i))
            if not (0 <= px < self.width and 0 <= py < self.height):
                break
            total += int(acc[py, px])
            i += 1
        if total == 0:
            return 0.0
        return inner / total
