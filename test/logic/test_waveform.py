"""Tests for the waveform containers and acquisition records."""

import numpy as np
import pytest

from wavescope.types import (
    ConfigurationError,
    EdgeTrigger,
    PendingWaveforms,
    SequenceSet,
    SessionConfig,
    SparseAnalogWaveform,
    SparseDigitalWaveform,
    SparseProtocolWaveform,
    Trigger,
    UartParity,
    UartTrigger,
    UniformAnalogWaveform,
    UniformDigitalWaveform,
    WaveformInvariantError,
    get_duration_scaled,
    get_offset_scaled,
    waveform_end_fs,
)
from wavescope.util import FS_PER_SECOND


class TestUniformWaveform:
    def test_samples_and_dtype(self):
        w = UniformAnalogWaveform(timescale=1_000_000)
        w.samples = [0.0, 0.5, 1.0]
        assert len(w) == 3
        assert w.samples.dtype == np.float32
        assert w.samples_modified_from_cpu
        np.testing.assert_allclose(w.samples, [0.0, 0.5, 1.0])

    def test_offsets_include_trigger_phase(self):
        w = UniformAnalogWaveform(timescale=1000, trigger_phase=250)
        w.resize(4)
        np.testing.assert_array_equal(w.offsets_fs(), [250, 1250, 2250, 3250])
        np.testing.assert_array_equal(w.durations_fs(), [1000] * 4)
        assert get_offset_scaled(w, 2) == 2250
        assert get_duration_scaled(w, 2) == 1000
        assert waveform_end_fs(w) == 4250

    def test_empty_end_is_trigger_phase(self):
        w = UniformAnalogWaveform(timescale=1000, trigger_phase=7)
        assert waveform_end_fs(w) == 7

    def test_resize_reuses_capacity(self):
        w = UniformAnalogWaveform()
        for _ in range(1000):
            w.resize(5000)
        assert w.allocations == 1
        w.resize(10)
        w.resize(5000)
        assert w.allocations == 1

    def test_growth_is_geometric(self):
        w = UniformAnalogWaveform()
        for n in range(1, 10_001):
            w.resize(n)
        # doubling from the minimum capacity of 16
        assert w.allocations <= 11

    def test_negative_resize(self):
        w = UniformAnalogWaveform()
        with pytest.raises(ValueError):
            w.resize(-1)

    def test_digital_packing(self):
        w = UniformDigitalWaveform()
        w.samples = [True, False, True, False, False, False, False, True]
        assert w.samples.dtype == np.bool_
        assert w.packed().tolist() == [0b10100001]


class TestTimestamps:
    def test_shift_start_carries_seconds(self):
        w = UniformAnalogWaveform(start_timestamp=10, start_femtoseconds=FS_PER_SECOND - 5)
        w.shift_start(10)
        assert w.start_timestamp == 11
        assert w.start_femtoseconds == 5

    def test_shift_start_backwards(self):
        w = UniformAnalogWaveform(start_timestamp=10, start_femtoseconds=5)
        w.shift_start(-10)
        assert w.start_timestamp == 9
        assert w.start_femtoseconds == FS_PER_SECOND - 5

    def test_absolute_time(self):
        w = UniformAnalogWaveform(start_timestamp=2, start_femtoseconds=3)
        assert w.absolute_time_fs(4) == 2 * FS_PER_SECOND + 7

    def test_copy_timestamps(self):
        src = UniformAnalogWaveform(
            timescale=500, start_timestamp=1, start_femtoseconds=2, trigger_phase=3
        )
        dst = UniformAnalogWaveform()
        dst.copy_timestamps(src)
        assert (dst.timescale, dst.start_timestamp, dst.start_femtoseconds, dst.trigger_phase) == (
            500,
            1,
            2,
            3,
        )
        assert dst.timestamps_modified_from_cpu

    def test_gpu_access_clears_flags(self):
        w = UniformAnalogWaveform()
        w.mark_modified_from_cpu()
        w.prepare_for_gpu_access()
        assert not w.samples_modified_from_cpu
        assert not w.timestamps_modified_from_cpu


class TestSparseWaveform:
    def test_append_and_invariants(self):
        w = SparseAnalogWaveform(timescale=1)
        w.append(offset=0, duration=10, value=1.5)
        w.append(offset=10, duration=5, value=2.0)
        w.check_invariants()
        assert w.offsets.tolist() == [0, 10]
        assert w.durations.tolist() == [10, 5]
        assert waveform_end_fs(w) == 15

    def test_overlap_detected(self):
        w = SparseAnalogWaveform()
        w.set_arrays([0, 5], [10, 1], [1.0, 2.0])
        with pytest.raises(WaveformInvariantError, match="overlaps"):
            w.check_invariants()

    def test_set_arrays_length_mismatch(self):
        w = SparseDigitalWaveform()
        with pytest.raises(WaveformInvariantError):
            w.set_arrays([0, 1], [1], [True, False])

    def test_copy_timestamps_from_uniform(self):
        u = UniformAnalogWaveform(timescale=100)
        u.samples = [1.0, 2.0, 3.0]
        s = SparseAnalogWaveform()
        s.copy_timestamps(u)
        assert s.timescale == 100
        assert s.offsets.tolist() == [0, 1, 2]
        assert s.durations.tolist() == [1, 1, 1]

    def test_scaled_offsets(self):
        w = SparseAnalogWaveform(timescale=10, trigger_phase=3)
        w.set_arrays([0, 4], [4, 2], [0.0, 1.0])
        np.testing.assert_array_equal(w.offsets_fs(), [3, 43])
        np.testing.assert_array_equal(w.durations_fs(), [40, 20])
        assert waveform_end_fs(w) == 63

    def test_protocol_waveform_iterates_objects(self):
        w = SparseProtocolWaveform()
        w.append(0, 8, "START")
        w.append(8, 8, {"byte": 0x55})
        assert list(w) == [(0, 8, "START"), (8, 8, {"byte": 0x55})]


class TestSequenceQueue:
    def test_fifo_order(self):
        q = PendingWaveforms()
        a, b = SequenceSet(), SequenceSet()
        q.push(a)
        q.push(b)
        assert len(q) == 2
        assert q.pop() is a
        assert q.pop() is b
        assert q.pop() is None

    def test_bounded_queue_drops_oldest(self):
        q = PendingWaveforms(max_depth=2)
        sets = [SequenceSet({0: UniformAnalogWaveform()}) for _ in range(3)]
        for s in sets:
            q.push(s)
        assert len(q) == 2
        assert q.dropped == 1
        assert q.pop() is sets[1]

    def test_wait_times_out(self):
        q = PendingWaveforms()
        assert not q.wait(timeout=0.01)
        q.push(SequenceSet())
        assert q.wait(timeout=0.01)


class TestConfigRecords:
    def test_session_config_defaults(self):
        cfg = SessionConfig(driver="scpi")
        assert cfg.transport == "visa"
        assert cfg.max_pending == 0
        assert SessionConfig.from_dict(cfg.to_dict()) == cfg

    def test_session_config_validation(self):
        with pytest.raises(ConfigurationError):
            SessionConfig(driver="scpi", timeout=0)
        with pytest.raises(ConfigurationError):
            SessionConfig(driver="scpi", chunk_size=-1)

    def test_trigger_dict_dispatch(self):
        t = Trigger.from_dict({"trigger_type": "edge", "source": 1, "level": 0.2})
        assert isinstance(t, EdgeTrigger)
        assert t.source == 1
        u = Trigger.from_dict({"trigger_type": "uart", "baud_rate": 9600, "parity": "even"})
        assert isinstance(u, UartTrigger)
        assert u.parity == UartParity.EVEN
        assert u.ninth_bit is False
