"""
Tests for parameter automation, oscillators and graph rendering.

Click detection: any sample-to-sample jump larger than a pure sine at that
frequency and gain can make is treated as a click.
"""

import math

import numpy as np
import pytest

from monochord.core.audio_backend import OfflineBackend
from monochord.core.errors import AudioUnavailableError, StaleHandleError
from monochord.core.scheduler import VirtualClock
from monochord.core.signal_graph import (
    AudioParam, AutomationKind, FrameClock, Oscillator, SignalGraph, Voice,
)

from conftest import FailingBackend

SR = 44100


def max_jump(signal):
    return float(np.max(np.abs(np.diff(signal))))


class TestAudioParam:

    def test_default_value(self):
        param = AudioParam('x', 0.25, VirtualClock())
        assert param.value == 0.25
        assert param.value_at(100.0) == 0.25

    def test_linear_ramp(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.linear_ramp_to(1.0, 2.0)
        assert param.value_at(0.0) == pytest.approx(0.0)
        assert param.value_at(1.0) == pytest.approx(0.5)
        assert param.value_at(2.0) == pytest.approx(1.0)
        assert param.value_at(5.0) == pytest.approx(1.0)

    def test_new_ramp_replaces_in_flight_ramp(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.linear_ramp_to(1.0, 2.0)
        clock.set(1.0)
        param.linear_ramp_to(0.0, 1.0)

        assert param.value_at(1.0) == pytest.approx(0.5)
        assert param.value_at(1.5) == pytest.approx(0.25)
        assert param.value_at(2.0) == pytest.approx(0.0)
        assert param.value_at(3.0) == pytest.approx(0.0)

    def test_zero_duration_ramp_is_immediate_set(self):
        clock = VirtualClock(3.0)
        param = AudioParam('x', 0.0, clock)
        param.linear_ramp_to(0.7, 0.0)
        assert param.value == pytest.approx(0.7)
        assert [e.kind for e in param.events] == [AutomationKind.SET]

    def test_set_value_discards_automation(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.linear_ramp_to(1.0, 10.0)
        param.set_value(0.3)
        assert param.value_at(5.0) == pytest.approx(0.3)

    def test_set_target_time_constant(self):
        clock = VirtualClock()
        param = AudioParam('x', 1.0, clock)
        param.set_target(0.0, 0.5)
        assert param.value_at(0.5) == pytest.approx(math.exp(-1.0))
        assert param.value_at(5.0) == pytest.approx(0.0, abs=1e-4)

    def test_set_target_starts_from_current_value(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.linear_ramp_to(1.0, 2.0)
        clock.set(1.0)
        param.set_target(0.0, 1.0)
        assert param.value_at(1.0) == pytest.approx(0.5)
        assert param.value_at(2.0) == pytest.approx(0.5 * math.exp(-1.0))

    def test_exponential_ramp(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.set_value_at_time(0.2, 0.0)
        param.exponential_ramp_to_value_at_time(0.002, 2.0)
        assert param.value_at(1.0) == pytest.approx(math.sqrt(0.2 * 0.002))
        assert param.value_at(2.0) == pytest.approx(0.002)

    def test_exponential_ramp_from_zero_holds(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.set_value_at_time(0.0, 0.0)
        param.exponential_ramp_to_value_at_time(1.0, 1.0)
        assert param.value_at(0.5) == 0.0
        assert param.value_at(1.0) == 1.0

    def test_attack_then_decay_envelope(self):
        clock = VirtualClock()
        param = AudioParam('gain', 0.0, clock)
        param.set_value_at_time(0.0, 0.0)
        param.linear_ramp_to_value_at_time(0.2, 0.5)
        param.exponential_ramp_to_value_at_time(0.001, 5.0)
        assert param.value_at(0.25) == pytest.approx(0.1)
        assert param.value_at(0.5) == pytest.approx(0.2)
        assert 0.001 < param.value_at(3.0) < 0.2
        assert param.value_at(5.0) == pytest.approx(0.001)

    def test_clamped_to_range(self):
        param = AudioParam('x', 0.0, VirtualClock(), 0.0, 1.0)
        param.set_value(2.0)
        assert param.value == 1.0
        param.set_value(-3.0)
        assert param.value == 0.0

    def test_cancel_scheduled_values(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.set_value_at_time(0.5, 1.0)
        param.set_value_at_time(0.9, 2.0)
        param.cancel_scheduled_values(2.0)
        assert param.value_at(3.0) == pytest.approx(0.5)

    def test_cancel_and_hold(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.0, clock)
        param.linear_ramp_to(1.0, 4.0)
        held = param.cancel_and_hold(1.0)
        assert held == pytest.approx(0.25)
        assert param.value_at(3.0) == pytest.approx(0.25)

    def test_sample_matches_pointwise_evaluation(self):
        clock = VirtualClock()
        param = AudioParam('x', 0.1, clock)
        param.linear_ramp_to(0.9, 0.5)
        clock.set(0.25)
        param.set_target(0.2, 0.1)
        param.linear_ramp_to_value_at_time(0.6, 1.0)

        times = np.linspace(0.0, 1.5, 301)
        expected = np.array([param.value_at(t) for t in times])
        np.testing.assert_allclose(param.sample(times), expected, rtol=1e-9, atol=1e-12)


class TestOscillator:

    def test_start_twice_raises(self):
        osc = Oscillator(440.0, SR, VirtualClock())
        osc.start()
        with pytest.raises(StaleHandleError):
            osc.start()

    def test_stop_twice_raises(self):
        osc = Oscillator(440.0, SR, VirtualClock())
        osc.start()
        osc.stop()
        with pytest.raises(StaleHandleError):
            osc.stop()

    def test_silent_before_start_and_after_stop(self):
        osc = Oscillator(440.0, SR, VirtualClock())
        osc.start(0.01)
        osc.stop(0.02)
        times = np.arange(int(0.03 * SR)) / SR
        out = osc.render(times)
        assert np.all(out[times < 0.01] == 0.0)
        assert np.all(out[times >= 0.02] == 0.0)
        assert np.max(np.abs(out)) > 0.9

    def test_frequency_from_zero_crossings(self):
        osc = Oscillator(441.0, SR, VirtualClock())
        osc.start(0.0)
        out = osc.render(np.arange(SR) / SR)
        rising = np.sum((out[:-1] < 0) & (out[1:] >= 0))
        assert abs(rising - 441) <= 1

    def test_detune_shifts_pitch(self):
        osc = Oscillator(441.0, SR, VirtualClock())
        osc.detune.set_value(1200.0)
        osc.start(0.0)
        out = osc.render(np.arange(SR) / SR)
        rising = np.sum((out[:-1] < 0) & (out[1:] >= 0))
        assert abs(rising - 882) <= 1


class TestVoice:

    @pytest.mark.parametrize("pan,left,right", [
        (-1.0, 1.0, 0.0),
        (0.0, math.sqrt(0.5), math.sqrt(0.5)),
        (1.0, 0.0, 1.0),
    ])
    def test_equal_power_pan(self, pan, left, right):
        l, r = Voice.pan_gains(pan)
        assert float(l) == pytest.approx(left, abs=1e-12)
        assert float(r) == pytest.approx(right, abs=1e-12)
        assert float(l) ** 2 + float(r) ** 2 == pytest.approx(1.0)

    def test_empty_voice_is_silent(self):
        voice = Voice('v', VirtualClock())
        l, r = voice.render(np.arange(64) / SR)
        assert not l.any() and not r.any()

    def test_attach_returns_previous(self):
        clock = VirtualClock()
        voice = Voice('v', clock)
        a = Oscillator(100.0, SR, clock)
        b = Oscillator(200.0, SR, clock)
        assert voice.attach(a) is None
        assert voice.attach(b) is a
        assert voice.detach() is b
        assert voice.oscillator is None


class TestSignalGraph:

    def test_render_shape_and_clock(self):
        graph = SignalGraph(SR, OfflineBackend())
        graph.open()
        block = graph.render(512)
        assert block.shape == (512, 2)
        assert block.dtype == np.float32
        assert isinstance(graph.clock, FrameClock)
        assert graph.current_time == pytest.approx(512 / SR)

    def test_backend_pull_renders_graph(self):
        backend = OfflineBackend(buffer_size=256)
        graph = SignalGraph(SR, backend)
        graph.open()
        voice = graph.create_voice('v', gain=0.5)
        osc = graph.create_oscillator(440.0)
        voice.attach(osc)
        osc.start(0.0)
        block = backend.pull()
        assert block.shape == (256, 2)
        assert np.max(np.abs(block)) > 0.0

    def test_failed_backend_raises(self):
        graph = SignalGraph(SR, FailingBackend())
        with pytest.raises(AudioUnavailableError):
            graph.open()
        assert not graph.is_open

    def test_output_is_clipped(self):
        graph = SignalGraph(SR)
        for i in range(4):
            voice = graph.create_voice(f'v{i}', gain=1.0)
            osc = graph.create_oscillator(220.0)
            voice.attach(osc)
            osc.start(0.0)
        block = graph.render(2048)
        assert np.max(np.abs(block)) <= 1.0

    def test_unlock_silences_first_frames_once(self):
        graph = SignalGraph(SR)
        voice = graph.create_voice('v')
        osc = graph.create_oscillator(1000.0)
        voice.attach(osc)
        osc.start(-1.0)
        graph.unlock(frames=8)
        graph.unlock(frames=8)
        block = graph.render(16)
        assert not block[:8].any()
        assert block[8:].any()

    def test_remove_voice(self):
        graph = SignalGraph(SR)
        voice = graph.create_voice('v')
        graph.remove_voice(voice)
        graph.remove_voice(voice)
        assert graph.voices == []

    def test_frequency_glide_is_click_free(self):
        graph = SignalGraph(SR, master_gain=1.0)
        voice = graph.create_voice('v', gain=1.0, pan=0.0)
        osc = graph.create_oscillator(440.0)
        voice.attach(osc)
        osc.start(0.0)
        graph.ramp(osc.frequency, 880.0, 0.05)

        blocks = [graph.render(256)[:, 0] for _ in range(20)]
        signal = np.concatenate(blocks)

        # Steepest possible step for an 880 Hz sine at this pan gain
        limit = 2 * np.pi * 880.0 / SR * math.sqrt(0.5)
        assert max_jump(signal) < limit * 1.05

    def test_fade_in_is_click_free(self):
        graph = SignalGraph(SR, master_gain=0.0)
        voice = graph.create_voice('v', gain=1.0, pan=-1.0)
        osc = graph.create_oscillator(220.0)
        voice.attach(osc)
        osc.start(0.0)
        graph.ramp(graph.master_gain, 0.8, 0.1)

        signal = np.concatenate([graph.render(128)[:, 0] for _ in range(50)])
        assert signal[0] == 0.0
        assert max_jump(signal) < 2 * np.pi * 220.0 / SR
        assert np.max(np.abs(signal[-1000:])) == pytest.approx(0.8, abs=0.01)
