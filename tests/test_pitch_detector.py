"""
Tests for autocorrelation pitch detection and the detection loop.
"""

import numpy as np
import pytest

from monochord.core.audio_backend import InputBackend, SyntheticInput
from monochord.core.errors import MicrophoneDeniedError
from monochord.core.pitch_detector import (
    DetectorState, PitchDetector, PitchReading, analyze, autocorrelate,
)

SR = 44100
WINDOW = 4096


def sine(frequency, amplitude=0.5, phase=0.0, size=WINDOW):
    n = np.arange(size)
    return amplitude * np.sin(2 * np.pi * frequency * n / SR + phase)


class DeniedInput(InputBackend):
    def open(self, constraints=None):
        raise MicrophoneDeniedError("permission denied")

    def close(self):
        pass


class TestAutocorrelate:

    @pytest.mark.parametrize("frequency", [80.0, 82.41, 100.0, 110.0, 146.83, 220.0, 440.0, 659.25, 1000.0])
    @pytest.mark.parametrize("phase", [0.0, 1.3])
    def test_pure_sine_accuracy(self, frequency, phase):
        detected = autocorrelate(sine(frequency, phase=phase), SR)
        assert detected is not None
        assert detected == pytest.approx(frequency, rel=0.005)

    def test_amplitude_independent(self):
        for amplitude in (0.1, 0.9):
            assert autocorrelate(sine(220.0, amplitude), SR) == pytest.approx(220.0, rel=0.005)

    def test_harmonics_keep_fundamental(self):
        n = np.arange(WINDOW)
        signal = (0.4 * np.sin(2 * np.pi * 110.0 * n / SR)
                  + 0.2 * np.sin(2 * np.pi * 220.0 * n / SR)
                  + 0.1 * np.sin(2 * np.pi * 330.0 * n / SR))
        assert autocorrelate(signal, SR) == pytest.approx(110.0, rel=0.01)

    def test_silence(self):
        assert autocorrelate(np.zeros(WINDOW), SR) is None

    def test_below_rms_threshold(self):
        assert autocorrelate(sine(220.0, amplitude=0.01), SR) is None

    @pytest.mark.parametrize("frequency", [30.0, 2000.0])
    def test_out_of_range(self, frequency):
        assert autocorrelate(sine(frequency), SR) is None

    def test_custom_range(self):
        assert autocorrelate(sine(440.0), SR, max_frequency=400.0) is None

    def test_tiny_buffer(self):
        assert autocorrelate(np.ones(3), SR) is None


class TestAnalyze:

    def test_in_tune_against_nearest_note(self):
        reading = analyze(216.0 * 2 ** (3 / 1200), 432)
        assert reading.note == 'A3'
        assert reading.nearest_frequency == 216.0
        assert reading.target_frequency == 216.0
        assert reading.target_name == 'A3'
        assert reading.cents == pytest.approx(3.0)
        assert reading.in_tune
        assert reading.label == 'in-tune'

    def test_sharp(self):
        reading = analyze(216.0 * 2 ** (10 / 1200), 432)
        assert reading.label == 'sharp'
        assert not reading.in_tune
        assert reading.cents_text == '+10 cents'
        assert reading.needle_position == pytest.approx(60.0)

    def test_flat_against_target(self):
        reading = analyze(216.0 * 2 ** (-20 / 1200), 432, target=216.0, target_name='A3')
        assert reading.label == 'flat'
        assert reading.cents_text == '-20 cents'
        assert reading.needle_position == pytest.approx(30.0)

    def test_needle_clamped_cents_not(self):
        reading = analyze(216.0 * 2 ** (80 / 1200), 432, target=216.0, target_name='A3')
        assert reading.cents == pytest.approx(80.0)
        assert reading.needle_cents == 50.0
        assert reading.needle_position == 100.0
        # nearest note moved on to A#3 but the target still rules
        assert reading.note == 'A#3'
        assert reading.target_name == 'A3'

    def test_reference_440(self):
        reading = analyze(220.0, 440)
        assert reading.note == 'A3'
        assert reading.cents == pytest.approx(0.0, abs=1e-9)
        assert reading.cents_text == '0 cents'


class TestDetectorLoop:

    def make_detector(self, scheduler, listener, frequency=216.0, amplitude=0.5):
        source = SyntheticInput(lambda t: amplitude * np.sin(2 * np.pi * frequency * t), SR, WINDOW)
        return PitchDetector(scheduler, input_backend=source, listener=listener)

    def test_frames_produce_readings(self, scheduler, listener):
        detector = self.make_detector(scheduler, listener)
        assert detector.start()
        assert detector.is_listening

        scheduler.advance(1 / 60)
        scheduler.advance(1 / 60)
        readings = listener.named('on_pitch')
        assert len(readings) == 2
        reading = readings[-1][0]
        assert isinstance(reading, PitchReading)
        assert reading.frequency == pytest.approx(216.0, rel=0.005)
        assert reading.note == 'A3'
        assert detector.last_reading is reading

    def test_target_used_for_cents(self, scheduler, listener):
        detector = self.make_detector(scheduler, listener, frequency=216.0 * 2 ** (30 / 1200))
        detector.set_target(216.0, 'A3')
        reading = detector.detect_once()
        assert reading.target_frequency == 216.0
        assert reading.cents == pytest.approx(30.0, abs=5.0)

        detector.clear_target()
        assert detector.target_frequency is None

    def test_no_signal_frames_are_skipped(self, scheduler, listener):
        detector = self.make_detector(scheduler, listener, amplitude=0.0)
        detector.start()
        scheduler.advance(0.5)
        assert listener.named('on_pitch') == []
        assert detector.is_listening

    def test_stop_clears_display(self, scheduler, listener):
        detector = self.make_detector(scheduler, listener)
        detector.start()
        scheduler.advance(0.1)
        detector.stop()

        assert detector.state is DetectorState.IDLE
        assert listener.last('on_pitch') == (None,)
        assert detector.last_reading is None
        count = len(listener.named('on_pitch'))
        scheduler.advance(1.0)
        assert len(listener.named('on_pitch')) == count

    def test_toggle(self, scheduler, listener):
        detector = self.make_detector(scheduler, listener)
        assert detector.toggle() is True
        assert detector.toggle() is False
        assert not detector.is_listening

    def test_start_twice_keeps_one_timer(self, scheduler, listener):
        detector = self.make_detector(scheduler, listener)
        detector.start()
        detector.start()
        assert scheduler.pending() == 1

    def test_microphone_denied(self, scheduler, listener):
        detector = PitchDetector(scheduler, input_backend=DeniedInput(), listener=listener)
        assert detector.start() is False
        assert detector.state is DetectorState.IDLE
        assert listener.named('on_microphone_denied') == [('permission denied',)]
        assert scheduler.pending() == 0
