"""
Tests for preset tables and session phases.
"""

import numpy as np
import pytest

from monochord.session import phases
from monochord.session.presets import (
    FREE_PLAY_NOTES, OVERTONE_SEQUENCE, PRESETS, Preset, get_preset, validate_presets,
)
from monochord.core.tuning import TUNING_432, TUNING_440


class TestPresets:

    def test_every_note_resolves_in_both_tunings(self):
        assert validate_presets() == []

    def test_free_play_notes_resolve(self):
        for note in FREE_PLAY_NOTES:
            assert note in TUNING_432
            assert note in TUNING_440

    def test_missing_note_reported(self):
        broken = Preset('broken', 'Broken', 'D3', 'C5')
        problems = validate_presets([broken])
        assert len(problems) == 2
        assert all('C5' in p for p in problems)

    def test_only_free_is_free_mode(self):
        assert [p.key for p in PRESETS.values() if p.is_free_mode] == ['free']

    def test_get_preset(self):
        assert get_preset('grounding').notes_at() == ('D3', 'A3')
        with pytest.raises(KeyError):
            get_preset('nope')

    def test_sequence_wraps(self):
        overtone = get_preset('overtone')
        assert overtone.has_sequence
        assert overtone.notes_at(0) == OVERTONE_SEQUENCE[0]
        assert overtone.notes_at(len(OVERTONE_SEQUENCE) + 2) == OVERTONE_SEQUENCE[2]
        assert not get_preset('celestial').has_sequence

    def test_dict_round_trip(self):
        for preset in PRESETS.values():
            assert Preset.from_dict(preset.to_dict()) == preset

    def test_json_round_trip(self):
        overtone = get_preset('overtone')
        assert Preset.from_json(overtone.to_json()) == overtone

    def test_sequence_only_dict(self):
        preset = Preset.from_dict({'key': 'rise', 'sequence': [['D2', 'A2'], ['D3', 'A3']]})
        assert preset.name == 'rise'
        assert (preset.left, preset.right) == ('D2', 'A2')
        assert preset.notes() == ['D2', 'A2', 'D3', 'A3']


class TestPhases:

    def test_contiguous_cover(self):
        assert phases.PHASES[0].start == 0.0
        assert phases.PHASES[-1].end == 1.0
        for a, b in zip(phases.PHASES, phases.PHASES[1:]):
            assert a.end == b.start

    def test_exactly_one_phase_per_progress(self):
        for progress in np.linspace(0.0, 0.999, 1000):
            assert sum(p.contains(progress) for p in phases.PHASES) == 1

    @pytest.mark.parametrize("progress,index", [
        (0.0, 0), (0.19, 0), (0.2, 1), (0.4, 2), (0.69, 2), (0.7, 3), (0.9, 4), (1.0, 4),
        (-0.5, 0), (1.5, 4),
    ])
    def test_boundaries_go_to_later_phase(self, progress, index):
        assert phases.phase_index(progress) == index

    def test_current_phase(self):
        assert phases.current_phase(0.5).name == 'Peak'

    def test_markers(self):
        assert phases.phase_markers(0.0) == ['active'] + ['pending'] * 4
        assert phases.phase_markers(0.75) == ['complete'] * 3 + ['active', 'pending']
        assert phases.phase_markers(1.0) == ['complete'] * 5

    @pytest.mark.parametrize("duration", [1, 7, 60, 333, 600, 1799, 3600])
    def test_timeline_lengths_sum_to_duration(self, duration):
        rows = phases.timeline(duration)
        assert sum(length for _, _, length in rows) == duration
        for (_, start, length), (_, next_start, _) in zip(rows, rows[1:]):
            assert start + length == next_start
