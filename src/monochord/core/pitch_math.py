"""
Tuning math: equal-temperament frequencies, note names, cents and beats.

All functions are pure and work for any reference pitch.
"""

import math
from typing import NamedTuple

from .tuning import DEFAULT_ROOT_OFFSET, NOTE_NAMES_FROM_A, NOTE_NAMES_FROM_C, NOTE_OFFSETS


def transposition(root_note: str) -> int:
    """Semitones from the default D root to root_note."""
    return NOTE_OFFSETS[root_note] - DEFAULT_ROOT_OFFSET


def calculate_frequency(note_offset: int, octave: int, reference: float = 432.0,
                        root_note: str = 'D') -> float:
    """
    Frequency of a string, rounded to 0.01 Hz.

    Args:
        note_offset: Semitones from A in the D-rooted layout (D = -7)
        octave: Scientific octave number (A4 = reference)
        reference: Concert pitch of A4
        root_note: Tuner root; shifts every string by the same interval
    """
    semitones = (octave - 4) * 12 + note_offset + transposition(root_note)
    return round(reference * 2 ** (semitones / 12), 2)


def get_note_name(note_offset: int, octave: int, root_note: str = 'D') -> str:
    """Name (e.g. "D3") of a string after root transposition, with octave carry."""
    semitones = note_offset + 9 + transposition(root_note)
    carry, index = divmod(semitones, 12)
    return f"{NOTE_NAMES_FROM_C[index]}{octave + carry}"


class NoteInfo(NamedTuple):
    name: str
    frequency: float
    cents: float


def frequency_to_note(frequency: float, reference: float = 432.0) -> NoteInfo:
    """
    Nearest equal-tempered note to a frequency.

    Semitones from A4 are rounded half-up so that exactly half-way values go
    to the higher note. The cents field is the deviation from that note.
    """
    semitones = 12 * math.log2(frequency / reference)
    rounded = math.floor(semitones + 0.5)
    nearest = reference * 2 ** (rounded / 12)
    name = NOTE_NAMES_FROM_A[rounded % 12]
    octave = (rounded + 57) // 12
    return NoteInfo(f"{name}{octave}", round(nearest, 2), (semitones - rounded) * 100)


def cents(frequency: float, target: float) -> float:
    """Signed deviation in cents; positive means sharp."""
    return 1200 * math.log2(frequency / target)


# ══════════════════════════════════════════════════════════════════════════════
# BINAURAL BEAT
# ══════════════════════════════════════════════════════════════════════════════

BEAT_BANDS = (
    (4, 'Delta (Deep Sleep)'),
    (8, 'Theta (Meditation)'),
    (14, 'Alpha (Relaxed)'),
    (30, 'Beta (Alert)'),
    (100, 'Gamma (Peak)'),
)

INTERVAL_RATIOS = (
    (1.5, 'Perfect Fifth'),
    (2.0, 'Octave'),
    (1.33, 'Perfect Fourth'),
    (1.25, 'Major Third'),
    (1.125, 'Major Second'),
    (1.2, 'Minor Third'),
    (1.67, 'Major Sixth'),
)


def binaural_beat(left: float, right: float) -> float:
    return abs(right - left)


def interval_name(f1: float, f2: float, tolerance: float = 0.02) -> str:
    ratio = max(f1, f2) / min(f1, f2)
    for target, name in INTERVAL_RATIOS:
        if abs(ratio - target) < tolerance:
            return name
    return 'Harmonic'


def classify_beat(left: float, right: float) -> str:
    """Brainwave band of the beat, or the musical interval when >= 100 Hz."""
    beat = binaural_beat(left, right)
    for limit, label in BEAT_BANDS:
        if beat < limit:
            return label
    return f"Interval: {interval_name(left, right)}"
