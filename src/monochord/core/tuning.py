"""
Static tuning tables
====================

Reference note tables for the two concert pitches, the chromatic offsets used
by the tuner, and the string layouts of the supported instruments.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Tuple
from types import MappingProxyType


FREQ_432: Mapping[str, float] = MappingProxyType({
    'D2': 72.08, 'A2': 108.00, 'D3': 144.16, 'E3': 162.04,
    'F#3': 181.63, 'G3': 192.43, 'A3': 216.00, 'B3': 243.07,
    'D4': 288.33, 'A4': 432.00,
})

FREQ_440: Mapping[str, float] = MappingProxyType({
    'D2': 73.42, 'A2': 110.00, 'D3': 146.83, 'E3': 164.81,
    'F#3': 185.00, 'G3': 196.00, 'A3': 220.00, 'B3': 246.94,
    'D4': 293.66, 'A4': 440.00,
})


@dataclass(frozen=True)
class TuningSystem:
    """A concert pitch and its read-only note → Hz table."""
    reference: int
    table: Mapping[str, float]

    @property
    def name(self) -> str:
        return f"A={self.reference}"

    def frequency(self, note: str) -> float:
        try:
            return self.table[note]
        except KeyError:
            raise KeyError(f"note {note!r} not in the {self.name} table") from None

    def __contains__(self, note: str) -> bool:
        return note in self.table


TUNING_432 = TuningSystem(432, FREQ_432)
TUNING_440 = TuningSystem(440, FREQ_440)


def get_tuning(use_432: bool) -> TuningSystem:
    return TUNING_432 if use_432 else TUNING_440


# ══════════════════════════════════════════════════════════════════════════════
# CHROMATIC OFFSETS
# ══════════════════════════════════════════════════════════════════════════════

# Semitones from A within the same octave
NOTE_OFFSETS: Mapping[str, int] = MappingProxyType({
    'C': -9, 'C#': -8, 'D': -7, 'D#': -6, 'E': -5, 'F': -4,
    'F#': -3, 'G': -2, 'G#': -1, 'A': 0, 'A#': 1, 'B': 2,
})

DEFAULT_ROOT = 'D'
DEFAULT_ROOT_OFFSET = NOTE_OFFSETS[DEFAULT_ROOT]

NOTE_NAMES_FROM_C: Tuple[str, ...] = ('C', 'C#', 'D', 'D#', 'E', 'F',
                                      'F#', 'G', 'G#', 'A', 'A#', 'B')
NOTE_NAMES_FROM_A: Tuple[str, ...] = ('A', 'A#', 'B', 'C', 'C#', 'D',
                                      'D#', 'E', 'F', 'F#', 'G', 'G#')


# ══════════════════════════════════════════════════════════════════════════════
# INSTRUMENTS
# ══════════════════════════════════════════════════════════════════════════════

class Instrument(Enum):
    MONOCHORD = "monochord"
    TAMPURA = "tampura"
    KOTO = "koto"


# (offset from A in the D-rooted layout, octave)
StringSpec = Tuple[int, int]

INSTRUMENT_STRINGS: Dict[Instrument, Tuple[StringSpec, ...]] = {
    Instrument.MONOCHORD: ((-7, 2), (0, 2), (-7, 3), (0, 3), (-7, 4)),
    # Pa, Sa, Sa, low Sa
    Instrument.TAMPURA: ((0, 2), (-7, 3), (-7, 3), (-7, 2)),
    # D hirajoshi, 13 strings
    Instrument.KOTO: ((-7, 3), (-2, 2), (0, 2), (1, 2), (-7, 3), (-6, 3), (-2, 3),
                      (0, 3), (1, 3), (-7, 4), (-6, 4), (-2, 4), (0, 4)),
}


def instrument_strings(instrument) -> Tuple[StringSpec, ...]:
    """String layout for an Instrument or its name."""
    return INSTRUMENT_STRINGS[Instrument(instrument)]
