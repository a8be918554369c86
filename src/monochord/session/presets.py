"""
Presets - Note pairs and sequences
==================================

A Preset is either a static (left, right) note pair or a sequence of pairs
stepped through evenly over a guided session. Notes are names resolved in
the active TuningSystem, never raw frequencies, so every preset works at
both A=432 and A=440.
"""

import json
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.tuning import TUNING_432, TUNING_440, TuningSystem

NotePair = Tuple[str, str]


@dataclass(frozen=True)
class Preset:
    """
    A named binaural setting.

    Example: Overtone Journey
        Preset(
            key="overtone",
            name="Overtone Journey",
            left="D2", right="D3",
            sequence=(("D2", "D3"), ("D3", "A3"), ("A3", "D4"), ...),
        )
    """
    key: str
    name: str
    left: str
    right: str
    sequence: Optional[Tuple[NotePair, ...]] = None
    is_free_mode: bool = False

    @property
    def has_sequence(self) -> bool:
        return bool(self.sequence)

    def notes_at(self, index: int = 0) -> NotePair:
        """Note pair for a sequence step (or the static pair)."""
        if self.sequence:
            return self.sequence[index % len(self.sequence)]
        return (self.left, self.right)

    def notes(self) -> List[str]:
        """Every note name this preset can sound."""
        pairs = self.sequence or ((self.left, self.right),)
        return [note for pair in pairs for note in pair]

    def to_dict(self) -> dict:
        """Serialize to dictionary"""
        return {
            'key': self.key,
            'name': self.name,
            'left': self.left,
            'right': self.right,
            'sequence': [list(pair) for pair in self.sequence] if self.sequence else None,
            'is_free_mode': self.is_free_mode,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Preset':
        """Deserialize from dictionary"""
        sequence = data.get('sequence')
        pairs = tuple((left, right) for left, right in sequence) if sequence else None
        left, right = data.get('left'), data.get('right')
        if pairs and (left is None or right is None):
            left, right = pairs[0]
        return cls(
            key=data['key'],
            name=data.get('name', data['key']),
            left=left,
            right=right,
            sequence=pairs,
            is_free_mode=data.get('is_free_mode', False),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'Preset':
        return cls.from_dict(json.loads(json_str))


OVERTONE_SEQUENCE: Tuple[NotePair, ...] = (
    ('D2', 'D3'),
    ('D3', 'A3'),
    ('A3', 'D4'),
    ('D3', 'A3'),
    ('D2', 'D3'),
)

PRESETS: Dict[str, Preset] = {p.key: p for p in (
    Preset('free', 'Free Play', 'D3', 'A3', is_free_mode=True),
    Preset('grounding', 'Grounding', 'D3', 'A3'),
    Preset('openHeart', 'Open Heart', 'D3', 'F#3'),
    Preset('expansive', 'Expansive', 'A2', 'E3'),
    Preset('deepRoot', 'Deep Root', 'D2', 'D3'),
    Preset('celestial', 'Celestial', 'D3', 'B3'),
    Preset('sacredFourth', 'Sacred Fourth', 'D3', 'G3'),
    Preset('overtone', 'Overtone Journey', 'D2', 'D3', sequence=OVERTONE_SEQUENCE),
)}

FREE_PLAY_NOTES: Tuple[str, ...] = ('D2', 'A2', 'D3', 'E3', 'F#3', 'G3', 'A3', 'B3', 'D4', 'A4')


def get_preset(key: str) -> Preset:
    try:
        return PRESETS[key]
    except KeyError:
        raise KeyError(f"Unknown preset {key!r}; choose from {', '.join(PRESETS)}") from None


def validate_presets(presets: Iterable[Preset] = None,
                     tunings: Iterable[TuningSystem] = (TUNING_432, TUNING_440)) -> List[str]:
    """Return a list of problems (empty when every note resolves everywhere)."""
    presets = PRESETS.values() if presets is None else presets
    tunings = list(tunings)
    problems = []
    for preset in presets:
        for note in preset.notes():
            for tuning in tunings:
                if note not in tuning:
                    problems.append(f"{preset.key}: {note} missing from {tuning.name}")
    return problems
