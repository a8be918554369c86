"""
Session phases: five contiguous fractions of a guided session.

    Settling   [0.0, 0.2)
    Deepening  [0.2, 0.4)
    Peak       [0.4, 0.7)
    Softening  [0.7, 0.9)
    Return     [0.9, 1.0]
"""

import math
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class SessionPhase:
    name: str
    icon: str
    guidance: str
    start: float
    end: float

    def contains(self, progress: float) -> bool:
        return self.start <= progress < self.end


PHASES: Tuple[SessionPhase, ...] = (
    SessionPhase('Settling', '🌱', 'Begin softly, invite presence', 0.0, 0.2),
    SessionPhase('Deepening', '🌊', 'Build resonance gradually', 0.2, 0.4),
    SessionPhase('Peak', '✨', 'Full expression, hold space', 0.4, 0.7),
    SessionPhase('Softening', '🍃', 'Gently reduce intensity', 0.7, 0.9),
    SessionPhase('Return', '🏠', 'Ground the journey home', 0.9, 1.0),
)

COMPLETE = 'complete'
ACTIVE = 'active'
PENDING = 'pending'


def phase_index(progress: float) -> int:
    """Index of the phase holding progress; boundaries belong to the later phase."""
    for i, phase in enumerate(PHASES):
        if phase.contains(progress):
            return i
    return 0 if progress < 0 else len(PHASES) - 1


def current_phase(progress: float) -> SessionPhase:
    return PHASES[phase_index(progress)]


def phase_markers(progress: float) -> List[str]:
    """complete / active / pending per phase."""
    markers = []
    for phase in PHASES:
        if progress >= phase.end:
            markers.append(COMPLETE)
        elif progress >= phase.start:
            markers.append(ACTIVE)
        else:
            markers.append(PENDING)
    return markers


def timeline(duration: int) -> List[Tuple[SessionPhase, int, int]]:
    """(phase, start second, length in seconds) for a session of duration."""
    rows = []
    for phase in PHASES:
        start = math.floor(duration * phase.start)
        end = math.floor(duration * phase.end)
        rows.append((phase, start, end - start))
    return rows
