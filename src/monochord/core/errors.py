"""
Error kinds for the audio core.

None of these are fatal: the worst outcome is silence with the UI still
responsive. Invalid pitch estimates are not errors at all (the detector
returns None for a "no signal" frame).
"""


class MonochordError(Exception):
    """Base class for all monochord errors."""


class AudioUnavailableError(MonochordError):
    """Platform audio output could not be created or resumed."""


class MicrophoneDeniedError(MonochordError):
    """Microphone permission refused or input device error."""


class StaleHandleError(MonochordError):
    """An oscillator or timer was stopped after it was already torn down."""
