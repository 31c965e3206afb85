"""
Playback Module - serialized, prioritized playback over one audio output.
"""

from .core.dispatcher import DispatcherStats, PlaybackDispatcher
from .core.interfaces import AudioOutput
from .core.types import PlaybackError, PlayHandle, PlayOutcome, PlayPriority, PlayResult
from .outputs import NullAudioOutput, SubprocessAudioOutput

__all__ = [
    "PlaybackDispatcher",
    "DispatcherStats",
    "AudioOutput",
    "PlaybackError",
    "PlayHandle",
    "PlayOutcome",
    "PlayPriority",
    "PlayResult",
    "NullAudioOutput",
    "SubprocessAudioOutput",
]
