"""
Playback Module - Interfaces

The single outward contract of the core: play one sound file at a volume.
The platform mechanism behind it lives in playback.outputs.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class AudioOutput(Protocol):
    """Plays one sound file to completion.

    Raises PlaybackError on failure. timeout_sec, when set, bounds a single
    play call; the dispatcher enforces it.
    """

    timeout_sec: Optional[float]

    async def play(self, sound_path: str, volume: float) -> None:
        ...
