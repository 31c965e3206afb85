"""
Subprocess Audio Output

Plays a sound file with whichever command-line player the platform offers:
afplay on macOS; mpv, paplay, aplay or ffplay on Linux (in that order).
Each play call runs one player process to completion.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from typing import Callable, List, Optional

from ..core.types import PlaybackError

logger = logging.getLogger(__name__)

DARWIN_PLAYERS = ("afplay",)
LINUX_PLAYERS = ("mpv", "paplay", "aplay", "ffplay")
DEFAULT_TIMEOUT_SEC = 30.0

# paplay volume is linear, 65536 == 100%
PAPLAY_FULL_VOLUME = 65536


def detect_player(platform: Optional[str] = None, which: Callable[[str], Optional[str]] = shutil.which) -> Optional[str]:
    """Return the first available player for the platform, or None."""
    platform = platform or sys.platform
    if platform == "darwin":
        candidates = DARWIN_PLAYERS
    elif platform.startswith("linux"):
        candidates = LINUX_PLAYERS
    else:
        return None
    for player in candidates:
        if which(player):
            return player
    return None


def build_command(player: str, sound_path: str, volume: float) -> List[str]:
    """Player argv for one file at volume 0.0..1.0."""
    volume = min(1.0, max(0.0, volume))
    percent = int(round(volume * 100))
    if player == "afplay":
        return ["afplay", "-v", f"{volume:.2f}", sound_path]
    if player == "mpv":
        return ["mpv", "--no-video", "--really-quiet", f"--volume={percent}", sound_path]
    if player == "ffplay":
        return ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet", "-volume", str(percent), sound_path]
    if player == "paplay":
        return ["paplay", f"--volume={int(volume * PAPLAY_FULL_VOLUME)}", sound_path]
    if player == "aplay":
        # aplay has no volume control
        return ["aplay", "-q", sound_path]
    raise PlaybackError(f"unsupported player: {player}")


class SubprocessAudioOutput:
    """AudioOutput backed by a platform sound-playing process."""

    def __init__(self, player: Optional[str] = None, timeout_sec: Optional[float] = DEFAULT_TIMEOUT_SEC) -> None:
        self.player = player or detect_player()
        self.timeout_sec = timeout_sec
        if self.player:
            logger.info(f"[AUDIO_OUTPUT] using player: {self.player}")
        else:
            logger.warning("[AUDIO_OUTPUT] no audio player found (install mpv, ffmpeg, pulseaudio-utils or alsa-utils)")

    async def play(self, sound_path: str, volume: float) -> None:
        if not self.player:
            raise PlaybackError("no audio player available")
        if not os.path.isfile(sound_path):
            raise PlaybackError(f"sound file not found: {sound_path}")

        argv = build_command(self.player, sound_path, volume)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PlaybackError(f"could not start {self.player}: {e}") from e

        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # timeout or shutdown: do not leave the player running
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
            raise PlaybackError(f"{self.player} exited with {proc.returncode}: {detail}")


class NullAudioOutput:
    """Output that plays nothing; used when sound is disabled or no player exists."""

    timeout_sec: Optional[float] = None

    async def play(self, sound_path: str, volume: float) -> None:
        logger.debug(f"[AUDIO_OUTPUT] muted: {sound_path} vol={volume:.2f}")
