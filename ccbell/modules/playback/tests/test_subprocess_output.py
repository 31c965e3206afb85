"""
Tests for SubprocessAudioOutput
"""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from ccbell.modules.playback import NullAudioOutput, PlaybackError, SubprocessAudioOutput
from ccbell.modules.playback.outputs import build_command, detect_player


def fake_which(available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


class TestDetectPlayer:
    """Тесты выбора плеера"""

    def test_macos_uses_afplay(self):
        assert detect_player("darwin", fake_which({"afplay", "mpv"})) == "afplay"

    def test_linux_priority_order(self):
        assert detect_player("linux", fake_which({"aplay", "paplay", "ffplay"})) == "paplay"
        assert detect_player("linux", fake_which({"ffplay", "mpv"})) == "mpv"

    def test_nothing_available(self):
        assert detect_player("linux", fake_which(set())) is None

    def test_unsupported_platform(self):
        assert detect_player("win32", fake_which({"mpv"})) is None


class TestBuildCommand:
    """Тесты построения команды"""

    def test_afplay_volume_is_fractional(self):
        assert build_command("afplay", "/s.aiff", 0.5) == ["afplay", "-v", "0.50", "/s.aiff"]

    def test_mpv_volume_is_percent(self):
        assert "--volume=20" in build_command("mpv", "/s.wav", 0.2)

    def test_paplay_volume_is_linear(self):
        assert build_command("paplay", "/s.wav", 1.0) == ["paplay", "--volume=65536", "/s.wav"]

    def test_volume_clamped(self):
        assert build_command("ffplay", "/s.wav", 4.0)[-2] == "100"

    def test_unknown_player(self):
        with pytest.raises(PlaybackError):
            build_command("vlc", "/s.wav", 1.0)


class TestSubprocessAudioOutput:
    """Тесты воспроизведения через процесс"""

    @pytest.mark.asyncio
    async def test_no_player_raises(self):
        output = SubprocessAudioOutput(player=None)
        output.player = None
        with pytest.raises(PlaybackError):
            await output.play("/tmp/x.wav", 1.0)

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, tmp_path):
        output = SubprocessAudioOutput(player="mpv")
        with pytest.raises(PlaybackError, match="not found"):
            await output.play(str(tmp_path / "missing.wav"), 1.0)

    @pytest.mark.asyncio
    async def test_runs_player_process(self, tmp_path):
        sound = tmp_path / "beep.wav"
        sound.write_bytes(b"RIFF")
        proc = Mock(returncode=0)
        proc.communicate = AsyncMock(return_value=(None, b""))

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            await SubprocessAudioOutput(player="aplay").play(str(sound), 0.3)

        assert spawn.call_args.args == ("aplay", "-q", str(sound))

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, tmp_path):
        sound = tmp_path / "beep.wav"
        sound.write_bytes(b"RIFF")
        proc = Mock(returncode=1)
        proc.communicate = AsyncMock(return_value=(None, b"device busy"))

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(PlaybackError, match="device busy"):
                await SubprocessAudioOutput(player="aplay").play(str(sound), 1.0)

    @pytest.mark.asyncio
    async def test_spawn_failure_raises(self, tmp_path):
        sound = tmp_path / "beep.wav"
        sound.write_bytes(b"RIFF")
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("mpv"))):
            with pytest.raises(PlaybackError):
                await SubprocessAudioOutput(player="mpv").play(str(sound), 1.0)

    @pytest.mark.asyncio
    async def test_cancellation_kills_player(self, tmp_path):
        sound = tmp_path / "long.wav"
        sound.write_bytes(b"RIFF")
        proc = Mock(returncode=None)
        proc.communicate = AsyncMock(side_effect=asyncio.CancelledError())
        proc.wait = AsyncMock(return_value=-9)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(asyncio.CancelledError):
                await SubprocessAudioOutput(player="mpv").play(str(sound), 1.0)

        proc.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_null_output_is_silent(self):
        await NullAudioOutput().play("/nowhere.wav", 1.0)
