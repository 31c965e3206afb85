from .subprocess_output import NullAudioOutput, SubprocessAudioOutput, build_command, detect_player

__all__ = ["NullAudioOutput", "SubprocessAudioOutput", "build_command", "detect_player"]
