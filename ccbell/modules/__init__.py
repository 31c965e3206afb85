"""
ccbell modules: detection, cooldown, sound resolution, chains, playback.
"""
