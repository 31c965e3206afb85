"""
ccbell - alert sound core for system monitors.

Edge-triggered transition detection, cooldown gating, sound resolution
(direct / pool / chain) and serialized playback over a single audio output.
"""

from .errors import CcbellError

__version__ = "0.3.0"
__all__ = ["CcbellError", "__version__"]
