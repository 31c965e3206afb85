"""
Base exception shared by all ccbell modules.
"""


class CcbellError(Exception):
    """Root of every error raised by the ccbell core."""
