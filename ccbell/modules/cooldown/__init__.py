"""
Cooldown Module - minimum re-alert interval per key and severity tier.
"""

from .core.gate import CooldownGate, CooldownEntry

__all__ = ["CooldownGate", "CooldownEntry"]
