"""
Event-loop helpers for components shared between the loop thread and
monitor threads.
"""

import asyncio
from typing import Any, Callable, Optional


def on_loop(loop: Optional[asyncio.AbstractEventLoop]) -> bool:
    """True when called from a coroutine or callback running on ``loop``."""
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def call_in_loop(loop: asyncio.AbstractEventLoop, callback: Callable[..., Any], *args: Any) -> None:
    """Run ``callback`` now when already on ``loop``, otherwise hand it to the loop thread."""
    if on_loop(loop):
        callback(*args)
    else:
        loop.call_soon_threadsafe(callback, *args)
