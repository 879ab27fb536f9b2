"""Bridges between the asyncio pipeline and blocking SDK clients."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any


async def call_maybe_async(func: Callable[..., Any], *args: Any) -> Any:
    """Await ``func(*args)`` if it is a coroutine function, else run it in a worker thread.

    Blocking clients (PyGithub, the provider SDKs) must not stall the event
    loop, so synchronous callables are pushed onto the default executor.
    """
    if inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(getattr(func, "__call__", None)):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        return await result
    return result
