"""
Run synchronous triage code from async route handlers without blocking
the event loop.
"""

import asyncio
from functools import partial


async def run_sync(func, *args, **kwargs):
    """Call func(*args, **kwargs) in the default executor and await the result."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))
