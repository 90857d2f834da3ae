import asyncio
from contextlib import asynccontextmanager
from typing import Dict

# session key -> lock guarding its temp files inside this process
session_locks: Dict[str, asyncio.Lock] = {}
_waiters: Dict[str, int] = {}


@asynccontextmanager
async def session_lock(session_key: str):
    """
    Serialise requests that touch the same chunk session.

    Only covers a single worker process; several workers sharing one temp
    directory still need sticky routing per session.
    """
    lock = session_locks.setdefault(session_key, asyncio.Lock())
    _waiters[session_key] = _waiters.get(session_key, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _waiters[session_key] -= 1
        if _waiters[session_key] == 0:
            _waiters.pop(session_key, None)
            session_locks.pop(session_key, None)
