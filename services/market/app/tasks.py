"""
Market Service - 書き込みの完走

永続化 + メモリ反映の区間は、呼び出し元がキャンセルされても
最後まで (成功か失敗のどちらかで) 実行する。

呼び出し元が先にいなくなった場合は結果を誰も受け取らないので、
done-callback でログに残す。
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 実行中のタスクへの参照 (GC で消えないように保持する)
_running: set[asyncio.Task] = set()


async def run_to_completion(coro: Coroutine[Any, Any, T], description: str) -> T:
    task = asyncio.ensure_future(coro)
    _running.add(task)
    task.add_done_callback(_running.discard)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        task.add_done_callback(lambda t: _log_orphaned(description, t))
        raise


def _log_orphaned(description: str, task: asyncio.Task) -> None:
    if task.cancelled():
        logger.warning("%s was cancelled after its caller went away", description)
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("%s failed after its caller went away: %r", description, exc)
    else:
        logger.info("%s completed after its caller went away", description)
