"""Workflow-level cancellation and deadline-bounded awaiting.

A ``CancellationToken`` is derived per workflow run and shared by every
in-flight agent call of that run. Cancellation is reported as
``ExecutionCancelledError``, which is distinct from ``AgentTimeoutError``.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, TypeVar

from .errors import AgentTimeoutError, ExecutionCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """取消令牌

    基于 asyncio.Event；``cancel()`` 之后所有通过 ``run_with_deadline`` 等待的调用
    立即被放弃。子令牌会随父令牌一起取消，反之不会。
    """

    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._children: List["CancellationToken"] = []
        self._parent = parent
        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """取消令牌及其所有子令牌（重复调用无副作用）"""
        if self._event.is_set():
            return
        self._reason = reason or "cancelled"
        self._event.set()
        logger.info("Cancellation requested: %s", self._reason)
        for child in list(self._children):
            child.cancel(self._reason)

    def child(self) -> "CancellationToken":
        """派生子令牌"""
        return CancellationToken(parent=self)

    def release(self) -> None:
        """从父令牌上摘除（运行结束后调用）"""
        if self._parent is not None:
            if self in self._parent._children:
                self._parent._children.remove(self)
            self._parent = None

    @property
    def children(self) -> List["CancellationToken"]:
        return list(self._children)

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ExecutionCancelledError(f"Execution cancelled: {self._reason}")


async def run_with_deadline(
    awaitable: Awaitable[T],
    timeout: Optional[float] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> T:
    """在超时和取消约束下等待一个协程

    Args:
        awaitable: 要等待的协程
        timeout: 超时时间（秒），None 表示不限制
        cancel_token: 取消令牌（可选）

    Returns:
        协程的返回值

    Raises:
        AgentTimeoutError: 超过 timeout 仍未完成
        ExecutionCancelledError: 等待期间令牌被取消
    """
    if cancel_token is not None and cancel_token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        cancel_token.raise_if_cancelled()

    task = asyncio.ensure_future(awaitable)
    waiters = {task}
    cancel_waiter: Optional[asyncio.Future] = None
    if cancel_token is not None:
        cancel_waiter = asyncio.ensure_future(cancel_token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    # 放弃进行中的调用并等待其退出
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    if cancel_token is not None and cancel_token.cancelled:
        raise ExecutionCancelledError(f"Execution cancelled: {cancel_token.reason}")
    raise AgentTimeoutError(f"Agent call timed out after {timeout:.3f}s")
