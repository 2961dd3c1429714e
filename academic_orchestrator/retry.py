"""Retry policy for task-level agent invocations."""

import random
from dataclasses import dataclass
from typing import Optional

from .models.enums import FailureKind, RetryPolicy


@dataclass
class RetryConfig:
    """重试配置

    Attributes:
        policy: none / fixed / exponential
        max_retries: 首次尝试之外的最大重试次数
        initial_delay: 第一次重试前的等待时间（秒）
        max_delay: 单次等待上限（秒）
        retry_on_timeout: 超时失败是否重试
        jitter: 是否添加 ±50% 随机抖动
    """
    policy: RetryPolicy = RetryPolicy.NONE
    max_retries: int = 0
    initial_delay: float = 1.0  # 秒
    max_delay: float = 30.0
    retry_on_timeout: bool = True
    jitter: bool = False

    @property
    def max_attempts(self) -> int:
        if self.policy == RetryPolicy.NONE:
            return 1
        return 1 + max(0, self.max_retries)

    def get_delay(self, attempt: int) -> float:
        """
        计算第 ``attempt`` 次失败之后的等待时间

        fixed 策略每次等待 initial_delay；exponential 策略每失败一次延迟翻倍。

        Args:
            attempt: 已失败的尝试序号（从 0 开始）

        Returns:
            延迟时间（秒）
        """
        if self.policy == RetryPolicy.NONE:
            return 0.0
        if self.policy == RetryPolicy.FIXED:
            delay = self.initial_delay
        else:
            delay = self.initial_delay * (2 ** attempt)
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay *= (0.5 + random.random())
        return delay

    def should_retry(self, attempt: int, error_kind: Optional[FailureKind]) -> bool:
        """
        判断失败后是否继续重试

        取消永不重试；超时由 retry_on_timeout 决定。
        """
        if attempt + 1 >= self.max_attempts:
            return False
        if error_kind == FailureKind.CANCELLED:
            return False
        if error_kind == FailureKind.TIMEOUT and not self.retry_on_timeout:
            return False
        return True

    def with_overrides(
        self,
        policy: Optional[RetryPolicy] = None,
        max_retries: Optional[int] = None,
    ) -> "RetryConfig":
        """返回应用了步骤级覆盖的新配置"""
        return RetryConfig(
            policy=policy if policy is not None else self.policy,
            max_retries=max_retries if max_retries is not None else self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            retry_on_timeout=self.retry_on_timeout,
            jitter=self.jitter,
        )
