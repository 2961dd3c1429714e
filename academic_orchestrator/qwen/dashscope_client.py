"""DashScope API client for Qwen models."""

import asyncio
import os
from typing import Any, Dict, List, Optional

from ..utils.logging import get_logger
from .interface import IQwenClient
from .models import Message, QwenConfig, QwenModel, QwenResponse

logger = get_logger("qwen.dashscope")


# 模型上下文窗口大小映射
MODEL_CONTEXT_WINDOWS = {
    QwenModel.QWEN_TURBO: 8192,
    QwenModel.QWEN_PLUS: 32768,
    QwenModel.QWEN_MAX: 32768,
    QwenModel.QWEN_MAX_LONGCONTEXT: 131072,
    QwenModel.QWEN2_5_72B: 131072,
    QwenModel.QWEN3_MAX: 32768,
}


def _is_rate_limit_error(e: Exception) -> bool:
    """判断是否为限流错误"""
    err_str = str(e)
    return "Throttling" in err_str or "RateQuota" in err_str or "rate limit" in err_str.lower()


def _is_retryable_error(e: Exception) -> bool:
    """判断是否为可重试的瞬态错误（限流、连接重置、服务端临时错误）"""
    if isinstance(e, (ConnectionError, asyncio.TimeoutError)):
        return True
    if _is_rate_limit_error(e):
        return True
    err_str = str(e)
    if "Connection" in err_str or "reset" in err_str.lower():
        return True
    return any(code in err_str for code in ("InternalError", "ServiceUnavailable", "502", "503"))


def _retry_wait_time(attempt: int, is_rate_limit: bool = False) -> float:
    """计算重试等待时间（秒），限流错误使用更长的退避"""
    if is_rate_limit:
        return min(5 * (2 ** attempt), 60)
    return min(2 * (2 ** attempt), 16)


class DashScopeAPIError(Exception):
    """DashScope 返回非 200 状态"""

    def __init__(self, code: Any, message: Any):
        super().__init__(f"DashScope API error: {code} - {message}")
        self.code = code


class DashScopeClient(IQwenClient):
    """阿里云 DashScope API 客户端"""

    def __init__(self, config: Optional[QwenConfig] = None, sleep=asyncio.sleep):
        """
        初始化 DashScope 客户端

        Args:
            config: Qwen 配置，如果未提供则使用默认配置
            sleep: 重试等待函数

        Raises:
            ValueError: 未提供 API key
        """
        self._config = config or QwenConfig()
        self._api_key = self._config.api_key or os.environ.get("DASHSCOPE_API_KEY")
        self._sleep = sleep

        if not self._api_key:
            raise ValueError(
                "DashScope API key is required. "
                "Set DASHSCOPE_API_KEY environment variable or pass api_key in config."
            )

    @property
    def config(self) -> QwenConfig:
        return self._config

    def _build_kwargs(self, messages: List[Message], config: QwenConfig) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": config.model.value,
            "messages": [msg.to_dict() for msg in messages],
            "temperature": config.temperature,
            "top_p": config.top_p,
            "result_format": "message",
        }
        if config.max_tokens is not None:
            kwargs["max_tokens"] = config.max_tokens
        if config.enable_search:
            kwargs["enable_search"] = True
        if config.model.supports_thinking():
            kwargs["enable_thinking"] = config.enable_thinking
        return kwargs

    async def chat(
        self,
        messages: List[Message],
        config: Optional[QwenConfig] = None,
    ) -> QwenResponse:
        """
        发送聊天请求（瞬态错误自动重试）

        Args:
            messages: 消息历史
            config: 模型配置（覆盖默认配置）

        Returns:
            模型响应
        """
        # 延迟导入以避免在未安装时报错
        try:
            from dashscope import Generation
        except ImportError:
            raise ImportError(
                "dashscope package is required. Install with: pip install dashscope"
            )

        effective_config = config or self._config
        max_retries = max(1, effective_config.retry_attempts)
        kwargs = self._build_kwargs(messages, effective_config)

        last_error: Optional[Exception] = None
        for attempt in range(max_retries):
            try:
                loop = asyncio.get_running_loop()
                response = await asyncio.wait_for(
                    loop.run_in_executor(
                        None,
                        lambda: Generation.call(api_key=self._api_key, **kwargs)
                    ),
                    timeout=effective_config.timeout,
                )

                if response.status_code != 200:
                    raise DashScopeAPIError(response.code, response.message)

                choice = response.output.get("choices", [{}])[0]
                message = choice.get("message", {})
                return QwenResponse(
                    content=message.get("content", "") or "",
                    finish_reason=choice.get("finish_reason", "stop"),
                    usage=dict(response.usage or {}),
                )

            except Exception as e:
                if not _is_retryable_error(e):
                    raise
                last_error = e
                if attempt < max_retries - 1:
                    is_rl = _is_rate_limit_error(e)
                    wait_time = _retry_wait_time(attempt, is_rl)
                    logger.warning(
                        "DashScope %s, retrying in %.0fs (%d/%d): %s",
                        "rate limited" if is_rl else "transient error",
                        wait_time, attempt + 1, max_retries, e,
                    )
                    await self._sleep(wait_time)

        raise last_error or RuntimeError("All retry attempts failed")

    async def health_check(self) -> bool:
        """发送一个极小的请求检查服务是否可用"""
        try:
            test_config = QwenConfig(
                model=self._config.model,
                api_key=self._api_key,
                max_tokens=10,
                timeout=10.0,
                retry_attempts=1,
            )
            await self.chat([Message(role="user", content="Hi")], config=test_config)
            return True
        except Exception as e:
            logger.warning("DashScope health check failed: %s", e)
            return False

    def get_token_count(self, text: str) -> int:
        """
        估算文本的 token 数量

        中文字符约 1.5 token/字，其他字符约 4 字符/token。
        """
        if not text:
            return 0
        chinese_chars = sum(1 for c in text if '\u4e00' <= c <= '\u9fff')
        other_chars = len(text) - chinese_chars
        return max(1, int(chinese_chars * 1.5 + other_chars * 0.25))

    def get_context_window(self) -> int:
        return MODEL_CONTEXT_WINDOWS.get(self._config.model, 8192)
