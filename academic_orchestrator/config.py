"""Orchestrator configuration management.

Configuration precedence (highest first):
1. environment variables (optionally seeded from a ``.env`` file)
2. YAML configuration file (``orchestrator:`` section)
3. defaults
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .models.enums import RetryPolicy
from .retry import RetryConfig
from .subagent_executor import SubagentExecutionConfig
from .utils.logging import get_logger

logger = get_logger("config")

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# 环境变量 -> (配置字段, 类型)
_ENV_MAPPING = {
    "ORCHESTRATOR_MAX_CONCURRENT": ("max_concurrent", "int"),
    "ORCHESTRATOR_TIMEOUT_MS": ("default_timeout_ms", "int"),
    "ORCHESTRATOR_RETRY_POLICY": ("retry_policy", "policy"),
    "ORCHESTRATOR_MAX_RETRIES": ("max_retries", "int"),
    "ORCHESTRATOR_RETRY_DELAY": ("retry_delay", "float"),
    "ORCHESTRATOR_MAX_RETRY_DELAY": ("max_retry_delay", "float"),
    "ORCHESTRATOR_RETRY_ON_TIMEOUT": ("retry_on_timeout", "bool"),
    "ORCHESTRATOR_CLASSIFIER_ENABLED": ("classifier_enabled", "bool"),
    "ORCHESTRATOR_CLASSIFIER_TIMEOUT_MS": ("classifier_timeout_ms", "int"),
    "ORCHESTRATOR_LOG_LEVEL": ("log_level", "str"),
    "ORCHESTRATOR_AGENT_DEFINITIONS": ("agent_definitions", "str"),
    "ORCHESTRATOR_MODEL": ("model", "str"),
}


@dataclass
class OrchestratorConfig:
    """编排引擎配置

    Attributes:
        max_concurrent: 子任务并行批次大小
        default_timeout_ms: 默认单次调用超时（毫秒）
        retry_policy: 默认重试策略
        max_retries: 默认最大重试次数
        retry_delay: 第一次重试前的等待（秒）
        max_retry_delay: 单次重试等待上限（秒）
        retry_on_timeout: 超时是否重试
        classifier_enabled: 是否启用 LLM 分类
        classifier_timeout_ms: LLM 分类超时（毫秒）
        log_level: 日志级别
        agent_definitions: 额外智能体定义文件路径
        model: 默认 Qwen 模型名称
    """
    max_concurrent: int = 5
    default_timeout_ms: int = 120000
    retry_policy: RetryPolicy = RetryPolicy.NONE
    max_retries: int = 0
    retry_delay: float = 1.0
    max_retry_delay: float = 30.0
    retry_on_timeout: bool = True
    classifier_enabled: bool = True
    classifier_timeout_ms: int = 30000
    log_level: str = "INFO"
    agent_definitions: Optional[str] = None
    model: str = "qwen-plus"

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "max_concurrent": self.max_concurrent,
            "default_timeout_ms": self.default_timeout_ms,
            "retry_policy": self.retry_policy.value,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "max_retry_delay": self.max_retry_delay,
            "retry_on_timeout": self.retry_on_timeout,
            "classifier_enabled": self.classifier_enabled,
            "classifier_timeout_ms": self.classifier_timeout_ms,
            "log_level": self.log_level,
            "agent_definitions": self.agent_definitions,
            "model": self.model,
        }

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(
            policy=self.retry_policy,
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
            max_delay=self.max_retry_delay,
            retry_on_timeout=self.retry_on_timeout,
        )

    def to_subagent_config(self) -> SubagentExecutionConfig:
        return SubagentExecutionConfig(
            max_concurrent=self.max_concurrent,
            timeout_ms=self.default_timeout_ms,
            retry_policy=self.retry_policy,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            max_retry_delay=self.max_retry_delay,
            retry_on_timeout=self.retry_on_timeout,
        )


def _parse_bool(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


class ConfigLoader:
    """配置加载器

    支持从 .env、环境变量和 YAML 配置文件加载配置，并提供配置验证功能。
    """

    def __init__(
        self,
        config_file: Optional[str] = None,
        env_file: Optional[str] = None,
        use_env: bool = True,
    ):
        """初始化配置加载器

        Args:
            config_file: YAML 配置文件路径（可选）
            env_file: .env 文件路径（可选，已存在的环境变量不会被覆盖）
            use_env: 是否读取环境变量
        """
        self._config = OrchestratorConfig()
        self._errors: List[str] = []

        if config_file:
            self.load_from_file(config_file)

        if env_file:
            load_dotenv(env_file, override=False)

        if use_env:
            self.load_from_env()

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    def _set_int(self, attr: str, raw: Any, source: str) -> None:
        try:
            setattr(self._config, attr, int(raw))
        except (TypeError, ValueError):
            self._errors.append(f"Invalid {source}: {raw!r} is not an integer")

    def _set_float(self, attr: str, raw: Any, source: str) -> None:
        try:
            setattr(self._config, attr, float(raw))
        except (TypeError, ValueError):
            self._errors.append(f"Invalid {source}: {raw!r} is not a number")

    def _set_policy(self, raw: Any, source: str) -> None:
        try:
            self._config.retry_policy = RetryPolicy(str(raw).strip().lower())
        except ValueError:
            self._errors.append(
                f"Invalid {source}: {raw!r}. Valid options: {[p.value for p in RetryPolicy]}"
            )

    def _set_bool(self, attr: str, raw: Any, source: str) -> None:
        if isinstance(raw, bool):
            setattr(self._config, attr, raw)
            return
        parsed = _parse_bool(str(raw))
        if parsed is None:
            self._errors.append(f"Invalid {source}: {raw!r} is not a boolean")
        else:
            setattr(self._config, attr, parsed)

    def load_from_env(self) -> None:
        """从环境变量加载配置

        环境变量映射：
        - ORCHESTRATOR_MAX_CONCURRENT -> max_concurrent
        - ORCHESTRATOR_TIMEOUT_MS -> default_timeout_ms
        - ORCHESTRATOR_RETRY_POLICY -> retry_policy
        - ORCHESTRATOR_MAX_RETRIES -> max_retries
        - ORCHESTRATOR_RETRY_DELAY -> retry_delay
        - ORCHESTRATOR_MAX_RETRY_DELAY -> max_retry_delay
        - ORCHESTRATOR_RETRY_ON_TIMEOUT -> retry_on_timeout
        - ORCHESTRATOR_CLASSIFIER_ENABLED -> classifier_enabled
        - ORCHESTRATOR_CLASSIFIER_TIMEOUT_MS -> classifier_timeout_ms
        - ORCHESTRATOR_LOG_LEVEL -> log_level
        - ORCHESTRATOR_AGENT_DEFINITIONS -> agent_definitions
        - ORCHESTRATOR_MODEL -> model
        """
        env = os.environ
        for name, (attr, kind) in _ENV_MAPPING.items():
            value = env.get(name)
            if value is None:
                continue
            if kind == "int":
                self._set_int(attr, value, name)
            elif kind == "float":
                self._set_float(attr, value, name)
            elif kind == "bool":
                self._set_bool(attr, value, name)
            elif kind == "policy":
                self._set_policy(value, name)
            elif value:
                setattr(self._config, attr, value.strip().upper() if attr == "log_level" else value)

    def load_from_file(self, path: str) -> None:
        """从 YAML 配置文件加载配置

        Args:
            path: 配置文件路径

        Raises:
            FileNotFoundError: 配置文件不存在
            yaml.YAMLError: 配置文件格式错误
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)

        if not config_data:
            return

        self.load_from_dict(config_data.get("orchestrator", {}) or {})
        logger.debug("Loaded configuration from %s", path)

    def load_from_dict(self, data: Dict[str, Any]) -> None:
        """从 ``orchestrator`` 段的字典加载配置"""
        for attr in ("max_concurrent", "default_timeout_ms", "max_retries", "classifier_timeout_ms"):
            if attr in data:
                self._set_int(attr, data[attr], f"orchestrator.{attr}")
        for attr in ("retry_delay", "max_retry_delay"):
            if attr in data:
                self._set_float(attr, data[attr], f"orchestrator.{attr}")
        for attr in ("retry_on_timeout", "classifier_enabled"):
            if attr in data:
                self._set_bool(attr, data[attr], f"orchestrator.{attr}")
        if "retry_policy" in data:
            self._set_policy(data["retry_policy"], "orchestrator.retry_policy")
        if "log_level" in data:
            self._config.log_level = str(data["log_level"]).strip().upper()
        if "agent_definitions" in data:
            self._config.agent_definitions = data["agent_definitions"]
        if "model" in data:
            self._config.model = str(data["model"])

    def validate(self) -> List[str]:
        """验证配置参数的有效性

        Returns:
            验证错误列表（包括加载阶段的解析错误），配置有效时返回空列表
        """
        errors: List[str] = list(self._errors)
        config = self._config

        if config.max_concurrent < 1:
            errors.append(
                f"Invalid max_concurrent: {config.max_concurrent}. Must be a positive integer."
            )
        if config.default_timeout_ms <= 0:
            errors.append(
                f"Invalid default_timeout_ms: {config.default_timeout_ms}. Must be positive."
            )
        if config.max_retries < 0:
            errors.append(f"Invalid max_retries: {config.max_retries}. Must be >= 0.")
        if config.retry_delay < 0:
            errors.append(f"Invalid retry_delay: {config.retry_delay}. Must be >= 0.")
        if config.max_retry_delay < config.retry_delay:
            errors.append(
                f"Invalid max_retry_delay: {config.max_retry_delay}. "
                "Must be >= retry_delay."
            )
        if config.classifier_timeout_ms <= 0:
            errors.append(
                f"Invalid classifier_timeout_ms: {config.classifier_timeout_ms}. Must be positive."
            )
        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(
                f"Invalid log_level: '{config.log_level}'. Valid options: {VALID_LOG_LEVELS}"
            )
        if config.agent_definitions and not os.path.exists(config.agent_definitions):
            errors.append(f"Agent definitions file not found: {config.agent_definitions}")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {"orchestrator": self._config.to_dict()}

    def __repr__(self) -> str:
        return f"ConfigLoader(\n  orchestrator={self._config}\n)"


def load_config(
    config_file: Optional[str] = None, env_file: Optional[str] = None
) -> OrchestratorConfig:
    """加载并返回配置对象（不做校验）"""
    return ConfigLoader(config_file=config_file, env_file=env_file).config
