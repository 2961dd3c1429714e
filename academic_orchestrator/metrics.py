"""Per-instance agent call metrics.

One collector is created per orchestrator (or injected by the caller); there
is no module-level instance.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


def estimate_tokens(text: str) -> int:
    """粗略估算 token 数（约 4 个字符一个 token）"""
    if not text:
        return 0
    return (len(text) + 3) // 4


@dataclass
class AgentMetrics:
    """单个智能体的调用统计"""
    calls: int = 0
    errors: int = 0
    total_duration_ms: float = 0.0
    total_tokens: int = 0
    last_call_time: Optional[float] = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.calls if self.calls else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "errors": self.errors,
            "total_duration_ms": self.total_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "total_tokens": self.total_tokens,
            "last_call_time": self.last_call_time,
        }


class MetricsCollector:
    """指标收集器"""

    def __init__(self) -> None:
        self._agents: Dict[str, AgentMetrics] = {}
        self._started_at = time.time()

    def record_agent_call(
        self,
        agent_name: str,
        duration_ms: float,
        tokens_used: int = 0,
        success: bool = True,
    ) -> None:
        metrics = self._agents.setdefault(agent_name, AgentMetrics())
        metrics.calls += 1
        metrics.total_duration_ms += duration_ms
        metrics.total_tokens += tokens_used
        metrics.last_call_time = time.time()
        if not success:
            metrics.errors += 1

    def get_agent_metrics(self, agent_name: str) -> Optional[AgentMetrics]:
        return self._agents.get(agent_name)

    def summary(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": time.time() - self._started_at,
            "total_calls": sum(m.calls for m in self._agents.values()),
            "total_tokens": sum(m.total_tokens for m in self._agents.values()),
            "agents": {name: m.to_dict() for name, m in self._agents.items()},
        }

    def reset(self) -> None:
        self._agents.clear()
        self._started_at = time.time()
