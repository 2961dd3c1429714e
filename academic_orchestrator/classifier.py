"""Task classifier.

Maps a free-form request to a ``TaskType``. An explicit ``request.type`` is
taken as-is. Otherwise the classifier asks an agent executor with a closed
taxonomy prompt, and falls back to an ordered keyword heuristic when that
path is unavailable or fails. ``classify`` never raises.
"""

import re
from typing import List, Optional, Tuple

from .cancellation import run_with_deadline
from .errors import ClassificationError
from .interfaces.agent_executor import ExecutionRequest, IAgentExecutor
from .interfaces.task_classifier import ITaskClassifier
from .models.enums import TaskType
from .models.request import UserRequest
from .prompts import build_classification_prompt
from .utils.logging import get_logger

logger = get_logger("classifier")

# 顺序即优先级
KEYWORD_RULES: List[Tuple[Tuple[str, ...], TaskType]] = [
    (("search", "literature", "find"), TaskType.LITERATURE),
    (("write", "generate", "create"), TaskType.WRITING),
    (("analyze", "data"), TaskType.ANALYSIS),
    (("review", "check"), TaskType.REVIEW),
    (("submit", "journal"), TaskType.SUBMISSION),
]

_WORD_RE = re.compile(r"[A-Za-z]+")


def keyword_classification(text: str) -> TaskType:
    """按关键词顺序匹配（子串、大小写不敏感），都不匹配时返回 comprehensive"""
    lower = (text or "").lower()
    for keywords, task_type in KEYWORD_RULES:
        if any(keyword in lower for keyword in keywords):
            return task_type
    return TaskType.COMPREHENSIVE


def parse_category(answer: str) -> TaskType:
    """
    从模型回答中取第一个是类别名的单词

    Raises:
        ClassificationError: 回答中没有任何类别名
    """
    for word in _WORD_RE.findall(answer or ""):
        task_type = TaskType.parse(word)
        if task_type is not None:
            return task_type
    raise ClassificationError(f"Unrecognized category in answer: {answer!r}")


class TaskClassifier(ITaskClassifier):
    """任务分类器"""

    def __init__(
        self,
        executor: Optional[IAgentExecutor] = None,
        enabled: bool = True,
        timeout_ms: Optional[int] = 30000,
    ):
        """
        Args:
            executor: 用于 LLM 分类的执行器，None 时只使用关键词
            enabled: 是否启用 LLM 分类
            timeout_ms: LLM 分类超时
        """
        self._executor = executor
        self._enabled = enabled
        self._timeout_ms = timeout_ms

    @property
    def llm_enabled(self) -> bool:
        return self._enabled and self._executor is not None

    async def classify(self, request: UserRequest) -> TaskType:
        if request.type is not None:
            return request.type

        if self.llm_enabled:
            try:
                task_type = await self._classify_with_llm(request.text)
                logger.info("Classified as: %s", task_type.value)
                return task_type
            except ClassificationError as e:
                logger.warning("LLM classification failed, using keywords: %s", e)

        task_type = keyword_classification(request.text)
        logger.info("Classified by keywords as: %s", task_type.value)
        return task_type

    async def _classify_with_llm(self, text: str) -> TaskType:
        request = ExecutionRequest(
            prompt=build_classification_prompt(text),
            timeout_ms=self._timeout_ms,
            agent_name="task-classifier",
        )
        timeout = self._timeout_ms / 1000.0 if self._timeout_ms else None
        try:
            response = await run_with_deadline(self._executor.execute(request), timeout)
        except Exception as e:
            raise ClassificationError(f"Classifier call failed: {e}") from e
        return parse_category(response.content)
