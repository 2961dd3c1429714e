"""TaskClassifier 测试：显式类型、LLM 分类和关键词回退。"""

from unittest.mock import AsyncMock

import pytest

from academic_orchestrator.classifier import TaskClassifier, keyword_classification, parse_category
from academic_orchestrator.errors import ClassificationError
from academic_orchestrator.interfaces.agent_executor import ExecutionResponse
from academic_orchestrator.models.enums import TaskType
from academic_orchestrator.models.request import UserRequest


def _make_llm(answer=None, error=None):
    executor = AsyncMock()
    if error is not None:
        executor.execute.side_effect = error
    else:
        executor.execute.return_value = ExecutionResponse(content=answer)
    return executor


class TestKeywordClassification:
    """关键词回退测试"""

    @pytest.mark.parametrize("text,expected", [
        ("search for papers about X", TaskType.LITERATURE),
        ("Generate an abstract", TaskType.WRITING),
        ("analyze this dataset", TaskType.ANALYSIS),
        ("please check my grammar", TaskType.REVIEW),
        ("which journal should I pick", TaskType.SUBMISSION),
        ("help me with my thesis", TaskType.COMPREHENSIVE),
    ])
    def test_rules(self, text, expected):
        assert keyword_classification(text) == expected

    def test_first_matching_rule_wins(self):
        """同时命中多个规则时按规则顺序取第一个"""
        assert keyword_classification("find data and write a review") == TaskType.LITERATURE

    def test_empty_text(self):
        assert keyword_classification("") == TaskType.COMPREHENSIVE


class TestParseCategory:
    """模型回答解析测试"""

    def test_first_category_word(self):
        assert parse_category("Category: Writing.") == TaskType.WRITING

    def test_unrecognized(self):
        with pytest.raises(ClassificationError):
            parse_category("I am not sure")


class TestTaskClassifier:
    """分类器测试"""

    @pytest.mark.asyncio
    async def test_keyword_fallback_without_llm(self):
        classifier = TaskClassifier(executor=None)
        result = await classifier.classify(UserRequest(text="search for papers about X"))
        assert result == TaskType.LITERATURE

    @pytest.mark.asyncio
    async def test_disabled_llm_uses_keywords(self):
        llm = _make_llm("writing")
        classifier = TaskClassifier(executor=llm, enabled=False)
        result = await classifier.classify(UserRequest(text="search for papers about X"))
        assert result == TaskType.LITERATURE
        llm.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_explicit_type_is_returned(self):
        llm = _make_llm("writing")
        classifier = TaskClassifier(executor=llm)
        result = await classifier.classify(UserRequest(text="anything", type=TaskType.REVIEW))
        assert result == TaskType.REVIEW
        llm.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_llm_answer_used(self):
        llm = _make_llm("analysis")
        classifier = TaskClassifier(executor=llm)
        result = await classifier.classify(UserRequest(text="search for papers"))
        assert result == TaskType.ANALYSIS
        request = llm.execute.call_args.args[0]
        assert "search for papers" in request.prompt
        assert request.agent_name == "task-classifier"

    @pytest.mark.asyncio
    async def test_unparseable_answer_falls_back(self):
        classifier = TaskClassifier(executor=_make_llm("no idea"))
        result = await classifier.classify(UserRequest(text="write an introduction"))
        assert result == TaskType.WRITING

    @pytest.mark.asyncio
    async def test_llm_error_falls_back(self):
        classifier = TaskClassifier(executor=_make_llm(error=RuntimeError("service down")))
        result = await classifier.classify(UserRequest(text="submit to a journal"))
        assert result == TaskType.SUBMISSION

    def test_llm_enabled(self):
        assert TaskClassifier(executor=_make_llm("x")).llm_enabled
        assert not TaskClassifier(executor=None).llm_enabled
