"""Named condition predicates for conditional workflows."""

from typing import Callable, Dict, List

from .context import ExecutionContext
from .errors import UnknownConditionError

ConditionPredicate = Callable[[ExecutionContext], bool]


def has_results(context: ExecutionContext) -> bool:
    return len(context.previous_results) > 0


def has_failures(context: ExecutionContext) -> bool:
    return len(context.failures) > 0


def is_first(context: ExecutionContext) -> bool:
    return len(context.previous_results) == 0


def always(context: ExecutionContext) -> bool:
    return True


BUILTIN_CONDITIONS: Dict[str, ConditionPredicate] = {
    "hasResults": has_results,
    "hasFailures": has_failures,
    "isFirst": is_first,
    "always": always,
}


class ConditionRegistry:
    """条件谓词注册表

    内置 ``hasResults`` / ``hasFailures`` / ``isFirst`` / ``always``，
    可以按名称注册自定义谓词（同名覆盖）。
    """

    def __init__(self) -> None:
        self._predicates: Dict[str, ConditionPredicate] = dict(BUILTIN_CONDITIONS)

    def register(self, name: str, predicate: ConditionPredicate) -> None:
        self._predicates[name] = predicate

    def unregister(self, name: str) -> None:
        self._predicates.pop(name, None)

    def has(self, name: str) -> bool:
        return name in self._predicates

    def names(self) -> List[str]:
        return list(self._predicates)

    def evaluate(self, name: str, context: ExecutionContext) -> bool:
        """
        在当前上下文上求值

        Raises:
            UnknownConditionError: 谓词未注册
        """
        predicate = self._predicates.get(name)
        if predicate is None:
            raise UnknownConditionError(f"Unknown condition: {name}")
        return bool(predicate(context))
