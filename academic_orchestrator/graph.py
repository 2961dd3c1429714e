"""Integer-indexed dependency graph.

Nodes are addressed by their position in the submitted task list; edges point
from a node to the nodes it depends on. Cycle detection is an iterative DFS
with an explicit stack, so arbitrarily deep chains do not hit the recursion
limit.
"""

from typing import Dict, List, Optional, Sequence, Set

from .models.task import Task

# DFS 着色
_WHITE, _GRAY, _BLACK = 0, 1, 2


class DependencyGraph:
    """依赖图

    Attributes:
        ids: 索引 -> 任务 ID
        index: 任务 ID -> 索引（重复 ID 取第一次出现）
        deps: 索引 -> 依赖的索引列表（只包含已知依赖）
        unknown: 索引 -> 未知依赖 ID 列表
    """

    def __init__(self, tasks: Sequence[Task]) -> None:
        self.ids: List[str] = [task.id for task in tasks]
        self.index: Dict[str, int] = {}
        for i, task_id in enumerate(self.ids):
            self.index.setdefault(task_id, i)

        self.deps: List[List[int]] = []
        self.unknown: Dict[int, List[str]] = {}
        for i, task in enumerate(tasks):
            resolved = []
            for dep in task.dependencies:
                j = self.index.get(dep)
                if j is None:
                    self.unknown.setdefault(i, []).append(dep)
                elif j not in resolved:
                    resolved.append(j)
            self.deps.append(resolved)

    def __len__(self) -> int:
        return len(self.ids)

    def dependents(self) -> List[List[int]]:
        """反向邻接表：索引 -> 依赖它的索引"""
        reverse: List[List[int]] = [[] for _ in self.ids]
        for i, deps in enumerate(self.deps):
            for j in deps:
                reverse[j].append(i)
        return reverse

    def find_cycle(self) -> Optional[List[str]]:
        """
        查找一个循环

        Returns:
            构成循环的任务 ID 列表（首尾相同，如 ``["A", "A"]``），无循环时返回 None
        """
        color = [_WHITE] * len(self.ids)
        parent: List[int] = [-1] * len(self.ids)

        for root in range(len(self.ids)):
            if color[root] != _WHITE:
                continue
            # 栈元素：(节点, 下一个要访问的依赖位置)
            stack = [(root, 0)]
            color[root] = _GRAY
            while stack:
                node, pos = stack[-1]
                if pos < len(self.deps[node]):
                    stack[-1] = (node, pos + 1)
                    nxt = self.deps[node][pos]
                    if color[nxt] == _GRAY:
                        return self._cycle_path(parent, node, nxt)
                    if color[nxt] == _WHITE:
                        color[nxt] = _GRAY
                        parent[nxt] = node
                        stack.append((nxt, 0))
                else:
                    color[node] = _BLACK
                    stack.pop()
        return None

    def _cycle_path(self, parent: List[int], node: int, start: int) -> List[str]:
        path = [node]
        while path[-1] != start:
            path.append(parent[path[-1]])
        path.reverse()
        return [self.ids[i] for i in path] + [self.ids[start]]

    def has_cycle(self) -> bool:
        return self.find_cycle() is not None

    def topological_layers(self) -> List[List[str]]:
        """
        按 Kahn 算法分层：同一层内的任务互不依赖

        Returns:
            每层的任务 ID 列表（层内保持声明顺序）；存在循环时循环中的节点不会出现
        """
        in_degree = [len(deps) for deps in self.deps]
        reverse = self.dependents()
        layer = [i for i, deg in enumerate(in_degree) if deg == 0]
        layers: List[List[str]] = []
        while layer:
            layers.append([self.ids[i] for i in layer])
            next_layer: Set[int] = set()
            for i in layer:
                for dependent in reverse[i]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        next_layer.add(dependent)
            layer = sorted(next_layer)
        return layers

    def ready(self, settled: Set[str], succeeded: Set[str]) -> List[int]:
        """
        计算就绪集合：尚未结束且所有依赖都已成功的节点

        Args:
            settled: 已结束（成功、失败或跳过）的任务 ID
            succeeded: 已成功的任务 ID

        Returns:
            就绪节点索引（声明顺序）
        """
        result = []
        for i, task_id in enumerate(self.ids):
            if task_id in settled or i in self.unknown:
                continue
            if all(self.ids[j] in succeeded for j in self.deps[i]):
                result.append(i)
        return result

    def blocked(self, settled: Set[str], succeeded: Set[str]) -> List[int]:
        """
        计算应跳过的节点：尚未结束且某个依赖已结束但未成功（或依赖未知）

        Returns:
            应跳过的节点索引（声明顺序）
        """
        result = []
        for i, task_id in enumerate(self.ids):
            if task_id in settled:
                continue
            if i in self.unknown:
                result.append(i)
                continue
            for j in self.deps[i]:
                dep_id = self.ids[j]
                if dep_id in settled and dep_id not in succeeded:
                    result.append(i)
                    break
        return result


def detect_cycle(tasks: Sequence[Task]) -> Optional[List[str]]:
    """便捷函数：返回任务列表中的一个循环，没有则返回 None"""
    return DependencyGraph(tasks).find_cycle()

