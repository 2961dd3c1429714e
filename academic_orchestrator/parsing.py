"""Helpers for pulling structure out of free-text agent answers.

These are used by calling stages (the literature-review pipeline, the Qwen
executor). The scheduler itself never parses agent output.
"""

import json
import re
from typing import Any, List, Optional

from .utils.logging import get_logger

logger = get_logger("parsing")

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_NUMBERED_LINE_RE = re.compile(r"^\s*\d+\.\s*(.*)")


def extract_json_array(text: str) -> Optional[List[Any]]:
    """
    从文本中提取 JSON 数组

    优先尝试 ```json 代码块，其次取第一个 ``[`` 到最后一个 ``]`` 之间的内容。

    Returns:
        解析出的列表，找不到或解析失败时返回 None
    """
    if not text:
        return None

    candidates = [m.group(1) for m in _FENCED_JSON_RE.finditer(text)]
    match = _JSON_ARRAY_RE.search(text)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            value = json.loads(candidate.strip())
        except ValueError:
            continue
        if isinstance(value, list):
            return value

    logger.warning("No valid JSON array found in response")
    return None


def parse_numbered_list(text: str) -> List[str]:
    """
    解析编号列表（``1. xxx``），续行并入上一条

    没有任何编号行时返回 ``[text]``（空文本返回空列表）。
    """
    items: List[str] = []
    current: Optional[str] = None
    for line in text.splitlines():
        match = _NUMBERED_LINE_RE.match(line)
        if match:
            if current:
                items.append(current.strip())
            current = match.group(1)
        elif current is not None and line.strip():
            current += " " + line.strip()
    if current:
        items.append(current.strip())

    if items:
        return items
    return [text] if text.strip() else []
