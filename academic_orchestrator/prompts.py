"""Prompt templates.

Templates are plain ``str.format`` strings; builders below fill them in. None
of these are interpreted by the scheduler, which treats prompts as opaque
text.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .models.agent import AgentMetadata

CONTEXT_SECTION_HEADER = "## Context from Previous Tasks"

CLASSIFICATION_PROMPT = """Classify this research request into one of these categories:

Request: "{text}"

Categories:
- literature: Search and analyze academic literature
- writing: Create or improve academic text
- analysis: Analyze data or run experiments
- review: Review and improve paper quality
- submission: Prepare for journal submission
- comprehensive: Multi-step research task

Return only the category name (one word)."""

AGENT_PROMPT = """You are {name}, {description}.

Your capabilities: {capabilities}

User request: {text}

Execute your specialized function and provide a helpful response."""

SEARCH_PROMPT = """Search for {max_papers} academic papers about: "{topic}"

Return results as a JSON array with the following structure:
[
  {{
    "id": "unique_id",
    "title": "Paper Title",
    "authors": ["Author1", "Author2"],
    "abstract": "Brief summary...",
    "year": 2023,
    "venue": "Conference/Journal",
    "url": "https://...",
    "pdfUrl": "https://...",
    "citationCount": 100,
    "doi": "10.xxxx/xxxxx",
    "relevanceScore": 9.5,
    "source": "arxiv"
  }}
]

Focus on:
1. Recent papers (last 3-5 years)
2. Highly cited papers (citation count as impact indicator)
3. Survey papers for comprehensive coverage
4. Top-tier venues (NeurIPS, ICML, ACL, EMNLP, etc.)

Quality over quantity: better to have {focus_papers} highly relevant papers than {max_papers} marginally relevant ones."""

REVIEW_PAPER_PROMPT = """Review paper #{number}:

Title: {title}
Authors: {authors}
Year: {year}
Venue: {venue}
{abstract_line}
Provide a concise review covering:
1. Main contribution (1-2 sentences)
2. Methodology approach (1-2 sentences)
3. Key findings (1-2 sentences)
4. Strengths (bullet points)
5. Limitations (bullet points)

Keep it under 200 words."""

GAP_PROMPT = """Topic: {topic}

Analyzed {paper_count} papers. Here are summaries of the most relevant ones:

{summaries}

Based on these papers, identify 5-7 specific research gaps or future directions.

For each gap:
1. Provide a clear, specific description
2. Explain why this is a gap
3. Suggest how it could be addressed

Format as a numbered list."""

SYNTHESIS_PROMPT = """Write a comprehensive literature review on: {topic}

Papers Analyzed: {paper_count}

Key Papers:
{key_papers}

Identified Research Gaps:
{gaps}

Create a literature review with:
1. **Introduction** (overview of the topic, its importance)
2. **Main Themes** (organize papers by themes/approaches, 3-4 themes)
3. **Methodological Trends** (common methods, datasets used)
4. **Key Findings** (major discoveries across papers)
5. **Research Gaps** (based on identified gaps)
6. **Future Directions** (how gaps could be addressed)

Keep it under 1000 words. Be specific and cite papers by title in brackets."""

# 控制 token 用量
GAP_SUMMARY_PAPERS = 10
SYNTHESIS_KEY_PAPERS = 15
SYNTHESIS_ANALYSIS_CHARS = 200


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def enrich_prompt_with_context(prompt: str, context_data: Mapping[str, Any]) -> str:
    """
    把前序任务的输出追加到提示词末尾

    ``context_data`` 为空时原样返回。每个条目渲染为 ``### <task_id>`` 加上
    JSON 格式的值，条目顺序即映射的插入顺序。
    """
    if not context_data:
        return prompt
    entries = "\n\n".join(
        f"### {task_id}\n{json.dumps(value, indent=2, ensure_ascii=False, default=str)}"
        for task_id, value in context_data.items()
    )
    return f"{prompt}\n\n{CONTEXT_SECTION_HEADER}\n\n{entries}"


def build_classification_prompt(text: str) -> str:
    return CLASSIFICATION_PROMPT.format(text=text)


def build_agent_prompt(agent: AgentMetadata, text: str) -> str:
    """路由到智能体时使用的提示词"""
    return AGENT_PROMPT.format(
        name=agent.name,
        description=agent.description,
        capabilities=", ".join(agent.capabilities),
        text=text,
    )


def build_search_prompt(topic: str, max_papers: int) -> str:
    return SEARCH_PROMPT.format(
        topic=topic, max_papers=max_papers, focus_papers=min(max_papers, 20)
    )


def build_review_prompt(paper: Dict[str, Any], index: int) -> str:
    abstract = paper.get("abstract")
    return REVIEW_PAPER_PROMPT.format(
        number=index + 1,
        title=paper.get("title", ""),
        authors=", ".join(paper.get("authors") or []),
        year=paper.get("year", ""),
        venue=paper.get("venue") or "Unknown",
        abstract_line=f"Abstract: {abstract}\n" if abstract else "",
    )


def build_gap_prompt(topic: str, papers: Sequence[Dict[str, Any]], analyses: Sequence[str]) -> str:
    summaries = []
    for i, paper in enumerate(papers[:GAP_SUMMARY_PAPERS]):
        analysis = analyses[i] if i < len(analyses) else ""
        summaries.append(f"{i + 1}. {paper.get('title', '')}\n   {_to_text(analysis)}")
    return GAP_PROMPT.format(
        topic=topic, paper_count=len(papers), summaries="\n\n".join(summaries)
    )


def build_synthesis_prompt(
    topic: str,
    papers: Sequence[Dict[str, Any]],
    analyses: Sequence[str],
    gaps: Sequence[str],
) -> str:
    key_papers: List[str] = []
    for i, paper in enumerate(papers[:SYNTHESIS_KEY_PAPERS]):
        lines = [
            f"{i + 1}. {paper.get('title', '')} ({paper.get('year', '')})",
            f"   Authors: {', '.join((paper.get('authors') or [])[:3])}",
            f"   Venue: {paper.get('venue') or 'Unknown'}",
        ]
        analysis: Optional[str] = analyses[i] if i < len(analyses) else None
        if analysis:
            lines.append(f"   Key Points: {_to_text(analysis)[:SYNTHESIS_ANALYSIS_CHARS]}")
        key_papers.append("\n".join(lines))
    return SYNTHESIS_PROMPT.format(
        topic=topic,
        paper_count=len(papers),
        key_papers="\n\n".join(key_papers),
        gaps="\n".join(f"{i + 1}. {gap}" for i, gap in enumerate(gaps)),
    )
