"""
Prompt templates for LLM-backed providers.
"""

import datetime
from typing import List, Tuple

from src.models import ContentKind

_NEWS_SYSTEM_PROMPT = (
    "You are a news curator for a skill-sharing marketplace, specializing in "
    "finding and summarizing the latest industry trends and developments. "
    "Create engaging news summaries that are relevant to skill learners and teachers."
)

_NEWS_USER_PROMPT = """
Find and create {count} current news articles related to {category} and skills like {keywords}.

For each article, provide:
1. A compelling headline
2. A 2-3 sentence summary
3. A relevance score between 0 and 1 for people learning or teaching these skills
4. The publication date

Focus on recent developments, trends, studies, or industry changes from the last 24 hours.
Make each article unique and informative.

Output Format:
- Return a raw JSON list of objects.
- DO NOT use Markdown formatting (no ```json blocks).
- Object schema: {{"title": str, "summary": str, "url": str, "source": str,
  "publishedAt": "ISO-8601 timestamp, today is {today}", "relevanceScore": float}}
"""

_ARTICLE_SYSTEM_PROMPT = (
    "You are an expert content writer for a skill-sharing marketplace. You write "
    "practical, well-structured long-form guides for people learning a new skill."
)

_ARTICLE_USER_PROMPT = """
Write {count} blog articles for the {category} category. Each article should focus on one of
these skills: {keywords}.

Requirements for each article:
- An SEO title of at most 60 characters
- A 2-3 sentence excerpt (at most 200 characters)
- Full article content in Markdown (800-1500 words) with H2/H3 subheadings,
  practical tips, common mistakes to avoid, and a short conclusion
- 3-5 tags
- A relevance score between 0 and 1 for beginners in this category

Output Format:
- Return a raw JSON list of objects.
- DO NOT use Markdown code fences around the JSON.
- Object schema: {{"title": str, "excerpt": str, "content": str, "tags": [str],
  "relevanceScore": float}}
"""


def build_prompt(
    kind: ContentKind, category: str, keywords: List[str], item_count: int
) -> Tuple[str, str]:
    """Returns the (system, user) prompt pair for a generation request."""
    joined = ", ".join(k.replace("-", " ") for k in keywords) or category
    if kind is ContentKind.NEWS:
        today = datetime.date.today().isoformat()
        return _NEWS_SYSTEM_PROMPT, _NEWS_USER_PROMPT.format(
            count=item_count, category=category, keywords=joined, today=today
        )
    return _ARTICLE_SYSTEM_PROMPT, _ARTICLE_USER_PROMPT.format(
        count=item_count, category=category, keywords=joined
    )
