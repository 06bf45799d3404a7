"""
Parsing of generation provider responses.

Providers are asked for JSON, but models often wrap it in Markdown or reply
in prose. parse_generated_items tries JSON first and falls back to a
tolerant paragraph-based parse.
"""

import datetime
import html
import json
import logging
import re
from typing import Any, Dict, List, Optional

from src.models import Candidate

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "[PLACEHOLDER]"

_LIST_KEYS = ("articles", "items", "posts", "news")

_TITLE_RE = re.compile(
    r"^(?:\d+[.)]\s*)?[*_]*(?:title|headline)[*_]*\s*:\s*(.+)$", re.IGNORECASE
)
_HEADING_RE = re.compile(r"^#{1,6}\s+(.+)$")
_NUMBERED_RE = re.compile(r"^\d+[.)]\s+(.+)$")
_SUMMARY_RE = re.compile(
    r"^[*_-]*\s*(?:summary|excerpt|description)[*_]*\s*:\s*(.+)$", re.IGNORECASE
)
_LABEL_RE = re.compile(r"^[*_-]*\s*[A-Za-z ]{2,20}[*_]*\s*:\s*")


def clean_html(raw_html: Optional[str]) -> str:
    """Removes HTML tags and entities from a string."""
    if not raw_html:
        return ""
    text = re.sub(re.compile("<.*?>"), "", raw_html)
    return " ".join(html.unescape(text).split())


def strip_code_fences(text: str) -> str:
    """Removes a surrounding Markdown code block, if any."""
    cleaned = text.strip()
    # Strip Markdown code blocks usually returned by LLMs
    if cleaned.startswith("```"):
        # Remove opening ```json or ```
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        # Remove closing ```
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Parses ISO-8601 strings, epoch numbers (s or ms) and datetimes to aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def _parse_score(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(score, 1.0))


def candidate_from_dict(raw: Dict[str, Any], default_source: str) -> Optional[Candidate]:
    """Builds a Candidate from one JSON object; None when it has no title."""
    title = str(raw.get("title") or raw.get("headline") or "").strip()
    if not title:
        return None
    summary = str(
        raw.get("summary") or raw.get("excerpt") or raw.get("description") or ""
    ).strip()
    tags = raw.get("tags") or raw.get("keywords") or []
    score = None
    for key in ("relevanceScore", "relevance_score", "score"):
        score = _parse_score(raw.get(key))
        if score is not None:
            break
    return Candidate(
        title=title,
        summary=summary,
        body=str(raw.get("content") or raw.get("body") or "").strip(),
        url=str(raw.get("url") or raw.get("link") or ""),
        source=str(raw.get("source") or default_source),
        published_at=parse_timestamp(raw.get("publishedAt") or raw.get("published_at")),
        relevance_score=score,
        tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
    )


def parse_json_items(text: str, default_source: str) -> List[Candidate]:
    """Parses a JSON list (or an object holding one). Raises ValueError otherwise."""
    data = json.loads(strip_code_fences(text))
    if isinstance(data, dict):
        for key in _LIST_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            data = [data]
    if not isinstance(data, list):
        raise ValueError("JSON response is not a list of items")

    candidates = []
    for raw in data:
        if isinstance(raw, dict):
            candidate = candidate_from_dict(raw, default_source)
            if candidate:
                candidates.append(candidate)
    return candidates


def _strip_emphasis(text: str) -> str:
    return text.strip().strip("*_\"' ").strip()


def _match_title(line: str) -> Optional[str]:
    for pattern in (_TITLE_RE, _HEADING_RE, _NUMBERED_RE):
        match = pattern.match(line)
        if match:
            title = _strip_emphasis(_LABEL_RE.sub("", match.group(1), count=1))
            return title or None
    return None


def parse_text_items(text: str, default_source: str) -> List[Candidate]:
    """
    Recovers title/summary pairs from a prose response.

    Paragraphs are separated by blank lines. A paragraph whose first line looks
    like a title ("Title: ...", a Markdown heading or a numbered headline)
    starts a new item; a "Summary: ..." line, or failing that the first
    paragraph longer than 50 characters, becomes its summary.
    """
    items: List[Dict[str, str]] = []
    current: Optional[Dict[str, str]] = None

    for segment in re.split(r"\n\s*\n", text.strip()):
        lines = [line.strip() for line in segment.splitlines() if line.strip()]
        if not lines:
            continue

        title = _match_title(lines[0])
        rest = lines
        if title:
            if current:
                items.append(current)
            current = {"title": title, "summary": ""}
            rest = lines[1:]
        if current is None:
            continue

        for line in rest:
            match = _SUMMARY_RE.match(line)
            if match and not current["summary"]:
                current["summary"] = _strip_emphasis(match.group(1))
        if not current["summary"]:
            paragraph = " ".join(_LABEL_RE.sub("", line) for line in rest)
            if len(paragraph) > 50:
                current["summary"] = paragraph

    if current:
        items.append(current)

    now = datetime.datetime.now(datetime.timezone.utc)
    return [
        Candidate(
            title=item["title"],
            summary=item["summary"],
            source=default_source,
            published_at=now,
        )
        for item in items
    ]


def placeholder_padding(category: str, count: int, start_index: int = 0) -> List[Candidate]:
    """Generic, clearly labeled filler items (degraded)."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return [
        Candidate(
            title=f"{PLACEHOLDER_PREFIX} Latest Developments in {category} ({start_index + i + 1})",
            summary=(
                f"{PLACEHOLDER_PREFIX} Industry experts discuss emerging trends and "
                f"innovations in {category}."
            ),
            source="Placeholder",
            published_at=now,
            relevance_score=0.0,
            degraded=True,
        )
        for i in range(count)
    ]


def parse_generated_items(
    text: str,
    category: str,
    item_count: int,
    default_source: str,
    allow_padding: bool = False,
) -> List[Candidate]:
    """
    Parses a provider response into candidates.

    Only the text-fallback path pads, only when padding is allowed, and only
    when at least one real item was recovered.
    """
    if not text or not text.strip():
        return []
    try:
        return parse_json_items(text, default_source)
    except (json.JSONDecodeError, ValueError):
        logger.info("Response from %s is not JSON, using text fallback", default_source)

    candidates = parse_text_items(text, default_source)
    if candidates and len(candidates) < item_count and allow_padding:
        missing = item_count - len(candidates)
        logger.warning(
            "Text fallback recovered %d/%d items for %s, padding with %d placeholders",
            len(candidates),
            item_count,
            category,
            missing,
        )
        candidates.extend(placeholder_padding(category, missing, len(candidates)))
    return candidates
