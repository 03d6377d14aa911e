"""
Pure request/response shaping helpers shared by the provider adapters.
"""
import json
import re
from typing import Any, Iterable, List, Optional

from friction_router.models.chat import ChatMessage

SOURCES_MARKER = "Sources:"

_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z]*\n?")
_FENCE_CLOSE_RE = re.compile(r"```$")


def merge_consecutive_roles(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    """
    Collapse runs of same-role turns into one turn.

    Required by providers that enforce strict user/assistant alternation.
    Merged contents are joined with a blank line.

    Example:
        >>> merge_consecutive_roles([user("a"), user("b"), assistant("c")])
        [ChatMessage(role='user', content='a\\n\\nb'), ChatMessage(role='assistant', content='c')]
    """
    merged: List[ChatMessage] = []
    for message in messages:
        if merged and merged[-1].role == message.role:
            last = merged.pop()
            merged.append(ChatMessage(role=last.role, content=f"{last.content}\n\n{message.content}"))
        else:
            merged.append(message)
    return merged


def append_citations(text: str, citations: Optional[Iterable[Any]]) -> str:
    """
    Append a numbered source list unless the text already has one.

    Citations keep the order the provider returned them in.
    """
    urls = [str(c) for c in (citations or []) if c]
    if not urls or SOURCES_MARKER in text:
        return text
    lines = [f"[{index}] {url}" for index, url in enumerate(urls, start=1)]
    return text + "\n\n" + SOURCES_MARKER + "\n" + "\n".join(lines)


def parse_json_response(text: Optional[str]) -> Optional[dict]:
    """
    Recover a JSON object from model output.

    Tolerates markdown code fences and prose around the object.
    Returns None if no object can be decoded.
    """
    if not text:
        return None
    trimmed = text.strip()
    if trimmed.startswith("```"):
        trimmed = _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", trimmed)).strip()
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    try:
        parsed = json.loads(trimmed[start:end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None
