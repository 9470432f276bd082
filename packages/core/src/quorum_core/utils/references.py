"""Issue references in pull request bodies and issue priority labels."""

from __future__ import annotations

import re

_CLOSING_KEYWORD_RE = re.compile(r"\b(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)\b\s*:?\s+(\S+)", re.IGNORECASE)
_ISSUE_NUMBER_RE = re.compile(r"^#(\d+)$")
_QUALIFIED_RE = re.compile(r"^([\w.-]+)/([\w.-]+)#(\d+)$")
_ISSUE_URL_RE = re.compile(r"^https://github\.com/([^/]+)/([^/]+)/issues/(\d+)$", re.IGNORECASE)
_FENCE_RE = re.compile(r"^(`{3,}|~{3,})")
_INLINE_CODE_RE = re.compile(r"(`+)[\s\S]*?\1")

PRIORITY_LABELS = {
    "high": "priority:high",
    "medium": "priority:medium",
    "low": "priority:low",
}


def _strip_code(body: str) -> str:
    """Drop fenced blocks and inline code; an unclosed fence runs to the end."""
    kept: list[str] = []
    fence: str | None = None
    for line in body.splitlines():
        stripped = line.lstrip()
        if fence is None:
            match = _FENCE_RE.match(stripped)
            if match:
                fence = match.group(1)
            else:
                kept.append(line)
            continue
        closing = stripped.strip()
        if len(closing) >= len(fence) and closing == fence[0] * len(closing):
            fence = None
    return _INLINE_CODE_RE.sub(" ", "\n".join(kept))


def extract_closing_issue_numbers(body: str | None, owner: str, repo: str) -> list[int]:
    """Issue numbers in this repository referenced with a closing keyword.

    Understands ``Fixes #12``, ``closes owner/repo#12`` and full issue URLs.
    References inside code are ignored. Order of first appearance is kept.
    """
    if not body:
        return []
    result: list[int] = []
    for match in _CLOSING_KEYWORD_RE.finditer(_strip_code(body)):
        target = match.group(1).rstrip("),.;:!?")
        number = None
        simple = _ISSUE_NUMBER_RE.match(target)
        if simple:
            number = int(simple.group(1))
        else:
            qualified = _QUALIFIED_RE.match(target) or _ISSUE_URL_RE.match(target)
            if qualified and qualified.group(1).lower() == owner.lower() and qualified.group(2).lower() == repo.lower():
                number = int(qualified.group(3))
        if number is not None and number not in result:
            result.append(number)
    return result


def get_issue_priority(labels) -> str | None:
    """Return "high", "medium" or "low" from the issue's labels, highest first."""
    names = {label if isinstance(label, str) else label.name for label in labels}
    for priority, label in PRIORITY_LABELS.items():
        if label in names:
            return priority
    return None
