"""Issue discussion context passed to summarizers, and the voting message built from it."""

from __future__ import annotations

from dataclasses import dataclass, field

from quorum_core.messages import SIGNATURE, VOTING_INSTRUCTIONS

# ~25k tokens, leaves room for the response.
MAX_CONTENT_CHARS = 100_000


@dataclass
class DiscussionComment:
    author: str
    body: str
    created_at: str
    thumbs_up: int = 0
    thumbs_down: int = 0


@dataclass
class IssueContext:
    title: str
    body: str
    author: str
    comments: list[DiscussionComment] = field(default_factory=list)

    @property
    def participant_count(self) -> int:
        return len({c.author for c in self.comments})


@dataclass
class DiscussionSummary:
    proposal: str
    aligned_on: list[str] = field(default_factory=list)
    open_for_pr: list[str] = field(default_factory=list)
    not_included: list[str] = field(default_factory=list)
    comment_count: int = 0
    participant_count: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> DiscussionSummary:
        """Build from the model's JSON. Raises ValueError on a schema mismatch."""
        if not isinstance(data, dict):
            raise ValueError("summary must be a JSON object")
        proposal = data.get("proposal")
        if not isinstance(proposal, str) or not proposal.strip():
            raise ValueError("summary.proposal must be a non-empty string")

        lists = {}
        for key in ("alignedOn", "openForPR", "notIncluded"):
            value = data.get(key, [])
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ValueError(f"summary.{key} must be a list of strings")
            lists[key] = value

        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            raise ValueError("summary.metadata must be an object")
        counts = {}
        for key in ("commentCount", "participantCount"):
            value = metadata.get(key)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"summary.metadata.{key} must be an integer")
            counts[key] = value

        return cls(
            proposal=proposal.strip(),
            aligned_on=lists["alignedOn"],
            open_for_pr=lists["openForPR"],
            not_included=lists["notIncluded"],
            comment_count=counts["commentCount"],
            participant_count=counts["participantCount"],
        )


def _render_comment(comment: DiscussionComment) -> str:
    return f"**@{comment.author}** ({comment.created_at}):\n{comment.body}\n\n---\n\n"


def _header(title: str, body: str) -> str:
    return f"## Issue: {title}\n\n### Original Description\n{body or '(No description provided)'}\n\n"


def build_discussion_text(context: IssueContext, max_chars: int = MAX_CONTENT_CHARS) -> str:
    """Render the discussion, dropping the oldest comments first when too long."""
    text = _header(context.title, context.body)
    if not context.comments:
        return text + "### Discussion\n(No comments yet)\n"

    rendered = [_render_comment(c) for c in context.comments]
    full = text + "### Discussion\n\n" + "".join(rendered)
    if len(full) <= max_chars:
        return full

    available = max_chars - len(text) - 200
    if available <= 0:
        return text + "### Discussion\n(Truncated: too many comments to include)\n"

    included: list[str] = []
    used = 0
    for chunk in reversed(rendered):
        if used + len(chunk) > available:
            break
        included.append(chunk)
        used += len(chunk)
    skipped = len(rendered) - len(included)

    result = text + "### Discussion\n\n"
    if skipped:
        result += f"*[{skipped} older comments truncated for length]*\n\n"
    return result + "".join(reversed(included))


def format_voting_message(summary: DiscussionSummary, issue_title: str, priority: str | None = None) -> str:
    """Voting comment body built around a discussion summary.

    Empty sections are omitted.
    """
    priority_header = f" ({priority.upper()} PRIORITY)" if priority else ""
    lines = [
        f"**Voting Phase{priority_header}**",
        "",
        f"# {issue_title}",
        "",
        "## Proposal",
        f"> {summary.proposal}",
        "",
    ]
    if priority:
        lines += [f"This issue is marked **{priority}-priority**; your timely vote is appreciated.", ""]

    for heading, points in (
        ("### ✅ Aligned On", summary.aligned_on),
        ("### 🔶 Open for PR", summary.open_for_pr),
        ("### ❌ Not Included", summary.not_included),
    ):
        if points:
            lines.append(heading)
            lines += [f"- {point}" for point in points]
            lines.append("")

    lines += ["---", "", VOTING_INSTRUCTIONS, ""]

    meta = [f"{summary.comment_count} comments"]
    if summary.participant_count > 0:
        meta.append(f"{summary.participant_count} participants")
    lines.append(" • ".join(meta))

    return "\n".join(lines) + SIGNATURE
