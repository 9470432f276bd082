"""Machine-readable metadata embedded in bot comments.

Every comment the bot posts starts with a hidden HTML marker::

    <!-- quorum-metadata: {"version":1,"type":"voting","cycle":2,...} -->

The marker is how the bot finds its own comments again (the voting comment
whose reactions are the ballot box, an already-posted error notice, and so
on). Parsing is strict: anything malformed decodes to ``None`` rather than
raising, and identity checks also require the comment to have been posted by
the configured GitHub App so a user cannot spoof a marker.

The JSON layout is a wire contract. Comments posted years ago must still
parse, so fields are only ever added, and never renamed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

METADATA_PREFIX = "quorum-metadata:"
METADATA_VERSION = 1

COMMENT_TYPES = (
    "voting",
    "leaderboard",
    "welcome",
    "alignment",
    "status",
    "error",
    "notification",
    "standup",
)

ERROR_CODES = {
    "VOTING_COMMENT_NOT_FOUND": "VOTING_COMMENT_NOT_FOUND",
}

NOTIFICATION_TYPES = {
    "VOTING_PASSED": "voting-passed",
    "IMPLEMENTATION_WELCOME": "implementation-welcome",
    "ISSUE_NEW_PR": "issue-new-pr",
}

# Visible phrases; kept stable so humans can search for them.
SIGNATURES = {
    "VOTING": "React to THIS comment to vote",
    "HUMAN_HELP": "Blocked: human help needed",
}

_METADATA_RE = re.compile(r"<!--\s*" + re.escape(METADATA_PREFIX) + r"\s*(\{[\s\S]*?\})\s*-->")

# (json key, attribute, type, required) per variant, in serialization order.
_VARIANT_FIELDS: dict[str, tuple[tuple[str, str, type, bool], ...]] = {
    "voting": (("cycle", "cycle", int, False),),
    "error": (("errorCode", "error_code", str, True),),
    "notification": (("notificationType", "notification_type", str, True),),
    "standup": (
        ("day", "day", int, True),
        ("date", "date", str, True),
        ("repo", "repo", str, True),
    ),
}


@dataclass(frozen=True)
class CommentMetadata:
    """One decoded marker. Only the fields of its ``type`` are populated."""

    type: str
    created_at: str
    issue_number: int
    version: int = METADATA_VERSION
    cycle: int | None = None
    error_code: str | None = None
    notification_type: str | None = None
    day: int | None = None
    date: str | None = None
    repo: str | None = None

    def to_dict(self) -> dict:
        data: dict = {"version": self.version, "type": self.type}
        for key, attr, _, _ in _VARIANT_FIELDS.get(self.type, ()):
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        data["createdAt"] = self.created_at
        data["issueNumber"] = self.issue_number
        return data

    @classmethod
    def from_dict(cls, data) -> CommentMetadata | None:
        if not isinstance(data, dict):
            return None
        if not _is_int(data.get("version")) or data["version"] != METADATA_VERSION:
            return None
        comment_type = data.get("type")
        if comment_type not in COMMENT_TYPES:
            return None
        if not isinstance(data.get("createdAt"), str) or not _is_int(data.get("issueNumber")):
            return None

        variant: dict = {}
        for key, attr, expected, required in _VARIANT_FIELDS.get(comment_type, ()):
            value = data.get(key)
            if value is None:
                if required:
                    return None
                continue
            if expected is int and not _is_int(value):
                return None
            if expected is str and not isinstance(value, str):
                return None
            variant[attr] = value

        return cls(
            type=comment_type,
            created_at=data["createdAt"],
            issue_number=data["issueNumber"],
            **variant,
        )


def _is_int(value) -> bool:
    # bool is an int subclass; JSON true must not pass as a number.
    return isinstance(value, int) and not isinstance(value, bool)


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


# ------------------------------------------------------------------ #
# Encode / decode                                                    #
# ------------------------------------------------------------------ #


def generate_metadata_tag(metadata: CommentMetadata) -> str:
    payload = json.dumps(metadata.to_dict(), separators=(",", ":"), ensure_ascii=False)
    return f"<!-- {METADATA_PREFIX} {payload} -->"


def parse_metadata(body: str | None) -> CommentMetadata | None:
    """Extract the metadata marker from a comment body, or None."""
    if not body:
        return None
    match = _METADATA_RE.search(body)
    if not match:
        return None
    try:
        data = json.loads(match.group(1))
    except ValueError:
        logger.debug("Ignoring metadata marker with invalid JSON")
        return None
    return CommentMetadata.from_dict(data)


def _build(comment_type: str, message: str, issue_number: int, created_at: str | None, **fields) -> str:
    metadata = CommentMetadata(
        type=comment_type,
        created_at=created_at or _now_iso(),
        issue_number=issue_number,
        **fields,
    )
    return f"{generate_metadata_tag(metadata)}\n{message}"


# ------------------------------------------------------------------ #
# Builders                                                           #
# ------------------------------------------------------------------ #


def build_voting_comment(message: str, issue_number: int, cycle: int, created_at: str | None = None) -> str:
    return _build("voting", message, issue_number, created_at, cycle=cycle)


def build_welcome_comment(message: str, issue_number: int, created_at: str | None = None) -> str:
    return _build("welcome", message, issue_number, created_at)


def build_alignment_comment(message: str, issue_number: int, created_at: str | None = None) -> str:
    return _build("alignment", message, issue_number, created_at)


def build_leaderboard_comment(message: str, issue_number: int, created_at: str | None = None) -> str:
    return _build("leaderboard", message, issue_number, created_at)


def build_status_comment(message: str, issue_number: int, created_at: str | None = None) -> str:
    return _build("status", message, issue_number, created_at)


def build_human_help_comment(message: str, issue_number: int, error_code: str, created_at: str | None = None) -> str:
    return _build("error", message, issue_number, created_at, error_code=error_code)


def build_notification_comment(
    message: str, issue_number: int, notification_type: str, created_at: str | None = None
) -> str:
    return _build("notification", message, issue_number, created_at, notification_type=notification_type)


def build_standup_comment(
    message: str, day: int, date: str, repo: str, issue_number: int = 0, created_at: str | None = None
) -> str:
    return _build("standup", message, issue_number, created_at, day=day, date=date, repo=repo)


# ------------------------------------------------------------------ #
# Identity checks                                                    #
# ------------------------------------------------------------------ #


def comment_app_id(comment) -> int | None:
    """Return the GitHub App id that posted *comment*, or None for users."""
    app = getattr(comment, "performed_via_github_app", None)
    if app is None:
        raw = getattr(comment, "raw_data", None)
        app = raw.get("performed_via_github_app") if isinstance(raw, dict) else None
    if app is None:
        return None
    if isinstance(app, dict):
        return app.get("id")
    return getattr(app, "id", None)


def _bot_metadata(comment, app_id: int, comment_type: str) -> CommentMetadata | None:
    if app_id is None or comment_app_id(comment) != app_id:
        return None
    metadata = parse_metadata(getattr(comment, "body", None))
    if metadata is None or metadata.type != comment_type:
        return None
    return metadata


def is_voting_comment(comment, app_id: int) -> bool:
    return _bot_metadata(comment, app_id, "voting") is not None


def is_leaderboard_comment(comment, app_id: int) -> bool:
    return _bot_metadata(comment, app_id, "leaderboard") is not None


def is_alignment_comment(comment, app_id: int) -> bool:
    return _bot_metadata(comment, app_id, "alignment") is not None


def is_human_help_comment(comment, app_id: int, error_code: str | None = None) -> bool:
    metadata = _bot_metadata(comment, app_id, "error")
    if metadata is None:
        return False
    return error_code is None or metadata.error_code == error_code


def is_notification_comment(
    comment,
    app_id: int,
    notification_type: str | None = None,
    issue_number: int | None = None,
) -> bool:
    metadata = _bot_metadata(comment, app_id, "notification")
    if metadata is None:
        return False
    if notification_type is not None and metadata.notification_type != notification_type:
        return False
    return issue_number is None or metadata.issue_number == issue_number


def select_current_voting_comment(comments: list):
    """Pick the voting comment of the highest cycle.

    A comment with a cycle beats one without. Equal cycles keep the earlier
    entry in *comments*, which is the platform's creation order.
    """
    best = None
    best_cycle: int | None = None
    for comment in comments:
        metadata = parse_metadata(getattr(comment, "body", None))
        if metadata is None or metadata.type != "voting":
            continue
        cycle = metadata.cycle
        if best is None:
            best, best_cycle = comment, cycle
        elif cycle is not None and (best_cycle is None or cycle > best_cycle):
            best, best_cycle = comment, cycle
    return best
