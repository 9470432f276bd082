"""Shared value types for the governance engine."""

from __future__ import annotations

from dataclasses import dataclass, field

# Voting outcomes. SKIPPED is reserved for "could not evaluate" and is never
# produced by the tally itself.
READY_TO_IMPLEMENT = "ready-to-implement"
REJECTED = "rejected"
INCONCLUSIVE = "inconclusive"
NEEDS_MORE_DISCUSSION = "needs-more-discussion"
NEEDS_HUMAN_INPUT = "needs-human-input"
SKIPPED = "skipped"


@dataclass(frozen=True)
class IssueRef:
    owner: str
    repo: str
    number: int

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def parse(cls, full_name: str, number: int) -> IssueRef:
        owner, sep, repo = full_name.partition("/")
        if not sep or not owner or not repo:
            raise ValueError(f"Repository must be in owner/name format, got {full_name!r}")
        return cls(owner=owner, repo=repo, number=number)


# Pull requests share the issue number space, so the shape is identical.
PRRef = IssueRef


@dataclass(frozen=True)
class VoteCounts:
    thumbs_up: int = 0
    thumbs_down: int = 0
    confused: int = 0
    eyes: int = 0

    @property
    def total(self) -> int:
        return self.thumbs_up + self.thumbs_down + self.confused + self.eyes


@dataclass(frozen=True)
class ValidatedVoteResult:
    """Tally after multi-reaction discard.

    ``voters`` holds users who cast exactly one voting reaction kind and count
    toward quorum. ``participants`` holds everyone who cast any voting
    reaction, including users whose votes were discarded.
    """

    votes: VoteCounts
    voters: list[str] = field(default_factory=list)
    participants: list[str] = field(default_factory=list)
