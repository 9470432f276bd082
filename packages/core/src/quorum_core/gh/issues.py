"""Issue-side GitHub operations used by the governance engine.

Thin wrappers over PyGithub. Every call re-reads GitHub: labels and comments
are the only state, so nothing is cached between operations.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

from github import GithubException

from quorum_core.labels import get_label_query_aliases, is_label_match
from quorum_core.metadata import (
    comment_app_id,
    is_human_help_comment,
    is_notification_comment,
    is_voting_comment,
    select_current_voting_comment,
)
from quorum_core.types import IssueRef, ValidatedVoteResult, VoteCounts
from quorum_core.utils.discussion import DiscussionComment, IssueContext
from quorum_core.votes import VOTING_REACTIONS, tally_reactions

logger = logging.getLogger(__name__)

_PIN_MUTATION = """
mutation($id: ID!) {
  pinIssueComment(input: {issueCommentId: $id}) {
    issueComment { id }
  }
}
"""


@dataclass
class TransitionOptions:
    """One phase change. Applied in a fixed order by ``IssueOperations.transition``."""

    add_label: str
    remove_label: str | None = None
    comment: str | None = None
    close: bool = False
    close_reason: str = "not_planned"
    lock: bool = False
    lock_reason: str = "resolved"
    unlock: bool = False


class IssueOperations:
    def __init__(self, client, app_id: int | None):
        self.client = client
        self.app_id = app_id

    # ------------------------------------------------------------------ #
    # Lookups                                                            #
    # ------------------------------------------------------------------ #

    def _repo(self, ref: IssueRef):
        return self.client.get_repo(ref.full_name, lazy=True)

    def _issue(self, ref: IssueRef):
        return self._repo(ref).get_issue(ref.number)

    def _comments(self, ref: IssueRef) -> list:
        return list(self._issue(ref).get_comments())

    # ------------------------------------------------------------------ #
    # Writes                                                             #
    # ------------------------------------------------------------------ #

    def add_labels(self, ref: IssueRef, labels: list[str]) -> None:
        self._issue(ref).add_to_labels(*labels)

    def remove_label(self, ref: IssueRef, label: str) -> None:
        """Remove *label* or its legacy spelling; absence is not an error."""
        issue = self._issue(ref)
        for name in get_label_query_aliases(label):
            try:
                issue.remove_from_labels(name)
                return
            except GithubException as e:
                if e.status != 404:
                    raise
        logger.debug("Label %s not present on %s#%d", label, ref.full_name, ref.number)

    def comment(self, ref: IssueRef, body: str) -> int:
        return self._issue(ref).create_comment(body).id

    def pin_comment(self, ref: IssueRef, comment_id: int) -> None:
        node_id = self._issue(ref).get_comment(comment_id).node_id
        self.client.requester.requestJsonAndCheck(
            "POST",
            "/graphql",
            input={"query": _PIN_MUTATION, "variables": {"id": node_id}},
        )

    def close(self, ref: IssueRef, reason: str = "not_planned") -> None:
        self._issue(ref).edit(state="closed", state_reason=reason)

    def lock(self, ref: IssueRef, reason: str = "resolved") -> None:
        self._issue(ref).lock(reason)

    def unlock(self, ref: IssueRef) -> None:
        try:
            self._issue(ref).unlock()
        except GithubException as e:
            # 422: the issue was not locked.
            if e.status != 422:
                raise
            logger.debug("Issue %s#%d was not locked", ref.full_name, ref.number)

    def transition(self, ref: IssueRef, options: TransitionOptions) -> int | None:
        """Move an issue between phases. Returns the posted comment's id, if any.

        Order matters for recovery after a partial failure:
          1. unlock, so a locked issue can receive the comment
          2. add the new label, so the issue never has no phase label
          3. post the comment, before any lock
          4. remove the old label
          5. close
          6. lock, last
        """
        comment_id = None
        if options.unlock and not options.lock:
            self.unlock(ref)
        self.add_labels(ref, [options.add_label])
        if options.comment:
            comment_id = self.comment(ref, options.comment)
        if options.remove_label and options.remove_label != options.add_label:
            self.remove_label(ref, options.remove_label)
        if options.close:
            self.close(ref, options.close_reason)
        if options.lock:
            self.lock(ref, options.lock_reason)
        return comment_id

    # ------------------------------------------------------------------ #
    # Votes and bot comments                                             #
    # ------------------------------------------------------------------ #

    def _voting_comments(self, ref: IssueRef) -> list:
        return [c for c in self._comments(ref) if is_voting_comment(c, self.app_id)]

    def find_voting_comment_id(self, ref: IssueRef) -> int | None:
        current = select_current_voting_comment(self._voting_comments(ref))
        return current.id if current is not None else None

    def count_voting_comments(self, ref: IssueRef) -> int:
        return len(self._voting_comments(ref))

    def has_human_help_comment(self, ref: IssueRef, error_code: str | None = None) -> bool:
        return any(is_human_help_comment(c, self.app_id, error_code) for c in self._comments(ref))

    def has_notification_comment(
        self, ref: IssueRef, notification_type: str, issue_number: int | None = None
    ) -> bool:
        return any(
            is_notification_comment(c, self.app_id, notification_type, issue_number) for c in self._comments(ref)
        )

    def _reaction_pairs(self, ref: IssueRef, comment_id: int) -> list[tuple[str | None, str]]:
        reactions = self._issue(ref).get_comment(comment_id).get_reactions()
        return [(r.user.login if r.user else None, r.content) for r in reactions]

    def get_vote_counts(self, ref: IssueRef, comment_id: int) -> VoteCounts:
        """Raw reaction counts on the voting comment, without discarding anything."""
        counts = dict.fromkeys(VOTING_REACTIONS.values(), 0)
        for _, content in self._reaction_pairs(ref, comment_id):
            if content in VOTING_REACTIONS:
                counts[VOTING_REACTIONS[content]] += 1
        return VoteCounts(**counts)

    def get_validated_vote_counts(self, ref: IssueRef, comment_id: int) -> ValidatedVoteResult:
        return tally_reactions(
            self._reaction_pairs(ref, comment_id),
            context=f"{ref.full_name}#{ref.number}",
        )

    def get_discussion_readiness(self, ref: IssueRef) -> set[str]:
        """Lowercased logins of users who reacted 👍 to the issue itself."""
        ready: set[str] = set()
        skipped = 0
        for reaction in self._issue(ref).get_reactions():
            if reaction.content != "+1":
                continue
            if reaction.user is None:
                skipped += 1
                continue
            ready.add(reaction.user.login.lower())
        if skipped:
            logger.warning("%s#%d: skipped %d readiness reaction(s) with no user", ref.full_name, ref.number, skipped)
        return ready

    # ------------------------------------------------------------------ #
    # Issue details                                                      #
    # ------------------------------------------------------------------ #

    def get_issue_labels(self, ref: IssueRef) -> list[str]:
        return [label.name for label in self._issue(ref).labels]

    def _discussion_comments(self, ref: IssueRef) -> list[DiscussionComment]:
        result = []
        for c in self._comments(ref):
            if self.app_id is not None and comment_app_id(c) == self.app_id:
                continue
            reactions = getattr(c, "raw_data", {}).get("reactions") or {}
            result.append(
                DiscussionComment(
                    author=c.user.login if c.user else "ghost",
                    body=c.body or "",
                    created_at=c.created_at.isoformat() if c.created_at else "",
                    thumbs_up=reactions.get("+1", 0),
                    thumbs_down=reactions.get("-1", 0),
                )
            )
        return result

    def get_issue_context(self, ref: IssueRef) -> IssueContext:
        """Issue title, body, author and the human discussion, fetched concurrently."""
        with ThreadPoolExecutor(max_workers=2) as pool:
            issue_future = pool.submit(self._issue, ref)
            comments_future = pool.submit(self._discussion_comments, ref)
            issue = issue_future.result()
            comments = comments_future.result()
        return IssueContext(
            title=issue.title,
            body=issue.body or "",
            author=issue.user.login if issue.user else "ghost",
            comments=comments,
        )

    def get_label_added_time(self, ref: IssueRef, label: str) -> datetime | None:
        """When *label* was most recently applied; None if it was removed since.

        Events are sorted by time rather than trusting API order.
        """
        events = []
        for event in self._issue(ref).get_events():
            if event.event not in ("labeled", "unlabeled"):
                continue
            name = event.label.name if event.label else None
            if is_label_match(name, label):
                events.append((event.created_at, event.event))

        added_at = None
        for created_at, kind in sorted(events, key=lambda e: e[0]):
            added_at = created_at if kind == "labeled" else None
        return added_at

    def list_open_issues_with_label(self, full_name: str, label: str) -> list:
        """Open issues (not pull requests) carrying *label* in any spelling."""
        repo = self.client.get_repo(full_name)
        seen: set[int] = set()
        issues = []
        for name in get_label_query_aliases(label):
            for issue in repo.get_issues(state="open", labels=[name]):
                if issue.pull_request is not None or issue.number in seen:
                    continue
                seen.add(issue.number)
                issues.append(issue)
        return issues
