from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from github import Github, GithubException

from quorum_core.labels import PR_GOVERNANCE_LABELS, get_label_query_aliases
from quorum_core.metadata import comment_app_id, is_notification_comment
from quorum_core.types import PRRef

logger = logging.getLogger(__name__)

# Check runs are read one page at a time; more than this fails closed.
PER_PAGE = 100

_DECISIVE_REVIEW_STATES = {"APPROVED", "CHANGES_REQUESTED", "DISMISSED"}


def get_client(token: str) -> Github:
    return Github(token, per_page=PER_PAGE)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


@dataclass
class PRDetails:
    number: int
    state: str
    merged: bool
    created_at: datetime
    updated_at: datetime
    author: str
    head_sha: str
    mergeable: bool | None
    body: str = ""
    labels: list[str] = field(default_factory=list)


@dataclass
class CheckRunsResult:
    total_count: int
    check_runs: list = field(default_factory=list)


@dataclass
class CombinedStatus:
    state: str
    total_count: int


class PROperations:
    """Pull-request-side GitHub operations."""

    def __init__(self, client, app_id: int | None = None):
        self.client = client
        self.app_id = app_id

    def _repo(self, ref: PRRef):
        return self.client.get_repo(ref.full_name, lazy=True)

    def _pull(self, ref: PRRef):
        return get_pull(self._repo(ref), ref.number)

    def get(self, ref: PRRef) -> PRDetails:
        pr = self._pull(ref)
        return PRDetails(
            number=pr.number,
            state=pr.state,
            merged=bool(pr.merged),
            created_at=pr.created_at,
            updated_at=pr.updated_at,
            author=pr.user.login if pr.user else "ghost",
            head_sha=pr.head.sha,
            mergeable=pr.mergeable,
            body=pr.body or "",
            labels=[label.name for label in pr.labels],
        )

    def close(self, ref: PRRef) -> None:
        self._pull(ref).edit(state="closed")

    def add_labels(self, ref: PRRef, labels: list[str]) -> None:
        self._repo(ref).get_issue(ref.number).add_to_labels(*labels)

    def remove_label(self, ref: PRRef, label: str) -> None:
        issue = self._repo(ref).get_issue(ref.number)
        for name in get_label_query_aliases(label):
            try:
                issue.remove_from_labels(name)
                return
            except GithubException as e:
                if e.status != 404:
                    raise
        logger.debug("Label %s not present on %s#%d", label, ref.full_name, ref.number)

    def remove_governance_labels(self, ref: PRRef) -> None:
        for label in PR_GOVERNANCE_LABELS:
            self.remove_label(ref, label)

    def comment(self, ref: PRRef, body: str) -> None:
        self._repo(ref).get_issue(ref.number).create_comment(body)

    def get_labels(self, ref: PRRef) -> list[str]:
        return [label.name for label in self._repo(ref).get_issue(ref.number).labels]

    def has_notification_comment(self, ref: PRRef, notification_type: str, issue_number: int | None = None) -> bool:
        comments = self._repo(ref).get_issue(ref.number).get_comments()
        return any(is_notification_comment(c, self.app_id, notification_type, issue_number) for c in comments)

    def find_prs_with_label(self, full_name: str, label: str) -> list:
        """Open pull requests (as issues) carrying *label* in any spelling."""
        repo = self.client.get_repo(full_name)
        seen: set[int] = set()
        result = []
        for name in get_label_query_aliases(label):
            for item in repo.get_issues(state="open", labels=[name]):
                if item.pull_request is None or item.number in seen:
                    continue
                seen.add(item.number)
                result.append(item)
        return result

    def get_approver_logins(self, ref: PRRef) -> set[str]:
        """Lowercased logins whose latest decisive review is an approval.

        COMMENTED reviews never override an earlier approval or rejection.
        """
        latest: dict[str, tuple[datetime, str]] = {}
        for review in self._pull(ref).get_reviews():
            if review.user is None or review.state not in _DECISIVE_REVIEW_STATES:
                continue
            login = review.user.login.lower()
            submitted_at = review.submitted_at
            existing = latest.get(login)
            if existing is None or existing[0] is None or (submitted_at is not None and submitted_at > existing[0]):
                latest[login] = (submitted_at, review.state)
        return {login for login, (_, state) in latest.items() if state == "APPROVED"}

    def get_check_runs_for_ref(self, ref: PRRef, sha: str) -> CheckRunsResult:
        check_runs = self._repo(ref).get_commit(sha).get_check_runs()
        return CheckRunsResult(total_count=check_runs.totalCount, check_runs=list(check_runs.get_page(0)))

    def get_combined_status(self, ref: PRRef, sha: str) -> CombinedStatus:
        status = self._repo(ref).get_commit(sha).get_combined_status()
        return CombinedStatus(state=status.state, total_count=status.total_count)

    # ------------------------------------------------------------------ #
    # Activity                                                           #
    # ------------------------------------------------------------------ #

    def _latest_comment_date(self, pr, fallback: datetime) -> datetime:
        latest = fallback
        for c in pr.get_issue_comments():
            if self.app_id is not None and comment_app_id(c) == self.app_id:
                continue
            if c.created_at and c.created_at > latest:
                latest = c.created_at
        return latest

    @staticmethod
    def _latest_commit_date(pr, fallback: datetime) -> datetime:
        latest = fallback
        for commit in pr.get_commits():
            committer = commit.commit.committer
            if committer and committer.date and committer.date > latest:
                latest = committer.date
        return latest

    def get_latest_activity_date(self, ref: PRRef, created_at: datetime) -> datetime:
        """Newest of human comments, commits, reviews and review comments."""
        pr = self._pull(ref)
        latest = max(self._latest_comment_date(pr, created_at), self._latest_commit_date(pr, created_at))
        for review in pr.get_reviews():
            if review.submitted_at and review.submitted_at > latest:
                latest = review.submitted_at
        for c in pr.get_review_comments():
            if c.created_at and c.created_at > latest:
                latest = c.created_at
        return latest

    def get_latest_author_activity_date(self, ref: PRRef, created_at: datetime) -> datetime:
        """Newest comment or commit; reviews are reviewer activity, not author work."""
        pr = self._pull(ref)
        return max(self._latest_comment_date(pr, created_at), self._latest_commit_date(pr, created_at))
