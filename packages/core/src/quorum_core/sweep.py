"""Scheduled passes over a repository: phase deadlines and merge-ready reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from github import GithubException

from quorum_core import messages
from quorum_core.config import GovernanceConfig
from quorum_core.gh.issues import IssueOperations
from quorum_core.gh.pull_request import PROperations
from quorum_core.governance import EndVotingOptions, GovernanceService
from quorum_core.labels import LABELS
from quorum_core.merge_readiness import evaluate_merge_readiness
from quorum_core.metadata import NOTIFICATION_TYPES, build_notification_comment
from quorum_core.types import READY_TO_IMPLEMENT, SKIPPED, IssueRef
from quorum_core.utils.errors import get_error_status, is_rate_limit_error, with_retry
from quorum_core.utils.references import extract_closing_issue_numbers
from quorum_core.votes import is_discussion_exit_eligible, is_exit_eligible

logger = logging.getLogger(__name__)


@dataclass
class SweepSummary:
    repo: str
    transitioned: list[tuple[int, str]] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    rate_limited: list[int] = field(default_factory=list)
    forbidden: list[int] = field(default_factory=list)
    pending: int = 0


@dataclass
class ReconcileSummary:
    added: int = 0
    removed: int = 0
    unchanged: int = 0
    errors: list[int] = field(default_factory=list)


def _elapsed_minutes(labeled_at: datetime, now: datetime) -> float:
    if labeled_at.tzinfo is None:
        labeled_at = labeled_at.replace(tzinfo=timezone.utc)
    return (now - labeled_at).total_seconds() / 60


class PhaseSweeper:
    """Advance every open issue whose phase deadline (or an early exit) has passed."""

    def __init__(
        self,
        issues: IssueOperations,
        prs: PROperations,
        governance: GovernanceService,
        config: GovernanceConfig,
        dry_run: bool = False,
    ):
        self.issues = issues
        self.prs = prs
        self.governance = governance
        self.config = config
        self.dry_run = dry_run

    def run(self, full_name: str, now: datetime | None = None) -> SweepSummary:
        now = now or datetime.now(timezone.utc)
        summary = SweepSummary(repo=full_name)
        owner, _, repo = full_name.partition("/")

        phases = (
            (LABELS["DISCUSSION"], self._discussion_action),
            (LABELS["VOTING"], self._voting_action),
            (LABELS["EXTENDED_VOTING"], self._extended_voting_action),
        )
        for label, action in phases:
            for issue in self.issues.list_open_issues_with_label(full_name, label):
                ref = IssueRef(owner=owner, repo=repo, number=issue.number)
                self._process_issue(ref, label, action, now, summary)
        return summary

    def _process_issue(self, ref: IssueRef, label: str, action, now: datetime, summary: SweepSummary) -> None:
        try:
            labeled_at = with_retry(lambda: self.issues.get_label_added_time(ref, label))
            if labeled_at is None:
                logger.warning("Issue #%d: could not determine when '%s' was added", ref.number, label)
                return
            transition = action(ref, _elapsed_minutes(labeled_at, now))
            if transition is None:
                summary.pending += 1
                return
            if self.dry_run:
                logger.info("[dry-run] Would transition #%d out of %s", ref.number, label)
                summary.transitioned.append((ref.number, "dry-run"))
                return
            logger.info("Transitioning #%d out of %s", ref.number, label)
            outcome = with_retry(transition, description=f"transition of #{ref.number}")
        except GithubException as e:
            status = get_error_status(e)
            if status in (404, 410):
                logger.warning("Issue #%d not found (may have been deleted). Skipping.", ref.number)
                return
            if is_rate_limit_error(e) or status == 429:
                logger.warning("Issue #%d rate limited. Skipping for now.", ref.number)
                summary.rate_limited.append(ref.number)
                return
            if status == 403:
                logger.warning("Issue #%d forbidden or missing permissions. Skipping.", ref.number)
                summary.forbidden.append(ref.number)
                return
            raise

        logger.info("Outcome for #%d: %s", ref.number, outcome)
        summary.transitioned.append((ref.number, outcome))
        if outcome == SKIPPED:
            summary.skipped.append(ref.number)
        elif outcome == READY_TO_IMPLEMENT:
            self.notify_pending_prs(ref)

    # ------------------------------------------------------------------ #
    # Phase actions: return a zero-arg transition, or None to wait       #
    # ------------------------------------------------------------------ #

    def _discussion_action(self, ref: IssueRef, elapsed: float):
        exits = self.config.discussion_exits
        if elapsed >= exits[-1].after_minutes:
            return lambda: self._start_voting(ref)

        early = [e for e in exits[:-1] if elapsed >= e.after_minutes]
        if not early:
            return None
        ready_users = self.issues.get_discussion_readiness(ref)
        if any(is_discussion_exit_eligible(e, ready_users) for e in early):
            return lambda: self._start_voting(ref)
        return None

    def _start_voting(self, ref: IssueRef) -> str:
        self.governance.transition_to_voting(ref)
        return "voting"

    def _voting_action(self, ref: IssueRef, elapsed: float):
        return self._vote_action(ref, elapsed, self.config.voting_exits, self.governance.end_voting)

    def _extended_voting_action(self, ref: IssueRef, elapsed: float):
        return self._vote_action(ref, elapsed, self.config.extended_voting_exits, self.governance.resolve_inconclusive)

    def _vote_action(self, ref: IssueRef, elapsed: float, exits, resolve):
        deadline = exits[-1]
        if elapsed >= deadline.after_minutes:
            return lambda: resolve(ref, EndVotingOptions(voting_config=deadline))

        early = [e for e in exits[:-1] if elapsed >= e.after_minutes]
        if not early:
            return None
        comment_id = self.issues.find_voting_comment_id(ref)
        if comment_id is None:
            return None
        validated = self.issues.get_validated_vote_counts(ref, comment_id)
        for voting_exit in early:
            if is_exit_eligible(voting_exit, validated):
                options = EndVotingOptions(early_decision=True, voting_config=voting_exit, validated_votes=validated)
                return lambda: resolve(ref, options)
        return None

    # ------------------------------------------------------------------ #
    # Notifications                                                      #
    # ------------------------------------------------------------------ #

    def notify_pending_prs(self, ref: IssueRef) -> None:
        """Tell open PRs that close *ref* that its vote passed, once per PR.

        Notification only: PRs are not labelled as implementations here.
        Failures are logged and never fail the sweep.
        """
        try:
            implementation = {pr.number for pr in self.prs.find_prs_with_label(ref.full_name, LABELS["IMPLEMENTATION"])}
            repo = self.issues.client.get_repo(ref.full_name)
            for pull in repo.get_pulls(state="open"):
                if pull.number in implementation:
                    continue
                if ref.number not in extract_closing_issue_numbers(pull.body, ref.owner, ref.repo):
                    continue
                pr_ref = IssueRef(owner=ref.owner, repo=ref.repo, number=pull.number)
                voting_passed = NOTIFICATION_TYPES["VOTING_PASSED"]
                if self.prs.has_notification_comment(pr_ref, voting_passed, ref.number):
                    logger.debug("PR #%d already notified for issue #%d", pull.number, ref.number)
                    continue
                author = pull.user.login if pull.user else None
                body = build_notification_comment(
                    messages.issue_voting_passed(ref.number, author), ref.number, voting_passed
                )
                self.prs.comment(pr_ref, body)
                logger.info("Notified PR #%d that issue #%d is ready", pull.number, ref.number)
        except GithubException as e:
            logger.warning("Failed to notify PRs for issue #%d: %s", ref.number, e)


def reconcile_merge_ready(prs: PROperations, full_name: str, config: GovernanceConfig) -> ReconcileSummary:
    """Re-evaluate the merge-ready label on every open implementation PR."""
    summary = ReconcileSummary()
    if config.merge_ready is None:
        logger.info("merge-ready automation disabled for %s", full_name)
        return summary

    owner, _, repo = full_name.partition("/")
    for item in prs.find_prs_with_label(full_name, LABELS["IMPLEMENTATION"]):
        ref = IssueRef(owner=owner, repo=repo, number=item.number)
        try:
            result = evaluate_merge_readiness(
                prs,
                ref,
                config.merge_ready,
                config.trusted_reviewers,
                current_labels=[label.name for label in item.labels],
            )
        except GithubException as e:
            logger.error("Failed to evaluate merge readiness for PR #%d: %s", item.number, e)
            summary.errors.append(item.number)
            continue
        if result.action == "added":
            summary.added += 1
        elif result.action == "removed":
            summary.removed += 1
        else:
            summary.unchanged += 1
    return summary
