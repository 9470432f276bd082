"""Merge-readiness gate for implementation pull requests.

Hard gates (all must pass for the ``merge-ready`` label):
  1. PR is open and not merged (preflight report only)
  2. At least ``min_approvals`` approvals from trusted reviewers
  3. No merge conflicts (``mergeable is False`` blocks; ``None`` means GitHub
     has not computed it yet and passes)
  4. Every check run on HEAD completed with success, neutral or skipped
  5. The legacy combined commit status is ``success`` when any status exists

Advisory checks (reported by preflight, never blocking):
  - PR has the implementation label
  - PR has the merge-ready label

``evaluate_merge_readiness`` short-circuits in order of API cost and converges
the label; ``evaluate_preflight_checks`` runs every check for a full report.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from quorum_core.config import MergeReadyConfig
from quorum_core.gh.pull_request import PROperations
from quorum_core.labels import LABELS, has_label
from quorum_core.types import PRRef

logger = logging.getLogger(__name__)

PASSING_CHECK_CONCLUSIONS = {"success", "neutral", "skipped"}

CI_CHECK_NAME = "CI checks passing"


@dataclass
class MergeReadinessResult:
    """``action`` is one of added, removed, noop, skipped."""

    action: str
    reason: str | None = None
    labeled: bool = False


@dataclass
class PreflightCheck:
    name: str
    passed: bool
    severity: str  # "hard" | "advisory"
    detail: str


@dataclass
class PreflightResult:
    checks: list[PreflightCheck] = field(default_factory=list)

    @property
    def all_hard_checks_passed(self) -> bool:
        return all(c.passed for c in self.checks if c.severity == "hard")


def evaluate_ci(prs: PROperations, ref: PRRef, sha: str) -> PreflightCheck:
    """Combine check runs and the legacy status API for *sha*. No CI at all passes."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        runs_future = pool.submit(prs.get_check_runs_for_ref, ref, sha)
        status_future = pool.submit(prs.get_combined_status, ref, sha)
        checks = runs_future.result()
        status = status_future.result()

    if checks.total_count > len(checks.check_runs):
        return PreflightCheck(
            CI_CHECK_NAME,
            False,
            "hard",
            f"Too many check runs ({checks.total_count}) to verify; failing closed",
        )

    pending = 0
    failing = []
    for run in checks.check_runs:
        if run.status != "completed":
            pending += 1
        elif run.conclusion not in PASSING_CHECK_CONCLUSIONS:
            failing.append(f"check #{run.id}: {run.conclusion or 'no conclusion'}")

    if pending:
        return PreflightCheck(CI_CHECK_NAME, False, "hard", f"{pending} check run(s) still in progress")
    if failing:
        return PreflightCheck(CI_CHECK_NAME, False, "hard", f"Failing: {', '.join(failing)}")
    if status.total_count > 0 and status.state != "success":
        return PreflightCheck(CI_CHECK_NAME, False, "hard", f"Legacy status: {status.state}")

    total = len(checks.check_runs) + status.total_count
    return PreflightCheck(CI_CHECK_NAME, True, "hard", f"All {total} check(s) passed" if total else "No CI configured")


def _trusted_approvers(prs: PROperations, ref: PRRef, trusted_reviewers) -> list[str]:
    approvers = prs.get_approver_logins(ref)
    return [r for r in trusted_reviewers if r.lower() in approvers]


def evaluate_merge_readiness(
    prs: PROperations,
    ref: PRRef,
    config: MergeReadyConfig | None,
    trusted_reviewers,
    current_labels: list[str] | None = None,
    head_sha: str | None = None,
) -> MergeReadinessResult:
    """Add or remove the merge-ready label so it matches the gates. Idempotent.

    When *head_sha* is supplied the PR is not fetched and mergeability is
    treated as not yet computed.
    """
    if config is None:
        return MergeReadinessResult("skipped", reason="feature disabled")

    labels = current_labels if current_labels is not None else prs.get_labels(ref)
    has_merge_ready = has_label(labels, LABELS["MERGE_READY"])

    def fail(reason: str) -> MergeReadinessResult:
        if has_merge_ready:
            prs.remove_label(ref, LABELS["MERGE_READY"])
            logger.info("[PR #%d] Removed merge-ready: %s", ref.number, reason)
            return MergeReadinessResult("removed", reason=reason)
        return MergeReadinessResult("skipped", reason=reason)

    if not has_label(labels, LABELS["IMPLEMENTATION"]):
        return fail("no implementation label")

    approved = len(_trusted_approvers(prs, ref, trusted_reviewers))
    if approved < config.min_approvals:
        return fail(f"insufficient approvals ({approved}/{config.min_approvals})")

    if head_sha is not None:
        mergeable = None
    else:
        pr = prs.get(ref)
        head_sha, mergeable = pr.head_sha, pr.mergeable

    if mergeable is False:
        return fail("has merge conflicts")

    if not evaluate_ci(prs, ref, head_sha).passed:
        return fail("CI not passing")

    if not has_merge_ready:
        prs.add_labels(ref, [LABELS["MERGE_READY"]])
        logger.info("[PR #%d] Added merge-ready label", ref.number)
        return MergeReadinessResult("added", labeled=True)
    return MergeReadinessResult("noop", labeled=True)


def evaluate_preflight_checks(
    prs: PROperations,
    ref: PRRef,
    config: MergeReadyConfig | None,
    trusted_reviewers,
    current_labels: list[str] | None = None,
    head_sha: str | None = None,
) -> PreflightResult:
    """Run every gate without short-circuiting, for a human-readable report."""
    result = PreflightResult()

    if head_sha is not None:
        mergeable = None
    else:
        pr = prs.get(ref)
        head_sha, mergeable = pr.head_sha, pr.mergeable
        is_open = pr.state == "open" and not pr.merged
        if pr.merged:
            detail = "PR is already merged"
        elif pr.state != "open":
            detail = f"PR is {pr.state}"
        else:
            detail = "PR is open"
        result.checks.append(PreflightCheck("PR is open", is_open, "hard", detail))

    trusted = _trusted_approvers(prs, ref, trusted_reviewers)
    min_approvals = config.min_approvals if config else 1
    approved = len(trusted) >= min_approvals
    detail = f"{len(trusted)}/{min_approvals} trusted approvals"
    if approved and trusted:
        detail += f" ({', '.join(trusted)})"
    result.checks.append(PreflightCheck("Approved by trusted reviewers", approved, "hard", detail))

    if mergeable is False:
        detail = "PR has merge conflicts"
    elif mergeable is None:
        detail = "Mergeable (pending GitHub computation)"
    else:
        detail = "Branch is mergeable"
    result.checks.append(PreflightCheck("No merge conflicts", mergeable is not False, "hard", detail))

    result.checks.append(evaluate_ci(prs, ref, head_sha))

    labels = current_labels if current_labels is not None else prs.get_labels(ref)
    advisory_labels = (
        ("Implementation label", LABELS["IMPLEMENTATION"]),
        ("Merge-ready label", LABELS["MERGE_READY"]),
    )
    for name, label in advisory_labels:
        present = has_label(labels, label)
        detail = f"Has `{label}` label" if present else f"Missing `{label}` label"
        result.checks.append(PreflightCheck(name, present, "advisory", detail))

    return result
