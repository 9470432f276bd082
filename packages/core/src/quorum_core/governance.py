"""Phase state machine for governed issues.

    discussion → voting → ready-to-implement | rejected | discussion | needs-human
                        ↘ extended-voting → ready-to-implement | rejected | inconclusive (final) | ...

Each operation re-reads GitHub, derives the next state, and applies it as one
ordered transition (see ``IssueOperations.transition``). Running an operation
twice, or after a partial failure, converges on the same labels.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from github import GithubException

from quorum_core import messages
from quorum_core.config import VotingConfig
from quorum_core.gh.issues import IssueOperations, TransitionOptions
from quorum_core.labels import LABELS
from quorum_core.metadata import ERROR_CODES, build_human_help_comment, build_voting_comment, build_welcome_comment
from quorum_core.providers.anthropic import AnthropicSummarizer
from quorum_core.providers.base import BaseSummarizer
from quorum_core.providers.openai import OpenAISummarizer
from quorum_core.types import (
    INCONCLUSIVE,
    NEEDS_HUMAN_INPUT,
    NEEDS_MORE_DISCUSSION,
    READY_TO_IMPLEMENT,
    REJECTED,
    SKIPPED,
    IssueRef,
    ValidatedVoteResult,
)
from quorum_core.utils.discussion import format_voting_message
from quorum_core.utils.references import get_issue_priority
from quorum_core.votes import (
    RequirementsShortfall,
    decide_outcome,
    early_decision_reason,
)

logger = logging.getLogger(__name__)


def get_summarizer(config: dict) -> BaseSummarizer | None:
    """Build the configured summarizer, or None for the generic voting message."""
    provider = config.get("summarizer")
    if not provider:
        return None
    if provider == "anthropic":
        if not config.get("anthropic_api_key"):
            logger.warning("summarizer is 'anthropic' but ANTHROPIC_API_KEY is not set. Using generic messages.")
            return None
        return AnthropicSummarizer(api_key=config["anthropic_api_key"], model=config.get("summarizer_model"))
    if provider == "openai":
        if not config.get("openai_api_key"):
            logger.warning("summarizer is 'openai' but OPENAI_API_KEY is not set. Using generic messages.")
            return None
        return OpenAISummarizer(api_key=config["openai_api_key"], model=config.get("summarizer_model"))
    raise ValueError(f"Unknown summarizer provider: {provider!r}. Choose 'anthropic' or 'openai'.")


@dataclass
class EndVotingOptions:
    """Optional inputs to ``end_voting`` / ``resolve_inconclusive``.

    ``voting_config`` enables quorum and required-voter enforcement.
    ``validated_votes`` reuses a tally the caller already fetched.
    ``early_decision`` marks a decision made before the deadline.
    """

    early_decision: bool = False
    voting_config: VotingConfig | None = None
    validated_votes: ValidatedVoteResult | None = None


@dataclass
class _OutcomeBundle:
    label: str
    message: str
    close: bool = False
    lock: bool = False
    unlock: bool = False


class GovernanceService:
    def __init__(self, issues: IssueOperations, summarizer: BaseSummarizer | None = None):
        self.issues = issues
        self.summarizer = summarizer

    # ------------------------------------------------------------------ #
    # Discussion                                                         #
    # ------------------------------------------------------------------ #

    def start_discussion(self, ref: IssueRef, welcome_message: str | None = None) -> None:
        """Label a new issue for discussion and post the welcome comment."""
        body = build_welcome_comment(welcome_message or messages.welcome(), ref.number)
        with ThreadPoolExecutor(max_workers=2) as pool:
            label_future = pool.submit(self.issues.add_labels, ref, [LABELS["DISCUSSION"]])
            comment_future = pool.submit(self.issues.comment, ref, body)
            label_future.result()
            comment_future.result()

    def transition_to_voting(self, ref: IssueRef) -> None:
        cycle = self.issues.count_voting_comments(ref) + 1
        body = build_voting_comment(self._generate_voting_message(ref), ref.number, cycle)
        comment_id = self.issues.transition(
            ref,
            TransitionOptions(
                remove_label=LABELS["DISCUSSION"],
                add_label=LABELS["VOTING"],
                comment=body,
            ),
        )
        if comment_id is not None:
            self._pin_voting_comment(ref, comment_id)

    def post_voting_comment(self, ref: IssueRef) -> str:
        """Post the voting comment if none exists. Returns "posted" or "skipped".

        Labels are not touched; used when the voting label was applied by hand
        and when recovering a missing comment.
        """
        if self.issues.find_voting_comment_id(ref) is not None:
            return "skipped"
        cycle = self.issues.count_voting_comments(ref) + 1
        body = build_voting_comment(self._generate_voting_message(ref), ref.number, cycle)
        comment_id = self.issues.comment(ref, body)
        self._pin_voting_comment(ref, comment_id)
        return "posted"

    def _pin_voting_comment(self, ref: IssueRef, comment_id: int) -> None:
        try:
            self.issues.pin_comment(ref, comment_id)
        except Exception as e:
            logger.warning("Failed to pin voting comment on %s#%d: %s", ref.full_name, ref.number, e)

    def _generate_voting_message(self, ref: IssueRef) -> str:
        """Voting message with a discussion summary when possible, generic otherwise."""
        priority = None
        try:
            priority = get_issue_priority(self.issues.get_issue_labels(ref))
        except GithubException:
            logger.debug("Failed to fetch labels for issue #%d, continuing without priority", ref.number)

        if self.summarizer is None:
            logger.debug("Summarizer not configured, using generic voting message for issue #%d", ref.number)
            return messages.voting_start(priority)

        try:
            context = self.issues.get_issue_context(ref)
            result = self.summarizer.summarize(context)
        except Exception as e:
            logger.warning(
                "Failed to generate voting summary for issue #%d: %s. Using generic message.", ref.number, e
            )
            return messages.voting_start(priority)

        if result.success:
            logger.info("Generated discussion summary for issue #%d", ref.number)
            return format_voting_message(result.summary, context.title, priority)
        logger.debug("Using generic voting message for issue #%d: %s", ref.number, result.reason)
        return messages.voting_start(priority)

    # ------------------------------------------------------------------ #
    # Voting                                                             #
    # ------------------------------------------------------------------ #

    def _tally(
        self, ref: IssueRef, options: EndVotingOptions
    ) -> tuple[ValidatedVoteResult, str, RequirementsShortfall | None] | None:
        """Fetch and evaluate the vote, or None when the voting comment is missing."""
        comment_id = self.issues.find_voting_comment_id(ref)
        if comment_id is None:
            self._handle_missing_voting_comment(ref)
            return None

        validated = options.validated_votes
        if validated is None:
            validated = self.issues.get_validated_vote_counts(ref, comment_id)
        outcome, shortfall = decide_outcome(validated, options.voting_config)
        if shortfall is not None:
            logger.warning(
                "Issue #%d: voting requirements not met (%s). Forcing inconclusive.", ref.number, shortfall.reason
            )
        return validated, outcome, shortfall

    def end_voting(self, ref: IssueRef, options: EndVotingOptions | None = None) -> str:
        """Close the voting phase and apply the outcome. Returns the outcome."""
        options = options or EndVotingOptions()
        tallied = self._tally(ref, options)
        if tallied is None:
            return SKIPPED
        validated, outcome, shortfall = tallied
        votes = validated.votes

        prefix = ""
        if options.early_decision and outcome != INCONCLUSIVE:
            prefix = f"**Early decision**: {early_decision_reason(options.voting_config)}.\n\n"

        if shortfall is not None:
            inconclusive_message = _requirements_message(shortfall, validated, final=False)
        else:
            inconclusive_message = messages.inconclusive(votes)

        bundles = {
            READY_TO_IMPLEMENT: _OutcomeBundle(LABELS["READY_TO_IMPLEMENT"], messages.ready_to_implement(votes)),
            REJECTED: _OutcomeBundle(LABELS["REJECTED"], messages.rejected(votes), close=True, lock=True),
            INCONCLUSIVE: _OutcomeBundle(LABELS["EXTENDED_VOTING"], inconclusive_message),
            NEEDS_MORE_DISCUSSION: _OutcomeBundle(
                LABELS["DISCUSSION"], messages.needs_more_discussion(votes), unlock=True
            ),
            NEEDS_HUMAN_INPUT: _OutcomeBundle(LABELS["NEEDS_HUMAN"], messages.needs_human_input(votes)),
        }
        bundle = bundles[outcome]
        bundle.message = prefix + bundle.message
        self._apply_transition(ref, LABELS["VOTING"], bundle)
        return outcome

    def resolve_inconclusive(self, ref: IssueRef, options: EndVotingOptions | None = None) -> str:
        """Close extended voting. A second tie is final: closed and locked."""
        options = options or EndVotingOptions()
        tallied = self._tally(ref, options)
        if tallied is None:
            return SKIPPED
        validated, outcome, shortfall = tallied
        votes = validated.votes

        if shortfall is not None:
            final_message = _requirements_message(shortfall, validated, final=True)
        else:
            final_message = messages.inconclusive_final(votes)

        bundles = {
            READY_TO_IMPLEMENT: _OutcomeBundle(
                LABELS["READY_TO_IMPLEMENT"], messages.inconclusive_resolved(votes, READY_TO_IMPLEMENT)
            ),
            REJECTED: _OutcomeBundle(
                LABELS["REJECTED"], messages.inconclusive_resolved(votes, REJECTED), close=True, lock=True
            ),
            INCONCLUSIVE: _OutcomeBundle(LABELS["INCONCLUSIVE"], final_message, close=True, lock=True),
            NEEDS_MORE_DISCUSSION: _OutcomeBundle(
                LABELS["DISCUSSION"], messages.needs_more_discussion(votes), unlock=True
            ),
            NEEDS_HUMAN_INPUT: _OutcomeBundle(
                LABELS["NEEDS_HUMAN"], messages.inconclusive_resolved(votes, NEEDS_HUMAN_INPUT)
            ),
        }
        self._apply_transition(ref, LABELS["EXTENDED_VOTING"], bundles[outcome])
        return outcome

    def mark_implemented(self, ref: IssueRef, pr_number: int) -> None:
        """Record that a merged pull request implemented a ready issue."""
        self.issues.transition(
            ref,
            TransitionOptions(
                remove_label=LABELS["READY_TO_IMPLEMENT"],
                add_label=LABELS["IMPLEMENTED"],
                comment=messages.issue_implemented(pr_number),
                close=True,
                close_reason="completed",
            ),
        )

    def _apply_transition(self, ref: IssueRef, remove_label: str, bundle: _OutcomeBundle) -> None:
        self.issues.transition(
            ref,
            TransitionOptions(
                remove_label=remove_label,
                add_label=bundle.label,
                comment=bundle.message,
                close=bundle.close,
                close_reason="not_planned",
                lock=bundle.lock,
                lock_reason="resolved",
                unlock=bundle.unlock,
            ),
        )

    def _handle_missing_voting_comment(self, ref: IssueRef) -> None:
        """Recover a missing voting comment, or ask a human for help.

        Posting re-checks for an existing comment first, so losing a race with
        another run is a no-op rather than a duplicate.
        """
        try:
            if self.post_voting_comment(ref) == "posted":
                logger.info("Self-healed missing voting comment for issue #%d", ref.number)
            else:
                logger.info("Voting comment already present for issue #%d (concurrent post)", ref.number)
            return
        except Exception as e:
            logger.warning("Self-heal failed for issue #%d: %s. Falling back to human help.", ref.number, e)

        error_code = ERROR_CODES["VOTING_COMMENT_NOT_FOUND"]
        if self.issues.has_human_help_comment(ref, error_code):
            logger.info("Human help comment already posted for issue #%d, skipping", ref.number)
            return

        self.issues.comment(ref, build_human_help_comment(messages.voting_comment_not_found(), ref.number, error_code))
        try:
            self.issues.add_labels(ref, [LABELS["NEEDS_HUMAN"]])
        except GithubException as e:
            logger.warning("Failed to add %s label to issue #%d: %s", LABELS["NEEDS_HUMAN"], ref.number, e)
        logger.warning("Posted human help request for issue #%d: %s", ref.number, error_code)


def _requirements_message(shortfall: RequirementsShortfall, validated: ValidatedVoteResult, final: bool) -> str:
    return messages.requirements_not_met(
        validated.votes,
        min_voters=shortfall.min_voters,
        valid_voters=shortfall.valid_voters,
        missing_required=shortfall.missing_required,
        required_needed=shortfall.required_needed,
        required_participated=shortfall.required_participated,
        final=final,
    )
