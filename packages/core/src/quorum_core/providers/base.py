"""Base summarizer implementing the Template Method pattern.

All providers share the same summarization algorithm:
    summarize() → minimal-discussion short-circuit
                → _build_system_prompt() + _build_user_prompt()
                → _call_with_retry() → _call_api()   ← only this differs per provider
                → _parse() → hallucination guard

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from quorum_core.utils.discussion import DiscussionSummary, IssueContext, build_discussion_text

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 2000


@dataclass
class SummarizationResult:
    success: bool
    summary: DiscussionSummary | None = None
    reason: str | None = None


SYSTEM_PROMPT = """You are a governance assistant. Your task is to summarize a GitHub issue discussion \
so that participants can vote on whether the proposal is READY TO IMPLEMENT.

KEY CONTEXT:
- The vote is about readiness ("can we start coding this?"), not whether the idea is good.
- Minor details can be refined in the pull request; focus on the clarity of the core proposal.
- Be neutral and factual, not promotional.

OUTPUT GUIDELINES:
- proposal: one clear, actionable sentence. What exactly will be built or changed?
- alignedOn: points with clear consensus. Empty if nothing is clearly agreed.
- openForPR: minor details to refine during implementation. Not blockers.
- notIncluded: ideas that were proposed and explicitly rejected. They will NOT be built.

IMPORTANT:
- Only include information that appears in the discussion.
- Do not invent consensus that does not exist.
- Counts (comments, participants) must be exact."""


class BaseSummarizer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                   #
    # ------------------------------------------------------------------ #

    def summarize(self, context: IssueContext) -> SummarizationResult:
        """Summarize an issue discussion for the voting comment.

        Never raises: every failure becomes ``success=False`` with a reason so
        the caller can fall back to the generic voting message.
        """
        if not any(c.author != context.author for c in context.comments):
            logger.debug("No discussion from others, using minimal summary")
            return SummarizationResult(success=True, summary=DiscussionSummary(proposal=context.title))

        logger.info(
            "Generating voting summary with %s for %d comments",
            self.__class__.__name__,
            len(context.comments),
        )
        raw = self._call_with_retry(self._build_system_prompt(), self._build_user_prompt(context))
        if raw is None:
            return SummarizationResult(success=False, reason="summarizer API failed")

        summary = self._parse(raw)
        if summary is None:
            return SummarizationResult(success=False, reason="summarizer returned an invalid summary")

        expected_comments = len(context.comments)
        expected_participants = context.participant_count
        if summary.comment_count != expected_comments or summary.participant_count != expected_participants:
            reason = (
                "Summary metadata mismatch indicates possible hallucination. "
                f"Expected: {expected_comments} comments, {expected_participants} participants. "
                f"Got: {summary.comment_count} comments, {summary.participant_count} participants."
            )
            logger.error(reason)
            return SummarizationResult(success=False, reason=reason)

        logger.info("Summary generated successfully")
        return SummarizationResult(success=True, summary=summary)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        Should raise on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                             #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> str | None:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)

    def _build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def _build_user_prompt(self, context: IssueContext) -> str:
        return f"""Summarize this GitHub issue discussion for a governance vote.

METADATA:
- Total comments: {len(context.comments)}
- Unique participants: {context.participant_count}

{build_discussion_text(context)}

### Output Format:
Respond with **only** a valid JSON object:

{{
  "proposal": "<one sentence>",
  "alignedOn": ["<point>", ...],
  "openForPR": ["<point>", ...],
  "notIncluded": ["<point>", ...],
  "metadata": {{"commentCount": <integer>, "participantCount": <integer>}}
}}

Remember: the vote is about whether this is READY TO IMPLEMENT, not whether it is a good idea.
Do not return any text outside the JSON block."""

    def _parse(self, raw: str) -> DiscussionSummary | None:
        """Parse the model's raw text response into a DiscussionSummary."""
        try:
            # Strip only the outer ```json ... ``` fence.
            cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
            cleaned = re.sub(r"\s*```$", "", cleaned.strip())
            return DiscussionSummary.from_dict(json.loads(cleaned))
        except ValueError as e:
            logger.warning(
                "%s: failed to parse response as a summary (%s): %s",
                self.__class__.__name__,
                e,
                raw[:200],
            )
            return None
