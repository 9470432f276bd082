"""Tests for discussion context rendering and the summary voting message."""

import pytest

from quorum_core.utils.discussion import (
    DiscussionComment,
    DiscussionSummary,
    IssueContext,
    build_discussion_text,
    format_voting_message,
)


def _comment(author="alice", body="I agree", created_at="2026-01-01T00:00:00"):
    return DiscussionComment(author=author, body=body, created_at=created_at)


def _summary_dict(**overrides):
    data = {
        "proposal": "Add a cache",
        "alignedOn": ["Use LRU"],
        "openForPR": ["Cache size"],
        "notIncluded": ["Redis"],
        "metadata": {"commentCount": 2, "participantCount": 2},
    }
    data.update(overrides)
    return data


class TestIssueContext:
    def test_participant_count_is_unique_authors(self):
        ctx = IssueContext("T", "B", "op", [_comment("a"), _comment("b"), _comment("a")])
        assert ctx.participant_count == 2


class TestDiscussionSummaryFromDict:
    def test_valid(self):
        summary = DiscussionSummary.from_dict(_summary_dict())
        assert summary.proposal == "Add a cache"
        assert summary.aligned_on == ["Use LRU"]
        assert summary.comment_count == 2

    def test_missing_lists_default_empty(self):
        data = {"proposal": "P", "metadata": {"commentCount": 0, "participantCount": 0}}
        summary = DiscussionSummary.from_dict(data)
        assert summary.open_for_pr == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"proposal": ""},
            {"proposal": 5},
            {"alignedOn": "not a list"},
            {"notIncluded": [1, 2]},
            {"metadata": None},
            {"metadata": {"commentCount": "2", "participantCount": 2}},
            {"metadata": {"commentCount": True, "participantCount": 2}},
        ],
    )
    def test_schema_mismatch_raises(self, overrides):
        with pytest.raises(ValueError):
            DiscussionSummary.from_dict(_summary_dict(**overrides))

    def test_non_object_raises(self):
        with pytest.raises(ValueError):
            DiscussionSummary.from_dict(["proposal"])


class TestBuildDiscussionText:
    def test_no_comments(self):
        text = build_discussion_text(IssueContext("Title", "", "op"))
        assert "## Issue: Title" in text
        assert "(No description provided)" in text
        assert "(No comments yet)" in text

    def test_includes_all_comments_when_short(self):
        ctx = IssueContext("T", "B", "op", [_comment("a", "first"), _comment("b", "second")])
        text = build_discussion_text(ctx)
        assert "**@a**" in text and "second" in text
        assert "truncated" not in text

    def test_truncates_oldest_first(self):
        comments = [_comment(f"user{i}", f"comment-{i} " + "x" * 200) for i in range(20)]
        text = build_discussion_text(IssueContext("T", "B", "op", comments), max_chars=1500)
        assert "comment-19" in text
        assert "comment-0 " not in text
        assert "older comments truncated for length" in text
        assert len(text) <= 1500

    def test_header_too_long(self):
        ctx = IssueContext("T", "B" * 500, "op", [_comment()])
        text = build_discussion_text(ctx, max_chars=300)
        assert "too many comments" in text


class TestFormatVotingMessage:
    def test_sections_and_metadata(self):
        message = format_voting_message(DiscussionSummary.from_dict(_summary_dict()), "Add caching")
        assert "# Add caching" in message
        assert "> Add a cache" in message
        assert "### ✅ Aligned On\n- Use LRU" in message
        assert "### ❌ Not Included\n- Redis" in message
        assert "2 comments • 2 participants" in message
        assert "React to THIS comment to vote" in message

    def test_empty_sections_omitted(self):
        message = format_voting_message(DiscussionSummary(proposal="P"), "T")
        assert "Aligned On" not in message
        assert "Open for PR" not in message
        assert "0 comments" in message
        assert "participants" not in message

    def test_priority_header(self):
        message = format_voting_message(DiscussionSummary(proposal="P"), "T", priority="high")
        assert "**Voting Phase (HIGH PRIORITY)**" in message
        assert "high-priority" in message
