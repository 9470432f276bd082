"""Tests for hidden comment metadata: encoding, strict decoding, identity checks."""

import json
from types import SimpleNamespace

import pytest

from quorum_core.metadata import (
    ERROR_CODES,
    NOTIFICATION_TYPES,
    CommentMetadata,
    build_alignment_comment,
    build_human_help_comment,
    build_leaderboard_comment,
    build_notification_comment,
    build_standup_comment,
    build_status_comment,
    build_voting_comment,
    build_welcome_comment,
    comment_app_id,
    generate_metadata_tag,
    is_alignment_comment,
    is_human_help_comment,
    is_leaderboard_comment,
    is_notification_comment,
    is_voting_comment,
    parse_metadata,
    select_current_voting_comment,
)

APP_ID = 12345
CREATED = "2026-01-02T03:04:05.678Z"


def _comment(body, app_id=APP_ID, comment_id=1):
    app = SimpleNamespace(id=app_id) if app_id is not None else None
    return SimpleNamespace(id=comment_id, body=body, performed_via_github_app=app)


def _tag(data):
    return f"<!-- quorum-metadata: {json.dumps(data)} -->"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


class TestGenerateMetadataTag:
    def test_voting_tag_is_compact_and_ordered(self):
        meta = CommentMetadata(type="voting", created_at=CREATED, issue_number=7, cycle=2)
        tag = generate_metadata_tag(meta)
        assert tag == (
            '<!-- quorum-metadata: {"version":1,"type":"voting","cycle":2,'
            '"createdAt":"2026-01-02T03:04:05.678Z","issueNumber":7} -->'
        )

    def test_non_ascii_is_not_escaped(self):
        meta = CommentMetadata(
            type="standup", created_at=CREATED, issue_number=0, day=1, date="2026-01-02", repo="é/ü"
        )
        assert "é/ü" in generate_metadata_tag(meta)

    def test_builder_puts_tag_before_message(self):
        body = build_welcome_comment("Hello", 3, created_at=CREATED)
        first_line, rest = body.split("\n", 1)
        assert first_line.startswith("<!-- quorum-metadata:")
        assert rest == "Hello"

    def test_builder_fills_created_at(self):
        meta = parse_metadata(build_voting_comment("Vote", 3, cycle=1))
        assert meta.created_at.endswith("Z")
        assert "T" in meta.created_at


class TestBuildersDecode:
    def test_voting(self):
        meta = parse_metadata(build_voting_comment("Vote", 42, cycle=3, created_at=CREATED))
        assert meta == CommentMetadata(type="voting", created_at=CREATED, issue_number=42, cycle=3)

    @pytest.mark.parametrize(
        "builder, kind",
        [
            (build_welcome_comment, "welcome"),
            (build_alignment_comment, "alignment"),
            (build_leaderboard_comment, "leaderboard"),
            (build_status_comment, "status"),
        ],
    )
    def test_plain_variants(self, builder, kind):
        meta = parse_metadata(builder("Text", 11, created_at=CREATED))
        assert meta == CommentMetadata(type=kind, created_at=CREATED, issue_number=11)

    def test_human_help(self):
        code = ERROR_CODES["VOTING_COMMENT_NOT_FOUND"]
        meta = parse_metadata(build_human_help_comment("Help", 5, code, created_at=CREATED))
        assert meta.type == "error"
        assert meta.error_code == code

    def test_notification(self):
        kind = NOTIFICATION_TYPES["VOTING_PASSED"]
        meta = parse_metadata(build_notification_comment("Ready", 9, kind, created_at=CREATED))
        assert meta.notification_type == "voting-passed"
        assert meta.issue_number == 9

    def test_standup(self):
        meta = parse_metadata(build_standup_comment("Daily", 4, "2026-01-02", "o/r", created_at=CREATED))
        assert (meta.day, meta.date, meta.repo, meta.issue_number) == (4, "2026-01-02", "o/r", 0)


# ---------------------------------------------------------------------------
# Strict decoding
# ---------------------------------------------------------------------------


class TestParseMetadata:
    BASE = {"version": 1, "type": "welcome", "createdAt": CREATED, "issueNumber": 1}

    def test_none_and_empty_body(self):
        assert parse_metadata(None) is None
        assert parse_metadata("") is None

    def test_no_marker(self):
        assert parse_metadata("Just a comment") is None

    def test_invalid_json(self):
        assert parse_metadata("<!-- quorum-metadata: {not json} -->") is None

    def test_marker_may_appear_anywhere(self):
        assert parse_metadata(f"text before\n{_tag(self.BASE)}\nafter").type == "welcome"

    def test_wrong_version(self):
        assert parse_metadata(_tag({**self.BASE, "version": 2})) is None

    def test_unknown_type(self):
        assert parse_metadata(_tag({**self.BASE, "type": "banner"})) is None

    def test_bool_is_not_a_number(self):
        assert parse_metadata(_tag({**self.BASE, "issueNumber": True})) is None
        assert parse_metadata(_tag({**self.BASE, "version": True})) is None

    def test_missing_created_at(self):
        data = dict(self.BASE)
        del data["createdAt"]
        assert parse_metadata(_tag(data)) is None

    def test_voting_without_cycle_is_valid(self):
        meta = parse_metadata(_tag({**self.BASE, "type": "voting"}))
        assert meta.type == "voting"
        assert meta.cycle is None

    def test_voting_with_string_cycle_rejected(self):
        assert parse_metadata(_tag({**self.BASE, "type": "voting", "cycle": "2"})) is None

    def test_error_requires_error_code(self):
        assert parse_metadata(_tag({**self.BASE, "type": "error"})) is None

    def test_notification_requires_type(self):
        assert parse_metadata(_tag({**self.BASE, "type": "notification"})) is None

    def test_standup_requires_all_fields(self):
        data = {**self.BASE, "type": "standup", "day": 1, "date": "2026-01-02"}
        assert parse_metadata(_tag(data)) is None

    def test_non_object_payload(self):
        assert CommentMetadata.from_dict([1, 2]) is None


# ---------------------------------------------------------------------------
# Identity checks
# ---------------------------------------------------------------------------


class TestCommentAppId:
    def test_reads_attribute(self):
        assert comment_app_id(_comment("x")) == APP_ID

    def test_none_for_user_comment(self):
        assert comment_app_id(_comment("x", app_id=None)) is None

    def test_falls_back_to_raw_data(self):
        c = SimpleNamespace(raw_data={"performed_via_github_app": {"id": 99}})
        assert comment_app_id(c) == 99


class TestIsVotingComment:
    def test_bot_voting_comment(self):
        assert is_voting_comment(_comment(build_voting_comment("v", 1, 1)), APP_ID)

    def test_user_copy_is_rejected(self):
        assert not is_voting_comment(_comment(build_voting_comment("v", 1, 1), app_id=None), APP_ID)

    def test_other_app_is_rejected(self):
        assert not is_voting_comment(_comment(build_voting_comment("v", 1, 1), app_id=999), APP_ID)

    def test_visible_signature_alone_is_not_enough(self):
        assert not is_voting_comment(_comment("React to THIS comment to vote"), APP_ID)

    def test_no_app_id_configured(self):
        assert not is_voting_comment(_comment(build_voting_comment("v", 1, 1)), None)


class TestIsHumanHelpComment:
    CODE = ERROR_CODES["VOTING_COMMENT_NOT_FOUND"]

    def test_matches_error_code(self):
        c = _comment(build_human_help_comment("help", 1, self.CODE))
        assert is_human_help_comment(c, APP_ID, self.CODE)

    def test_any_code_when_unspecified(self):
        c = _comment(build_human_help_comment("help", 1, "OTHER"))
        assert is_human_help_comment(c, APP_ID)
        assert not is_human_help_comment(c, APP_ID, self.CODE)


class TestIsNotificationComment:
    KIND = NOTIFICATION_TYPES["VOTING_PASSED"]

    def test_filters_by_type_and_issue(self):
        c = _comment(build_notification_comment("n", 12, self.KIND))
        assert is_notification_comment(c, APP_ID, self.KIND, 12)
        assert not is_notification_comment(c, APP_ID, self.KIND, 13)
        assert not is_notification_comment(c, APP_ID, NOTIFICATION_TYPES["ISSUE_NEW_PR"])


class TestSelectCurrentVotingComment:
    def test_empty(self):
        assert select_current_voting_comment([]) is None

    def test_highest_cycle_wins(self):
        c1 = _comment(build_voting_comment("v", 1, 1), comment_id=1)
        c3 = _comment(build_voting_comment("v", 1, 3), comment_id=3)
        c2 = _comment(build_voting_comment("v", 1, 2), comment_id=2)
        assert select_current_voting_comment([c1, c3, c2]) is c3

    def test_cycled_beats_uncycled(self):
        legacy = _comment(_tag({"version": 1, "type": "voting", "createdAt": CREATED, "issueNumber": 1}), comment_id=1)
        cycled = _comment(build_voting_comment("v", 1, 1), comment_id=2)
        assert select_current_voting_comment([legacy, cycled]) is cycled
        assert select_current_voting_comment([cycled, legacy]) is cycled

    def test_same_cycle_keeps_first(self):
        first = _comment(build_voting_comment("v", 1, 2), comment_id=10)
        second = _comment(build_voting_comment("v", 1, 2), comment_id=11)
        assert select_current_voting_comment([first, second]) is first

    def test_ignores_other_types(self):
        welcome = _comment(build_welcome_comment("hi", 1), comment_id=1)
        assert select_current_voting_comment([welcome]) is None


def test_leaderboard_and_alignment_are_distinct():
    leaderboard = _comment(build_leaderboard_comment("top", 1))
    alignment = _comment(build_alignment_comment("aligned", 1))
    assert is_leaderboard_comment(leaderboard, APP_ID)
    assert not is_alignment_comment(leaderboard, APP_ID)
    assert is_alignment_comment(alignment, APP_ID)
    assert not is_voting_comment(alignment, APP_ID)
    assert parse_metadata(build_status_comment("status", 1)).type == "status"
