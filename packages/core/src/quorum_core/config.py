from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict = {
    "app_id": None,  # numeric GitHub App id whose comments are trusted as bot comments
    "summarizer": None,  # None = generic voting message; "anthropic" or "openai" to summarize discussions
    "summarizer_model": None,  # None = the provider's default model
    "governance": {},
    "pr": {},
}

# Bounds for every tunable number: (min, max, default).
AFTER_MINUTES_BOUNDS = (1, 30 * 24 * 60, 24 * 60)
MIN_VOTERS_BOUNDS = (0, 50, 3)
MIN_READY_BOUNDS = (0, 50, 0)
MIN_APPROVALS_BOUNDS = (1, 10, 1)
MAX_USER_ENTRIES = 50
MAX_USERNAME_LENGTH = 39

VALID_REQUIRES = ("majority", "unanimous")

_GITHUB_USERNAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9]|-(?=[a-z0-9])){0,38}$")


@dataclass(frozen=True)
class RequiredVoters:
    """Named voters of whom at least ``min_count`` must participate."""

    min_count: int = 0
    voters: tuple[str, ...] = ()


@dataclass(frozen=True)
class VotingConfig:
    min_voters: int = MIN_VOTERS_BOUNDS[2]
    required_voters: RequiredVoters = field(default_factory=RequiredVoters)
    requires: str = "majority"


@dataclass(frozen=True)
class VotingExit(VotingConfig):
    """A timed checkpoint in a voting phase. The last exit is the deadline."""

    after_minutes: int = AFTER_MINUTES_BOUNDS[2]


@dataclass(frozen=True)
class RequiredReady:
    min_count: int = 0
    users: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiscussionExit:
    after_minutes: int = AFTER_MINUTES_BOUNDS[2]
    min_ready: int = MIN_READY_BOUNDS[2]
    required_ready: RequiredReady = field(default_factory=RequiredReady)


@dataclass(frozen=True)
class MergeReadyConfig:
    min_approvals: int = MIN_APPROVALS_BOUNDS[2]


@dataclass(frozen=True)
class GovernanceConfig:
    discussion_exits: tuple[DiscussionExit, ...] = (DiscussionExit(),)
    voting_exits: tuple[VotingExit, ...] = (VotingExit(),)
    extended_voting_exits: tuple[VotingExit, ...] = (VotingExit(),)
    trusted_reviewers: tuple[str, ...] = ()
    merge_ready: MergeReadyConfig | None = None

    @property
    def discussion_minutes(self) -> int:
        return self.discussion_exits[-1].after_minutes

    @property
    def voting_minutes(self) -> int:
        return self.voting_exits[-1].after_minutes

    @property
    def extended_voting_minutes(self) -> int:
        return self.extended_voting_exits[-1].after_minutes


def load_config(config_path: str = ".quorum.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .quorum.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "governance": {}, "pr": {}}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    if os.environ.get("QUORUM_APP_ID"):
        config["app_id"] = os.environ["QUORUM_APP_ID"]
    config["app_id"] = _parse_app_id(config.get("app_id"))

    return config


def _parse_app_id(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid app_id %r: expected an integer. Bot comments will not be recognised.", value)
        return None


# ------------------------------------------------------------------ #
# Governance section parsing                                         #
# ------------------------------------------------------------------ #


def _clamp_int(value, bounds: tuple[int, int, int], field_name: str) -> int:
    low, high, default = bounds
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logger.warning(
            "Invalid %s: expected number, got %s. Using default %d.", field_name, type(value).__name__, default
        )
        return default
    clamped = max(low, min(high, round(value)))
    if clamped != value:
        logger.info("%s clamped from %s to %d (bounds: %d-%d)", field_name, value, clamped, low, high)
    return clamped


def parse_users_list(value, field_name: str = "required_voters") -> tuple[str, ...]:
    """Normalise a list of GitHub usernames: strip, drop '@', lowercase, dedupe."""
    if value is None:
        return ()
    if not isinstance(value, list):
        logger.warning("Invalid %s: expected a list of usernames. Using empty list.", field_name)
        return ()

    result: list[str] = []
    for entry in value:
        if len(result) >= MAX_USER_ENTRIES:
            logger.info("%s truncated to %d entries", field_name, MAX_USER_ENTRIES)
            break
        if not isinstance(entry, str) or not entry.strip():
            logger.warning("Invalid %s entry %r: expected a non-empty string. Skipping.", field_name, entry)
            continue
        cleaned = entry.strip().removeprefix("@")
        if len(cleaned) > MAX_USERNAME_LENGTH:
            logger.warning(
                "Invalid %s entry %r: longer than %d characters. Skipping.", field_name, cleaned, MAX_USERNAME_LENGTH
            )
            continue
        normalized = cleaned.lower()
        if not _GITHUB_USERNAME_RE.match(normalized):
            logger.warning("Invalid %s entry %r: not a valid GitHub username. Skipping.", field_name, cleaned)
            continue
        if normalized not in result:
            result.append(normalized)
    return tuple(result)


def _parse_min_count(obj: dict, users: tuple[str, ...], field_name: str) -> int:
    """Resolve ``min_count`` (or the older ``mode: any|all``) clamped to 0..len(users)."""
    raw = obj.get("min_count")
    mode = obj.get("mode")
    if raw is not None:
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            logger.warning("Invalid %s.min_count: expected number. Using list length.", field_name)
            count = len(users)
        else:
            count = round(raw)
    elif mode == "any":
        count = 1
    elif mode is not None and mode != "all":
        logger.warning("Invalid %s.mode %r. Defaulting to all.", field_name, mode)
        count = len(users)
    else:
        count = len(users)
    return max(0, min(len(users), count))


def parse_required_voters(value) -> RequiredVoters:
    if value is None:
        return RequiredVoters()
    if isinstance(value, list):
        voters = parse_users_list(value, "required_voters")
        return RequiredVoters(min_count=len(voters), voters=voters)
    if not isinstance(value, dict):
        logger.warning("Invalid required_voters: expected a list or mapping. Using default.")
        return RequiredVoters()
    voters = parse_users_list(value.get("voters"), "required_voters")
    return RequiredVoters(min_count=_parse_min_count(value, voters, "required_voters"), voters=voters)


def parse_required_ready(value) -> RequiredReady:
    if value is None:
        return RequiredReady()
    if isinstance(value, list):
        users = parse_users_list(value, "required_ready")
        return RequiredReady(min_count=len(users), users=users)
    if not isinstance(value, dict):
        logger.warning("Invalid required_ready: expected a list or mapping. Using default.")
        return RequiredReady()
    users = parse_users_list(value.get("users"), "required_ready")
    return RequiredReady(min_count=_parse_min_count(value, users, "required_ready"), users=users)


def _parse_requires(value) -> str:
    if value is None:
        return "majority"
    if value not in VALID_REQUIRES:
        logger.warning("Invalid exit requires %r. Using 'majority'.", value)
        return "majority"
    return value


def parse_voting_exits(section) -> tuple[VotingExit, ...]:
    exits_raw = (section or {}).get("exits") if isinstance(section, dict) else None
    if exits_raw is None:
        return (VotingExit(),)
    if not isinstance(exits_raw, list) or not exits_raw:
        logger.warning("Invalid voting exits: expected a non-empty list. Using default.")
        return (VotingExit(),)

    exits = []
    for entry in exits_raw:
        if not isinstance(entry, dict):
            logger.warning("Invalid voting exit %r: expected a mapping. Skipping.", entry)
            continue
        exits.append(
            VotingExit(
                after_minutes=_clamp_int(entry.get("after_minutes"), AFTER_MINUTES_BOUNDS, "after_minutes"),
                min_voters=_clamp_int(entry.get("min_voters"), MIN_VOTERS_BOUNDS, "min_voters"),
                required_voters=parse_required_voters(entry.get("required_voters")),
                requires=_parse_requires(entry.get("requires")),
            )
        )
    if not exits:
        logger.warning("All voting exit entries were invalid. Using default.")
        return (VotingExit(),)
    return tuple(sorted(exits, key=lambda e: e.after_minutes))


def parse_discussion_exits(section) -> tuple[DiscussionExit, ...]:
    exits_raw = (section or {}).get("exits") if isinstance(section, dict) else None
    if exits_raw is None:
        return (DiscussionExit(),)
    if not isinstance(exits_raw, list) or not exits_raw:
        logger.warning("Invalid discussion exits: expected a non-empty list. Using default.")
        return (DiscussionExit(),)

    exits = []
    for entry in exits_raw:
        if not isinstance(entry, dict):
            logger.warning("Invalid discussion exit %r: expected a mapping. Skipping.", entry)
            continue
        exits.append(
            DiscussionExit(
                after_minutes=_clamp_int(entry.get("after_minutes"), AFTER_MINUTES_BOUNDS, "after_minutes"),
                min_ready=_clamp_int(entry.get("min_ready"), MIN_READY_BOUNDS, "min_ready"),
                required_ready=parse_required_ready(entry.get("required_ready")),
            )
        )
    if not exits:
        logger.warning("All discussion exit entries were invalid. Using default.")
        return (DiscussionExit(),)
    return tuple(sorted(exits, key=lambda e: e.after_minutes))


def parse_merge_ready(value, trusted_reviewers: tuple[str, ...]) -> MergeReadyConfig | None:
    """Return the merge-ready gate, or None when the feature is disabled.

    Disabled when absent, malformed, or when no trusted reviewer could ever
    satisfy the approval requirement.
    """
    if value is None:
        return None
    if value is True:
        value = {}
    if not isinstance(value, dict):
        logger.warning("Invalid merge_ready: expected a mapping. Disabling merge-ready automation.")
        return None
    if not trusted_reviewers:
        logger.warning("merge_ready is configured but trusted_reviewers is empty. Disabling merge-ready automation.")
        return None
    min_approvals = _clamp_int(value.get("min_approvals"), MIN_APPROVALS_BOUNDS, "min_approvals")
    return MergeReadyConfig(min_approvals=min(min_approvals, len(trusted_reviewers)))


def load_governance_config(config: dict) -> GovernanceConfig:
    """Build the typed governance settings from a loaded config dict."""
    governance = config.get("governance") or {}
    pr_section = config.get("pr") or {}
    if not isinstance(governance, dict):
        logger.warning("Invalid governance section: expected a mapping. Using defaults.")
        governance = {}
    if not isinstance(pr_section, dict):
        logger.warning("Invalid pr section: expected a mapping. Using defaults.")
        pr_section = {}

    trusted = parse_users_list(pr_section.get("trusted_reviewers"), "trusted_reviewers")
    return GovernanceConfig(
        discussion_exits=parse_discussion_exits(governance.get("discussion")),
        voting_exits=parse_voting_exits(governance.get("voting")),
        extended_voting_exits=parse_voting_exits(governance.get("extended_voting")),
        trusted_reviewers=trusted,
        merge_ready=parse_merge_ready(pr_section.get("merge_ready"), trusted),
    )
