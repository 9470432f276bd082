"""Canonical governance labels and their pre-migration spellings.

Labels are the state store: an issue carries at most one phase label and a
transition always adds the new label before removing the old one.
"""

from __future__ import annotations

LABELS = {
    "DISCUSSION": "quorum:discussion",
    "VOTING": "quorum:voting",
    "EXTENDED_VOTING": "quorum:extended-voting",
    "READY_TO_IMPLEMENT": "quorum:ready-to-implement",
    "REJECTED": "quorum:rejected",
    "INCONCLUSIVE": "quorum:inconclusive",
    "NEEDS_HUMAN": "quorum:needs-human",
    "IMPLEMENTED": "quorum:implemented",
    "IMPLEMENTATION": "quorum:implementation",
    "MERGE_READY": "quorum:merge-ready",
}

LEGACY_LABELS = {
    LABELS["DISCUSSION"]: ["phase:discussion"],
    LABELS["VOTING"]: ["phase:voting"],
    LABELS["EXTENDED_VOTING"]: ["phase:extended-voting"],
    LABELS["READY_TO_IMPLEMENT"]: ["phase:ready-to-implement"],
    LABELS["REJECTED"]: ["rejected"],
    LABELS["INCONCLUSIVE"]: ["inconclusive"],
    LABELS["NEEDS_HUMAN"]: ["needs-human-input"],
    LABELS["IMPLEMENTED"]: ["implemented"],
    LABELS["IMPLEMENTATION"]: ["implementation"],
    LABELS["MERGE_READY"]: ["merge-ready"],
}

# Labels a pull request may carry that the governance engine owns.
PR_GOVERNANCE_LABELS = (LABELS["IMPLEMENTATION"], LABELS["MERGE_READY"])


def get_label_query_aliases(canonical: str) -> list[str]:
    """Return every spelling of *canonical* to search for, canonical first."""
    return [canonical, *LEGACY_LABELS.get(canonical, [])]


def is_label_match(name: str | None, canonical: str) -> bool:
    if not name:
        return False
    return name == canonical or name in LEGACY_LABELS.get(canonical, [])


def has_label(labels, canonical: str) -> bool:
    return any(is_label_match(name, canonical) for name in labels)

