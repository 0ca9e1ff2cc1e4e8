"""Certification ladder: tier order, per-tier artifacts, readiness rules and SLA defaults."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

TIERS: tuple[str, ...] = ("Tier1", "Tier2", "Tier3", "Tier4", "Tier5")

TIER_LABELS: dict[str, str] = {
    "Tier1": "Level 1",
    "Tier2": "Level 2",
    "Tier3": "Level 3",
    "Tier4": "Consultant",
    "Tier5": "Coach",
}

_ALL_TIER_TOKENS: frozenset[str] = frozenset({"", "all", "all levels"})


@dataclass(frozen=True)
class Artifact:
    key: str
    complete_column: str
    schedule_key: str
    schedule_column: str


ARTIFACTS: dict[str, Artifact] = {
    "standingVideo": Artifact("standingVideo", "standing_video", "scheduleStandingVideo", "schedule_standing_video"),
    "sleepingVideo": Artifact("sleepingVideo", "sleeping_video", "scheduleSleepingVideo", "schedule_sleeping_video"),
    "feedGradVideo": Artifact("feedGradVideo", "feed_grad_video", "scheduleFeedGradVideo", "schedule_feed_grad_video"),
    "noHandnoSpeak": Artifact("noHandnoSpeak", "no_hand_no_speak", "schedulenoHandnoSpeak", "schedule_no_hand_no_speak"),
    "session1": Artifact("session1", "session_1", "scheduleSession1", "schedule_session_1"),
    "session2": Artifact("session2", "session_2", "scheduleSession2", "schedule_session_2"),
    "session3": Artifact("session3", "session_3", "scheduleSession3", "schedule_session_3"),
}

TIER_ARTIFACTS: dict[str, tuple[str, ...]] = {
    "Tier1": (),
    "Tier2": ("standingVideo", "sleepingVideo", "feedGradVideo"),
    "Tier3": ("standingVideo", "noHandnoSpeak", "sleepingVideo"),
    "Tier4": ("session1", "session2", "session3"),
    "Tier5": ("session1", "session2", "session3"),
}

# (prerequisite tier, required); optional prerequisites never block readiness.
READINESS_RULES: dict[str, tuple[tuple[str, bool], ...]] = {
    "Tier1": (),
    "Tier2": (("Tier1", True),),
    "Tier3": (("Tier1", True), ("Tier2", True)),
    "Tier4": (("Tier1", True), ("Tier2", True), ("Tier3", False)),
    "Tier5": (("Tier1", True), ("Tier2", True), ("Tier3", False), ("Tier4", True)),
}

DEFAULT_SLA_DAYS: dict[str, int | None] = {
    "Tier1": 30,
    "Tier2": 45,
    "Tier3": 60,
    "Tier4": None,
    "Tier5": None,
}

AWAITING_APPROVAL = "Awaiting Approval"
REJECTED_APPROVAL = "Rejected Approval"


def normalize_tier(value: str | None) -> str | None:
    """Return the canonical tier name, ``None`` for "all", or raise ``ValueError``."""
    if value is None:
        return None
    token = " ".join(str(value).split())
    if token.lower() in _ALL_TIER_TOKENS:
        return None
    for tier in TIERS:
        if token.lower() in {tier.lower(), TIER_LABELS[tier].lower()}:
            return tier
    raise ValueError(f"unknown tier: {value}")


def tier_index(tier: str) -> int:
    return TIERS.index(tier)


def previous_tier(tier: str) -> str | None:
    idx = tier_index(tier)
    return TIERS[idx - 1] if idx > 0 else None


def status_names() -> list[str]:
    names: list[str] = []
    for tier in TIERS:
        names.append(f"{tier} In Progress")
        names.append(f"{tier} Completed")
    names.extend([AWAITING_APPROVAL, REJECTED_APPROVAL])
    return names


def parse_status(value: str) -> tuple[str, str | None]:
    """Split a status filter into ``(kind, tier)``.

    ``kind`` is one of ``in_progress``, ``completed``, ``awaiting`` or
    ``rejected``. Tier labels are accepted (``"Level 2 Completed"``) as well
    as the compact ``"Tier2 InProgress"`` spelling.
    """
    text = " ".join(str(value).split())
    lowered = text.lower()
    if lowered == AWAITING_APPROVAL.lower():
        return "awaiting", None
    if lowered == REJECTED_APPROVAL.lower():
        return "rejected", None
    for suffix, kind in ((" in progress", "in_progress"), (" inprogress", "in_progress"), (" completed", "completed")):
        if lowered.endswith(suffix):
            tier = normalize_tier(text[: -len(suffix)])
            if tier is not None:
                return kind, tier
    raise ValueError(f"unknown status: {value}")


def parse_sla_overrides(raw: str, base: Mapping[str, int | None] | None = None) -> dict[str, int | None]:
    """Parse ``"Tier4=90,Tier5=none"`` on top of the default SLA table."""
    out: dict[str, int | None] = dict(DEFAULT_SLA_DAYS if base is None else base)
    for part in raw.split(","):
        item = part.strip()
        if not item:
            continue
        name, sep, days = item.partition("=")
        if not sep:
            raise ValueError(f"invalid SLA override: {item}")
        tier = normalize_tier(name)
        if tier is None:
            raise ValueError(f"invalid SLA override: {item}")
        days = days.strip().lower()
        if days in {"", "none", "off"}:
            out[tier] = None
            continue
        value = int(days)
        if value < 0:
            raise ValueError(f"SLA days must be >= 0: {item}")
        out[tier] = value
    return out
