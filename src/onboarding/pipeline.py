"""
Onboarding - Commit and Reset Pipeline.

Normalizes the three slots before they are persisted, and classifies replies
given while a reset confirmation is pending.

Commit is all-or-nothing: `prepare_commit_data` either returns a complete
CommitPlan or raises CommitValidationError before any network call happens.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Literal

from .normalize import (
    collapse_whitespace,
    contains_phrase,
    dedupe_rooms,
    guess_family_name,
    matches_phrase,
    normalize_apostrophes,
    normalize_role,
    should_ignore_room,
    strip_outer_quotes,
    title_case,
)
from .state import Member
from .vocabulary import RESET_NO_PHRASES, RESET_YES_PHRASES

ResetDecision = Literal["accept", "decline", "unknown"]

_NEGATED_REPLY = re.compile(r"^(?:no|nope|don't|do not|not)\b", re.IGNORECASE)


class CommitValidationError(Exception):
    """A slot is empty after normalization. `field` names the slot."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


@dataclass(frozen=True)
class CommitPlan:
    """Normalized slots ready to send to the commit endpoint."""
    family_name: str
    members: list[Member]
    rooms: list[str]

    def members_payload(self) -> list[dict]:
        return [member.to_dict() for member in self.members]


# =============================================================================
# Normalization
# =============================================================================


def normalize_family_name_for_commit(value: str) -> str:
    cleaned = collapse_whitespace(strip_outer_quotes((value or "").strip()))
    if not cleaned:
        return ""
    return guess_family_name(cleaned) or title_case(cleaned)


def sanitize_members_for_commit(members: Iterable[Member]) -> list[Member]:
    """
    Title-case names and roles, lower-case emails, then dedupe.

    A member is dropped when its (name, role) pair was already seen, or when it
    shares an email with an earlier member.
    """
    seen_keys: set[tuple[str, str]] = set()
    seen_emails: set[str] = set()
    result = []

    for member in members:
        name = title_case(collapse_whitespace(strip_outer_quotes((member.name or "").strip())))
        role = normalize_role(member.role or "")
        if not name:
            continue
        email = (member.email or "").strip().lower() or None

        key = (name.lower(), role.lower())
        if key in seen_keys:
            continue
        if email and email in seen_emails:
            continue

        seen_keys.add(key)
        if email:
            seen_emails.add(email)
        result.append(Member(name=name, role=role, email=email))

    return result


def sanitize_rooms_for_commit(rooms: Iterable[str]) -> list[str]:
    """Strip quotes, drop placeholder answers like "none", title-case and dedupe."""
    cleaned = (title_case(collapse_whitespace(strip_outer_quotes((room or "").strip()))) for room in rooms)
    return dedupe_rooms(room for room in cleaned if room and not should_ignore_room(room))


def prepare_commit_data(family_name: str, members: Iterable[Member], rooms: Iterable[str]) -> CommitPlan:
    """
    Normalize all three slots for commit.

    Raises:
        CommitValidationError: If any slot is empty once normalized.
    """
    normalized_name = normalize_family_name_for_commit(family_name)
    normalized_members = sanitize_members_for_commit(members)
    normalized_rooms = sanitize_rooms_for_commit(rooms)

    if not normalized_name:
        raise CommitValidationError(
            "family_name", "Family name is incomplete, please confirm it before continuing."
        )
    if not normalized_members:
        raise CommitValidationError(
            "members", "Member details need another look before we can continue."
        )
    if not normalized_rooms:
        raise CommitValidationError(
            "rooms", "Please share at least one room or space to finish onboarding."
        )

    return CommitPlan(family_name=normalized_name, members=normalized_members, rooms=normalized_rooms)


# =============================================================================
# Reset confirmation
# =============================================================================


def classify_reset_reply(message: str) -> ResetDecision:
    """
    Interpret a reply to "Would you like to start over?".

    An exact "no"-style reply, or one that opens with a negation, is checked
    before the looser "yes" scan so "no, don't reset it" never counts as
    agreement.
    """
    if matches_phrase(message, RESET_NO_PHRASES):
        return "decline"
    if _NEGATED_REPLY.match(normalize_apostrophes(message).strip()):
        return "decline"
    if contains_phrase(message, RESET_YES_PHRASES):
        return "accept"
    if contains_phrase(message, RESET_NO_PHRASES):
        return "decline"
    return "unknown"
