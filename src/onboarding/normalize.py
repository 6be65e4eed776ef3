"""
Onboarding - Text Normalization.

Small, pure helpers shared by extraction, fallback synthesis and the commit
pipeline: casing, quote stripping, phrase matching and list dedupe.
"""

import re
from typing import Iterable

from .state import Member
from .vocabulary import (
    CHILD_ROLE_MARKERS,
    DEFAULT_ROLE,
    NUMBER_WORDS,
    ROLE_FILLER_WORDS,
    ROLE_OUTPUT_OMIT,
    ROLE_SYNONYMS,
    ROOM_IGNORE_PHRASES,
)

_OUTER_QUOTES = re.compile(r"^[\"'“”‘’]+|[\"'“”‘’]+$")
_CURLY_APOSTROPHES = str.maketrans({"’": "'", "‘": "'"})


def title_case(value: str) -> str:
    """
    Upper-case the first letter of every whitespace-separated word.

    The rest of each word is left alone, so "McDonald" stays "McDonald".

    Examples:
        title_case("master bedroom") -> "Master Bedroom"
        title_case("the  parkers") -> "The Parkers"
    """
    return " ".join(word[0].upper() + word[1:] for word in value.split())


def collapse_whitespace(value: str) -> str:
    return " ".join(value.split())


def strip_outer_quotes(value: str) -> str:
    return _OUTER_QUOTES.sub("", value)


def normalize_apostrophes(value: str) -> str:
    return value.translate(_CURLY_APOSTROPHES)


def contains_phrase(message: str, phrases: Iterable[str]) -> bool:
    """
    True if any phrase appears in the message as whole words.

    Case-insensitive; curly apostrophes are treated as straight ones so
    "that’s all" matches "that's all".
    """
    lower = normalize_apostrophes(message).lower()
    for phrase in phrases:
        pattern = r"(?<!\w)" + re.escape(phrase.lower()) + r"(?!\w)"
        if re.search(pattern, lower):
            return True
    return False


def matches_phrase(message: str, phrases: Iterable[str]) -> bool:
    """True if the whole message (minus trailing punctuation) is one of the phrases."""
    normalized = normalize_apostrophes(message).strip().rstrip(".!?").strip().lower()
    return normalized in {phrase.lower() for phrase in phrases}


def guess_family_name(value: str) -> str | None:
    """
    Conservative guess at a family name from a free-text reply.

    Rejects anything that looks like a question, spans lines, or runs past
    six words.
    """
    trimmed = strip_outer_quotes(value.strip())
    if not trimmed:
        return None
    if re.search(r"[?\r\n]", trimmed):
        return None
    if len(trimmed.split()) > 6:
        return None
    return title_case(collapse_whitespace(trimmed))


def normalize_role(raw_role: str) -> str:
    """
    Map a raw role phrase to a display role.

    Filler words and number words are dropped first. An exact synonym wins;
    otherwise descriptive adjectives are removed and the remainder title-cased.
    """
    words = [
        word for word in raw_role.lower().split()
        if word not in ROLE_FILLER_WORDS and word not in NUMBER_WORDS
    ]
    cleaned = " ".join(words)

    if cleaned in ROLE_SYNONYMS:
        return ROLE_SYNONYMS[cleaned]

    filtered = " ".join(word for word in words if word not in ROLE_OUTPUT_OMIT)
    return title_case(filtered) if filtered else DEFAULT_ROLE


def is_child_role(role: str) -> bool:
    lower = (role or "").lower()
    return any(marker in lower for marker in CHILD_ROLE_MARKERS)


def should_ignore_room(value: str) -> bool:
    normalized = normalize_apostrophes(value).strip().rstrip(".!?").strip().lower()
    return not normalized or normalized in ROOM_IGNORE_PHRASES


def member_key(member: Member) -> tuple[str, str]:
    return member.name.lower(), member.role.lower()


def dedupe_members(members: Iterable[Member]) -> list[Member]:
    """
    Keep the first occurrence of each (name, role) pair, case-insensitively.

    Emails are stored lower-cased, and a later member sharing an email with an
    earlier one is dropped.
    """
    seen: set[tuple[str, str]] = set()
    seen_emails: set[str] = set()
    result = []
    for member in members:
        key = member_key(member)
        email = (member.email or "").strip().lower() or None
        if key in seen or (email and email in seen_emails):
            continue
        seen.add(key)
        if email:
            seen_emails.add(email)
        if email != member.email:
            member = Member(name=member.name, role=member.role, email=email)
        result.append(member)
    return result


def dedupe_rooms(rooms: Iterable[str]) -> list[str]:
    """Keep the first occurrence of each room, case-insensitively."""
    seen: set[str] = set()
    result = []
    for room in rooms:
        key = room.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(room)
    return result
