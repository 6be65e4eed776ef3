"""
Onboarding - Heuristic Slot Extraction.

Turns one free-text chat message into member candidates ("my wife Sarah and
my son Jake") or room candidates ("a master bed and bath, and a kitchen").

Rule-based pattern matching over the fixed vocabulary in `vocabulary.py`.
Both extractors are pure functions of their inputs: the same message always
yields the same candidates, which is what lets the fallback path and the tests
use them as an oracle.
"""

import re
from typing import Iterable, Sequence

from .normalize import (
    collapse_whitespace,
    is_child_role,
    matches_phrase,
    normalize_apostrophes,
    normalize_role,
    should_ignore_room,
    strip_outer_quotes,
    title_case,
)
from .state import Member
from .vocabulary import (
    BASE_ROLE_KEYWORDS,
    CONNECTOR_WORDS,
    KIDS_ROOMS_LABEL,
    NAME_LEADERS,
    NAME_STOP_WORDS,
    NUMBER_VALUES,
    NUMBER_WORDS,
    ROLE_DESCRIPTORS,
    ROOM_AGGREGATES,
    ROOM_ALIASES,
    ROOM_IGNORE_PHRASES,
    ROOM_STRUCTURAL_WORDS,
    SORTED_ROOM_NAMES,
)


# =============================================================================
# Member Extraction
# =============================================================================

# A clause starts at "my"/"our" and runs to the next "my"/"our", sentence
# punctuation, or the end of the message.
_MEMBER_CLAUSE = re.compile(
    r"\b(?:my|our)\s+(.+?)(?=(?:\s*[,:;])?\s*(?:and\s+)?\b(?:my|our)\b|[.!?]|$)",
    re.IGNORECASE,
)
_LEADING_CONNECTOR = re.compile(r"^(?:and|&)+\s*", re.IGNORECASE)
_NAME_SPLIT = re.compile(r"\band\b|,|&", re.IGNORECASE)
_NAME_ARTICLE = re.compile(r"^(?:the|a|an|my|our)\s+", re.IGNORECASE)
_TRAILING_POSSESSIVE = re.compile(r"'s$", re.IGNORECASE)


def _split_role_and_names(tokens: list[str]) -> tuple[list[str], list[str]]:
    """
    Consume the role phrase from the front of a clause.

    The first token is always part of the role. Later tokens join it while they
    are descriptors, role keywords or hyphenated ("step-son"). A name leader
    ("named", "called", ...) or a connector after a non-empty role ends it.
    """
    role_tokens: list[str] = []
    idx = 0
    while idx < len(tokens):
        token = tokens[idx]
        lower = token.lower()
        if lower in NAME_LEADERS:
            idx += 1
            break
        if lower in CONNECTOR_WORDS and role_tokens:
            idx += 1
            break
        if idx == 0 or lower.rstrip(",;:") in ROLE_DESCRIPTORS or lower.rstrip(",;:") in BASE_ROLE_KEYWORDS or "-" in token:
            role_tokens.append(token.rstrip(",;:"))
            idx += 1
            if token.endswith((",", ";", ":")):
                break
            continue
        break

    name_tokens = tokens[idx:]
    while name_tokens and (
        name_tokens[0].lower() in CONNECTOR_WORDS
        or name_tokens[0].lower() in NAME_STOP_WORDS
        or name_tokens[0].lower() in NAME_LEADERS
    ):
        name_tokens = name_tokens[1:]

    return role_tokens, name_tokens


def _parse_member_clause(clause: str) -> list[Member]:
    working = _LEADING_CONNECTOR.sub("", clause.strip()).strip()
    tokens = working.split()
    if len(tokens) < 2:
        return []

    while tokens and tokens[0].lower() in NUMBER_WORDS:
        tokens = tokens[1:]
    if len(tokens) < 2:
        return []

    role_tokens, name_tokens = _split_role_and_names(tokens)
    if not role_tokens or not name_tokens:
        return []

    role = normalize_role(" ".join(role_tokens))
    members = []
    for raw in _NAME_SPLIT.split(" ".join(name_tokens)):
        cleaned = _NAME_ARTICLE.sub("", raw.strip())
        cleaned = _TRAILING_POSSESSIVE.sub("", cleaned).strip()
        cleaned = strip_outer_quotes(cleaned).strip()
        if not cleaned:
            continue
        # "my son and daughter" names nobody
        if cleaned.lower() in BASE_ROLE_KEYWORDS:
            continue
        members.append(Member(name=title_case(cleaned), role=role))
    return members


def extract_members(message: str) -> list[Member]:
    """
    Extract {name, role} candidates from a free-text message.

    Examples:
        extract_members("I have my wife Sarah and my son Jake")
            -> [Member("Sarah", "Wife"), Member("Jake", "Son")]
        extract_members("our two kids Tom and Anna")
            -> [Member("Tom", "Child"), Member("Anna", "Child")]

    Results are deduped by lower-cased name across the whole message.
    """
    cleaned = strip_outer_quotes(normalize_apostrophes(message).strip())
    if not cleaned:
        return []

    results: list[Member] = []
    seen: set[str] = set()
    for match in _MEMBER_CLAUSE.finditer(cleaned):
        clause = match.group(1).strip()
        if not clause:
            continue
        for member in _parse_member_clause(clause):
            key = member.name.lower()
            if key in seen:
                continue
            seen.add(key)
            results.append(member)
    return results


# =============================================================================
# Room Extraction
# =============================================================================

_CHILD_ROOM = re.compile(
    r"\b(kids?'?|children|sons|daughters|boys|girls)\b[^,.;]*\b(room|rooms|bedroom|bedrooms)\b",
    re.IGNORECASE,
)
_CHILD_COUNT = re.compile(
    r"\b(\d+|" + "|".join(NUMBER_VALUES) + r")\s+(?:kids?'?|children|sons|daughters|boys|girls)",
    re.IGNORECASE,
)
_EACH_KID_OWN_ROOM = (
    re.compile(r"each of the kids? have their own room", re.IGNORECASE),
    re.compile(r"each kid has their own room", re.IGNORECASE),
)
_MASTER_BED_AND_BATH = re.compile(r"master\s+bed\s+and\s+bath", re.IGNORECASE)

# Discourse markers, stripped in order
_LEADING_FILLERS = (
    re.compile(
        r"^(?:(?:well|so|also|and|oh|yeah|yep|yup|sure|plus|anyway|honestly|actually|maybe|um|uh|okay|ok|alright)(?:[,\s]+|$))+",
        re.IGNORECASE,
    ),
    re.compile(r"^oh\s+yeah[,\s]+", re.IGNORECASE),
    re.compile(r"^oh\s+ok[,\s]+", re.IGNORECASE),
)

# Lead-in phrases, stripped in order
_PHRASE_FILLERS = (
    re.compile(r"^(?:my|our)\s+(?:home|house)\s+has(?:\s+the\s+following\s+rooms?)?[:\s]*", re.IGNORECASE),
    re.compile(r"^home\s+has\s+", re.IGNORECASE),
    re.compile(r"^house\s+has\s+", re.IGNORECASE),
    re.compile(r"^we(?:'ve)?\s+(?:also\s+)?(?:got|have)\s+", re.IGNORECASE),
    re.compile(r"^we\s+also\s+keep\s+", re.IGNORECASE),
    re.compile(r"^there'?s\s+", re.IGNORECASE),
    re.compile(r"^here'?s\s+", re.IGNORECASE),
    re.compile(r"^it'?s\s+", re.IGNORECASE),
    re.compile(r"^this\s+is\s+", re.IGNORECASE),
    re.compile(r"^just\s+", re.IGNORECASE),
    re.compile(r"^all\s+of\s+the\s+", re.IGNORECASE),
    re.compile(r"^all\s+of\s+", re.IGNORECASE),
    re.compile(r"^all\s+the\s+", re.IGNORECASE),
)

_SUFFIX_FIXES = (
    (re.compile(r"^(?:an|the|a)\s+", re.IGNORECASE), ""),
    (re.compile(r"\bbed$", re.IGNORECASE), "Bedroom"),
    (re.compile(r"\bbedroom room$", re.IGNORECASE), "Bedroom"),
    (re.compile(r"\bbath$", re.IGNORECASE), "Bathroom"),
    (re.compile(r"\bmaster bedroom bathroom$", re.IGNORECASE), "Master Bathroom"),
)

_KNOWN_ROOM_PATTERNS = tuple(
    (name, re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE))
    for name in SORTED_ROOM_NAMES
)


def possessive_room_name(name: str) -> str:
    """Room label for a child, e.g. Jake -> Jake's Room, James -> James' Room."""
    name = title_case(name.strip())
    if not name:
        return ""
    suffix = "'" if name.lower().endswith("s") else "'s"
    return f"{name}{suffix} Room"


def build_child_rooms(
    count: int | None,
    members: Iterable[Member],
    existing_rooms: Iterable[str],
) -> list[str]:
    """
    One "<Name>'s Room" per child-role member not already covered.

    `count` caps the result when the user said how many rooms there are.
    """
    existing_lower = {room.lower() for room in existing_rooms}
    seen: set[str] = set()
    available = []
    for member in members:
        if not is_child_role(member.role):
            continue
        name = title_case(member.name.strip())
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        room = possessive_room_name(name)
        if room.lower() in existing_lower:
            continue
        available.append(room)

    if not available:
        return []
    limit = count if count and count > 0 else len(available)
    return available[:limit]


def _explicit_child_count(text: str) -> int | None:
    match = _CHILD_COUNT.search(text)
    if not match:
        return None
    raw = match.group(1).lower()
    if raw.isdigit():
        return int(raw) or None
    return NUMBER_VALUES.get(raw)


def match_known_rooms(candidate: str) -> list[str]:
    """
    Canonical room names found in a candidate, in the order they appear.

    Names are tried longest-first and each match is blanked out before shorter
    names are tried, so "Enclosed Front Porch" yields one room and not three.
    """
    remaining = candidate
    found: list[tuple[int, str]] = []
    for name, pattern in _KNOWN_ROOM_PATTERNS:
        match = pattern.search(remaining)
        if not match:
            continue
        canonical = ROOM_ALIASES.get(name, name)
        if all(canonical != existing for _, existing in found):
            found.append((match.start(), canonical))
        remaining = pattern.sub(lambda m: " " * len(m.group(0)), remaining)
    return [name for _, name in sorted(found)]


def normalize_room_fragment(
    fragment: str,
    members: Sequence[Member],
    existing_rooms: Sequence[str],
) -> list[str]:
    """Normalize one comma/"and"-separated fragment into zero or more room names."""
    text = strip_outer_quotes(fragment.strip())
    text = re.sub(r"^[\-•*]+\s*", "", text)
    text = re.sub(r":+$", "", text).strip()

    if not text or should_ignore_room(text):
        return []
    if re.search(r"that's all|nothing else", normalize_apostrophes(text), re.IGNORECASE):
        return []

    if _CHILD_ROOM.search(text):
        count = _explicit_child_count(text)
        return build_child_rooms(count, members, existing_rooms) or [KIDS_ROOMS_LABEL]

    for pattern in _LEADING_FILLERS:
        text = pattern.sub("", text).strip()
    for pattern in _PHRASE_FILLERS:
        text = pattern.sub("", text).strip()
    if not text:
        return []

    if any(pattern.search(text) for pattern in _EACH_KID_OWN_ROOM):
        return build_child_rooms(None, members, existing_rooms) or [KIDS_ROOMS_LABEL]

    if _MASTER_BED_AND_BATH.search(text):
        return ["Master Bedroom", "Master Bathroom"]

    for pattern, replacement in _SUFFIX_FIXES:
        text = pattern.sub(replacement, text)

    candidate = title_case(collapse_whitespace(text))
    if not candidate or should_ignore_room(candidate):
        return []

    known = match_known_rooms(candidate)
    if known:
        return known

    if candidate.lower() in ROOM_STRUCTURAL_WORDS:
        return []
    return [candidate]


def extract_rooms(
    message: str,
    existing_rooms: Sequence[str] = (),
    members: Sequence[Member] = (),
) -> list[str]:
    """
    Extract new room names from a free-text message.

    `members` drives child-room generation ("each kid has their own room" ->
    "Jake's Room", "Emma's Room"); `existing_rooms` are never returned again.

    Examples:
        extract_rooms("We have a master bed and bath, and a kitchen")
            -> ["Master Bedroom", "Master Bathroom", "Kitchen"]
    """
    trimmed = message.strip()
    if not trimmed or matches_phrase(trimmed, ROOM_IGNORE_PHRASES):
        return []

    working = strip_outer_quotes(trimmed)
    working = re.sub(r"[.!?]+$", "", working).strip()

    if ":" in working:
        after_colon = working.rpartition(":")[2].strip()
        if after_colon:
            working = after_colon

    for pattern, replacement in ROOM_AGGREGATES:
        working = re.sub(pattern, replacement, working, flags=re.IGNORECASE)

    fragments = [
        fragment.strip()
        for fragment in re.split(r"[,;]|\band\b", working, flags=re.IGNORECASE)
        if fragment.strip()
    ]

    existing_lower = {room.lower() for room in existing_rooms}
    collected: list[str] = []

    def collect(rooms: list[str]) -> None:
        for room in rooms:
            key = room.lower()
            if room and key not in existing_lower and all(key != c.lower() for c in collected):
                collected.append(room)

    for fragment in fragments:
        collect(normalize_room_fragment(fragment, members, [*existing_rooms, *collected]))

    if not collected:
        collect(normalize_room_fragment(working, members, [*existing_rooms, *collected]))

    return collected
