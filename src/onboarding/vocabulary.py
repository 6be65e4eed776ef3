"""
Onboarding Vocabulary.

Fixed word lists and lookup tables used by the extraction engine, the fallback
synthesizer and the reset sub-dialogue. Everything here is immutable and loaded
once at import.

Room matching is greedy longest-first, so SORTED_ROOM_NAMES must stay ordered
by descending length (e.g. "Enclosed Front Porch" before "Front Porch" before "Porch").
"""

from types import MappingProxyType


# =============================================================================
# Roles
# =============================================================================

# Whole-phrase role synonyms -> canonical role label
ROLE_SYNONYMS = MappingProxyType({
    "wife": "Wife",
    "husband": "Husband",
    "partner": "Partner",
    "spouse": "Spouse",
    "mom": "Mom",
    "mother": "Mother",
    "dad": "Dad",
    "father": "Father",
    "daughter": "Daughter",
    "daughters": "Daughter",
    "son": "Son",
    "sons": "Son",
    "boy": "Son",
    "boys": "Son",
    "girl": "Daughter",
    "girls": "Daughter",
    "kid": "Child",
    "kids": "Child",
    "child": "Child",
    "children": "Child",
    "baby": "Baby",
    "toddler": "Toddler",
    "cousin": "Cousin",
    "nephew": "Nephew",
    "niece": "Niece",
    "grandma": "Grandma",
    "grandpa": "Grandpa",
    "grandfather": "Grandfather",
    "grandmother": "Grandmother",
    "aunt": "Aunt",
    "uncle": "Uncle",
    "friend": "Friend",
    "roommate": "Roommate",
    "fiance": "Fiance",
    "fiancee": "Fiancee",
})

BASE_ROLE_KEYWORDS = frozenset({
    "mom", "mother", "dad", "father", "parent", "parents",
    "son", "sons", "daughter", "daughters", "boy", "boys", "girl", "girls",
    "kid", "kids", "child", "children",
    "wife", "husband", "partner", "partners", "spouse",
    "friend", "friends", "roommate", "roommates",
    "cousin", "cousins", "nephew", "niece", "uncle", "aunt",
    "grandma", "grandmother", "grandpa", "grandfather", "grandson", "granddaughter",
    "sister", "sisters", "brother", "brothers", "siblings",
    "guardian", "mentor", "coach",
    "stepmom", "stepmother", "stepdad", "stepfather",
    "stepbrother", "stepsister", "stepchild", "stepchildren",
    "twin", "twins", "fiance", "fiancee",
    "pet", "pets", "dog", "cat",
})

# Words that may extend a role phrase ("my oldest son", "our little girl")
ROLE_DESCRIPTORS = frozenset({
    "oldest", "youngest", "older", "younger", "little", "big", "only", "eldest",
    "middle", "newborn", "baby", "bonus", "step", "twin", "twins",
    "first", "second", "third", "fourth", "fifth",
    "pregnant", "expecting", "future",
    "lovely", "awesome", "amazing", "wonderful", "beautiful", "sweet",
})

# Filler adjectives dropped from a role label that has no synonym
ROLE_OUTPUT_OMIT = frozenset({
    "lovely", "awesome", "amazing", "wonderful", "beautiful", "sweet",
})

# Stripped from a role phrase before the synonym lookup
ROLE_FILLER_WORDS = frozenset({
    "my", "the", "a", "an", "our", "of", "with", "for", "to",
})

DEFAULT_ROLE = "Family Member"

CHILD_ROLE_MARKERS = ("son", "daughter", "child", "kid", "boy", "girl", "teen")


# =============================================================================
# Tokens
# =============================================================================

NUMBER_WORDS = frozenset({
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "couple", "few", "pair", "pairs", "dozen",
})

# Cardinal words the room extractor can read as an explicit count
NUMBER_VALUES = MappingProxyType({
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
})

CONNECTOR_WORDS = frozenset({"and", "&"})
NAME_LEADERS = frozenset({"named", "called", "is", "=", "as"})
NAME_STOP_WORDS = frozenset({"the", "a", "an", "my", "our"})


# =============================================================================
# Phrase sets
# =============================================================================

MEMBER_DONE_PHRASES = (
    "no thanks",
    "nope",
    "no that's all",
    "no that is all",
    "nope that's all of us",
    "done",
    "that's all",
    "thats all",
    "that's everyone",
    "thats everyone",
    "that's everyone actually",
    "thats everyone actually",
    "that's it",
    "thats it",
    "all set",
    "we're good",
    "we are good",
    "we good",
    "no more",
    "stop",
)

ROOM_DONE_PHRASES = MEMBER_DONE_PHRASES + (
    "i think that's all",
    "i think thats all",
    "nothing else",
    "none",
    "no other rooms",
    "no other spaces",
    "that is everything",
    "that is all",
    "no other",
    "we are good on rooms",
    "we are good on spaces",
    "we are set",
    "all good",
)

ROOM_IGNORE_PHRASES = frozenset(ROOM_DONE_PHRASES + (
    "what do you mean",
    "i am confused",
    "im confused",
    "not sure",
    "no idea",
    "n/a",
    "na",
))

RESET_YES_PHRASES = (
    "yes",
    "yeah",
    "yep",
    "yup",
    "sure",
    "absolutely",
    "of course",
    "start over",
    "restart",
    "reset",
    "reset it",
    "reset onboarding",
    "let's start over",
    "start from scratch",
    "let's do it",
)

RESET_NO_PHRASES = (
    "no",
    "nope",
    "not now",
    "maybe later",
    "keep it",
    "leave it",
    "stay as is",
    "don't",
)

RESET_COMMAND_PHRASES = (
    "reset onboarding",
    "restart onboarding",
    "start over onboarding",
)


# =============================================================================
# Rooms
# =============================================================================

KNOWN_ROOM_NAMES = (
    "Master Bedroom",
    "Master Bathroom",
    "Primary Bedroom",
    "Primary Bathroom",
    "Kids Bedrooms",
    "Kids Rooms",
    "Kids Room",
    "Kids Bathroom",
    "Guest Bedroom",
    "Guest Bathroom",
    "Guest Room",
    "Living Room",
    "Dining Room",
    "Kitchen",
    "Study",
    "Library",
    "Office",
    "Workout Room",
    "Gym",
    "Garage",
    "Front Porch",
    "Enclosed Front Porch",
    "Porch",
    "Basement",
    "Attic",
    "Laundry Room",
    "Mud Room",
    "Yard",
    "Backyard",
    "Deck",
    "Patio",
    "Loft",
    "Playroom",
)

SORTED_ROOM_NAMES = tuple(sorted(KNOWN_ROOM_NAMES, key=len, reverse=True))

ROOM_ALIASES = MappingProxyType({
    "Primary Bedroom": "Master Bedroom",
    "Primary Bathroom": "Master Bathroom",
    "Kids Room": "Kids Rooms",
    "Enclosed Front Porch": "Front Porch",
    "Porch": "Front Porch",
    "Gym": "Workout Room",
    "Backyard": "Yard",
    "Guest Bedroom": "Guest Room",
})

# Aggregate phrases expanded before a message is split into fragments
ROOM_AGGREGATES = (
    (r"master\s+bed\s+and\s+bath", "master bedroom, master bathroom"),
    (r"master\s+bedroom\s+and\s+bathroom", "master bedroom, master bathroom"),
)

# Bare structural words that never name a room on their own
ROOM_STRUCTURAL_WORDS = frozenset({"room", "rooms", "kids"})

KIDS_ROOMS_LABEL = "Kids Rooms"
