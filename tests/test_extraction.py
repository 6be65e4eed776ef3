"""
Tests for rule-based member and room extraction.
"""

from onboarding.extraction import (
    build_child_rooms,
    extract_members,
    extract_rooms,
    match_known_rooms,
    possessive_room_name,
)
from onboarding.normalize import contains_phrase, dedupe_members, guess_family_name, normalize_role, title_case
from onboarding.state import Member
from onboarding.vocabulary import MEMBER_DONE_PHRASES, SORTED_ROOM_NAMES


FAMILY = [
    Member(name="Sarah", role="Wife"),
    Member(name="Jake", role="Son"),
    Member(name="Emma", role="Daughter"),
]


class TestExtractMembers:
    """Member clauses start at "my"/"our"."""

    def test_wife_and_son(self):
        members = extract_members("I have my wife Sarah and my son Jake")
        assert members == [Member(name="Sarah", role="Wife"), Member(name="Jake", role="Son")]

    def test_shared_role_with_number_word(self):
        members = extract_members("our two kids Tom and Anna")
        assert members == [Member(name="Tom", role="Child"), Member(name="Anna", role="Child")]

    def test_name_leader(self):
        assert extract_members("my husband is mike") == [Member(name="Mike", role="Husband")]
        assert extract_members("my daughter named lily.") == [Member(name="Lily", role="Daughter")]

    def test_trailing_possessive_stripped(self):
        assert extract_members("my dad Bob's") == [Member(name="Bob", role="Dad")]

    def test_bare_role_is_not_a_name(self):
        """"my son and daughter" names nobody."""
        assert extract_members("my son and daughter") == []

    def test_single_token_clause_discarded(self):
        assert extract_members("my family") == []

    def test_no_possessive_no_members(self):
        assert extract_members("nope that's all of us") == []
        assert extract_members("") == []

    def test_dedupes_by_name(self):
        members = extract_members("my wife Sarah, my partner Sarah")
        assert [member.name for member in members] == ["Sarah"]

    def test_deterministic(self):
        message = "my wife Sarah and my son Jake, our dog Rex"
        assert extract_members(message) == extract_members(message)


class TestNormalizeRole:
    """Role phrases map through the synonym table."""

    def test_synonyms(self):
        assert normalize_role("boys") == "Son"
        assert normalize_role("mom") == "Mom"
        assert normalize_role("kids") == "Child"

    def test_fillers_and_numbers_dropped(self):
        assert normalize_role("the two girls") == "Daughter"

    def test_unknown_role_title_cased(self):
        assert normalize_role("lovely sister") == "Sister"

    def test_empty_defaults(self):
        assert normalize_role("") == "Family Member"


class TestExtractRooms:
    """Room extraction over fragments."""

    def test_master_bed_and_bath(self):
        rooms = extract_rooms("We have a master bed and bath, and a kitchen")
        assert rooms == ["Master Bedroom", "Master Bathroom", "Kitchen"]

    def test_aliases_canonicalized(self):
        assert extract_rooms("Primary bedroom, gym and backyard") == ["Master Bedroom", "Workout Room", "Yard"]

    def test_longest_match_wins(self):
        assert extract_rooms("an enclosed front porch") == ["Front Porch"]

    def test_text_after_last_colon(self):
        assert extract_rooms("Here are our rooms: kitchen, office") == ["Kitchen", "Office"]

    def test_done_phrase_rejected(self):
        assert extract_rooms("that's all") == []
        assert extract_rooms("Nothing else!") == []

    def test_done_phrase_fragment_skipped(self):
        assert extract_rooms("kitchen and garage, that's all") == ["Kitchen", "Garage"]

    def test_existing_rooms_not_repeated(self):
        assert extract_rooms("kitchen and garage", existing_rooms=["Kitchen"]) == ["Garage"]

    def test_novel_room_kept(self):
        assert extract_rooms("craft corner") == ["Craft Corner"]

    def test_leading_fillers_stripped(self):
        assert extract_rooms("Oh yeah, we also keep a wine cellar") == ["Wine Cellar"]

    def test_structural_words_rejected(self):
        assert extract_rooms("room") == []

    def test_kids_rooms_from_members(self):
        rooms = extract_rooms("each kid has their own room", members=FAMILY)
        assert rooms == ["Jake's Room", "Emma's Room"]

    def test_kids_rooms_respects_count(self):
        rooms = extract_rooms("the 1 kids room", members=FAMILY)
        assert rooms == ["Jake's Room"]

    def test_kids_rooms_without_children(self):
        assert extract_rooms("the kids' rooms") == ["Kids Rooms"]

    def test_idempotent_against_own_output(self):
        message = "kitchen, living room and the office"
        first = extract_rooms(message)
        assert extract_rooms(message, existing_rooms=first) == []


class TestRoomHelpers:
    """Child-room naming and known-room matching."""

    def test_possessive_room_name(self):
        assert possessive_room_name("jake") == "Jake's Room"
        assert possessive_room_name("James") == "James' Room"

    def test_build_child_rooms_skips_existing(self):
        assert build_child_rooms(None, FAMILY, ["Jake's Room"]) == ["Emma's Room"]

    def test_match_known_rooms_in_order(self):
        assert match_known_rooms("Garage Or Kitchen") == ["Garage", "Kitchen"]

    def test_sorted_room_names_longest_first(self):
        lengths = [len(name) for name in SORTED_ROOM_NAMES]
        assert lengths == sorted(lengths, reverse=True)


class TestTextHelpers:
    """Family-name guess and phrase matching."""

    def test_guess_family_name(self):
        assert guess_family_name('"the parkers"') == "The Parkers"
        assert guess_family_name("what should I say?") is None
        assert guess_family_name("we are a big happy family of seven people") is None

    def test_title_case_keeps_inner_capitals(self):
        assert title_case("mcDonald family") == "McDonald Family"

    def test_contains_phrase_whole_words(self):
        assert contains_phrase("Nope, that’s all of us", MEMBER_DONE_PHRASES)
        assert not contains_phrase("abandoned", ["done"])

    def test_dedupe_members_by_email(self):
        members = dedupe_members([
            Member(name="Sarah", role="Wife", email="S@X.com"),
            Member(name="Sally", role="Mom", email="s@x.com"),
            Member(name="sarah", role="wife"),
            Member(name="Jake", role="Son"),
        ])
        assert members == [
            Member(name="Sarah", role="Wife", email="s@x.com"),
            Member(name="Jake", role="Son"),
        ]
