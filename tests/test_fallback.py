"""
Tests for the deterministic fallback synthesizer.

build_fallback_response is a pure function of (state, message), so these run
without any event loop or HTTP.
"""

from onboarding.fallback import (
    MEMBERS_DONE_REPLY,
    MEMBERS_NEEDED_REPLY,
    ROOMS_DONE_REPLY,
    build_fallback_response,
    reply_from_snapshot,
)
from onboarding.payload import StreamSnapshot
from onboarding.state import ConversationState, ConversationStep, Member


def make_state(step: ConversationStep, **kwargs) -> ConversationState:
    return ConversationState(current_step=step, **kwargs)


class TestGreeting:
    """Greeting step guesses a family name."""

    def test_guesses_family_name(self):
        result = build_fallback_response(make_state(ConversationStep.GREETING), "the parkers")
        assert result.extracted.family_name == "The Parkers"
        assert result.suggested_next_step == ConversationStep.MEMBERS
        assert "The Parkers" in result.reply

    def test_question_is_not_a_name(self):
        result = build_fallback_response(make_state(ConversationStep.GREETING), "what do you need?")
        assert result.extracted.family_name is None
        assert result.suggested_next_step == ConversationStep.GREETING

    def test_existing_name_not_replaced(self):
        state = make_state(ConversationStep.GREETING, family_name="The Lees")
        result = build_fallback_response(state, "something else")
        assert result.extracted.family_name is None
        assert "The Lees" in result.reply


class TestMembers:
    """Members step."""

    def test_done_with_members_moves_to_rooms(self):
        state = make_state(ConversationStep.MEMBERS, members=[Member(name="Sarah", role="Wife")])
        result = build_fallback_response(state, "nope that's all of us")
        assert result.reply == MEMBERS_DONE_REPLY
        assert result.suggested_next_step == ConversationStep.ROOMS

    def test_done_without_members_stays(self):
        result = build_fallback_response(make_state(ConversationStep.MEMBERS), "that's everyone")
        assert result.reply == MEMBERS_NEEDED_REPLY
        assert result.suggested_next_step == ConversationStep.MEMBERS

    def test_new_members_acknowledged(self):
        state = make_state(ConversationStep.MEMBERS, members=[Member(name="Sarah", role="Wife")])
        result = build_fallback_response(state, "my wife Sarah and my son Jake")
        assert result.extracted.members_add == [Member(name="Jake", role="Son")]
        assert "Jake (Son)" in result.reply
        assert "Sarah" not in result.reply
        assert result.suggested_next_step == ConversationStep.MEMBERS

    def test_name_correction(self):
        state = make_state(ConversationStep.MEMBERS, members=[Member(name="Sara", role="Wife")])
        result = build_fallback_response(state, "you got the name wrong")
        assert "names right" in result.reply
        assert result.extracted.is_empty()

    def test_reprompt_mentions_latest_member(self):
        state = make_state(
            ConversationStep.MEMBERS,
            members=[Member(name="Sarah", role="Wife"), Member(name="Jake", role="Son")],
        )
        result = build_fallback_response(state, "hmm")
        assert "Jake" in result.reply
        assert result.suggested_next_step == ConversationStep.MEMBERS

    def test_reprompt_without_members(self):
        result = build_fallback_response(make_state(ConversationStep.MEMBERS), "hmm")
        assert "first family member" in result.reply


class TestRooms:
    """Rooms step."""

    def test_rooms_acknowledged(self):
        result = build_fallback_response(make_state(ConversationStep.ROOMS), "kitchen and garage")
        assert result.extracted.rooms_add == ["Kitchen", "Garage"]
        assert result.suggested_next_step == ConversationStep.ROOMS
        assert "Kitchen, Garage" in result.reply

    def test_rooms_and_done_commits(self):
        result = build_fallback_response(make_state(ConversationStep.ROOMS), "kitchen and garage, that's all")
        assert result.extracted.rooms_add == ["Kitchen", "Garage"]
        assert result.suggested_next_step == ConversationStep.COMMITTED

    def test_done_only(self):
        state = make_state(ConversationStep.ROOMS, rooms=["Kitchen"])
        result = build_fallback_response(state, "that's all")
        assert result.reply == ROOMS_DONE_REPLY
        assert result.suggested_next_step == ConversationStep.COMMITTED

    def test_reprompt_mentions_latest_room(self):
        state = make_state(ConversationStep.ROOMS, rooms=["Kitchen", "Garage"])
        result = build_fallback_response(state, "not sure")
        assert "Garage" in result.reply
        assert result.extracted.is_empty()

    def test_open_question_without_rooms(self):
        result = build_fallback_response(make_state(ConversationStep.ROOMS), "not sure")
        assert "Paint me a picture" in result.reply


class TestOtherSteps:
    """Committed and completed steps hold."""

    def test_committed_holds(self):
        result = build_fallback_response(make_state(ConversationStep.COMMITTED), "anything")
        assert result.suggested_next_step == ConversationStep.COMMITTED

    def test_completed_keeps_step(self):
        result = build_fallback_response(make_state(ConversationStep.COMPLETED), "thanks")
        assert result.suggested_next_step == ConversationStep.COMPLETED
        assert result.extracted.is_empty()

    def test_state_not_modified(self):
        state = make_state(ConversationStep.MEMBERS)
        build_fallback_response(state, "my son Jake")
        assert state.members == []


class TestReplyFromSnapshot:
    """Replies implied by a structured snapshot with no text."""

    def test_members_step(self):
        snapshot = StreamSnapshot(next_step="members")
        assert reply_from_snapshot(snapshot) == "Great! Tell me about the people we should include next."

    def test_committed_summary(self):
        snapshot = StreamSnapshot.model_validate({
            "familyName": "The Parkers",
            "members": [{"name": "Sarah", "role": "Wife"}],
            "rooms": ["Kitchen", "Garage"],
            "nextStep": "committed",
        })
        assert reply_from_snapshot(snapshot) == (
            "All set! I've saved The Parkers with 1 member and 2 rooms. You're ready to continue."
        )

    def test_committed_without_slots(self):
        snapshot = StreamSnapshot(next_step="completed")
        reply = reply_from_snapshot(snapshot)
        assert "your family with no members yet and no rooms yet" in reply

    def test_no_step(self):
        assert reply_from_snapshot(StreamSnapshot()) is None
        assert reply_from_snapshot(None) is None
