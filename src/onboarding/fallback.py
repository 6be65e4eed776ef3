"""
Onboarding - Deterministic Fallback Replies.

When the streaming assistant fails to deliver a usable reply, the engine asks
this module for one instead. Everything here is a pure function of the current
state and the raw user message: no I/O, no clock, no randomness. The tests use
`build_fallback_response` directly as an oracle.
"""

from .extraction import extract_members, extract_rooms
from .normalize import contains_phrase, guess_family_name
from .payload import ExtractedSlots, FallbackResponse, StreamSnapshot
from .state import ConversationState, ConversationStep, parse_step
from .vocabulary import MEMBER_DONE_PHRASES, ROOM_DONE_PHRASES


MEMBERS_DONE_REPLY = (
    "Perfect, I feel like I'm getting to know your family already. "
    "Let's talk about your space. What rooms or areas should we keep track of?"
)
MEMBERS_NEEDED_REPLY = (
    "I'd love to know at least one person in your crew. "
    "Share a name and role, or tell me you'd like to skip this part for now."
)
ROOMS_DONE_REPLY = (
    "Sounds good, I'll get those spaces set up. "
    "If you think of another room later, just let me know."
)


def _greeting_reply(state: ConversationState, message: str) -> FallbackResponse:
    guessed = None if state.family_name else guess_family_name(message)
    family_label = state.family_name or guessed

    if family_label:
        reply = (
            f"Wonderful. I'd love to get to know the people who make up {family_label}. "
            "Who should we invite first?"
        )
        next_step = ConversationStep.MEMBERS
    else:
        reply = (
            "Thanks for kicking things off! I'd love to know who will be using FamConomy "
            "with you. Who should we invite first?"
        )
        next_step = ConversationStep.GREETING

    return FallbackResponse(
        reply=reply,
        extracted=ExtractedSlots(family_name=guessed),
        suggested_next_step=next_step,
    )


def _members_reply(state: ConversationState, message: str) -> FallbackResponse:
    if contains_phrase(message, MEMBER_DONE_PHRASES):
        has_members = bool(state.members)
        return FallbackResponse(
            reply=MEMBERS_DONE_REPLY if has_members else MEMBERS_NEEDED_REPLY,
            suggested_next_step=ConversationStep.ROOMS if has_members else ConversationStep.MEMBERS,
        )

    lower = message.lower()
    if "spell" in lower or ("name" in lower and "wrong" in lower):
        return FallbackResponse(
            reply=(
                "Thanks for pointing that out. I'd love to get the names right. "
                "Could you share each name again so I can fix them?"
            ),
            suggested_next_step=ConversationStep.MEMBERS,
        )

    known = {member.name.lower() for member in state.members}
    new_members = [member for member in extract_members(message) if member.name.lower() not in known]
    if new_members:
        names = ", ".join(f"{member.name} ({member.role})" for member in new_members)
        return FallbackResponse(
            reply=f"Love it! I'll add {names}. Anyone else to invite?",
            extracted=ExtractedSlots(members_add=new_members),
            suggested_next_step=ConversationStep.MEMBERS,
        )

    if state.members:
        latest = state.members[-1].name
        reply = (
            f"I bet {latest} has a partner in crime. "
            "Tell me about another person in your crew. Name and role work great!"
        )
    else:
        reply = (
            "I'd love to meet everyone. Who's the first family member we should add, "
            "and how are they connected to you?"
        )
    return FallbackResponse(reply=reply, suggested_next_step=ConversationStep.MEMBERS)


def _rooms_reply(state: ConversationState, message: str) -> FallbackResponse:
    finished = contains_phrase(message, ROOM_DONE_PHRASES)
    rooms = extract_rooms(message, state.rooms, state.members)

    if rooms:
        listed = ", ".join(rooms)
        if finished:
            reply = (
                f"Great! I'll note {listed}. That should cover everything for now. "
                "If another space pops up later, just let me know."
            )
        else:
            reply = f"Great! I'll note {listed}. Any other spaces you rely on?"
        return FallbackResponse(
            reply=reply,
            extracted=ExtractedSlots(rooms_add=rooms),
            suggested_next_step=ConversationStep.COMMITTED if finished else ConversationStep.ROOMS,
        )

    if finished:
        return FallbackResponse(reply=ROOMS_DONE_REPLY, suggested_next_step=ConversationStep.COMMITTED)

    if state.rooms:
        reply = (
            f"I'm picturing {state.rooms[-1]}. What other spaces should I know about "
            "so we can keep things organized for you?"
        )
    else:
        reply = "Paint me a picture of your home. What's one room or space your family relies on a lot?"
    return FallbackResponse(reply=reply, suggested_next_step=ConversationStep.ROOMS)


def build_fallback_response(state: ConversationState, message: str) -> FallbackResponse:
    """
    Synthesize a reply, slot additions and a suggested next step for `message`.

    Dispatches on `state.current_step`; the state is only read, never modified.
    """
    step = state.current_step

    if step == ConversationStep.GREETING:
        return _greeting_reply(state, message)
    if step == ConversationStep.MEMBERS:
        return _members_reply(state, message)
    if step == ConversationStep.ROOMS:
        return _rooms_reply(state, message)
    if step == ConversationStep.COMMITTED:
        return FallbackResponse(
            reply="Amazing, I have what I need. Give me just a sec while I set everything up behind the scenes.",
            suggested_next_step=ConversationStep.COMMITTED,
        )

    if message.strip():
        reply = "Thanks for sharing that with me! Let me know anything else you'd like me to remember about your family."
    else:
        reply = "I'm here and ready whenever you want to tell me more about your family setup."
    return FallbackResponse(reply=reply, suggested_next_step=step)


def reply_from_snapshot(snapshot: StreamSnapshot | None) -> str | None:
    """
    Reply text implied by a structured stream snapshot that arrived without any text.

    Returns None when the snapshot does not point at a step worth announcing.
    """
    if snapshot is None:
        return None

    step = parse_step(snapshot.next_step)
    if step == ConversationStep.MEMBERS:
        return "Great! Tell me about the people we should include next."
    if step == ConversationStep.ROOMS:
        return "Awesome, let's talk about the rooms or spaces you want to track."
    if step in (ConversationStep.COMMITTED, ConversationStep.COMPLETED):
        family_label = (snapshot.family_name or "").strip() or "your family"
        member_count = len(snapshot.members or [])
        room_count = len(snapshot.rooms or [])
        member_summary = (
            f"{member_count} member{'' if member_count == 1 else 's'}" if member_count else "no members yet"
        )
        room_summary = f"{room_count} room{'' if room_count == 1 else 's'}" if room_count else "no rooms yet"
        return (
            f"All set! I've saved {family_label} with {member_summary} and {room_summary}. "
            "You're ready to continue."
        )
    return None
