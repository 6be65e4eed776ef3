"""
Onboarding Conversation State.

Tracks the guided-onboarding conversation for one (family, user) identity:
the current step, the three slots being collected (family name, members, rooms),
the message log and the live streaming buffer.

Slot status is derived from the slots on every read and is never stored.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ConversationStep(str, Enum):
    """Conversation steps, in forward order."""
    GREETING = "greeting"
    MEMBERS = "members"
    ROOMS = "rooms"
    COMMITTED = "committed"
    COMPLETED = "completed"


STEP_ORDER = list(ConversationStep)


class SlotStatus(str, Enum):
    EMPTY = "empty"
    FILLED = "filled"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


INITIAL_GREETING = (
    "Hi! I'm LinZ 👋 Welcome to FamConomy, thanks for inviting me along. "
    "To start, what name should we use for your family? (e.g., \"The Parkers\")"
)


@dataclass(frozen=True)
class Member:
    """A captured family member. Immutable once appended."""
    name: str
    role: str
    email: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"name": self.name, "role": self.role}
        if self.email:
            data["email"] = self.email
        return data


@dataclass(frozen=True)
class ChatMessage:
    """One entry of the append-only message log."""
    sender: Sender
    text: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {"sender": self.sender.value, "text": self.text, "timestamp": self.timestamp}


def step_index(step: ConversationStep) -> int:
    return STEP_ORDER.index(step)


def parse_step(value: Any) -> ConversationStep | None:
    """Narrow an untrusted step value (e.g. from the assistant) to a ConversationStep."""
    if isinstance(value, ConversationStep):
        return value
    if isinstance(value, str):
        try:
            return ConversationStep(value.strip().lower())
        except ValueError:
            return None
    return None


def derive_slot_status(family_name: str, members: list, rooms: list) -> dict[str, SlotStatus]:
    """Slot status is `filled` iff the slot is non-empty."""
    return {
        "family_name": SlotStatus.FILLED if family_name else SlotStatus.EMPTY,
        "members": SlotStatus.FILLED if members else SlotStatus.EMPTY,
        "rooms": SlotStatus.FILLED if rooms else SlotStatus.EMPTY,
    }


def all_slots_filled(slot_status: dict[str, SlotStatus]) -> bool:
    return all(value == SlotStatus.FILLED for value in slot_status.values())


def derive_next_step(slot_status: dict[str, SlotStatus]) -> ConversationStep:
    """
    Compute the next step purely from which slots are filled.

    Independent of anything the assistant or the fallback said.
    """
    family = slot_status["family_name"] == SlotStatus.FILLED
    members = slot_status["members"] == SlotStatus.FILLED
    rooms = slot_status["rooms"] == SlotStatus.FILLED

    if family and members and rooms:
        return ConversationStep.COMMITTED
    if family and members:
        return ConversationStep.ROOMS
    if family:
        return ConversationStep.MEMBERS
    return ConversationStep.GREETING


def advance_step(current: ConversationStep, candidate: ConversationStep) -> ConversationStep:
    """Steps only move forward outside of a reset."""
    if step_index(candidate) >= step_index(current):
        return candidate
    return current


@dataclass
class ConversationState:
    """
    Onboarding conversation state for one identity pair.

    `members` and `rooms` are merge-only until a reset; extraction never removes
    a previously captured fact.
    """
    current_step: ConversationStep = ConversationStep.GREETING
    family_name: str = ""
    members: list[Member] = field(default_factory=list)
    rooms: list[str] = field(default_factory=list)
    messages: list[ChatMessage] = field(default_factory=list)
    awaiting_reset_confirmation: bool = False
    streaming_buffer: str | None = None

    # UI bookkeeping
    loading: bool = False
    error: str | None = None
    hydrated: bool = False

    @classmethod
    def initial(cls, *, hydrated: bool = False) -> "ConversationState":
        """Fresh state seeded with the opening greeting."""
        return cls(
            messages=[ChatMessage(sender=Sender.ASSISTANT, text=INITIAL_GREETING)],
            hydrated=hydrated,
        )

    @property
    def slot_status(self) -> dict[str, SlotStatus]:
        return derive_slot_status(self.family_name, self.members, self.rooms)

    @property
    def has_user_messages(self) -> bool:
        return any(message.sender == Sender.USER for message in self.messages)

    def append_message(self, sender: Sender, text: str) -> None:
        self.messages.append(ChatMessage(sender=sender, text=text))

    def history(self, window: int) -> list[dict]:
        """Trailing slice of the message log, as sent to the assistant."""
        return [
            {"sender": message.sender.value, "text": message.text}
            for message in self.messages[-window:]
        ]

    def to_dict(self) -> dict:
        """Serialize state to a JSON-safe dict."""
        return {
            "current_step": self.current_step.value,
            "family_name": self.family_name,
            "members": [member.to_dict() for member in self.members],
            "rooms": list(self.rooms),
            "slot_status": {key: value.value for key, value in self.slot_status.items()},
            "messages": [message.to_dict() for message in self.messages],
            "awaiting_reset_confirmation": self.awaiting_reset_confirmation,
            "streaming_message": self.streaming_buffer,
            "loading": self.loading,
            "error": self.error,
            "hydrated": self.hydrated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationState":
        """Deserialize state from a dict produced by to_dict."""
        return cls(
            current_step=parse_step(data.get("current_step")) or ConversationStep.GREETING,
            family_name=data.get("family_name", ""),
            members=[
                Member(name=m["name"], role=m["role"], email=m.get("email"))
                for m in data.get("members", [])
            ],
            rooms=list(data.get("rooms", [])),
            messages=[
                ChatMessage(sender=Sender(m["sender"]), text=m["text"], timestamp=m.get("timestamp", ""))
                for m in data.get("messages", [])
            ],
            awaiting_reset_confirmation=data.get("awaiting_reset_confirmation", False),
            streaming_buffer=data.get("streaming_message"),
            loading=data.get("loading", False),
            error=data.get("error"),
            hydrated=data.get("hydrated", False),
        )
