"""
Onboarding Payload Definitions.

Typed DTOs for everything that crosses a boundary: assistant stream events,
the REST persistence calls, and the public state snapshot handed to callers.

The assistant and the backend both send loosely-shaped JSON. These models narrow
it at the edge (unknown keys ignored, wrong-typed entries dropped) so the rest of
the engine only ever sees well-formed values.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .state import ConversationState, ConversationStep, Member


# =============================================================================
# Assistant Stream
# =============================================================================


class MemberPayload(BaseModel):
    """A member as reported by the assistant or the backend. Every field optional."""
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    role: str | None = None
    email: str | None = None

    def to_member(self) -> Member | None:
        """Trimmed Member, or None when name or role is missing."""
        name = (self.name or "").strip()
        role = (self.role or "").strip()
        email = (self.email or "").strip() or None
        if not name or not role:
            return None
        return Member(name=name, role=role, email=email)


class StreamSnapshot(BaseModel):
    """Structured slot snapshot carried by `state` (and `done`) stream events."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    family_name: str | None = Field(
        default=None, validation_alias=AliasChoices("family_name", "familyName")
    )
    members: list[MemberPayload] | None = None
    rooms: list[str] | None = None
    next_step: str | None = Field(
        default=None, validation_alias=AliasChoices("next_step", "nextStep")
    )

    @field_validator("family_name", "next_step", mode="before")
    @classmethod
    def _only_strings(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("members", mode="before")
    @classmethod
    def _only_member_objects(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return None
        return [item for item in value if isinstance(item, dict)]

    @field_validator("rooms", mode="before")
    @classmethod
    def _only_room_strings(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return None
        return [item for item in value if isinstance(item, str)]


class StreamResult(BaseModel):
    """Outcome of one fully consumed assistant stream."""
    assistant_reply: str = ""
    state: StreamSnapshot | None = None
    has_content: bool = False
    completed: bool = False


# =============================================================================
# Fallback
# =============================================================================


@dataclass
class ExtractedSlots:
    """Slot additions proposed by the fallback synthesizer."""
    family_name: str | None = None
    members_add: list[Member] = field(default_factory=list)
    rooms_add: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.family_name or self.members_add or self.rooms_add)


@dataclass
class FallbackResponse:
    """Deterministic reply produced without any network call."""
    reply: str
    extracted: ExtractedSlots = field(default_factory=ExtractedSlots)
    suggested_next_step: ConversationStep | None = None


# =============================================================================
# Persistence
# =============================================================================


class MemoryItem(BaseModel):
    """One key-value row of short-term onboarding memory. `value` is JSON text."""
    model_config = ConfigDict(populate_by_name=True)

    family_id: int = Field(serialization_alias="familyId")
    user_id: str = Field(serialization_alias="userId")
    namespace: str = "onboarding"
    key: str
    value: str


class CommitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    family_id: int = Field(serialization_alias="familyId")
    user_id: str = Field(serialization_alias="userId")
    family_name: str
    members: list[dict]
    rooms: list[str]


class CommitResponse(BaseModel):
    """Backend reply to a commit. `rooms` is authoritative when present."""
    model_config = ConfigDict(extra="ignore")

    rooms: list[str] | None = None
    message: str | None = None

    @field_validator("rooms", mode="before")
    @classmethod
    def _only_room_strings(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return None
        return [item for item in value if isinstance(item, str)]


class ResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(serialization_alias="userId")
    family_id: int | None = Field(default=None, serialization_alias="familyId")


class MemoryRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    namespace: str | None = None
    key: str
    value: Any = None


class FactRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str
    value: Any = None


class HydrationPayload(BaseModel):
    """Stored onboarding memory plus long-term facts for a family/user."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    onboarding_memory: list[MemoryRow] = Field(
        default_factory=list,
        validation_alias=AliasChoices("onboardingMemory", "onboarding_memory"),
    )
    existing_facts: list[FactRow] = Field(
        default_factory=list,
        validation_alias=AliasChoices("existingFacts", "existing_facts"),
    )

    @field_validator("onboarding_memory", "existing_facts", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict) and isinstance(item.get("key"), str)]


# =============================================================================
# Public Snapshot
# =============================================================================


class SnapshotMember(BaseModel):
    name: str
    role: str
    email: str | None = None


class SnapshotMessage(BaseModel):
    sender: str
    text: str
    timestamp: str = ""


class OnboardingSnapshot(BaseModel):
    """Read-only view of the conversation handed to callers."""
    model_config = ConfigDict(frozen=True)

    current_step: ConversationStep
    family_name: str
    members: list[SnapshotMember]
    rooms: list[str]
    slot_status: dict[str, str]
    messages: list[SnapshotMessage]
    streaming_message: str | None = None
    awaiting_reset_confirmation: bool = False
    loading: bool = False
    error: str | None = None
    hydrated: bool = False
    family_id: int | None = None

    @classmethod
    def from_state(cls, state: ConversationState, family_id: int | None = None) -> "OnboardingSnapshot":
        data = state.to_dict()
        return cls(family_id=family_id, **data)
