"""
FamConomy Guided Onboarding.

Slot-filling conversation that captures a family's name, members and rooms
through free-text chat, backed by a streaming assistant with a deterministic
fallback that keeps the conversation moving when the assistant does not answer.

Steps:
1. greeting  - family name
2. members   - who is in the family, and how they are related
3. rooms     - the spaces the household keeps track of
4. committed - slots persisted to the backend
5. completed - product tour finished
"""

__version__ = "1.0.0"

from .engine import OnboardingEngine
from .extraction import extract_members, extract_rooms
from .fallback import build_fallback_response
from .payload import OnboardingSnapshot
from .state import ConversationState, ConversationStep, Member

__all__ = [
    "OnboardingEngine",
    "OnboardingSnapshot",
    "ConversationState",
    "ConversationStep",
    "Member",
    "extract_members",
    "extract_rooms",
    "build_fallback_response",
]
