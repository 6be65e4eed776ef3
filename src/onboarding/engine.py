"""
Onboarding - Slot State Machine.

OnboardingEngine drives one guided-onboarding conversation for a (family, user)
identity. Each user message runs one turn:

    reset intercept -> cancel prior stream -> stream assistant reply
        -> merge structured slots -> fallback (after a grace delay) if no reply
        -> rule-based extraction on the raw message -> resolve next step
        -> apply -> auto-commit once every slot is filled

Step authority, highest first:
    1. the reset-confirmation sub-dialogue (and explicit reset commands)
    2. the streamed `next_step`
    3. the fallback's suggested step
    4. the step derived purely from which slots are filled
The "done" phrase overrides for the members and rooms steps always apply, and
the step never moves backwards outside of a reset.

A turn superseded by a newer message is dropped silently: its stream is
cancelled, it never falls back and none of its results reach the state.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Iterable

from .config import OnboardingSettings, get_settings
from .extraction import extract_members, extract_rooms
from .fallback import build_fallback_response, reply_from_snapshot
from .normalize import contains_phrase, dedupe_members, dedupe_rooms, title_case
from .payload import CommitRequest, HydrationPayload, MemberPayload, OnboardingSnapshot, ResetRequest
from .persistence import OnboardingAPIClient, PersistenceError
from .pipeline import (
    CommitValidationError,
    ResetDecision,
    classify_reset_reply,
    prepare_commit_data,
    sanitize_rooms_for_commit,
)
from .state import (
    ChatMessage,
    ConversationState,
    ConversationStep,
    Member,
    Sender,
    advance_step,
    all_slots_filled,
    derive_next_step,
    derive_slot_status,
    parse_step,
)
from .streaming import AssistantStreamClient, CancellationToken, StreamAborted
from .vocabulary import (
    DEFAULT_ROLE,
    MEMBER_DONE_PHRASES,
    RESET_COMMAND_PHRASES,
    ROOM_DONE_PHRASES,
)

StreamCallback = Callable[[str], None]

RESET_ACCEPTED_REPLY = "All right, starting fresh! Tell me what your family should be called."
RESET_DECLINED_REPLY = (
    "No problem! Everything will stay just the way it is. "
    "If you change your mind, just say \"reset onboarding.\""
)
RESET_UNKNOWN_REPLY = (
    "Totally fine! If you decide you want to start over later, "
    "just let me know by saying \"reset onboarding.\""
)
WELCOME_BACK_REPLY = "Welcome back to onboarding! Would you like to start over?"

MEMBERS_DONE_OVERRIDE_REPLY = (
    "Perfect, let's talk about your space. What rooms or areas should we keep track of?"
)
MEMBERS_EMPTY_OVERRIDE_REPLY = (
    "I'd love to know at least one person in your crew. "
    "Share a name and role, or tell me you'd like to skip this part for now."
)
ROOMS_DONE_OVERRIDE_REPLY = (
    "Sounds good, I'll get those spaces set up. If you think of another room later, just let me know."
)


class OnboardingEngine:
    """
    Slot-filling conversation manager for one identity pair.

    Collaborators are injected: `assistant` streams replies, `api` persists
    memory, commits and resets. Callers read state only through `snapshot()`.
    """

    def __init__(
        self,
        *,
        user_id: str,
        assistant: AssistantStreamClient,
        api: OnboardingAPIClient,
        family_id: int | None = None,
        settings: OnboardingSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.user_id = user_id
        self.family_id = family_id
        self.state = ConversationState.initial()

        self._assistant = assistant
        self._api = api
        self._settings = settings or get_settings()
        self._log = logger or logging.getLogger(__name__)

        self._active_token: CancellationToken | None = None
        self._family_lock = asyncio.Lock()

    def snapshot(self) -> OnboardingSnapshot:
        return OnboardingSnapshot.from_state(self.state, self.family_id)

    # =========================================================================
    # Public operations
    # =========================================================================

    async def send_user_message(self, text: str, on_stream: StreamCallback | None = None) -> None:
        """
        Run one conversation turn for `text`.

        `on_stream` receives the live assistant text as it accumulates.
        Returns once the turn is applied, or once it has been superseded.
        """
        message = (text or "").strip()
        if not message:
            return

        wants_reset = contains_phrase(message, RESET_COMMAND_PHRASES)
        if self.state.awaiting_reset_confirmation or wants_reset:
            if wants_reset and not self.state.awaiting_reset_confirmation:
                decision: ResetDecision = "accept"
            else:
                decision = classify_reset_reply(message)
            await self._process_reset_decision(message, decision)
            return

        history = self.state.history(self._settings.history_window)
        self.state.append_message(Sender.USER, message)
        await self._run_turn(message, history, on_stream)

    async def commit_onboarding_data(
        self,
        *,
        family_name: str | None = None,
        members: Iterable[Member] | None = None,
        rooms: Iterable[str] | None = None,
    ) -> bool:
        """
        Normalize and persist the three slots, then move to `committed`.

        Any argument left as None is taken from the current state. Returns False
        (with `state.error` set) on validation or persistence failure; nothing
        is applied in that case.
        """
        state = self.state
        try:
            plan = prepare_commit_data(
                state.family_name if family_name is None else family_name,
                state.members if members is None else members,
                state.rooms if rooms is None else rooms,
            )
        except CommitValidationError as e:
            self._log.info(f"Commit rejected: {e.field} is incomplete")
            state.loading = False
            state.error = e.message
            return False

        family_id = self.family_id or await self.ensure_family_id(plan.family_name)
        if family_id is None:
            state.error = "Unable to create family record."
            return False

        self._log.debug(
            f"Committing onboarding data for family {family_id}: "
            f"{len(plan.members)} members, {len(plan.rooms)} rooms"
        )
        state.loading = True
        try:
            response = await self._api.commit(
                CommitRequest(
                    family_id=family_id,
                    user_id=self.user_id,
                    family_name=plan.family_name,
                    members=plan.members_payload(),
                    rooms=plan.rooms,
                )
            )
        except PersistenceError as e:
            self._log.error(f"Commit failed: {e.message}")
            state.loading = False
            state.error = e.detail or "Failed to commit onboarding"
            return False

        committed_rooms = sanitize_rooms_for_commit(response.rooms) if response.rooms else plan.rooms
        state.family_name = plan.family_name
        state.members = list(plan.members)
        state.rooms = committed_rooms
        state.current_step = advance_step(state.current_step, ConversationStep.COMMITTED)
        state.loading = False
        state.error = None
        self._log.info(f"Onboarding committed for family {family_id}")
        return True

    async def reset_onboarding(self, *, skip_server: bool = False, preserve_family: bool | None = None) -> bool:
        """
        Clear every slot and return to the greeting.

        With `skip_server` only local state is reset. The family binding is
        dropped after a local-only reset and kept after a server reset, unless
        `preserve_family` says otherwise. Returns False if the server reset
        failed, in which case local state is left as it was.
        """
        self._cancel_active_turn()

        if skip_server:
            self._apply_local_reset(preserve_family=bool(preserve_family))
            return True

        self.state.loading = True
        self.state.error = None
        try:
            await self._api.reset(ResetRequest(user_id=self.user_id, family_id=self.family_id))
        except PersistenceError as e:
            self._log.error(f"Reset failed: {e.message}")
            self.state.loading = False
            self.state.error = e.detail or "Failed to reset onboarding"
            self.state.streaming_buffer = None
            return False

        self._apply_local_reset(preserve_family=True if preserve_family is None else preserve_family)
        return True

    async def hydrate(self) -> None:
        """Restore slots from stored onboarding memory and long-term facts."""
        state = self.state
        if state.has_user_messages:
            self._log.debug("Skipping hydration because the user has already interacted")
            return
        if self.family_id is None:
            state.hydrated = True
            return

        state.loading = True
        state.error = None
        try:
            payload = await self._api.hydrate(family_id=self.family_id, user_id=self.user_id)
        except PersistenceError as e:
            self._log.error(f"Hydration failed: {e.message}")
            # Re-read: a message may have been sent while hydration was pending
            state = self.state
            state.loading = False
            state.error = e.detail or "Failed to hydrate"
            state.hydrated = True
            return

        family_name, members, rooms, status = _slots_from_hydration(payload)
        step = derive_next_step(derive_slot_status(family_name, members, rooms))
        awaiting_reset = False
        if status == "completed":
            step = ConversationStep.COMPLETED
            awaiting_reset = True
        elif status == "committed":
            step = ConversationStep.COMMITTED

        state = self.state
        state.family_name = family_name
        state.members = members
        state.rooms = rooms
        state.current_step = step
        state.awaiting_reset_confirmation = awaiting_reset
        state.loading = False
        state.hydrated = True

        if not state.has_user_messages:
            state.streaming_buffer = None
            if awaiting_reset:
                state.messages = [ChatMessage(sender=Sender.ASSISTANT, text=WELCOME_BACK_REPLY)]
            else:
                state.messages = ConversationState.initial().messages

        self._log.info(
            f"Hydrated onboarding for family {self.family_id}: step={step.value} "
            f"members={len(members)} rooms={len(rooms)}"
        )

    def mark_completed(self) -> None:
        self.state.current_step = ConversationStep.COMPLETED
        self.state.awaiting_reset_confirmation = False

    async def ensure_family_id(self, preferred_name: str | None = None) -> int | None:
        """
        Return the bound family id, creating the family record on first need.

        The created id is memoized for the life of the engine. Returns None when
        creation fails.
        """
        async with self._family_lock:
            if self.family_id is not None:
                return self.family_id

            name = (
                (preferred_name or "").strip()
                or self.state.family_name.strip()
                or self._settings.default_family_name
            )
            try:
                family_id = await self._api.create_family(name)
            except PersistenceError as e:
                self._log.error(f"Failed to create family during onboarding: {e.message}")
                return None

            self.family_id = family_id
            self._log.info(f"Family id resolved: {family_id}")
            return family_id

    # =========================================================================
    # Turn
    # =========================================================================

    async def _run_turn(self, message: str, history: list[dict], on_stream: StreamCallback | None) -> None:
        self._cancel_active_turn()
        token = CancellationToken()
        self._active_token = token

        state = self.state
        start_step = state.current_step
        state.streaming_buffer = ""
        state.loading = True

        def on_progress(text: str) -> None:
            # Late events from a superseded or already finalized turn are dropped
            if token.cancelled or token.claimed or self._active_token is not token:
                return
            self.state.streaming_buffer = text
            if on_stream is not None:
                on_stream(text)

        try:
            await self._turn(message, history, start_step, token, on_progress)
        finally:
            if self._active_token is token:
                self._active_token = None
                self.state.loading = False

    async def _turn(
        self,
        message: str,
        history: list[dict],
        start_step: ConversationStep,
        token: CancellationToken,
        on_progress: StreamCallback,
    ) -> None:
        state = self.state
        self._log.debug(
            f"Processing user response in step {start_step.value} "
            f"(members={len(state.members)}, rooms={len(state.rooms)})"
        )

        task = asyncio.ensure_future(
            self._assistant.stream(
                message,
                family_id=self.family_id,
                user_id=self.user_id,
                history=history,
                on_progress=on_progress,
                token=token,
            )
        )
        token.attach(task)
        try:
            result = await task
        except StreamAborted:
            return
        except asyncio.CancelledError:
            if token.cancelled:
                return
            raise
        if token.cancelled:
            return

        family_name = state.family_name
        members = list(state.members)
        rooms = list(state.rooms)
        changed: set[str] = set()
        suggested: ConversationStep | None = None

        snapshot = result.state if result else None
        if snapshot is not None:
            streamed_name = (snapshot.family_name or "").strip()
            if streamed_name and not family_name:
                family_name = streamed_name
                changed.add("family_name")

            streamed_members = [
                member for member in (item.to_member() for item in snapshot.members or []) if member
            ]
            merged = dedupe_members(members + streamed_members)
            if merged != members:
                members = merged
                changed.add("member_candidates")

            streamed_rooms = [title_case(room.strip()) for room in snapshot.rooms or [] if room.strip()]
            merged_rooms = dedupe_rooms(rooms + streamed_rooms)
            if merged_rooms != rooms:
                rooms = merged_rooms
                changed.add("room_candidates")

            suggested = parse_step(snapshot.next_step)

        reply = result.assistant_reply.strip() if result else ""
        if not reply:
            reply = (state.streaming_buffer or "").strip()
        if not reply and result is not None:
            reply = reply_from_snapshot(snapshot) or ""

        if not reply:
            reason = "stream failed" if result is None else "no reply received"
            await asyncio.sleep(self._settings.fallback_delay_seconds)
            if token.cancelled:
                return
            # Content that arrived during the grace period wins over a synthesized reply
            late = (self.state.streaming_buffer or "").strip()
            if late:
                self._log.warning("Skipping fallback because assistant content arrived during the grace period")
                reply = late
            else:
                fallback_state = ConversationState(
                    current_step=start_step,
                    family_name=family_name,
                    members=members,
                    rooms=rooms,
                )
                fallback = build_fallback_response(fallback_state, message)
                self._log.warning(f"Fallback applied ({reason})")
                reply = fallback.reply
                if fallback.suggested_next_step is not None:
                    suggested = suggested or fallback.suggested_next_step
                extracted_name = (fallback.extracted.family_name or "").strip()
                if extracted_name and not family_name:
                    family_name = extracted_name
                    changed.add("family_name")

        if not token.claim():
            return

        # Rule-based extraction runs on every turn, alongside whatever the assistant said
        if start_step == ConversationStep.MEMBERS:
            merged = dedupe_members(members + extract_members(message))
            if merged != members:
                members = merged
                changed.add("member_candidates")
        elif start_step == ConversationStep.ROOMS:
            extracted_rooms = extract_rooms(message, rooms, members)
            merged_rooms = dedupe_rooms(rooms + extracted_rooms)
            if merged_rooms != rooms:
                rooms = merged_rooms
                changed.add("room_candidates")

        if start_step == ConversationStep.MEMBERS and contains_phrase(message, MEMBER_DONE_PHRASES):
            suggested = ConversationStep.ROOMS if members else ConversationStep.MEMBERS
            if not reply:
                reply = MEMBERS_DONE_OVERRIDE_REPLY if members else MEMBERS_EMPTY_OVERRIDE_REPLY
        if start_step == ConversationStep.ROOMS and contains_phrase(message, ROOM_DONE_PHRASES):
            suggested = ConversationStep.COMMITTED
            if not reply:
                reply = ROOMS_DONE_OVERRIDE_REPLY

        slot_status = derive_slot_status(family_name, members, rooms)
        next_step = advance_step(state.current_step, suggested or derive_next_step(slot_status))

        values = {"family_name": family_name, "member_candidates": members, "room_candidates": rooms}
        for key in ("family_name", "member_candidates", "room_candidates"):
            if key in changed:
                await self._update_memory(key, values[key], family_name=family_name)

        if token.cancelled:
            return

        state = self.state
        state.family_name = family_name
        state.members = members
        state.rooms = rooms
        state.current_step = next_step
        state.append_message(Sender.ASSISTANT, reply)
        state.streaming_buffer = None

        stream_next = snapshot.next_step if snapshot is not None else None
        should_commit = all_slots_filled(slot_status) and (
            next_step in (ConversationStep.COMMITTED, ConversationStep.COMPLETED)
            or parse_step(stream_next) == ConversationStep.COMPLETED
        )
        self._log.debug(
            f"Commit evaluation: step {start_step.value} -> {next_step.value}, "
            f"stream next_step={stream_next}, should_commit={should_commit}"
        )
        if should_commit:
            await self.commit_onboarding_data(family_name=family_name, members=members, rooms=rooms)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _cancel_active_turn(self) -> None:
        if self._active_token is not None:
            self._active_token.cancel()
            self._active_token = None

    def _apply_local_reset(self, *, preserve_family: bool) -> None:
        if not preserve_family:
            self.family_id = None
        self.state = ConversationState.initial(hydrated=True)
        self._log.info("Onboarding reset")

    async def _process_reset_decision(self, message: str, decision: ResetDecision) -> None:
        self._cancel_active_turn()
        state = self.state
        state.awaiting_reset_confirmation = False
        state.streaming_buffer = None
        state.append_message(Sender.USER, message)

        if decision == "accept":
            if await self.reset_onboarding():
                self.state.messages = [ChatMessage(sender=Sender.ASSISTANT, text=RESET_ACCEPTED_REPLY)]
            return

        reply = RESET_DECLINED_REPLY if decision == "decline" else RESET_UNKNOWN_REPLY
        state.append_message(Sender.ASSISTANT, reply)

    async def _update_memory(self, key: str, value: Any, *, family_name: str = "") -> None:
        """Persist one changed slot. Failures surface as `state.error`, never raise."""
        family_id = self.family_id
        if family_id is None:
            name = value if key == "family_name" and isinstance(value, str) else family_name
            if not name:
                return
            family_id = await self.ensure_family_id(name)
            if family_id is None:
                return

        if key == "member_candidates":
            value = [member.to_dict() for member in value]
        try:
            await self._api.upsert_memory(family_id=family_id, user_id=self.user_id, key=key, value=value)
        except PersistenceError as e:
            self._log.error(f"Failed to save {key}: {e.message}")
            self.state.error = f"Failed to save {key}."


# =============================================================================
# Hydration parsing
# =============================================================================


def _decode_memory_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return None


def _members_from(items: Any, role_keys: tuple[str, ...]) -> list[Member]:
    if not isinstance(items, list):
        return []
    result = []
    for item in items:
        if not isinstance(item, dict):
            continue
        role = next((item[key] for key in role_keys if isinstance(item.get(key), str)), "")
        payload = MemberPayload.model_validate({
            "name": item.get("name") if isinstance(item.get("name"), str) else None,
            "role": role or DEFAULT_ROLE,
            "email": item.get("email") if isinstance(item.get("email"), str) else None,
        })
        member = payload.to_member()
        if member is not None:
            result.append(Member(name=title_case(member.name), role=title_case(member.role), email=member.email))
    return result


def _slots_from_hydration(payload: HydrationPayload) -> tuple[str, list[Member], list[str], str | None]:
    """(family_name, members, rooms, onboarding status) from a hydration payload."""
    family_name = ""
    members: list[Member] = []
    rooms: list[str] = []

    for row in payload.onboarding_memory:
        if row.namespace and row.namespace != "onboarding":
            continue
        value = _decode_memory_value(row.value)
        if row.key == "family_name" and isinstance(value, str):
            family_name = value.strip()
        elif row.key == "member_candidates" and isinstance(value, list):
            members = _members_from(value, ("role",))
        elif row.key == "room_candidates" and isinstance(value, list):
            rooms = [room for room in value if isinstance(room, str)]

    facts = {fact.key: fact.value for fact in payload.existing_facts}

    if not family_name:
        fact_family = facts.get("family.name")
        if isinstance(fact_family, dict):
            fact_family = fact_family.get("value")
        if isinstance(fact_family, str):
            family_name = fact_family.strip()

    if not members:
        members = _members_from(facts.get("onboarding.members"), ("relationshipName", "role"))

    if not rooms:
        fact_rooms = facts.get("onboarding.rooms")
        if isinstance(fact_rooms, list):
            rooms = [room for room in fact_rooms if isinstance(room, str)]

    status = facts.get("onboarding.status")
    if isinstance(status, dict):
        status = status.get("state")

    return (
        family_name,
        dedupe_members(members),
        dedupe_rooms(title_case(room) for room in rooms if room.strip()),
        status if isinstance(status, str) else None,
    )
