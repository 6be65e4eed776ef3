"""
Onboarding Chat API Endpoints.

Exposes the onboarding dialogue engine to the web client. Identity comes from
request headers: `x-user-id` (required) and `x-tenant-id` (the family id, if
one exists yet). Every response carries the conversation snapshot.
"""

import asyncio
import json
import logging

import httpx
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from .config import OnboardingSettings, get_settings
from .engine import OnboardingEngine
from .payload import MemberPayload, OnboardingSnapshot
from .persistence import OnboardingAPIClient, create_http_client
from .pipeline import CommitValidationError, prepare_commit_data
from .sessions import SessionRegistry
from .streaming import AssistantStreamClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding/chat", tags=["onboarding"])


# =============================================================================
# Identity
# =============================================================================


class Identity(BaseModel):
    user_id: str
    family_id: int | None = None


async def get_identity(
    x_user_id: str | None = Header(None),
    x_tenant_id: str | None = Header(None),
) -> Identity:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=400, detail="Missing x-user-id header")

    family_id = None
    if x_tenant_id:
        try:
            family_id = int(x_tenant_id)
        except ValueError:
            raise HTTPException(status_code=400, detail="x-tenant-id must be an integer")

    return Identity(user_id=x_user_id.strip(), family_id=family_id)


async def get_engine(request: Request, identity: Identity = Depends(get_identity)) -> OnboardingEngine:
    """Engine for the caller's identity, hydrated on first use."""
    registry: SessionRegistry = request.app.state.registry
    engine = registry.get(identity.family_id, identity.user_id)
    if not engine.state.hydrated and not engine.state.loading:
        await engine.hydrate()
    return engine


# =============================================================================
# Request/Response Models
# =============================================================================


class MessageRequest(BaseModel):
    """One user chat message."""
    message: str = Field(min_length=1)


class CommitBody(BaseModel):
    """Optional overrides for the commit. Omitted fields come from the conversation."""
    family_name: str | None = None
    members: list[MemberPayload] | None = None
    rooms: list[str] | None = None


class ResetBody(BaseModel):
    skip_server: bool = False


class CommitResult(BaseModel):
    success: bool
    state: OnboardingSnapshot


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/state", response_model=OnboardingSnapshot)
async def get_state(engine: OnboardingEngine = Depends(get_engine)) -> OnboardingSnapshot:
    """Current conversation snapshot."""
    return engine.snapshot()


@router.post("/message", response_model=OnboardingSnapshot)
async def send_message(
    request: MessageRequest, engine: OnboardingEngine = Depends(get_engine)
) -> OnboardingSnapshot:
    """Run one turn and return the resulting snapshot."""
    await engine.send_user_message(request.message)
    return engine.snapshot()


@router.post("/message/stream")
async def stream_message(request: MessageRequest, engine: OnboardingEngine = Depends(get_engine)):
    """
    Run one turn, relaying the assistant text live.

    Emits `token` events carrying the accumulated reply, then a single `state`
    event with the snapshot and a final `done`.
    """
    queue: asyncio.Queue = asyncio.Queue()

    def on_stream(text: str) -> None:
        queue.put_nowait(text)

    async def run_turn() -> None:
        try:
            await engine.send_user_message(request.message, on_stream=on_stream)
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(run_turn())

    async def event_generator():
        while True:
            text = await queue.get()
            if text is None:
                break
            yield {"event": "token", "data": json.dumps({"content": text})}

        try:
            await task
        except Exception as e:
            logger.error(f"Onboarding turn failed: {e}")
            yield {"event": "error", "data": json.dumps({"message": "Onboarding turn failed"})}
            return

        snapshot = engine.snapshot()
        yield {"event": "state", "data": snapshot.model_dump_json()}
        yield {"event": "done", "data": json.dumps({"next_step": snapshot.current_step.value})}

    return EventSourceResponse(event_generator())


@router.post("/commit", response_model=CommitResult)
async def commit(body: CommitBody, engine: OnboardingEngine = Depends(get_engine)) -> CommitResult:
    """Persist the collected slots. 422 when a slot is incomplete."""
    members = None
    if body.members is not None:
        members = [member for member in (item.to_member() for item in body.members) if member]

    state = engine.state
    try:
        prepare_commit_data(
            state.family_name if body.family_name is None else body.family_name,
            state.members if members is None else members,
            state.rooms if body.rooms is None else body.rooms,
        )
    except CommitValidationError as e:
        state.error = e.message
        raise HTTPException(status_code=422, detail={"field": e.field, "message": e.message})

    success = await engine.commit_onboarding_data(
        family_name=body.family_name, members=members, rooms=body.rooms
    )
    return CommitResult(success=success, state=engine.snapshot())


@router.post("/reset", response_model=OnboardingSnapshot)
async def reset(body: ResetBody, engine: OnboardingEngine = Depends(get_engine)) -> OnboardingSnapshot:
    await engine.reset_onboarding(skip_server=body.skip_server)
    return engine.snapshot()


@router.post("/complete", response_model=OnboardingSnapshot)
async def complete(engine: OnboardingEngine = Depends(get_engine)) -> OnboardingSnapshot:
    """Mark onboarding finished (called when the product tour ends)."""
    engine.mark_completed()
    return engine.snapshot()


# =============================================================================
# Application
# =============================================================================


def create_app(
    settings: OnboardingSettings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Build the onboarding service.

    One shared AsyncClient backs both the assistant stream and the REST
    collaborator; pass `http_client` to point them somewhere else (tests).
    """
    settings = settings or get_settings()
    client = http_client or create_http_client(settings)
    assistant = AssistantStreamClient(client, settings=settings)
    api = OnboardingAPIClient(client, settings=settings)

    def build_engine(family_id: int | None, user_id: str) -> OnboardingEngine:
        return OnboardingEngine(
            user_id=user_id,
            family_id=family_id,
            assistant=assistant,
            api=api,
            settings=settings,
        )

    app = FastAPI(title="FamConomy Onboarding", version="1.0.0")
    app.state.settings = settings
    app.state.registry = SessionRegistry(build_engine)
    app.include_router(router, prefix="/api")

    @app.on_event("startup")
    async def startup_event():
        logger.info("Onboarding service starting up...")
        logger.info(f"  Environment: {settings.env}")
        logger.info(f"  Backend API: {settings.api_base_url}")
        logger.info(f"  Fallback delay: {settings.fallback_delay_seconds}s")

    @app.on_event("shutdown")
    async def shutdown_event():
        if http_client is None:
            await client.aclose()

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
