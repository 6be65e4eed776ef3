"""
Fake collaborators shared by the onboarding tests.
"""

import json
from typing import Any, Awaitable, Callable

import httpx

BASE_URL = "http://backend.test/api"

AssistantReply = str | httpx.Response | Callable[[httpx.Request], Awaitable[httpx.Response]]


def sse(*events: tuple[str, Any]) -> str:
    """Build an SSE body from (event, data) pairs."""
    return "".join(f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in events)


class FakeBackend:
    """
    Stands in for the assistant endpoint and the onboarding REST API.

    Assistant replies are consumed in order from `assistant_replies`; with none
    queued the assistant answers 500. `failures` maps a path to a status code.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.assistant_replies: list[AssistantReply] = []
        self.failures: dict[str, tuple[int, dict]] = {}
        self.family_response: dict = {"FamilyID": 42}
        self.commit_response: dict = {"message": "ok"}
        self.hydration: dict = {"onboardingMemory": [], "existingFacts": []}

    def fail(self, path: str, status: int = 500, body: dict | None = None) -> None:
        self.failures[path] = (status, body or {})

    def calls(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == "/api" + path]

    def json_bodies(self, path: str) -> list[Any]:
        return [json.loads(request.content) for request in self.calls(path)]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")

        if path in self.failures:
            status, body = self.failures[path]
            return httpx.Response(status, json=body)

        if path == "/assistant/onboarding":
            if not self.assistant_replies:
                return httpx.Response(500, json={"error": "assistant unavailable"})
            reply = self.assistant_replies.pop(0)
            if isinstance(reply, httpx.Response):
                return reply
            if isinstance(reply, str):
                return httpx.Response(
                    200, content=reply.encode(), headers={"content-type": "text/event-stream"}
                )
            return await reply(request)

        if path == "/linz/memory":
            return httpx.Response(200, json={"ok": True})
        if path == "/onboarding/commit":
            return httpx.Response(200, json=self.commit_response)
        if path == "/onboarding/reset":
            return httpx.Response(200, json={"ok": True})
        if path == "/family":
            return httpx.Response(201, json=self.family_response)
        if path == "/linz/context/hydrate":
            return httpx.Response(200, json=self.hydration)

        return httpx.Response(404, json={"error": f"Unknown path {path}"})


