"""
Onboarding - Backend Persistence Client.

Thin async wrapper over the household backend's REST endpoints used during
onboarding: short-term memory upserts, the final commit, the destructive reset,
lazy family creation and memory hydration.

Every failure surfaces as PersistenceError carrying the backend's `error` text
when it sent one.
"""

import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .config import OnboardingSettings, get_settings
from .payload import (
    CommitRequest,
    CommitResponse,
    HydrationPayload,
    MemoryItem,
    ResetRequest,
)


class PersistenceError(Exception):
    """
    A backend call failed.

    `detail` is the backend's own `error` text, when the response carried one.
    """

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


def create_http_client(settings: OnboardingSettings | None = None) -> httpx.AsyncClient:
    """Shared AsyncClient rooted at the backend API base URL."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        base_url=settings.api_base_url,
        timeout=settings.request_timeout_seconds,
        follow_redirects=True,
    )


def _error_text(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return None


class OnboardingAPIClient:
    """REST collaborator for onboarding memory, commit, reset and family records."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        settings: OnboardingSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._http = http_client
        self._settings = settings or get_settings()
        self._log = logger or logging.getLogger(__name__)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_text(e.response)
            message = detail or f"{method} {path} failed with status {e.response.status_code}"
            raise PersistenceError(message, status_code=e.response.status_code, detail=detail) from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def upsert_memory(self, *, family_id: int, user_id: str, key: str, value: Any) -> None:
        """Idempotent PUT of one onboarding memory row (value stored as JSON text)."""
        item = MemoryItem(family_id=family_id, user_id=user_id, key=key, value=json.dumps(value))
        self._log.debug(f"Persisting memory item {key}")
        await self._request(
            "PUT",
            self._settings.memory_path,
            json={"items": [item.model_dump(by_alias=True)]},
        )

    async def commit(self, request: CommitRequest) -> CommitResponse:
        data = await self._request(
            "POST", self._settings.commit_path, json=request.model_dump(by_alias=True)
        )
        if not isinstance(data, dict):
            return CommitResponse()
        try:
            return CommitResponse.model_validate(data)
        except ValidationError as e:
            self._log.warning(f"Unexpected commit response shape: {e}")
            return CommitResponse()

    async def reset(self, request: ResetRequest) -> None:
        await self._request(
            "POST",
            self._settings.reset_path,
            json=request.model_dump(by_alias=True, exclude_none=True),
        )

    async def create_family(self, family_name: str) -> int:
        """Create a family record and return its id."""
        data = await self._request("POST", self._settings.family_path, json={"familyName": family_name})
        if isinstance(data, dict):
            for key in ("FamilyID", "familyId", "id"):
                value = data.get(key)
                if isinstance(value, int) and not isinstance(value, bool):
                    return value
        raise PersistenceError("Family creation did not return a valid FamilyID.")

    async def hydrate(self, *, family_id: int, user_id: str) -> HydrationPayload:
        data = await self._request(
            "GET",
            self._settings.hydrate_path,
            params={"familyId": family_id, "userId": user_id},
        )
        if not isinstance(data, dict):
            return HydrationPayload()
        return HydrationPayload.model_validate(data)
