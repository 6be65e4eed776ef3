"""
Pytest configuration and fixtures for the onboarding tests.

Every HTTP collaborator runs against FakeBackend through httpx.MockTransport,
so no test touches the network.
"""

import httpx
import pytest

from fakes import BASE_URL, FakeBackend
from onboarding.config import OnboardingSettings
from onboarding.engine import OnboardingEngine
from onboarding.persistence import OnboardingAPIClient
from onboarding.streaming import AssistantStreamClient


@pytest.fixture
def settings():
    """Settings with no fallback grace delay."""
    return OnboardingSettings(
        _env_file=None,
        api_base_url=BASE_URL,
        fallback_delay_seconds=0,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def http_client(backend):
    return httpx.AsyncClient(transport=httpx.MockTransport(backend.handler), base_url=BASE_URL)


@pytest.fixture
def make_engine(http_client, settings):
    """Factory for engines wired to the fake backend."""

    def factory(family_id: int | None = 7, user_id: str = "user-1") -> OnboardingEngine:
        return OnboardingEngine(
            user_id=user_id,
            family_id=family_id,
            assistant=AssistantStreamClient(http_client, settings=settings),
            api=OnboardingAPIClient(http_client, settings=settings),
            settings=settings,
        )

    return factory
