"""
Onboarding - Identity Sessions.

Keeps one OnboardingEngine per active user. A conversation survives a family id
appearing for the first time (the family gets created mid-onboarding), but is
replaced when the user changes or the family switches to a different one.
"""

import logging
from typing import Callable

from .engine import OnboardingEngine

EngineFactory = Callable[[int | None, str], OnboardingEngine]


class SessionRegistry:
    """Maps a user id to the engine of their current conversation."""

    def __init__(self, factory: EngineFactory, *, logger: logging.Logger | None = None) -> None:
        self._factory = factory
        self._engines: dict[str, OnboardingEngine] = {}
        self._log = logger or logging.getLogger(__name__)

    def get(self, family_id: int | None, user_id: str) -> OnboardingEngine:
        engine = self._engines.get(user_id)

        if engine is not None:
            if family_id is None or engine.family_id == family_id:
                return engine
            if engine.family_id is None:
                self._log.debug(f"Binding family {family_id} to onboarding session for user {user_id}")
                engine.family_id = family_id
                return engine
            self._log.info(
                f"Family changed from {engine.family_id} to {family_id} for user {user_id}, "
                "starting a new onboarding session"
            )

        engine = self._factory(family_id, user_id)
        self._engines[user_id] = engine
        return engine

    def drop(self, user_id: str) -> None:
        self._engines.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._engines)
