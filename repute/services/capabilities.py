"""
repute.services.capabilities — Optional service capabilities
=============================================================

Hosts look up what the reputation service can do through narrow protocols
instead of probing attributes::

    provider = registry.get(ProfileProvider)
    if provider is not None:
        profile = await provider.get_profile(user_id)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, TypeVar, runtime_checkable

from repute.engine.interactions import InteractionRecord
from repute.engine.profile import PersonalityProfile

T = TypeVar("T")


@runtime_checkable
class InteractionRecorder(Protocol):
    async def record(self, raw: Mapping[str, Any]) -> InteractionRecord: ...


@runtime_checkable
class ProfileProvider(Protocol):
    async def get_profile(self, user_id: str) -> PersonalityProfile: ...


@runtime_checkable
class LeaderboardReader(Protocol):
    async def get_leaderboard(self, limit: int = 10) -> list[dict[str, Any]]: ...

    async def get_user_standing(self, user_id: str) -> dict[str, Any] | None: ...


class ServiceRegistry:
    """Maps a capability protocol to the object providing it."""

    def __init__(self) -> None:
        self._providers: dict[type, Any] = {}

    def register(self, capability: type[T], provider: T) -> None:
        if not isinstance(provider, capability):
            raise TypeError(f"{type(provider).__name__} does not provide {capability.__name__}")
        self._providers[capability] = provider

    def get(self, capability: type[T]) -> T | None:
        return self._providers.get(capability)

    def unregister(self, capability: type) -> None:
        self._providers.pop(capability, None)

    def __contains__(self, capability: type) -> bool:
        return capability in self._providers
