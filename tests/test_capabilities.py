"""
tests/test_capabilities.py — Service Registry Tests
====================================================
"""

from __future__ import annotations

import pytest

from repute.services.capabilities import (
    InteractionRecorder,
    LeaderboardReader,
    ProfileProvider,
    ServiceRegistry,
)


class ProfilesOnly:
    async def get_profile(self, user_id):
        return None


class TestServiceRegistry:
    def test_register_and_get(self):
        registry = ServiceRegistry()
        provider = ProfilesOnly()
        registry.register(ProfileProvider, provider)
        assert registry.get(ProfileProvider) is provider
        assert ProfileProvider in registry

    def test_absent_capability_is_none(self):
        registry = ServiceRegistry()
        registry.register(ProfileProvider, ProfilesOnly())
        assert registry.get(LeaderboardReader) is None
        assert InteractionRecorder not in registry

    def test_provider_must_satisfy_protocol(self):
        registry = ServiceRegistry()
        with pytest.raises(TypeError):
            registry.register(InteractionRecorder, ProfilesOnly())

    def test_unregister(self):
        registry = ServiceRegistry()
        registry.register(ProfileProvider, ProfilesOnly())
        registry.unregister(ProfileProvider)
        registry.unregister(ProfileProvider)
        assert registry.get(ProfileProvider) is None
