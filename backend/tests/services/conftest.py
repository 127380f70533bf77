"""Fixtures shared by service-layer tests."""

import pytest

from sailsmart.services.profile_cache import CoalescingInvalidator, ProfileCache
from sailsmart.services.profile_service import ProfileService


@pytest.fixture
def profile_cache() -> ProfileCache:
    return ProfileCache(ttl_seconds=300)


@pytest.fixture
def profiles(session_factory, profile_cache) -> ProfileService:
    return ProfileService(session_factory, profile_cache, CoalescingInvalidator(profile_cache, delay_seconds=0.01))
