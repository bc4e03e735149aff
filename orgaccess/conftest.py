# orgaccess/conftest.py
import pytest
from fastapi.testclient import TestClient

from orgaccess.core.ratelimit import InMemoryRateLimitStore
from orgaccess.features.permissions.checker import PermissionChecker
from orgaccess.features.repository.memory import InMemoryAccessRepository
from orgaccess.models.organization import Organization
from orgaccess.tests.factories import FIXED_NOW, ORG_ID, ROLE_ACTORS, FakeClock, make_membership


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return InMemoryAccessRepository()


@pytest.fixture
def seeded_repository(repository):
    """Org with one member per role and no subscription."""
    repository.save_organization(Organization(id=ORG_ID, name="Acme Realty", created_at=FIXED_NOW))
    for actor_id, role in ROLE_ACTORS:
        repository.save_membership(make_membership(actor_id, role))
    return repository


@pytest.fixture
def checker(seeded_repository, clock):
    return PermissionChecker(seeded_repository, clock=clock)


@pytest.fixture
def rate_limit_store():
    return InMemoryRateLimitStore()


@pytest.fixture
def app(seeded_repository, rate_limit_store, clock):
    from orgaccess.main import create_app

    return create_app(repository=seeded_repository, rate_limit_store=rate_limit_store, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
