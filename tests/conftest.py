"""Pytest configuration and fixtures."""

import time
from typing import Dict, List

import jwt
import pytest
from unittest.mock import AsyncMock, MagicMock

from backends.base import (
    DeploymentDescriptor,
    GenerateProjectRequest,
    ProjectGenerator,
    ProvisioningBackend,
    SourceControlBackend,
)
from events import EventBus
from models import Integration, IntegrationRevision, IntegrationState, Step
from store import InMemoryResourceStore


class FakeProvisioning(ProvisioningBackend):
    """Provisioning backend that records calls and reports a fixed scale state."""

    def __init__(self, scaled: bool = True):
        self.scaled = scaled
        self.created: List[DeploymentDescriptor] = []
        self.scale_calls: List[DeploymentDescriptor] = []
        self.webhook_secrets: List[str] = []
        self.fail_create = None
        self.fail_scale = None
        self.fail_is_scaled = None

    @property
    def name(self) -> str:
        return "fake"

    async def create(self, deployment: DeploymentDescriptor) -> None:
        if self.fail_create is not None:
            raise self.fail_create
        self.created.append(deployment)

    async def scale(self, deployment: DeploymentDescriptor) -> None:
        if self.fail_scale is not None:
            raise self.fail_scale
        self.scale_calls.append(deployment)

    async def is_scaled(self, deployment: DeploymentDescriptor) -> bool:
        if self.fail_is_scaled is not None:
            raise self.fail_is_scaled
        return self.scaled

    async def get_webhook_url(self, deployment: DeploymentDescriptor, secret: str) -> str:
        self.webhook_secrets.append(secret)
        return f"https://hooks.example.com/{deployment.name}/{secret}"


class FakeSourceControl(SourceControlBackend):
    """Source control backend that keeps pushed files in memory."""

    def __init__(self):
        self.pushed: Dict[str, Dict[str, bytes]] = {}
        self.clone_url_lookups: List[str] = []

    @property
    def name(self) -> str:
        return "fake"

    async def get_api_user(self) -> str:
        return "deployer"

    async def create_or_update_project_files(
        self,
        repo_name: str,
        commit_message: str,
        files: Dict[str, bytes],
        webhook_url: str,
    ) -> str:
        self.pushed[repo_name] = dict(files)
        return f"https://git.example.com/deployer/{repo_name}.git"

    async def get_clone_url(self, repo_name: str) -> str:
        self.clone_url_lookups.append(repo_name)
        return f"https://git.example.com/deployer/{repo_name}.git"


class FakeProjectGenerator(ProjectGenerator):
    """Generator that emits one file per step."""

    def __init__(self):
        self.requests: List[GenerateProjectRequest] = []

    @property
    def name(self) -> str:
        return "fake"

    async def generate(self, request: GenerateProjectRequest) -> Dict[str, bytes]:
        self.requests.append(request)
        files = {"pom.xml": b"<project/>"}
        for step in request.steps:
            files[f"steps/{step.id}.json"] = step.model_dump_json().encode()
        return files


def make_token(expires_in: float = 3600) -> str:
    """Build an HS256 JWT expiring ``expires_in`` seconds from now."""
    claims = {"sub": "user", "exp": int(time.time() + expires_in)}
    return jwt.encode(claims, "test-signing-key-0123456789abcdef", algorithm="HS256")


@pytest.fixture
def token_factory():
    """Factory for JWT tokens with a given lifetime."""
    return make_token


@pytest.fixture
def event_bus():
    """Create an event bus."""
    return EventBus(queue_size=64)


@pytest.fixture
def store(event_bus):
    """Create an in-memory store wired to the event bus."""
    return InMemoryResourceStore(event_bus=event_bus)


@pytest.fixture
def provisioning():
    return FakeProvisioning()


@pytest.fixture
def source_control():
    return FakeSourceControl()


@pytest.fixture
def project_generator():
    return FakeProjectGenerator()


@pytest.fixture
def mock_pool():
    """Create a mock asyncpg pool."""
    pool = AsyncMock()
    pool.acquire = MagicMock()
    return pool


@pytest.fixture
def mock_connection():
    """Create a mock asyncpg connection."""
    conn = AsyncMock()
    return conn


@pytest.fixture
def sample_revision():
    """A draft revision with a single step."""
    return IntegrationRevision(
        steps=[Step(id="s1", name="timer", configured_properties={"period": "60s"})],
    )


@pytest.fixture
def sample_integration(sample_revision):
    """An integration that wants to be active and is not yet."""
    return Integration(
        id="1",
        name="My Integration",
        desired_state=IntegrationState.ACTIVE,
        current_state=IntegrationState.DRAFT,
        draft_revision=sample_revision,
        token=make_token(),
    )
