"""
Backend interfaces consumed by the status handlers.

Provisioning backends turn a deployment descriptor into running
infrastructure; source control backends store the generated project;
project generators produce that project from an integration revision.
Concrete implementations are installed separately and discovered via
entry points.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from models import Connector, Step

logger = logging.getLogger(__name__)


class ResourceNotFoundError(Exception):
    """Raised by a provisioning backend when the named resource does not exist."""


@dataclass(frozen=True)
class DeploymentDescriptor:
    """What a provisioning backend should deploy, scale or inspect."""

    name: str
    revision_number: int
    replicas: int = 1
    token: Optional[str] = None
    git_repository: Optional[str] = None
    webhook_secret: Optional[str] = None
    application_properties: Dict[str, str] = field(default_factory=dict)

    def with_source(self, git_repository: str, webhook_secret: str) -> "DeploymentDescriptor":
        return replace(self, git_repository=git_repository, webhook_secret=webhook_secret)


@dataclass(frozen=True)
class GenerateProjectRequest:
    """Input for generating the deployable project of an integration."""

    integration_id: Optional[str]
    name: str
    repo_name: str
    user_login: str
    steps: List[Step] = field(default_factory=list)
    connectors: Dict[str, Connector] = field(default_factory=dict)


class Backend(ABC):
    """Common lifecycle of every backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this backend."""
        pass

    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the backend with configuration.

        Called once when the backend is loaded.
        """
        pass


class ProvisioningBackend(Backend):
    """
    Creates and scales the runtime resources of an integration.

    Every call may raise ResourceNotFoundError, which callers tell apart
    from other failures.
    """

    @abstractmethod
    async def create(self, deployment: DeploymentDescriptor) -> None:
        """
        Create or update the build pipeline, deployment and secret.

        The secret carries ``deployment.application_properties``.
        """
        pass

    @abstractmethod
    async def scale(self, deployment: DeploymentDescriptor) -> None:
        """Scale the deployment to ``deployment.replicas``."""
        pass

    @abstractmethod
    async def is_scaled(self, deployment: DeploymentDescriptor) -> bool:
        """Whether all desired replicas exist and are ready."""
        pass

    @abstractmethod
    async def get_webhook_url(self, deployment: DeploymentDescriptor, secret: str) -> str:
        """URL the source control backend calls to trigger a rebuild."""
        pass


class SourceControlBackend(Backend):
    """Stores generated project files in a repository."""

    @abstractmethod
    async def get_api_user(self) -> str:
        """Login of the user the backend acts as."""
        pass

    @abstractmethod
    async def create_or_update_project_files(
        self,
        repo_name: str,
        commit_message: str,
        files: Dict[str, bytes],
        webhook_url: str,
    ) -> str:
        """
        Push ``files`` to ``repo_name``, creating it when needed.

        Returns:
            The clone URL of the repository.
        """
        pass

    @abstractmethod
    async def get_clone_url(self, repo_name: str) -> str:
        pass


class ProjectGenerator(Backend):
    """Produces the deployable project of an integration revision."""

    @abstractmethod
    async def generate(self, request: GenerateProjectRequest) -> Dict[str, bytes]:
        """
        Generate project files.

        Returns:
            Mapping of file path to file content.
        """
        pass
