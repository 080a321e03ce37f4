"""
Backends package.

Interfaces to the provisioning, source control and project generation
systems the status handlers drive.
"""

from backends.base import (
    DeploymentDescriptor,
    GenerateProjectRequest,
    ProjectGenerator,
    ProvisioningBackend,
    ResourceNotFoundError,
    SourceControlBackend,
)
from backends.loader import BackendNotFoundError, load_backend

__all__ = [
    "BackendNotFoundError",
    "DeploymentDescriptor",
    "GenerateProjectRequest",
    "ProjectGenerator",
    "ProvisioningBackend",
    "ResourceNotFoundError",
    "SourceControlBackend",
    "load_backend",
]
