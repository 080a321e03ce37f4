"""
Deactivate Handler - scales an integration's deployment down to zero.
"""

from typing import FrozenSet, Optional

from backends.base import DeploymentDescriptor, ProvisioningBackend, ResourceNotFoundError
from handlers.base import StatusChangeHandler, logger
from models import Integration, IntegrationRevision, IntegrationState, StatusUpdate


class DeactivateHandler(StatusChangeHandler):
    """Status handler for the Inactive and Draft desired states."""

    def __init__(self, provisioning: ProvisioningBackend):
        self.provisioning = provisioning

    @property
    def trigger_states(self) -> FrozenSet[IntegrationState]:
        return frozenset({IntegrationState.INACTIVE, IntegrationState.DRAFT})

    async def execute(
        self, integration: Integration, revision: IntegrationRevision
    ) -> Optional[StatusUpdate]:
        if revision.version is None:
            raise ValueError(
                f"Deployed revision of {integration.label} should have a version"
            )

        deployment = DeploymentDescriptor(
            name=integration.name,
            revision_number=revision.version,
            replicas=0,
            token=integration.token,
        )

        try:
            await self.provisioning.scale(deployment)
        except ResourceNotFoundError:
            # Nothing deployed, nothing to scale down
            logger.info(f"{integration.label} : No deployment to scale down")

        try:
            scaled = await self.provisioning.is_scaled(deployment)
        except ResourceNotFoundError:
            scaled = True

        state = IntegrationState.UNDEPLOYED if scaled else IntegrationState.PENDING
        return StatusUpdate(version=revision.version, state=state)
