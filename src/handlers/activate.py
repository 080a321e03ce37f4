"""
Activate Handler - drives an integration to a running deployment.

The work is split into steps that are recorded in the integration's
``steps_done`` list so that a later attempt resumes where an earlier one
stopped:

1. source-repository: generate the project and push it to source control
2. provisioning: create the build pipeline and deployment from the clone URL
3. readiness: poll until the deployment is fully scaled

Partially applied steps are never rolled back; the controller retries.
"""

import uuid
from typing import Callable, Dict, FrozenSet, Iterable, Optional

from backends.base import (
    DeploymentDescriptor,
    GenerateProjectRequest,
    ProjectGenerator,
    ProvisioningBackend,
    SourceControlBackend,
)
from handlers.base import StatusChangeHandler, logger
from models import (
    Connector,
    Integration,
    IntegrationRevision,
    IntegrationState,
    Kind,
    StatusUpdate,
    Step,
)
from names import sanitize_name
from store import ResourceStore
from tokens import is_token_expired

STEP_SOURCE_REPOSITORY = "source-repository"
STEP_PROVISIONING = "provisioning"

COMMIT_MESSAGE = "Updated"


def application_properties(
    steps: Iterable[Step], connectors: Dict[str, Connector]
) -> Dict[str, str]:
    """
    Collect the runtime properties of every endpoint step.

    Keys are prefixed with the action's connector prefix. Component
    properties come first, then secrets; within each group step values
    override connection values.

    Raises:
        ValueError: If a step refers to a connector that does not exist.
    """
    properties: Dict[str, str] = {}
    for step in steps:
        if step.kind != "endpoint" or step.action is None or step.connection is None:
            continue

        connector_id = step.connection.connector_id or step.action.connector_id
        connector = connectors.get(connector_id)
        if connector is None:
            raise ValueError(f"Connector [{connector_id}] not found")

        prefix = step.action.camel_connector_prefix
        groups = (
            (step.connection.configured_properties, lambda p: p.component_property),
            (step.configured_properties, lambda p: p.component_property),
            (step.connection.configured_properties, lambda p: p.secret),
            (step.configured_properties, lambda p: p.secret),
        )
        for configured, predicate in groups:
            for key, value in connector.filter_properties(configured, predicate).items():
                properties[f"{prefix}.{key}"] = value
    return properties


class ActivateHandler(StatusChangeHandler):
    """Status handler for the Active desired state."""

    def __init__(
        self,
        store: ResourceStore,
        provisioning: ProvisioningBackend,
        source_control: SourceControlBackend,
        project_generator: ProjectGenerator,
        token_expired: Callable[[str], bool] = is_token_expired,
    ):
        self.store = store
        self.provisioning = provisioning
        self.source_control = source_control
        self.project_generator = project_generator
        self.token_expired = token_expired

    @property
    def trigger_states(self) -> FrozenSet[IntegrationState]:
        return frozenset({IntegrationState.ACTIVE})

    async def execute(
        self, integration: Integration, revision: IntegrationRevision
    ) -> Optional[StatusUpdate]:
        version = revision.version
        if version is None:
            version = integration.next_revision_version()
        versioned = revision.with_version(version)
        steps_done = list(integration.steps_done)

        if not integration.token:
            return StatusUpdate(
                version=version,
                state=integration.current_state or IntegrationState.PENDING,
                message="No token present",
                steps_done=steps_done,
            )

        if self.token_expired(integration.token):
            logger.info(f"{integration.label} : Token is expired")
            return StatusUpdate(
                version=version,
                state=integration.current_state or IntegrationState.PENDING,
                message="Token is expired",
                steps_done=steps_done,
            )

        connectors = await self._fetch_connectors()
        deployment = DeploymentDescriptor(
            name=integration.name,
            revision_number=version,
            replicas=1,
            token=integration.token,
            application_properties=application_properties(versioned.steps, connectors),
        )
        secret = str(uuid.uuid4())

        message = None
        try:
            repo_name = sanitize_name(integration.name)
            clone_url = None

            if STEP_SOURCE_REPOSITORY not in steps_done:
                clone_url = await self._setup_source_repository(
                    integration, versioned, repo_name, deployment, secret, connectors
                )
                steps_done.append(STEP_SOURCE_REPOSITORY)

            if STEP_PROVISIONING not in steps_done:
                if clone_url is None:
                    clone_url = await self.source_control.get_clone_url(repo_name)
                await self.provisioning.create(deployment.with_source(clone_url, secret))
                logger.info(f"{integration.label} : Created provisioning resources")
                steps_done.append(STEP_PROVISIONING)

            if await self.provisioning.is_scaled(deployment):
                await self._publish_revision(integration, versioned)
                return StatusUpdate(version=version, state=IntegrationState.ACTIVE)

        except Exception as e:
            logger.error(f"{integration.label} : Failure: {e}", exc_info=True)
            message = f"Error: {e}"

        return StatusUpdate(
            version=version,
            state=IntegrationState.PENDING,
            message=message,
            steps_done=steps_done,
        )

    async def _setup_source_repository(
        self,
        integration: Integration,
        revision: IntegrationRevision,
        repo_name: str,
        deployment: DeploymentDescriptor,
        secret: str,
        connectors: Dict[str, Connector],
    ) -> str:
        username = await self.source_control.get_api_user()
        logger.info(f"{integration.label} : Looked up source control user {username}")

        files = await self.project_generator.generate(
            GenerateProjectRequest(
                integration_id=integration.id,
                name=integration.name,
                repo_name=repo_name,
                user_login=username,
                steps=list(revision.steps),
                connectors=connectors,
            )
        )
        logger.info(f"{integration.label} : Created {len(files)} project file(s)")

        webhook_url = await self.provisioning.get_webhook_url(deployment, secret)
        clone_url = await self.source_control.create_or_update_project_files(
            repo_name, COMMIT_MESSAGE, files, webhook_url
        )
        logger.info(f"{integration.label} : Updated source repository {clone_url}")

        current = await self._refetch(integration)
        await self.store.update(current.model_copy(update={"git_repo": clone_url}))
        return clone_url

    async def _publish_revision(
        self, integration: Integration, revision: IntegrationRevision
    ) -> None:
        # An active revision is immutable from here on
        current = await self._refetch(integration)
        published = current.with_revision(
            revision.with_current_state(IntegrationState.ACTIVE)
        ).model_copy(
            update={
                "draft_revision": None,
                "deployed_revision_number": revision.version,
                "steps_done": [],
            }
        )
        await self.store.update(published)
        logger.info(f"{integration.label} : Revision {revision.version} is active")

    async def _fetch_connectors(self) -> Dict[str, Connector]:
        return {
            connector.id: connector
            for connector in await self.store.fetch_all(Kind.CONNECTOR)
        }

    async def _refetch(self, integration: Integration) -> Integration:
        current = await self.store.fetch(Kind.INTEGRATION, integration.id)
        return current if current is not None else integration
