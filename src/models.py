"""
Integration data model.

Integrations, their revisions, the connectors their steps use and the
status updates produced by handlers. All records are immutable; changes
are made by copying with ``model_copy``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class IntegrationState(str, Enum):
    """Desired and observed states of an integration."""

    DRAFT = "Draft"
    PENDING = "Pending"
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    UNDEPLOYED = "Undeployed"
    DELETED = "Deleted"


class Kind(str, Enum):
    """Kinds of records held by the resource store."""

    INTEGRATION = "integration"
    CONNECTOR = "connector"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["Kind"]:
        """Resolve a kind name case-insensitively, None if unknown."""
        if not name:
            return None
        for kind in cls:
            if kind.value == name.lower():
                return kind
        return None


class ConfigurationProperty(BaseModel):
    """Definition of a property a connector accepts."""

    model_config = ConfigDict(frozen=True)

    display_name: Optional[str] = None
    component_property: bool = False
    secret: bool = False


class Connector(BaseModel):
    """A reusable endpoint type that integration steps connect through."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    properties: Dict[str, ConfigurationProperty] = Field(default_factory=dict)

    @property
    def kind(self) -> Kind:
        return Kind.CONNECTOR

    def filter_properties(
        self,
        configured: Dict[str, str],
        predicate: Callable[[ConfigurationProperty], bool],
    ) -> Dict[str, str]:
        """Configured values whose property definition matches ``predicate``."""
        return {
            key: value
            for key, value in configured.items()
            if key in self.properties and predicate(self.properties[key])
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Connector":
        return cls.model_validate(data)


class Action(BaseModel):
    """The connector operation an endpoint step performs."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    connector_id: Optional[str] = None
    camel_connector_prefix: str


class Connection(BaseModel):
    """A configured instance of a connector."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    connector_id: Optional[str] = None
    configured_properties: Dict[str, str] = Field(default_factory=dict)


class Step(BaseModel):
    """A single step of what an integration does."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    kind: str = "endpoint"
    name: Optional[str] = None
    action: Optional[Action] = None
    connection: Optional[Connection] = None
    configured_properties: Dict[str, str] = Field(default_factory=dict)


class IntegrationRevision(BaseModel):
    """
    Immutable, versioned snapshot of the steps an integration runs.

    Once a revision reaches the Active state it must not change; further
    edits go into a new revision with a higher version.
    """

    model_config = ConfigDict(frozen=True)

    version: Optional[int] = None
    parent_version: Optional[int] = None
    steps: List[Step] = Field(default_factory=list)
    target_state: IntegrationState = IntegrationState.DRAFT
    current_state: IntegrationState = IntegrationState.DRAFT

    def with_version(self, version: int) -> "IntegrationRevision":
        return self.model_copy(update={"version": version})

    def with_current_state(self, state: IntegrationState) -> "IntegrationRevision":
        return self.model_copy(update={"current_state": state})

    @property
    def is_active(self) -> bool:
        return self.current_state == IntegrationState.ACTIVE


class Integration(BaseModel):
    """The long-lived resource driven towards its desired state."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    desired_state: Optional[IntegrationState] = None
    current_state: Optional[IntegrationState] = None
    status_message: Optional[str] = None
    revisions: List[IntegrationRevision] = Field(default_factory=list)
    draft_revision: Optional[IntegrationRevision] = None
    deployed_revision_number: Optional[int] = None
    token: Optional[str] = None
    git_repo: Optional[str] = None
    steps_done: List[str] = Field(default_factory=list)
    last_updated: Optional[datetime] = None
    created_date: Optional[datetime] = None

    @property
    def kind(self) -> Kind:
        return Kind.INTEGRATION

    @property
    def label(self) -> str:
        return f"Integration {self.id or '[none]'}"

    @property
    def deployed_revision(self) -> Optional[IntegrationRevision]:
        """The revision matching ``deployed_revision_number``, if any."""
        if self.deployed_revision_number is None:
            return None
        for revision in self.revisions:
            if revision.version == self.deployed_revision_number:
                return revision
        return None

    def next_revision_version(self) -> int:
        """
        Version for a revision that has none: one past the highest existing.

        There is no coordination between writers; two callers computing this
        for the same integration concurrently get the same number.
        """
        versions = [r.version or 0 for r in self.revisions]
        return max(versions, default=0) + 1

    def revision_for(self, state: IntegrationState) -> IntegrationRevision:
        """Pick the revision a handler driving towards ``state`` acts on."""
        newest = self.revisions[-1] if self.revisions else None
        if state == IntegrationState.ACTIVE:
            candidates = [self.draft_revision, self.deployed_revision, newest]
        else:
            candidates = [self.deployed_revision, newest, self.draft_revision]
        for candidate in candidates:
            if candidate is not None:
                return candidate
        return IntegrationRevision()

    def with_revision(self, revision: IntegrationRevision) -> "Integration":
        """
        Return a copy with ``revision`` added to the revision list.

        A stored revision with the same version is replaced unless it is
        already active, in which case only an identical copy is accepted.
        """
        revisions = []
        replaced = False
        for existing in self.revisions:
            if revision.version is not None and existing.version == revision.version:
                if existing.is_active and existing != revision:
                    raise ValueError(
                        f"Revision {existing.version} of {self.label} is active "
                        f"and cannot be modified"
                    )
                revisions.append(revision)
                replaced = True
            else:
                revisions.append(existing)
        if not replaced:
            revisions.append(revision)
        return self.model_copy(update={"revisions": revisions})

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Integration":
        return cls.model_validate(data)


Record = Union[Integration, Connector]

RECORD_TYPES: Dict[Kind, Type[Record]] = {
    Kind.INTEGRATION: Integration,
    Kind.CONNECTOR: Connector,
}


class StatusUpdate(BaseModel):
    """Outcome of a handler run, applied to the store by the controller."""

    model_config = ConfigDict(frozen=True)

    version: Optional[int] = None
    state: IntegrationState
    message: Optional[str] = None
    steps_done: List[str] = Field(default_factory=list)
