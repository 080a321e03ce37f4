"""Unit tests for models.py - Integration data model."""

import pytest
from pydantic import ValidationError

from models import (
    ConfigurationProperty,
    Connector,
    Integration,
    IntegrationRevision,
    IntegrationState,
    Kind,
    StatusUpdate,
    Step,
)


class TestEnums:
    """Tests for the state and kind enums."""

    def test_state_values(self):
        assert [s.value for s in IntegrationState] == [
            "Draft",
            "Pending",
            "Active",
            "Inactive",
            "Undeployed",
            "Deleted",
        ]

    def test_kind_from_name(self):
        assert Kind.from_name("integration") == Kind.INTEGRATION
        assert Kind.from_name("CONNECTOR") == Kind.CONNECTOR
        assert Kind.from_name("widget") is None
        assert Kind.from_name(None) is None


class TestIntegrationRevision:
    """Tests for IntegrationRevision."""

    def test_defaults(self):
        revision = IntegrationRevision()
        assert revision.version is None
        assert revision.steps == []
        assert revision.current_state == IntegrationState.DRAFT
        assert revision.is_active is False

    def test_with_version(self):
        revision = IntegrationRevision().with_version(3)
        assert revision.version == 3

    def test_with_current_state(self):
        revision = IntegrationRevision(version=1).with_current_state(IntegrationState.ACTIVE)
        assert revision.is_active is True

    def test_frozen(self):
        revision = IntegrationRevision()
        with pytest.raises(ValidationError):
            revision.version = 2


class TestIntegration:
    """Tests for Integration."""

    @pytest.fixture
    def integration(self):
        return Integration(
            id="1",
            name="test",
            revisions=[
                IntegrationRevision(version=1, current_state=IntegrationState.ACTIVE),
                IntegrationRevision(version=2),
            ],
            deployed_revision_number=1,
        )

    def test_name_required(self):
        with pytest.raises(ValidationError):
            Integration()

    def test_kind_and_label(self, integration):
        assert integration.kind == Kind.INTEGRATION
        assert integration.label == "Integration 1"
        assert Integration(name="x").label == "Integration [none]"

    def test_next_revision_version(self, integration):
        """Test a new revision gets one past the highest existing version."""
        assert integration.next_revision_version() == 3

    def test_next_revision_version_without_revisions(self):
        assert Integration(name="x").next_revision_version() == 1

    def test_deployed_revision(self, integration):
        assert integration.deployed_revision.version == 1

    def test_deployed_revision_missing(self, integration):
        assert integration.model_copy(update={"deployed_revision_number": 9}).deployed_revision is None
        assert integration.model_copy(update={"deployed_revision_number": None}).deployed_revision is None

    def test_revision_for_active_prefers_draft(self, integration):
        draft = IntegrationRevision(steps=[Step(id="new")])
        with_draft = integration.model_copy(update={"draft_revision": draft})

        assert with_draft.revision_for(IntegrationState.ACTIVE) == draft

    def test_revision_for_active_without_draft(self, integration):
        assert integration.revision_for(IntegrationState.ACTIVE).version == 1

    def test_revision_for_inactive_prefers_deployed(self, integration):
        draft = IntegrationRevision(steps=[Step(id="new")])
        with_draft = integration.model_copy(update={"draft_revision": draft})

        assert with_draft.revision_for(IntegrationState.INACTIVE).version == 1

    def test_revision_for_falls_back_to_newest(self, integration):
        undeployed = integration.model_copy(update={"deployed_revision_number": None})
        assert undeployed.revision_for(IntegrationState.INACTIVE).version == 2

    def test_revision_for_empty(self):
        assert Integration(name="x").revision_for(IntegrationState.ACTIVE) == IntegrationRevision()

    def test_with_revision_appends(self, integration):
        updated = integration.with_revision(IntegrationRevision().with_version(3))
        assert [r.version for r in updated.revisions] == [1, 2, 3]
        assert len(integration.revisions) == 2

    def test_with_revision_replaces_inactive(self, integration):
        replacement = IntegrationRevision(version=2, steps=[Step(id="s")])
        updated = integration.with_revision(replacement)
        assert [r.version for r in updated.revisions] == [1, 2]
        assert updated.revisions[1] == replacement

    def test_with_revision_active_is_immutable(self, integration):
        """Test an active revision cannot be changed."""
        changed = IntegrationRevision(
            version=1, current_state=IntegrationState.ACTIVE, steps=[Step(id="s")]
        )
        with pytest.raises(ValueError, match="cannot be modified"):
            integration.with_revision(changed)

    def test_with_revision_active_identical(self, integration):
        same = IntegrationRevision(version=1, current_state=IntegrationState.ACTIVE)
        assert integration.with_revision(same).revisions == integration.revisions

    def test_document_round_trip(self, integration):
        document = integration.model_dump(mode="json")
        assert document["revisions"][0]["current_state"] == "Active"
        assert Integration.from_document(document) == integration


class TestConnector:
    """Tests for Connector."""

    @pytest.fixture
    def connector(self):
        return Connector(
            id="http",
            name="HTTP",
            properties={
                "baseUrl": ConfigurationProperty(component_property=True),
                "password": ConfigurationProperty(secret=True),
            },
        )

    def test_kind(self, connector):
        assert connector.kind == Kind.CONNECTOR

    def test_filter_properties(self, connector):
        configured = {"baseUrl": "http://a", "password": "pw", "unknown": "x"}

        assert connector.filter_properties(configured, lambda p: p.secret) == {
            "password": "pw"
        }
        assert connector.filter_properties(configured, lambda p: p.component_property) == {
            "baseUrl": "http://a"
        }

    def test_from_document(self):
        connector = Connector.from_document(
            {"id": "log", "name": "Log", "properties": {"level": {"component_property": True}}}
        )
        assert connector.properties["level"].component_property is True
        assert connector.properties["level"].secret is False

    def test_step_with_action_and_connection(self):
        step = Step.model_validate(
            {
                "id": "s1",
                "action": {"connector_id": "http", "camel_connector_prefix": "http-get"},
                "connection": {"configured_properties": {"baseUrl": "http://a"}},
            }
        )
        assert step.action.camel_connector_prefix == "http-get"
        assert step.connection.connector_id is None


class TestStatusUpdate:
    """Tests for StatusUpdate."""

    def test_defaults(self):
        update = StatusUpdate(state=IntegrationState.PENDING)
        assert update.version is None
        assert update.message is None
        assert update.steps_done == []
