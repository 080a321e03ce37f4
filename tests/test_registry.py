"""Unit tests for handlers/registry.py - Handler registry."""

import pytest

from handlers.base import StatusChangeHandler
from handlers.registry import HandlerConflictError, HandlerRegistry
from models import IntegrationState


class StubHandler(StatusChangeHandler):
    def __init__(self, *states):
        self._states = frozenset(states)

    @property
    def trigger_states(self):
        return self._states

    async def execute(self, integration, revision):
        return None


class TestHandlerRegistry:
    """Tests for HandlerRegistry."""

    def test_register_and_lookup(self):
        handler = StubHandler(IntegrationState.INACTIVE, IntegrationState.DRAFT)
        registry = HandlerRegistry([handler])

        assert registry.lookup(IntegrationState.INACTIVE) is handler
        assert registry.lookup(IntegrationState.DRAFT) is handler
        assert registry.lookup(IntegrationState.ACTIVE) is None
        assert registry.lookup(None) is None

    def test_states(self):
        activate = StubHandler(IntegrationState.ACTIVE)
        deactivate = StubHandler(IntegrationState.INACTIVE, IntegrationState.DRAFT)
        registry = HandlerRegistry([activate, deactivate])

        assert registry.states() == frozenset(
            {IntegrationState.ACTIVE, IntegrationState.INACTIVE, IntegrationState.DRAFT}
        )
        assert registry.lookup(IntegrationState.DRAFT) is deactivate

    def test_conflict(self):
        """Test two handlers cannot claim the same state."""
        registry = HandlerRegistry([StubHandler(IntegrationState.ACTIVE)])

        with pytest.raises(HandlerConflictError, match="already handled"):
            registry.register(StubHandler(IntegrationState.INACTIVE, IntegrationState.ACTIVE))

        # Nothing of the rejected handler was registered
        assert registry.lookup(IntegrationState.INACTIVE) is None

    def test_register_same_handler_twice(self):
        handler = StubHandler(IntegrationState.ACTIVE)
        registry = HandlerRegistry([handler])

        registry.register(handler)

        assert registry.lookup(IntegrationState.ACTIVE) is handler

    def test_freeze(self):
        registry = HandlerRegistry()
        assert registry.frozen is False

        assert registry.freeze() is registry
        assert registry.frozen is True
        with pytest.raises(RuntimeError, match="frozen"):
            registry.register(StubHandler(IntegrationState.ACTIVE))

    def test_handler_name_defaults_to_class(self):
        assert StubHandler().name == "StubHandler"
