"""
Status Handler Base - Abstract interface for status change handlers.

A status handler drives an integration towards one or more desired states.
It is made of idempotent, order-dependent steps and reports what it
observed as a StatusUpdate; it never writes the observed state itself.
"""

import logging
from abc import ABC, abstractmethod
from typing import FrozenSet, Optional

from models import Integration, IntegrationRevision, IntegrationState, StatusUpdate

logger = logging.getLogger(__name__)


class StatusChangeHandler(ABC):
    """
    Abstract base class for status change handlers.

    The controller guarantees at most one concurrent ``execute`` call per
    integration and desired state. One handler instance serves every
    integration, so per-call state must not be kept on the instance.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    @abstractmethod
    def trigger_states(self) -> FrozenSet[IntegrationState]:
        """Desired states this handler drives integrations towards."""
        pass

    @abstractmethod
    async def execute(
        self, integration: Integration, revision: IntegrationRevision
    ) -> Optional[StatusUpdate]:
        """
        Make one convergence attempt.

        May block on backend calls for an arbitrary time and must be safe
        to call again for the same integration.

        Args:
            integration: Fresh copy of the integration.
            revision: The revision to act on.

        Returns:
            The observed outcome, or None to leave the record untouched.
        """
        pass
