"""
Handler Registry - maps desired states to the handler responsible for them.
"""

from typing import Dict, FrozenSet, Iterable, Optional

from handlers.base import StatusChangeHandler, logger
from models import IntegrationState


class HandlerConflictError(ValueError):
    """Raised when two handlers claim the same desired state."""


class HandlerRegistry:
    """
    Lookup table from desired state to status change handler.

    Built once at startup and frozen; there is no removal.
    """

    def __init__(self, handlers: Optional[Iterable[StatusChangeHandler]] = None):
        self._handlers: Dict[IntegrationState, StatusChangeHandler] = {}
        self._frozen = False
        for handler in handlers or ():
            self.register(handler)

    def register(self, handler: StatusChangeHandler) -> None:
        """
        Register a handler for each of its trigger states.

        Raises:
            RuntimeError: If the registry has been frozen.
            HandlerConflictError: If a trigger state is already claimed by
                another handler.
        """
        if self._frozen:
            raise RuntimeError("Handler registry is frozen")

        states = handler.trigger_states
        for state in states:
            existing = self._handlers.get(state)
            if existing is not None and existing is not handler:
                raise HandlerConflictError(
                    f"State '{state.value}' is already handled by "
                    f"'{existing.name}'. Cannot register '{handler.name}'."
                )

        for state in states:
            self._handlers[state] = handler

        logger.info(
            f"Registered status handler: {handler.name} "
            f"(states: {', '.join(sorted(s.value for s in states))})"
        )

    def freeze(self) -> "HandlerRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, state: Optional[IntegrationState]) -> Optional[StatusChangeHandler]:
        """Return the handler for ``state``, or None if nothing handles it."""
        if state is None:
            return None
        return self._handlers.get(state)

    def states(self) -> FrozenSet[IntegrationState]:
        return frozenset(self._handlers)
