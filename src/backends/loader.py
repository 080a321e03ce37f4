"""
Backend discovery via Python entry points.
"""

from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Type, TypeVar

from backends.base import Backend, logger

PROVISIONING_GROUP = "integration_controller.provisioning"
SOURCE_CONTROL_GROUP = "integration_controller.source_control"
PROJECT_GENERATOR_GROUP = "integration_controller.project_generators"

B = TypeVar("B", bound=Backend)


class BackendNotFoundError(LookupError):
    """Raised when no installed backend matches the configured name."""


def available_backends(group: str) -> List[str]:
    """List the entry point names installed for a backend group."""
    return sorted(ep.name for ep in entry_points(group=group))


async def load_backend(
    group: str,
    name: str,
    expected: Type[B],
    config: Optional[Dict[str, Any]] = None,
) -> B:
    """
    Load, instantiate and initialize a backend.

    Args:
        group: Entry point group to search.
        name: Entry point name of the backend.
        expected: Base class the backend must derive from.
        config: Configuration passed to ``initialize()``.

    Raises:
        BackendNotFoundError: If no entry point with that name exists.
        TypeError: If the entry point does not provide an ``expected`` subclass.
    """
    matches = [ep for ep in entry_points(group=group) if ep.name == name]
    if not matches:
        available = ", ".join(available_backends(group)) or "none"
        raise BackendNotFoundError(
            f"Unknown backend '{name}' in {group}. Available backends: {available}"
        )

    backend_class = matches[0].load()
    if not (isinstance(backend_class, type) and issubclass(backend_class, expected)):
        raise TypeError(
            f"Backend '{name}' in {group} is not a {expected.__name__} subclass"
        )

    backend = backend_class()
    await backend.initialize(config or {})
    logger.info(f"Initialized backend: {name} ({group})")
    return backend
