"""
Resource Store - contract and in-memory implementation.

The store holds integration and connector records, supports point lookups and
conditional updates, and broadcasts a change event on every successful
mutation.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from events import ChangeAction, ChangeEvent, EventBus
from models import RECORD_TYPES, Kind, Record

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for resource store errors."""


class EntityNotFoundError(StoreError):
    """Raised when updating a record that does not exist."""


class EntityExistsError(StoreError):
    """Raised when creating a record whose id is already taken."""


class ResourceStore(ABC):
    """Contract the controller and handlers need from the persistent store."""

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus

    @abstractmethod
    async def fetch(self, kind: Kind, record_id: str) -> Optional[Record]:
        """Return the record, or None if it does not exist."""

    @abstractmethod
    async def fetch_all(self, kind: Kind) -> List[Record]:
        """Return every record of the given kind."""

    @abstractmethod
    async def create(self, record: Record) -> Record:
        """
        Store a new record, assigning an id when it has none.

        Raises:
            EntityExistsError: If a record with the same id exists.
        """

    @abstractmethod
    async def update(self, record: Record) -> None:
        """
        Replace an existing record.

        Raises:
            EntityNotFoundError: If the id is missing or unknown.
        """

    @abstractmethod
    async def delete(self, kind: Kind, record_id: str) -> bool:
        """Delete a record, returning whether anything was removed."""

    def _broadcast(self, action: ChangeAction, kind: Kind, record_id: str) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(
                ChangeEvent.of(action, kind.value, record_id).to_message()
            )


class InMemoryResourceStore(ResourceStore):
    """Dict backed store, one map per kind."""

    def __init__(self, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self._records: Dict[Kind, Dict[str, Record]] = {kind: {} for kind in Kind}

    def _generate_id(self, kind: Kind) -> str:
        records = self._records[kind]
        counter = 1
        while True:
            candidate = str(len(records) + counter)
            if candidate not in records:
                return candidate
            counter += 1

    async def fetch(self, kind: Kind, record_id: str) -> Optional[Record]:
        return self._records[kind].get(record_id)

    async def fetch_all(self, kind: Kind) -> List[Record]:
        return list(self._records[kind].values())

    async def create(self, record: Record) -> Record:
        records = self._records[record.kind]
        if record.id is None:
            record = record.model_copy(update={"id": self._generate_id(record.kind)})
        elif record.id in records:
            raise EntityExistsError(
                f"There already exists a {record.kind.value} with id {record.id}"
            )

        records[record.id] = record
        self._broadcast(ChangeAction.CREATED, record.kind, record.id)
        return record

    async def update(self, record: Record) -> None:
        if record.id is None:
            raise EntityNotFoundError("Setting the id on the entity is required for updates")

        records = self._records[record.kind]
        if record.id not in records:
            raise EntityNotFoundError(
                f"Can not find {record.kind.value} with id {record.id}"
            )

        records[record.id] = record
        self._broadcast(ChangeAction.UPDATED, record.kind, record.id)

    async def delete(self, kind: Kind, record_id: str) -> bool:
        if self._records[kind].pop(record_id, None) is None:
            return False
        self._broadcast(ChangeAction.DELETED, kind, record_id)
        return True

    async def load_file(self, path: Union[str, Path]) -> int:
        """
        Seed the store from a YAML (or JSON) document.

        The document maps ``connectors`` and ``integrations`` to lists of
        records. Entries without an id are skipped; existing ids are updated.

        Returns:
            Number of records created or updated.
        """
        content = Path(path).read_text(encoding="utf-8")
        try:
            document: Dict[str, Any] = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Cannot read seed data from {path}: {e}") from e

        loaded = 0
        for kind in (Kind.CONNECTOR, Kind.INTEGRATION):
            for entry in document.get(f"{kind.value}s", None) or []:
                record = RECORD_TYPES[kind].from_document(entry)
                if record.id is None:
                    logger.warning(f"Cannot load entity from {path}, missing an id: {entry}")
                    continue

                if await self.fetch(record.kind, record.id) is None:
                    await self.create(record)
                else:
                    await self.update(record)
                loaded += 1

        logger.info(f"Loaded {loaded} record(s) from {path}")
        return loaded
