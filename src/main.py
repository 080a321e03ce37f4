"""
Main entry point for the Integration Controller.

Wires the resource store, event bus, backends and status handlers together
and runs the controller until a shutdown signal arrives.
"""

import asyncio
import logging
import signal
from typing import Optional

from backends.base import ProjectGenerator, ProvisioningBackend, SourceControlBackend
from backends.loader import (
    PROJECT_GENERATOR_GROUP,
    PROVISIONING_GROUP,
    SOURCE_CONTROL_GROUP,
    load_backend,
)
from config import Config, get_config
from controller import IntegrationController
from db import DatabaseManager
from events import EventBus
from handlers.activate import ActivateHandler
from handlers.deactivate import DeactivateHandler
from store import InMemoryResourceStore, ResourceStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class Application:
    """Main application that orchestrates the store, backends and controller."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.event_bus: Optional[EventBus] = None
        self.store: Optional[ResourceStore] = None
        self.controller: Optional[IntegrationController] = None
        self.running = False
        self._stopped = asyncio.Event()

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing Integration Controller")

        self.event_bus = EventBus(queue_size=self.config.controller.event_queue_size)
        self.store = await self._create_store()

        backends = self.config.backends
        provisioning = await load_backend(
            PROVISIONING_GROUP,
            backends.provisioning,
            ProvisioningBackend,
            backends.get_backend_config(backends.provisioning),
        )
        source_control = await load_backend(
            SOURCE_CONTROL_GROUP,
            backends.source_control,
            SourceControlBackend,
            backends.get_backend_config(backends.source_control),
        )
        project_generator = await load_backend(
            PROJECT_GENERATOR_GROUP,
            backends.project_generator,
            ProjectGenerator,
            backends.get_backend_config(backends.project_generator),
        )

        handlers = [
            ActivateHandler(self.store, provisioning, source_control, project_generator),
            DeactivateHandler(provisioning),
        ]

        self.controller = IntegrationController(
            store=self.store,
            event_bus=self.event_bus,
            handlers=handlers,
            config=self.config.controller,
        )

        logger.info("All components initialized")

    async def _create_store(self) -> ResourceStore:
        store_config = self.config.store

        if store_config.backend == "postgres":
            db_config = self.config.database
            db = DatabaseManager(
                host=db_config.host,
                port=db_config.port,
                database=db_config.database,
                user=db_config.user,
                password=db_config.password,
                min_pool_size=db_config.min_pool_size,
                max_pool_size=db_config.max_pool_size,
                event_bus=self.event_bus,
            )
            await db.connect()
            await db.initialize_schema()
            logger.info("Database initialized")
            return db

        store = InMemoryResourceStore(event_bus=self.event_bus)
        if store_config.seed_file:
            count = await store.load_file(store_config.seed_file)
            logger.info(f"Loaded {count} record(s) from {store_config.seed_file}")
        return store

    async def start(self):
        """Start the application and wait until it is stopped."""
        if not self.controller:
            await self.initialize()

        self.running = True
        logger.info("Starting Integration Controller")
        await self.controller.start()
        await self._stopped.wait()

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running:
            self._stopped.set()
            return

        logger.info("Stopping Integration Controller")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if isinstance(self.store, DatabaseManager):
            await self.store.close()

        self._stopped.set()
        logger.info("Integration Controller stopped")


async def main():
    """Main entry point."""
    app = Application()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
