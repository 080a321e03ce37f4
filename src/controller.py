"""
Integration Controller - Reconciliation loop for integrations.

Tracks changes to integrations and drives their current state towards
their desired state by calling the status change handler registered for
the desired state.

All checks, dispatches and handler calls run one at a time on a single
worker task. This keeps the in-flight marker set free of races without
locking, at the cost of one slow handler call delaying every other
integration. Timers only schedule future checks; the checks themselves
are handed to the worker.
"""

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Set, Tuple

from pydantic import ValidationError

from config import ControllerConfig
from events import CHANGE_EVENT, BusMessage, ChangeEvent, EventBus, EventSubscription
from handlers.base import StatusChangeHandler
from handlers.registry import HandlerRegistry
from models import Integration, IntegrationState, Kind, StatusUpdate
from store import ResourceStore

logger = logging.getLogger(__name__)

SUBSCRIBER_ID = "integration-controller"

Job = Callable[[], Awaitable[None]]
MarkerKey = Tuple[IntegrationState, str]


class IntegrationController:
    """
    Controller that reconciles integrations.

    Triggered by store change notifications, a full scan at startup and a
    per-integration follow-up check armed after every handler call.
    """

    def __init__(
        self,
        store: ResourceStore,
        event_bus: EventBus,
        handlers: Iterable[StatusChangeHandler],
        config: Optional[ControllerConfig] = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.config = config or ControllerConfig()
        self.check_interval = self.config.check_interval
        self.registry = HandlerRegistry(handlers).freeze()
        self.running = False

        self._queue: asyncio.Queue = asyncio.Queue()
        # (desired state, integration id) of convergence attempts under way
        self._in_flight: Set[MarkerKey] = set()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._worker_task: Optional[asyncio.Task] = None
        self._listener_task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> FrozenSet[MarkerKey]:
        return frozenset(self._in_flight)

    @property
    def pending_checks(self) -> FrozenSet[str]:
        """Ids of integrations with an armed follow-up check."""
        return frozenset(self._timers)

    # Lifecycle

    async def start(self) -> None:
        """Start the worker, the change subscription and the initial scan."""
        if self.running:
            return

        states = ", ".join(sorted(state.value for state in self.registry.states()))
        logger.info(f"Starting Integration Controller for states: {states or 'none'}")
        self.running = True
        self._worker_task = asyncio.create_task(self._worker())

        subscription = self.event_bus.subscribe(
            SUBSCRIBER_ID, filter_fn=lambda message: message.event == CHANGE_EVENT
        )
        self._listener_task = asyncio.create_task(self._listen(subscription))

        self._enqueue(self._scan_for_work)

    async def stop(self) -> None:
        """
        Stop accepting work and shut the worker down.

        Checks that have not started are dropped. A running handler call
        gets ``shutdown_timeout`` seconds to finish before it is cancelled.
        """
        if not self.running:
            return

        logger.info("Stopping Integration Controller")
        self.running = False
        self.event_bus.unsubscribe(SUBSCRIBER_ID)

        if self._listener_task is not None:
            self._listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener_task
            self._listener_task = None

        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.info(f"Dropped {dropped} pending check(s)")

        if self._worker_task is not None:
            try:
                await asyncio.wait_for(self._queue.join(), self.config.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"In-flight work did not finish within "
                    f"{self.config.shutdown_timeout}s, cancelling it"
                )
            self._worker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker_task
            self._worker_task = None

        logger.info("Integration Controller stopped")

    def trigger(self, integration_id: str) -> None:
        """Queue a check for an integration unless one is already in progress."""
        self._enqueue(partial(self._check_if_not_in_progress, integration_id))

    # Worker

    def _enqueue(self, job: Job) -> None:
        if not self.running:
            logger.debug("Controller is not running, ignoring job")
            return
        self._queue.put_nowait(job)

    async def _worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job()
            except Exception as e:
                logger.error(f"Error in integration controller job: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    # Triggers

    async def _listen(self, subscription: EventSubscription) -> None:
        async for message in subscription:
            self._on_message(message)

    def _on_message(self, message: BusMessage) -> None:
        # Never do anything that could block here
        try:
            event = ChangeEvent.from_json(message.data)
        except ValidationError as e:
            logger.error(f"Error while decoding {message.event} {message.data}: {e}")
            return

        if event.id and Kind.from_name(event.kind) == Kind.INTEGRATION:
            self.trigger(event.id)

    async def _scan_for_work(self) -> None:
        logger.info("Checking integrations for their status")
        for integration in await self.store.fetch_all(Kind.INTEGRATION):
            self.check_status(integration)

    async def _check_if_not_in_progress(self, integration_id: str) -> None:
        integration = await self.store.fetch(Kind.INTEGRATION, integration_id)
        if integration is None:
            self._forget(integration_id)
            return

        key = self._marker_key(integration)
        if key is not None and key in self._in_flight:
            logger.debug(f"{integration.label} : Check already in progress")
            return
        self.check_status(integration)

    async def _scheduled_check(self, integration_id: str) -> None:
        integration = await self.store.fetch(Kind.INTEGRATION, integration_id)
        if integration is None:
            self._forget(integration_id)
            return
        self.check_status(integration)

    def _schedule_check(self, integration_id: str) -> None:
        if not self.running:
            return

        existing = self._timers.pop(integration_id, None)
        if existing is not None:
            existing.cancel()

        loop = asyncio.get_running_loop()
        self._timers[integration_id] = loop.call_later(
            self.check_interval, self._on_timer, integration_id
        )

    def _on_timer(self, integration_id: str) -> None:
        self._timers.pop(integration_id, None)
        self._enqueue(partial(self._scheduled_check, integration_id))

    # Reconciliation

    def check_status(self, integration: Optional[Integration]) -> None:
        """
        Decide whether an integration needs work and queue a dispatch if so.

        A converged integration has its in-flight marker cleared so that the
        next change triggers a check again. Desired states without a handler
        are left alone.
        """
        if integration is None:
            return

        desired = integration.desired_state
        current = integration.current_state

        if current == desired:
            key = self._marker_key(integration)
            if key is not None:
                self._in_flight.discard(key)
            return

        if desired is None or integration.id is None:
            return

        handler = self.registry.lookup(desired)
        if handler is None:
            logger.debug(
                f"{integration.label} : No handler for desired state {desired.value}"
            )
            return

        logger.info(
            f'{integration.label} : Desired state "{desired.value}" != current state '
            f'"{current.value if current else "[none]"}" --> calling status change handler'
        )
        self._enqueue(partial(self._dispatch, handler, integration.id))

    async def _dispatch(self, handler: StatusChangeHandler, integration_id: str) -> None:
        # Time may have passed since the check was queued
        integration = await self.store.fetch(Kind.INTEGRATION, integration_id)
        key = self._marker_key(integration) if integration is not None else None

        if self._is_stale(handler, integration):
            if key is not None:
                self._in_flight.discard(key)
            return

        self._supersede_markers(key)

        try:
            revision = integration.revision_for(integration.desired_state)
            logger.info(
                f"{integration.label} : Start processing integration with {handler.name}"
            )
            update = await handler.execute(integration, revision)
            if update is not None:
                logger.info(f"{integration.label} : Setting status to {update.state.value}")
                await self._apply_update(integration_id, update)

        except Exception as e:
            logger.error(
                f"Error while processing integration status for integration "
                f"{integration_id}: {e}",
                exc_info=True,
            )
            await self._record_error(integration_id, e)

        finally:
            self._schedule_check(integration_id)

    async def _apply_update(self, integration_id: str, update: StatusUpdate) -> None:
        # The handler may have taken a while, so update the freshest copy
        current = await self.store.fetch(Kind.INTEGRATION, integration_id)
        if current is None:
            logger.warning(f"Integration {integration_id} disappeared while processing")
            return

        await self.store.update(
            current.model_copy(
                update={
                    "current_state": update.state,
                    "status_message": update.message,
                    "steps_done": list(update.steps_done),
                    "last_updated": _now(),
                }
            )
        )

    async def _record_error(self, integration_id: str, error: Exception) -> None:
        current = await self.store.fetch(Kind.INTEGRATION, integration_id)
        if current is None:
            return

        await self.store.update(
            current.model_copy(
                update={"status_message": f"Error: {error}", "last_updated": _now()}
            )
        )

    @staticmethod
    def _is_stale(
        handler: Optional[StatusChangeHandler], integration: Optional[Integration]
    ) -> bool:
        if integration is None or handler is None:
            return True

        desired = integration.desired_state
        return (
            desired is None
            or desired == integration.current_state
            or desired not in handler.trigger_states
        )

    @staticmethod
    def _marker_key(integration: Integration) -> Optional[MarkerKey]:
        if integration.desired_state is None or integration.id is None:
            return None
        return (integration.desired_state, integration.id)

    def _supersede_markers(self, key: MarkerKey) -> None:
        # Only one attempt per integration runs at a time, so markers left
        # behind for an earlier desired state are no longer in flight
        state, integration_id = key
        self._in_flight = {
            (s, i) for s, i in self._in_flight if i != integration_id or s == state
        }
        self._in_flight.add(key)

    def _forget(self, integration_id: str) -> None:
        self._in_flight = {(s, i) for s, i in self._in_flight if i != integration_id}
        handle = self._timers.pop(integration_id, None)
        if handle is not None:
            handle.cancel()


def _now() -> datetime:
    return datetime.now(timezone.utc)
