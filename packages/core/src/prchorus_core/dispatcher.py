"""Single-worker job queue shared by the review and validation dispatchers.

Jobs run strictly one at a time in arrival order. The drain loop is one
asyncio task and the only code that moves an item out of ``queued``
(besides cancel()), so the queue table has a single writer and needs no
lock. A job failure is recorded on its item and never stops the loop.

Subclasses implement _process(): fetch the entity, call the agent, build
and persist the result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from prchorus_core.activity_log import ActivityLog
from prchorus_core.errors import JobError, is_cancellation
from prchorus_core.events import EventBus
from prchorus_core.models import CANCELLED, COMPLETED, FAILED, QUEUED, RUNNING, ProgressStep, QueueItem, utc_now
from prchorus_core.providers.base import AgentOutput, AgentRequest, BaseAgent
from prchorus_core.stream import stream_capability

logger = logging.getLogger(__name__)


class JobDispatcher(ABC):
    EVENTS: Any = None  # ReviewEvents | ValidationEvents
    ENTITY_KEY = ""  # payload key for the entity number
    ENTITY_LABEL = ""  # "PR" | "Issue", for messages

    def __init__(
        self,
        forge,
        history,
        bus: EventBus,
        agent_provider: Callable[[], BaseAgent | None],
        config: dict | None = None,
        activity_log: ActivityLog | None = None,
    ):
        self.forge = forge
        self.history = history
        self.bus = bus
        self.config = config or {}
        self.activity_log = activity_log
        self._agent_provider = agent_provider
        self._items: dict[int, QueueItem] = {}
        self._options: dict[int, dict] = {}
        self._cancel_events: dict[int, asyncio.Event] = {}
        self._running: int | None = None
        self._drain_task: asyncio.Task | None = None
        self.project_path: str | None = None

    # ------------------------------------------------------------------ #
    # Public interface                                                   #
    # ------------------------------------------------------------------ #

    @property
    def queue(self) -> list[QueueItem]:
        return list(self._items.values())

    @property
    def running(self) -> int | None:
        return self._running

    def get(self, entity_number: int) -> QueueItem | None:
        return self._items.get(entity_number)

    async def enqueue(self, entity_number: int, project_path: str, **options) -> None:
        """Queue a job. A second submission while queued or running is ignored."""
        self.project_path = project_path

        existing = self._items.get(entity_number)
        if existing is not None and existing.status in (QUEUED, RUNNING):
            logger.info("%s #%d already %s, skipping", self.ENTITY_LABEL, entity_number, existing.status)
            return

        # Re-submitting a finished entity moves it to the back of the queue.
        self._items.pop(entity_number, None)
        self._items[entity_number] = QueueItem(entity_number=entity_number)
        self._options[entity_number] = options
        logger.info("Queued %s #%d", self.ENTITY_LABEL, entity_number)
        self._log("Queued", entity_number)

        await self._publish_queue()
        self._ensure_draining()

    async def cancel(self, entity_number: int) -> None:
        """Stop a job: signal it if running, drop it if still queued."""
        item = self._items.get(entity_number)
        if item is None:
            return

        if item.status == RUNNING:
            logger.info("Cancelling running %s #%d", self.ENTITY_LABEL, entity_number)
            signal = self._cancel_events.get(entity_number)
            if signal is not None:
                signal.set()
        elif item.status == QUEUED:
            logger.info("Removing queued %s #%d", self.ENTITY_LABEL, entity_number)
            item.status = CANCELLED
            item.completed_at = utc_now()
            self._options.pop(entity_number, None)
            self._log("Cancelled before start", entity_number, level="warn")
        else:
            return

        await self._publish_queue()

    async def wait_idle(self) -> None:
        """Return once every queued job has reached a terminal state."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    # ------------------------------------------------------------------ #
    # Abstract: implement per entity kind                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _process(self, entity_number: int, project_path: str, options: dict, cancel: asyncio.Event):
        """Run one job and return its persisted result.

        Raise on failure; the message becomes the item's error text.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                             #
    # ------------------------------------------------------------------ #

    def _ensure_draining(self) -> None:
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.ensure_future(self._drain())

    async def _drain(self) -> None:
        while True:
            item = next((i for i in self._items.values() if i.status == QUEUED), None)
            if item is None or self.project_path is None:
                self._running = None
                return

            self._running = item.entity_number
            try:
                await self._run_job(item, self.project_path)
            except Exception:
                logger.exception("Unexpected error while processing %s #%d", self.ENTITY_LABEL, item.entity_number)
            finally:
                self._running = None

    async def _run_job(self, item: QueueItem, project_path: str) -> None:
        number = item.entity_number
        start = time.monotonic()
        cancel = asyncio.Event()
        self._cancel_events[number] = cancel

        item.status = RUNNING
        item.started_at = utc_now()
        self._log("Started", number)
        await self._publish_queue()

        try:
            result = await self._process(number, project_path, self._options.pop(number, {}), cancel)

            item.status = COMPLETED
            item.result = result
            item.completed_at = utc_now()
            logger.info("%s #%d completed in %dms", self.ENTITY_LABEL, number, (time.monotonic() - start) * 1000)
            self._log("Completed", number)
            await self.bus.publish(self.EVENTS.COMPLETE, {self.ENTITY_KEY: number, "result": result.to_dict()})
        except Exception as e:
            message = str(e) or e.__class__.__name__
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error("%s #%d failed (duration=%dms): %s", self.ENTITY_LABEL, number, duration_ms, message)
            logger.debug("Traceback for %s #%d", self.ENTITY_LABEL, number, exc_info=True)

            item.status = CANCELLED if is_cancellation(message) else FAILED
            item.error = message
            item.completed_at = utc_now()
            self._log(f"{item.status.capitalize()}: {message}", number, level="error")
            await self.bus.publish(self.EVENTS.ERROR, {self.ENTITY_KEY: number, "error": message})
        finally:
            self._cancel_events.pop(number, None)
            await self._publish_queue()

    def _acquire_agent(self) -> BaseAgent:
        agent = self._agent_provider()
        if agent is None:
            raise JobError(f"{self.config.get('provider', 'Agent')} provider is not available")
        return agent

    async def _invoke(self, agent: BaseAgent, request: AgentRequest, number: int, cancel: asyncio.Event) -> AgentOutput:
        """Run the agent, relaying each step as a progress event as it arrives."""

        async def on_step(step: ProgressStep) -> None:
            self._log(step.message, number, step_type=step.step_type)
            await self.bus.publish(self.EVENTS.PROGRESS, {self.ENTITY_KEY: number, "step": step.to_dict()})

        return await stream_capability(lambda channel: agent.invoke(request, channel, cancel), on_step)

    async def _repo_name(self, project_path: str) -> str:
        try:
            info = await self.forge.get_repo_info(project_path)
        except Exception as e:
            logger.warning("Failed to get repository info: %s", e)
            info = None
        return info.full_name if info else "unknown/unknown"

    async def _forge_call(self, awaitable: Awaitable, description: str):
        """Await a forge call, turning a timeout into a job error."""
        try:
            return await awaitable
        except asyncio.TimeoutError:
            raise JobError(f"Timed out {description}")

    async def _publish_queue(self) -> None:
        await self.bus.publish(self.EVENTS.QUEUE_UPDATE, {"queue": [i.to_dict() for i in self._items.values()]})

    def _log(self, message: str, number: int, level: str = "info", step_type: str | None = None) -> None:
        if self.activity_log is not None:
            self.activity_log.write(message, level=level, entity_number=number, step_type=step_type)
