"""Step-streaming channel between an agent capability and its reader.

The capability pushes zero or more StepMessage values and then exactly one
DoneMessage carrying either a result or an error text. The reader consumes
in order until the terminal message, so progress is never reordered and
never arrives after completion. The queue is bounded: a fast producer waits
for a slow reader.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from prchorus_core.errors import AgentError
from prchorus_core.models import ProgressStep

logger = logging.getLogger(__name__)

NO_RESULT_ERROR = "Agent finished without producing a result"
_DEFAULT_MAXSIZE = 64


@dataclass(frozen=True)
class StepMessage:
    step: ProgressStep


@dataclass(frozen=True)
class DoneMessage:
    result: Any = None
    error: str | None = None


class StepChannel:
    def __init__(self, maxsize: int = _DEFAULT_MAXSIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, step: ProgressStep) -> None:
        self._check_open()
        await self._queue.put(StepMessage(step))

    async def complete(self, result: Any) -> None:
        self._check_open()
        self._closed = True
        await self._queue.put(DoneMessage(result=result))

    async def fail(self, error: str) -> None:
        self._check_open()
        self._closed = True
        await self._queue.put(DoneMessage(error=error))

    async def receive(self, on_step: Callable[[ProgressStep], Awaitable[None]]) -> Any:
        """Relay steps to on_step until the terminal message.

        Returns the result, or raises AgentError with the error text.
        """
        while True:
            message = await self._queue.get()
            if isinstance(message, StepMessage):
                await on_step(message.step)
                continue
            if message.error is not None:
                raise AgentError(message.error)
            return message.result

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("StepChannel already received its terminal message")


async def stream_capability(
    invoke: Callable[[StepChannel], Awaitable[None]],
    on_step: Callable[[ProgressStep], Awaitable[None]],
) -> Any:
    """Run a capability as a producer task and read its channel to the end.

    An exception escaping the capability becomes the terminal error; a
    capability that returns without a terminal message is a failure too.
    """
    channel = StepChannel()

    async def produce() -> None:
        try:
            await invoke(channel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Capability raised: %s", e)
            if not channel.closed:
                await channel.fail(str(e) or e.__class__.__name__)
            return
        if not channel.closed:
            await channel.fail(NO_RESULT_ERROR)

    producer = asyncio.ensure_future(produce())
    try:
        return await channel.receive(on_step)
    finally:
        if not producer.done():
            producer.cancel()
        await asyncio.gather(producer, return_exceptions=True)
