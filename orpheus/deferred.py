"""Deferred interaction responses: acknowledge now, complete later.

Discord gives an interaction three seconds for its first response. Slow commands
send a ``DEFERRED_*`` acknowledgment inside that window, return from the HTTP
handler, and finish in a background task that edits the original message once.

Lifecycle per interaction::

    RECEIVED -> ACKNOWLEDGED -> WORKING -> COMPLETED
                                       \\-> FAILED   (terminal edit itself failed)

There is no way back from a terminal state. Work that dies without reaching
``complete`` leaves the message in Discord's "thinking" state until the
follow-up token expires; in-flight tasks are not persisted.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Optional, Set

import discord
import httpx

from .discord_api import DiscordInteractionClient
from .exceptions import AcknowledgeError, APIError, NotRegisteredError, UpstreamEmptyError
from .logger import log_interaction
from .types import DeferredThenComplete, DeferredWork, Interaction, MessagePayload
from .utils.logging import get_logger

logger = get_logger(__name__)


class TaskState(Enum):
    """Deferred task lifecycle."""

    RECEIVED = "received"
    ACKNOWLEDGED = "acknowledged"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.FAILED})


@dataclass
class DeferredTask:
    """Background work bound to one interaction's continuation token."""

    interaction: Interaction
    state: TaskState = TaskState.RECEIVED
    acknowledged_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def token(self) -> str:
        return self.interaction.token

    @property
    def application_id(self) -> str:
        return self.interaction.application_id

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class TaskSupervisor:
    """Owns fire-and-forget tasks spawned after an interaction was acknowledged.

    Keeps strong references so the event loop cannot garbage-collect running
    work, logs how each task ended, and drains outstanding work on shutdown.
    Tasks are never cancelled except by ``drain`` once its budget runs out.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def spawn(self, name: str, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug(
            f"📋 Spawned background task {name} ({len(self._tasks)} active)",
            extra={"subsys": "supervisor", "event": "spawn"},
        )
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(
                f"⚠ Background task {task.get_name()} was cancelled",
                extra={"subsys": "supervisor", "event": "cancelled"},
            )
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"✖ Background task {task.get_name()} crashed: {exc!r}",
                exc_info=exc,
                extra={"subsys": "supervisor", "event": "crashed"},
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding tasks; cancel whatever is left after ``timeout`` seconds."""
        if not self._tasks:
            return
        pending_count = len(self._tasks)
        logger.info(
            f"⏳ Draining {pending_count} background task(s)",
            extra={"subsys": "supervisor", "event": "drain"},
        )
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                f"⚠ Cancelled {len(pending)} task(s) still running at shutdown",
                extra={"subsys": "supervisor", "event": "drain_timeout"},
            )


class DeferredResponseController:
    """Implements the acknowledge-then-complete protocol for slow commands."""

    def __init__(
        self,
        discord_client: DiscordInteractionClient,
        supervisor: TaskSupervisor,
        ack_deadline: float = 3.0,
    ):
        self.discord = discord_client
        self.supervisor = supervisor
        self.ack_deadline = ack_deadline

    async def acknowledge(self, interaction: Interaction, update: bool = False) -> DeferredTask:
        """Send the "thinking" marker inside the remaining acknowledgment budget.

        Raises:
            AcknowledgeError: the budget ran out or Discord rejected the callback.
                The continuation token belongs to the original request, so
                there is nothing to retry.
        """
        task = DeferredTask(interaction=interaction)
        remaining = self.ack_deadline - (time.monotonic() - interaction.received_at)
        if remaining <= 0:
            raise AcknowledgeError(
                f"Acknowledgment budget already spent for interaction {interaction.id}"
            )

        response_type = (
            discord.InteractionResponseType.deferred_message_update
            if update
            else discord.InteractionResponseType.deferred_channel_message
        )
        try:
            await asyncio.wait_for(
                self.discord.send_callback(
                    interaction.id, interaction.token, response_type, timeout=remaining
                ),
                timeout=remaining,
            )
        except asyncio.TimeoutError as e:
            raise AcknowledgeError(
                f"Acknowledgment for interaction {interaction.id} missed the {self.ack_deadline}s window"
            ) from e
        except (httpx.HTTPError, APIError) as e:
            raise AcknowledgeError(f"Acknowledgment for interaction {interaction.id} failed: {e}") from e

        task.state = TaskState.ACKNOWLEDGED
        task.acknowledged_at = time.monotonic()
        log_interaction(interaction, "acknowledged", {"update": update})
        return task

    async def progress(self, task: DeferredTask, payload: MessagePayload) -> bool:
        """Non-terminal edit of the deferred message (e.g. countdown ticks)."""
        if task.state not in (TaskState.ACKNOWLEDGED, TaskState.WORKING):
            logger.warning(
                f"⚠ Ignoring progress edit for task in state {task.state.value}",
                extra={"subsys": "deferred", "interaction_id": task.interaction.id},
            )
            return False
        try:
            await self.discord.edit_original(task.application_id, task.token, payload)
        except (httpx.HTTPError, APIError) as e:
            logger.warning(
                f"⚠ Progress edit failed: {e}",
                extra={"subsys": "deferred", "interaction_id": task.interaction.id},
            )
            return False
        return True

    async def complete(self, task: DeferredTask, payload: MessagePayload) -> bool:
        """Deliver the final content. At most one call per task goes out."""
        if task.state is TaskState.RECEIVED:
            logger.error(
                "✖ complete() called before the interaction was acknowledged",
                extra={"subsys": "deferred", "interaction_id": task.interaction.id},
            )
            return False
        if task.terminal:
            logger.warning(
                f"⚠ Duplicate completion refused (task already {task.state.value})",
                extra={"subsys": "deferred", "interaction_id": task.interaction.id},
            )
            return False

        try:
            await self.discord.edit_original(task.application_id, task.token, payload)
        except (httpx.HTTPError, APIError) as e:
            task.state = TaskState.FAILED
            log_interaction(task.interaction, "completion_failed", {"error": str(e)}, success=False)
            return False

        task.state = TaskState.COMPLETED
        task.completed_at = time.monotonic()
        elapsed = task.completed_at - (task.acknowledged_at or task.completed_at)
        log_interaction(task.interaction, "completed", {"elapsed_s": round(elapsed, 2)})
        return True

    async def run(self, interaction: Interaction, response: DeferredThenComplete) -> DeferredTask:
        """Acknowledge, then hand the work to the supervisor without awaiting it."""
        task = await self.acknowledge(interaction, update=response.update)
        name = f"deferred:{interaction.command_name or interaction.custom_id}:{interaction.id}"
        self.supervisor.spawn(name, self._work_then_complete(task, response.work, response.error_message))
        return task

    async def _work_then_complete(self, task: DeferredTask, work: DeferredWork, error_message: str) -> None:
        task.state = TaskState.WORKING
        try:
            payload = await work(task)
        except (UpstreamEmptyError, NotRegisteredError) as e:
            payload = MessagePayload(content=str(e), components=[])
        except Exception as e:
            # Last-resort sink: the deferred message must never stay "thinking"
            logger.error(
                f"✖ Deferred work failed: {e}",
                exc_info=True,
                extra={"subsys": "deferred", "interaction_id": task.interaction.id},
            )
            payload = MessagePayload(content=error_message, components=[])
        await self.complete(task, payload)
