"""
Acknowledge-then-complete protocol: deadline handling, at-most-once
completion and background task supervision.
"""

import asyncio
import dataclasses
import time
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from conftest import make_interaction
from orpheus.deferred import DeferredResponseController, DeferredTask, TaskState, TaskSupervisor
from orpheus.exceptions import AcknowledgeError, APIError, UpstreamEmptyError
from orpheus.types import DeferredThenComplete, MessagePayload


@pytest.fixture
def discord_client():
    client = MagicMock()
    client.send_callback = AsyncMock()
    client.edit_original = AsyncMock()
    return client


@pytest.fixture
def controller(discord_client):
    return DeferredResponseController(discord_client, TaskSupervisor(), ack_deadline=3.0)


def _acknowledged(interaction=None) -> DeferredTask:
    return DeferredTask(interaction=interaction or make_interaction("cover"), state=TaskState.ACKNOWLEDGED)


@pytest.mark.asyncio
async def test_acknowledge_sends_deferred_channel_message(controller, discord_client):
    interaction = make_interaction("cover")

    task = await controller.acknowledge(interaction)

    assert task.state is TaskState.ACKNOWLEDGED
    assert task.acknowledged_at is not None
    args = discord_client.send_callback.await_args.args
    assert args[:3] == (interaction.id, interaction.token, discord.InteractionResponseType.deferred_channel_message)


@pytest.mark.asyncio
async def test_component_acknowledge_defers_as_update(controller, discord_client):
    await controller.acknowledge(make_interaction(type=3, custom_id="start_countdown"), update=True)

    assert discord_client.send_callback.await_args.args[2] is discord.InteractionResponseType.deferred_message_update


@pytest.mark.asyncio
async def test_spent_budget_fails_without_calling_discord(controller, discord_client):
    stale = dataclasses.replace(make_interaction("cover"), received_at=time.monotonic() - 10)

    with pytest.raises(AcknowledgeError):
        await controller.acknowledge(stale)
    discord_client.send_callback.assert_not_awaited()


@pytest.mark.asyncio
async def test_slow_callback_misses_the_window(discord_client):
    async def hang(*args, **kwargs):
        await asyncio.sleep(5)

    discord_client.send_callback.side_effect = hang
    controller = DeferredResponseController(discord_client, TaskSupervisor(), ack_deadline=0.05)

    with pytest.raises(AcknowledgeError):
        await controller.acknowledge(make_interaction("cover"))


@pytest.mark.asyncio
async def test_rejected_callback_is_an_acknowledge_error(controller, discord_client):
    discord_client.send_callback.side_effect = APIError("HTTP 404")

    with pytest.raises(AcknowledgeError):
        await controller.acknowledge(make_interaction("cover"))


@pytest.mark.asyncio
async def test_complete_before_acknowledge_is_refused(controller, discord_client):
    task = DeferredTask(interaction=make_interaction("cover"))

    assert await controller.complete(task, MessagePayload(content="x")) is False
    discord_client.edit_original.assert_not_awaited()
    assert task.state is TaskState.RECEIVED


@pytest.mark.asyncio
async def test_completion_happens_at_most_once(controller, discord_client):
    task = _acknowledged()

    assert await controller.complete(task, MessagePayload(content="first")) is True
    assert await controller.complete(task, MessagePayload(content="second")) is False

    assert task.state is TaskState.COMPLETED
    assert discord_client.edit_original.await_count == 1
    assert discord_client.edit_original.await_args.args[2].content == "first"


@pytest.mark.asyncio
async def test_failed_terminal_edit_marks_task_failed(controller, discord_client):
    discord_client.edit_original.side_effect = APIError("HTTP 404")
    task = _acknowledged()

    assert await controller.complete(task, MessagePayload(content="x")) is False
    assert task.state is TaskState.FAILED
    assert await controller.progress(task, MessagePayload(content="late")) is False
    assert discord_client.edit_original.await_count == 1


@pytest.mark.asyncio
async def test_progress_edits_do_not_finish_the_task(controller, discord_client):
    task = _acknowledged()

    assert await controller.progress(task, MessagePayload(content="3"))
    assert await controller.progress(task, MessagePayload(content="2"))
    assert task.state is TaskState.ACKNOWLEDGED
    assert await controller.complete(task, MessagePayload(content="done"))
    assert discord_client.edit_original.await_count == 3


@pytest.mark.asyncio
async def test_run_acknowledges_before_work_and_completes_with_result(controller, discord_client):
    order = []
    discord_client.send_callback.side_effect = lambda *a, **k: order.append("ack")

    async def work(task):
        order.append("work")
        return MessagePayload(content="result")

    task = await controller.run(make_interaction("cover"), DeferredThenComplete(work))
    await controller.supervisor.drain(timeout=1)

    assert order == ["ack", "work"]
    assert task.state is TaskState.COMPLETED
    assert discord_client.edit_original.await_args.args[2].content == "result"


@pytest.mark.asyncio
async def test_crashing_work_completes_with_error_message(controller, discord_client):
    async def work(task):
        raise RuntimeError("boom")

    task = await controller.run(make_interaction("fm"), DeferredThenComplete(work, error_message="Nope."))
    await controller.supervisor.drain(timeout=1)

    assert task.state is TaskState.COMPLETED
    sent = discord_client.edit_original.await_args.args[2]
    assert sent.content == "Nope."
    assert sent.components == []


@pytest.mark.asyncio
async def test_empty_upstream_message_reaches_the_user(controller, discord_client):
    async def work(task):
        raise UpstreamEmptyError("Could not find album art for `zzz`.")

    await controller.run(make_interaction("cover"), DeferredThenComplete(work))
    await controller.supervisor.drain(timeout=1)

    assert discord_client.edit_original.await_args.args[2].content == "Could not find album art for `zzz`."


@pytest.mark.asyncio
async def test_failed_acknowledge_never_starts_work(controller, discord_client):
    discord_client.send_callback.side_effect = APIError("HTTP 500")
    work = AsyncMock()

    with pytest.raises(AcknowledgeError):
        await controller.run(make_interaction("cover"), DeferredThenComplete(work))

    work.assert_not_awaited()
    assert controller.supervisor.active_count == 0


@pytest.mark.asyncio
async def test_supervisor_drain_cancels_stragglers():
    supervisor = TaskSupervisor()
    finished = asyncio.Event()

    async def quick():
        finished.set()

    async def stuck():
        await asyncio.sleep(60)

    supervisor.spawn("quick", quick())
    slow = supervisor.spawn("stuck", stuck())
    assert supervisor.active_count == 2

    await supervisor.drain(timeout=0.05)

    assert finished.is_set()
    assert slow.cancelled()
    assert supervisor.active_count == 0
