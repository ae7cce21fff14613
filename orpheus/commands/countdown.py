"""
/countdown: a message with Start / Cancel buttons.

Start defers as a message update and ticks the same message down from 5,
one edit per second, before the final "Go!".
"""
from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Dict, List

import discord

from ..deferred import DeferredTask
from ..services import Services
from ..types import DeferredThenComplete, ImmediateMessage, Interaction, MessagePayload, UpdateMessage

START_ID = "start_countdown"
CANCEL_ID = "cancel_countdown"

COUNT_FROM = 5
TICK_SECONDS = 1.0

BLURPLE = 0x5865F2
YELLOW = 0xFEE75C
GREEN = 0x57F287
RED = 0xED4245


def _button(label: str, style: discord.ButtonStyle, custom_id: str) -> Dict[str, Any]:
    return {
        "type": discord.ComponentType.button.value,
        "style": style.value,
        "label": label,
        "custom_id": custom_id,
    }


def countdown_components() -> List[Dict[str, Any]]:
    return [
        {
            "type": discord.ComponentType.action_row.value,
            "components": [
                _button("Start", discord.ButtonStyle.success, START_ID),
                _button("Cancel", discord.ButtonStyle.danger, CANCEL_ID),
            ],
        }
    ]


async def handle_countdown(interaction: Interaction, services: Services) -> ImmediateMessage:
    embed = discord.Embed(title="Countdown", description="Ready to start the countdown?", color=BLURPLE)
    return ImmediateMessage(MessagePayload(embeds=[embed], components=countdown_components()))


async def handle_cancel(interaction: Interaction, services: Services) -> UpdateMessage:
    embed = discord.Embed(
        title="Countdown Cancelled",
        description="The countdown was cancelled by the user.",
        color=RED,
    )
    return UpdateMessage(MessagePayload(embeds=[embed], components=[]))


async def _countdown_work(services: Services, task: DeferredTask) -> MessagePayload:
    for remaining in range(COUNT_FROM, 0, -1):
        tick = discord.Embed(title="Countdown in Progress...", description=f"**{remaining}**", color=YELLOW)
        await services.deferred.progress(task, MessagePayload(embeds=[tick], components=[]))
        await asyncio.sleep(TICK_SECONDS)
    done = discord.Embed(title="Countdown Complete!", description="**Go!**", color=GREEN)
    return MessagePayload(embeds=[done], components=[])


async def handle_start(interaction: Interaction, services: Services) -> DeferredThenComplete:
    return DeferredThenComplete(
        partial(_countdown_work, services),
        error_message="An error occurred during the countdown.",
        update=True,
    )
