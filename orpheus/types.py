"""
Interaction, message and response types shared by the dispatcher and commands.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING, Union

import discord
from discord.enums import try_enum

if TYPE_CHECKING:
    from .deferred import DeferredTask

EPHEMERAL = discord.MessageFlags(ephemeral=True).value

# Discord application command option types
OPTION_SUB_COMMAND = 1
OPTION_SUB_COMMAND_GROUP = 2


@dataclass(frozen=True)
class CommandOption:
    name: str
    type: int
    value: Any = None
    options: Tuple["CommandOption", ...] = ()

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CommandOption":
        return cls(
            name=data["name"],
            type=int(data.get("type", 3)),
            value=data.get("value"),
            options=tuple(cls.from_payload(o) for o in data.get("options") or ()),
        )


@dataclass(frozen=True)
class Interaction:
    """One inbound user-triggered event, parsed once from the verified body."""

    id: str
    type: discord.InteractionType
    token: str
    application_id: str
    user_id: Optional[str] = None
    guild_id: Optional[str] = None
    command_name: Optional[str] = None
    custom_id: Optional[str] = None
    options: Tuple[CommandOption, ...] = ()
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    received_at: float = field(default_factory=time.monotonic, compare=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Interaction":
        data = payload.get("data") or {}
        # Guild interactions carry member.user, DMs carry user
        user = (payload.get("member") or {}).get("user") or payload.get("user") or {}
        return cls(
            id=str(payload["id"]),
            type=try_enum(discord.InteractionType, int(payload["type"])),
            token=payload.get("token", ""),
            application_id=str(payload.get("application_id", "")),
            user_id=str(user["id"]) if user.get("id") else None,
            guild_id=str(payload["guild_id"]) if payload.get("guild_id") else None,
            command_name=data.get("name"),
            custom_id=data.get("custom_id"),
            options=tuple(CommandOption.from_payload(o) for o in data.get("options") or ()),
            raw=payload,
        )

    @property
    def subcommand(self) -> Optional[CommandOption]:
        for opt in self.options:
            if opt.type in (OPTION_SUB_COMMAND, OPTION_SUB_COMMAND_GROUP):
                return opt
        return None

    def option(self, name: str, default: Any = None) -> Any:
        """Value of a top-level option (or of the active sub-command's option)."""
        scope = self.subcommand.options if self.subcommand else self.options
        for opt in scope:
            if opt.name == name:
                return opt.value
        return default


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes
    content_type: str = "image/png"


@dataclass
class MessagePayload:
    content: Optional[str] = None
    embeds: List[discord.Embed] = field(default_factory=list)
    components: Optional[List[Dict[str, Any]]] = None
    ephemeral: bool = False
    attachment: Optional[Attachment] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"embeds": [e.to_dict() for e in self.embeds]}
        if self.content is not None:
            body["content"] = self.content
        if self.components is not None:
            body["components"] = self.components
        if self.ephemeral:
            body["flags"] = EPHEMERAL
        if self.attachment is not None:
            body["attachments"] = [{"id": 0, "filename": self.attachment.filename}]
        return body

    def to_request_kwargs(self) -> Dict[str, Any]:
        """httpx request kwargs: JSON body, or multipart with payload_json when a file is attached."""
        if self.attachment is None:
            return {"json": self.to_dict()}
        return {
            "data": {"payload_json": json.dumps(self.to_dict())},
            "files": {
                "files[0]": (
                    self.attachment.filename,
                    self.attachment.data,
                    self.attachment.content_type,
                )
            },
        }


# --- Response variants -----------------------------------------------------

DeferredWork = Callable[["DeferredTask"], Awaitable[MessagePayload]]


@dataclass(frozen=True)
class Pong:
    pass


@dataclass(frozen=True)
class ImmediateMessage:
    payload: MessagePayload


@dataclass(frozen=True)
class UpdateMessage:
    """Edit the message a component is attached to, synchronously."""

    payload: MessagePayload


@dataclass(frozen=True)
class DeferredThenComplete:
    work: DeferredWork
    error_message: str = "Sorry, an unexpected error occurred."
    # Component clicks defer as a message update instead of a new message
    update: bool = False


InteractionResponse = Union[Pong, ImmediateMessage, UpdateMessage, DeferredThenComplete]


def message(content: str, *, ephemeral: bool = False) -> ImmediateMessage:
    return ImmediateMessage(MessagePayload(content=content, ephemeral=ephemeral))
