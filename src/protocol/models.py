from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from rtcv.credentials import Credentials


# --------------- Commands (stdin) ---------------
class SecretQuery(BaseModel):
    encryption_key: str
    key: Optional[str] = None


class SetCredentials(BaseModel):
    type: Literal["set_credentials"]
    content: Credentials


class SendCv(BaseModel):
    type: Literal["send_cv"]
    # Shape is checked by the send_cv handler
    content: Any = None


class GetSecret(BaseModel):
    type: Literal["get_secret"]
    content: SecretQuery


class GetUsersSecret(BaseModel):
    type: Literal["get_users_secret"]
    content: SecretQuery


class GetUserSecret(BaseModel):
    type: Literal["get_user_secret"]
    content: SecretQuery


class SetCachedReference(BaseModel):
    type: Literal["set_cached_reference"]
    content: str


class SetShortCachedReference(BaseModel):
    type: Literal["set_short_cached_reference"]
    content: str


class HasCachedReference(BaseModel):
    type: Literal["has_cached_reference"]
    content: str


class Ping(BaseModel):
    type: Literal["ping"]


Command = Annotated[
    Union[
        SetCredentials,
        SendCv,
        GetSecret,
        GetUsersSecret,
        GetUserSecret,
        SetCachedReference,
        SetShortCachedReference,
        HasCachedReference,
        Ping,
    ],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(line: str) -> Command:
    """Decode one stdin line. Raises pydantic.ValidationError on bad input."""
    return _command_adapter.validate_json(line)


# --------------- Responses (stdout) ---------------
class Ready(BaseModel):
    type: Literal["ready"] = "ready"
    content: str


class Pong(BaseModel):
    type: Literal["pong"] = "pong"


class Ok(BaseModel):
    """Success; `content` is omitted from the wire when None."""

    type: Literal["ok"] = "ok"
    content: Any = None


class Error(BaseModel):
    type: Literal["error"] = "error"
    content: str


Response = Union[Ready, Pong, Ok, Error]


def encode_response(response: Response) -> str:
    """Render a response as a single JSON line (no trailing newline)."""
    data = response.model_dump(mode="json")
    if data.get("content", "") is None:
        del data["content"]
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "Command",
    "Credentials",
    "Error",
    "GetSecret",
    "GetUserSecret",
    "GetUsersSecret",
    "HasCachedReference",
    "Ok",
    "Ping",
    "Pong",
    "Ready",
    "Response",
    "SecretQuery",
    "SendCv",
    "SetCachedReference",
    "SetCredentials",
    "SetShortCachedReference",
    "encode_response",
    "parse_command",
]
