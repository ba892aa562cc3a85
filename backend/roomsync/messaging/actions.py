"""Typed room actions sent from the client to a room's game mode.

Each variant knows its wire payload: a single-key mapping for actions that
carry data, a bare string tag for ``start`` and ``ready``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

_SPACE_ORD = 0x20
_DEL_ORD = 0x7F


def _reject_control_chars(v: str) -> str:
    if any((ord(c) < _SPACE_ORD and c not in ("\t", "\n", "\r")) or ord(c) == _DEL_ORD for c in v):
        raise ValueError("text must not contain control characters")
    return v


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class SetNickAction(_Action):
    kind: Literal["nick"] = "nick"
    nick: str = Field(min_length=1, max_length=100)

    @field_validator("nick")
    @classmethod
    def _validate_nick(cls, v: str) -> str:
        return _reject_control_chars(v)

    def to_payload(self) -> dict[str, Any]:
        return {"nick": self.nick}


class UpdateSettingsAction(_Action):
    kind: Literal["settings"] = "settings"
    settings: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"settings": self.settings}


class SetTitleAction(_Action):
    kind: Literal["title"] = "title"
    title: str = Field(max_length=200)

    def to_payload(self) -> dict[str, Any]:
        return {"title": self.title}


class ChatAction(_Action):
    kind: Literal["chat"] = "chat"
    chat: str = Field(min_length=1, max_length=1000)

    @field_validator("chat")
    @classmethod
    def _validate_chat(cls, v: str) -> str:
        return _reject_control_chars(v)

    def to_payload(self) -> dict[str, Any]:
        return {"chat": self.chat}


class ProposeQuestionAction(_Action):
    kind: Literal["question"] = "question"
    question: str = Field(min_length=1, max_length=1000)

    def to_payload(self) -> dict[str, Any]:
        return {"question": {"open": self.question}}


class GuessAction(_Action):
    kind: Literal["guess"] = "guess"
    guess: str

    def to_payload(self) -> dict[str, Any]:
        return {"guess": self.guess}


class StartAction(_Action):
    kind: Literal["start"] = "start"

    def to_payload(self) -> str:
        return "start"


class ReadyAction(_Action):
    kind: Literal["ready"] = "ready"

    def to_payload(self) -> str:
        return "ready"


RoomAction = Annotated[
    SetNickAction
    | UpdateSettingsAction
    | SetTitleAction
    | ChatAction
    | ProposeQuestionAction
    | GuessAction
    | StartAction
    | ReadyAction,
    Field(discriminator="kind"),
]

_action_adapter: TypeAdapter[RoomAction] = TypeAdapter(RoomAction)


def parse_action(payload: dict[str, Any] | str) -> RoomAction:
    """Rebuild a typed action from its wire payload.

    Raises ValueError (pydantic ValidationError) for unknown shapes.
    """
    if isinstance(payload, str):
        return _action_adapter.validate_python({"kind": payload})
    if len(payload) != 1:
        raise ValueError(f"action payload must have exactly one key, got {sorted(payload)}")
    ((key, value),) = payload.items()
    if key == "question":
        if not isinstance(value, dict) or "open" not in value:
            raise ValueError("question payload must be {'open': <text>}")
        value = value["open"]
    return _action_adapter.validate_python({"kind": key, key: value})
