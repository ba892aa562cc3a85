"""Session synchronization configuration via environment variables."""

from pydantic import field_validator
from pydantic_settings import BaseSettings


class RoomSyncSettings(BaseSettings):
    model_config = {"env_prefix": "ROOMSYNC_"}

    tick_seconds: float = 1.0
    multi_room: bool = False
    default_game_mode: str | None = None  # created when no room can be rejoined
    origin: str = "http://localhost:3030"
    log_dir: str | None = None

    @field_validator("tick_seconds")
    @classmethod
    def validate_tick_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("tick_seconds must be positive")
        return v

    @field_validator("origin")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        stripped = v.strip().rstrip("/")
        if not stripped:
            raise ValueError("origin must not be empty")
        return stripped

    @field_validator("default_game_mode", "log_dir", mode="before")
    @classmethod
    def empty_as_unset(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v
