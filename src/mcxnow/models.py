"""Typed payload, state and notification models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel


class MCXNowModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RateSnapshot(MCXNowModel):
    """Body of ``GET /rate``. Rows are free-form; non-mapping rows are skipped later."""

    data: list[Any] = Field(default_factory=list)


class RateUpdate(RootModel[dict[str, Any]]):
    """``rateUpdate`` event data: symbol -> partial row."""


class ServerErrorPayload(MCXNowModel):
    error: Any = None

    @property
    def message(self) -> str:
        if self.error is None:
            return "Server error"
        return str(self.error)


class ChangeType(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STREAM_CONNECTING = "stream_connecting"
    LIVE_ACTIVE = "live_active"
    RECONNECTING = "reconnecting"


_PHASE_LABELS = {
    ConnectionPhase.DISCONNECTED: "Disconnected",
    ConnectionPhase.CONNECTING: "Connecting...",
    ConnectionPhase.CONNECTED: "Connected",
    ConnectionPhase.STREAM_CONNECTING: "Connecting to live updates...",
    ConnectionPhase.LIVE_ACTIVE: "Live updates active",
}


class ConnectionState(MCXNowModel):
    model_config = ConfigDict(frozen=True)

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    reason: str | None = None

    @property
    def label(self) -> str:
        if self.phase is ConnectionPhase.RECONNECTING:
            return f"Reconnecting ({self.reason or 'unknown'})..."
        return _PHASE_LABELS[self.phase]


@dataclass(frozen=True)
class StateChanged:
    state: ConnectionState


@dataclass(frozen=True)
class QuotesUpdated:
    symbols: tuple[str, ...]
    snapshot: bool = False


@dataclass(frozen=True)
class ErrorRaised:
    message: str
    error: Exception | None = None


@dataclass(frozen=True)
class ReconnectScheduled:
    delay: float
    reason: str


Notification = Union[StateChanged, QuotesUpdated, ErrorRaised, ReconnectScheduled]
