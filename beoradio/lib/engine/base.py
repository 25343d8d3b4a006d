# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Abstract base class for media engines.

An engine turns one stream URL into audible output and reports lifecycle
events through the callback it was constructed with.  Events must be
delivered on the event loop; the controller is their only consumer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable


class EngineEventKind(Enum):
    READY = "ready"          # audio is flowing
    ENDED = "ended"          # reached end of stream
    FAILED = "failed"        # unrecoverable error
    METADATA = "metadata"    # timed text metadata surfaced by the demuxer


@dataclass(frozen=True)
class EngineEvent:
    kind: EngineEventKind
    reason: str = ""
    values: tuple[str, ...] = field(default=())

    @classmethod
    def ready(cls) -> "EngineEvent":
        return cls(EngineEventKind.READY)

    @classmethod
    def ended(cls) -> "EngineEvent":
        return cls(EngineEventKind.ENDED)

    @classmethod
    def failed(cls, reason: str) -> "EngineEvent":
        return cls(EngineEventKind.FAILED, reason=reason)

    @classmethod
    def metadata(cls, *values: str) -> "EngineEvent":
        return cls(EngineEventKind.METADATA, values=tuple(values))


EventCallback = Callable[[EngineEvent], None]


class MediaEngine(ABC):
    """Interface every media engine must implement."""

    def __init__(self, url: str, headers: dict[str, str], on_event: EventCallback):
        self.url = url
        self.headers = dict(headers)
        self._on_event = on_event

    def emit(self, event: EngineEvent) -> None:
        self._on_event(event)

    @abstractmethod
    async def start(self) -> None:
        """Begin playback.  Raises EngineFailed if the engine cannot start."""

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def resume(self) -> None: ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Apply *volume* (0.0–1.0) immediately."""

    @abstractmethod
    async def close(self) -> None:
        """Release every resource.  Safe to call more than once."""


EngineFactory = Callable[[str, dict, EventCallback], MediaEngine]
