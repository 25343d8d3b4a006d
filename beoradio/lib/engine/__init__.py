"""
Pluggable media engines.

The factory function ``create_engine_factory`` reads config.json and returns
a callable ``(url, headers, on_event) -> MediaEngine`` used by the
controller to build one engine per playback session.

Supported engines:
  - ``mpv`` – mpv subprocess driven over its JSON IPC socket (default)
"""

import functools
import logging

from ..config import cfg
from .base import EngineEvent, EngineEventKind, EngineFactory, MediaEngine
from .mpv import MpvEngine

logger = logging.getLogger(__name__)

__all__ = [
    "EngineEvent",
    "EngineEventKind",
    "EngineFactory",
    "MediaEngine",
    "MpvEngine",
    "create_engine_factory",
]


def create_engine_factory() -> EngineFactory:
    """Build the engine factory from config.json "engine" section:

      binary        – mpv executable (default "mpv")
      audio_output  – mpv --ao value, e.g. "pulse" (default: mpv's choice)
      ipc_dir       – directory for the IPC socket (default: system temp dir)
    """
    binary = cfg("engine", "binary", default="mpv")
    audio_output = cfg("engine", "audio_output")
    ipc_dir = cfg("engine", "ipc_dir")
    logger.info("Media engine: %s%s", binary,
                f" (ao={audio_output})" if audio_output else "")
    return functools.partial(
        MpvEngine, binary=binary, audio_output=audio_output, ipc_dir=ipc_dir)
