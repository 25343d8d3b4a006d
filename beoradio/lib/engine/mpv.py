"""
mpv media engine — plays a stream URL in an mpv subprocess.

mpv is launched with a JSON IPC socket; commands go out as one JSON object
per line and events come back the same way:

  playback-restart            → READY (first one only)
  end-file reason=eof         → ENDED
  end-file reason=error       → FAILED (file_error as reason)
  property-change "metadata"  → METADATA (icy-title, then title)
  IPC EOF while running       → FAILED ("mpv exited")
"""

import asyncio
import json
import logging
import os
import subprocess
import tempfile
from itertools import count

from ...errors import EngineFailed
from .base import EngineEvent, MediaEngine

log = logging.getLogger(__name__)

_instance_ids = count(1)

METADATA_KEYS = ("icy-title", "title", "TITLE")
METADATA_OBSERVE_ID = 1


class MpvEngine(MediaEngine):
    CONNECT_ATTEMPTS = 50   # × 0.1 s
    TERMINATE_TIMEOUT = 2

    def __init__(self, url, headers, on_event, *, binary: str = "mpv",
                 audio_output: str | None = None, ipc_dir: str | None = None):
        super().__init__(url, headers, on_event)
        self._binary = binary
        self._audio_output = audio_output
        self._ipc_socket = os.path.join(
            ipc_dir or tempfile.gettempdir(),
            f"beoradio-mpv-{os.getpid()}-{next(_instance_ids)}.sock")
        self.process: subprocess.Popen | None = None
        self._ipc_reader: asyncio.StreamReader | None = None
        self._ipc_writer: asyncio.StreamWriter | None = None
        self._ipc_task: asyncio.Task | None = None
        self._volume = 1.0
        self._ready = False
        self._finished = False
        self._closing = False

    # ── mpv lifecycle ──

    def _command_line(self) -> list[str]:
        cmd = [
            self._binary,
            "--no-video", "--no-terminal", "--idle=no",
            f"--input-ipc-server={self._ipc_socket}",
            f"--volume={round(self._volume * 100)}",
        ]
        if self._audio_output:
            cmd.append(f"--ao={self._audio_output}")
        user_agent = self.headers.get("User-Agent")
        if user_agent:
            cmd.append(f"--user-agent={user_agent}")
        # One flag per header; the plain list option splits values on commas
        for name, value in self.headers.items():
            if name != "User-Agent":
                cmd.append(f"--http-header-fields-append={name}: {value}")
        cmd.append(self.url)
        return cmd

    async def start(self) -> None:
        try:
            os.unlink(self._ipc_socket)
        except FileNotFoundError:
            pass

        try:
            self.process = subprocess.Popen(
                self._command_line(),
                stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise EngineFailed(f"cannot launch {self._binary}: {e}") from e

        # Wait for IPC socket and connect
        for _ in range(self.CONNECT_ATTEMPTS):
            await asyncio.sleep(0.1)
            if self.process.poll() is not None:
                raise EngineFailed("mpv exited immediately")
            if os.path.exists(self._ipc_socket):
                try:
                    self._ipc_reader, self._ipc_writer = \
                        await asyncio.open_unix_connection(self._ipc_socket)
                    break
                except (ConnectionRefusedError, FileNotFoundError):
                    continue
        else:
            await self.close()
            raise EngineFailed("could not connect to mpv IPC")

        self._send({"command": ["observe_property", METADATA_OBSERVE_ID, "metadata"]})
        self._ipc_task = asyncio.create_task(self._read_ipc_events())
        log.info("mpv launched (pid %d) for %s", self.process.pid, self.url)

    async def close(self) -> None:
        self._closing = True
        if self._ipc_task:
            self._ipc_task.cancel()
            try:
                await self._ipc_task
            except asyncio.CancelledError:
                pass
            self._ipc_task = None
        self._send({"command": ["quit"]})
        await self._close_ipc()
        if self.process:
            self.process.terminate()
            try:
                await asyncio.get_running_loop().run_in_executor(
                    None, self.process.wait, self.TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                self.process.kill()
            self.process = None
        try:
            os.unlink(self._ipc_socket)
        except FileNotFoundError:
            pass

    # ── Controls ──

    def pause(self) -> None:
        self._send({"command": ["set_property", "pause", True]})

    def resume(self) -> None:
        self._send({"command": ["set_property", "pause", False]})

    def set_volume(self, volume: float) -> None:
        self._volume = volume
        self._send({"command": ["set_property", "volume", round(volume * 100, 1)]})

    # ── IPC communication ──

    def _send(self, cmd_obj):
        if not self._ipc_writer or self._ipc_writer.is_closing():
            return
        try:
            self._ipc_writer.write(json.dumps(cmd_obj).encode() + b"\n")
        except (ConnectionError, RuntimeError) as e:
            log.error("mpv IPC send error: %s", e)

    async def _close_ipc(self):
        if self._ipc_writer:
            try:
                self._ipc_writer.close()
                await self._ipc_writer.wait_closed()
            except (ConnectionError, OSError):
                pass
        self._ipc_reader = None
        self._ipc_writer = None

    async def _read_ipc_events(self):
        """Background task — turns mpv IPC events into engine events."""
        try:
            while self._ipc_reader:
                line = await self._ipc_reader.readline()
                if not line:
                    break  # EOF, mpv closed
                try:
                    msg = json.loads(line)
                except json.JSONDecodeError:
                    continue
                self._handle_message(msg)
        except asyncio.CancelledError:
            return
        except (ConnectionError, OSError) as e:
            log.debug("IPC reader ended: %s", e)

        if not self._closing and not self._finished:
            self._finished = True
            self.emit(EngineEvent.failed("mpv exited"))

    def _handle_message(self, msg: dict):
        event = msg.get("event")
        if event == "playback-restart":
            if not self._ready:
                self._ready = True
                self.emit(EngineEvent.ready())
        elif event == "end-file":
            reason = msg.get("reason")
            if reason == "eof":
                self._finished = True
                self.emit(EngineEvent.ended())
            elif reason == "error":
                self._finished = True
                self.emit(EngineEvent.failed(msg.get("file_error") or "unknown error"))
        elif event == "property-change" and msg.get("name") == "metadata":
            data = msg.get("data")
            if isinstance(data, dict):
                values = [data[k] for k in METADATA_KEYS if isinstance(data.get(k), str)]
                if values:
                    self.emit(EngineEvent.metadata(*values))
