"""
VolumeStore — the one piece of state that survives a restart.

Backed by a small JSON key-value file (config "volume.state_file", default
~/.local/state/beoradio/state.json).  Writes go through a temp file and a
rename so a crash never leaves a half-written file behind.
"""

import json
import logging
import os
import tempfile

from .config import cfg

log = logging.getLogger(__name__)

VOLUME_KEY = "player.volume"
DEFAULT_VOLUME = 1.0
DEFAULT_STATE_FILE = os.path.join("~", ".local", "state", "beoradio", "state.json")


def clamp_volume(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class VolumeStore:
    def __init__(self, path: str | None = None):
        self.path = os.path.expanduser(
            path or cfg("volume", "state_file", default=DEFAULT_STATE_FILE))

    def _read_all(self) -> dict:
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Could not read %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> float:
        """Persisted volume (clamped), or 1.0 when nothing was saved."""
        value = self._read_all().get(VOLUME_KEY)
        if value is None:
            return DEFAULT_VOLUME
        try:
            return clamp_volume(value)
        except (TypeError, ValueError):
            log.warning("Ignoring invalid %s=%r in %s", VOLUME_KEY, value, self.path)
            return DEFAULT_VOLUME

    def save(self, volume: float) -> None:
        data = self._read_all()
        data[VOLUME_KEY] = clamp_volume(volume)
        directory = os.path.dirname(self.path) or "."
        tmp = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".state-", suffix=".json")
            with os.fdopen(fd, "w") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            log.error("Could not persist volume to %s: %s", self.path, e)
            if tmp is not None:
                try:
                    os.unlink(tmp)
                except FileNotFoundError:
                    pass
