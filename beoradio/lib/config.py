"""
Shared configuration loader for the radio service.

Loads a single JSON config file.  Search order:
  1. $BEORADIO_CONFIG               (explicit override)
  2. /etc/beoradio/config.json      (deployed install)
  3. config.json                    (CWD — handy for local dev)

Every key is optional; a missing file means built-in defaults.

Usage:
    from beoradio.lib.config import cfg

    port         = cfg("port", default=8780)
    timeout      = cfg("preflight", "timeout", default=4.0)
    streams      = cfg("streams")  # returns the whole list
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/beoradio/config.json",
    "config.json",
]


def _search_paths() -> list[str]:
    override = os.environ.get("BEORADIO_CONFIG")
    if override:
        return [override] + _SEARCH_PATHS
    return list(_SEARCH_PATHS)


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    streams = config.get("streams")
    ids = set()
    if streams is not None:
        if not isinstance(streams, list):
            logger.warning("Config %s: 'streams' must be a list — using built-in catalog", path)
        else:
            for entry in streams:
                if not isinstance(entry, dict) or not entry.get("id") or not entry.get("url"):
                    logger.warning("Config %s: stream entry without id/url: %r", path, entry)
                    continue
                ids.add(entry["id"])
    default_stream = config.get("default_stream")
    if default_stream and ids and default_stream not in ids:
        logger.warning("Config %s: default_stream '%s' is not in streams", path, default_stream)
    restart = config.get("restart")
    limit = restart.get("max_consecutive") if isinstance(restart, dict) else None
    if limit is not None:
        try:
            bad = int(limit) < 0
        except (TypeError, ValueError):
            bad = True
        if bad:
            logger.warning("Config %s: restart.max_consecutive must be >= 0 or null, got %r",
                           path, limit)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.info("No config.json found — using built-in defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("port")                          → config["port"]
    cfg("preflight", "timeout")          → config["preflight"]["timeout"]
    cfg("metadata", "timeout", default=15)  → config["metadata"]["timeout"] or 15
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        found = val.get(key)
        return found if found is not None else default
    return default


def cfg_number(section: str, key: str | None = None, *, default, cast=float):
    """Like cfg(), but converted with *cast*; unusable values fall back to *default*.

    cfg_number("preflight", "timeout", default=4.0)       → 4.0 for "soon"
    cfg_number("restart", "max_consecutive", default=None, cast=int)
    """
    val = cfg(section, key, default=default)
    if val is default:
        return default
    try:
        if isinstance(val, bool):
            raise TypeError("boolean is not a number")
        return cast(val)
    except (TypeError, ValueError):
        name = f"{section}.{key}" if key else section
        logger.warning("Config: %s=%r is not a number — using %r", name, val, default)
        return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
