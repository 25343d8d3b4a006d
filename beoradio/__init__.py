# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
beoradio — internet radio player service.

Plays one of a few internet radio streams through an external mpv process
and keeps a "now playing" description current from out-of-band metadata:

  catalog.py     — the fixed set of streams and their metadata strategy
  controller.py  — playback state machine (preflight, restart, switching)
  metadata/      — ICY frame parser, JSON episode poller, embedded tags
  lib/engine/    — media engine interface + mpv IPC implementation
  service.py     — aiohttp HTTP intents + WebSocket state feed
"""

__version__ = "1.0.0"
