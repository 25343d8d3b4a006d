"""Shared plumbing for the radio service: config, engine, volume, now-playing."""
