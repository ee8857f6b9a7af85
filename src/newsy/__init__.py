"""Newsy package exposing configuration, storage, API, and service helpers."""

from __future__ import annotations

from .config import NewsyConfig, load_config, load_env_file

load_env_file()

__all__ = ["NewsyConfig", "load_config"]
