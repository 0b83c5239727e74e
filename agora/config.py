"""
agora.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for **infrastructure-only** settings (site identity,
API port, listing and topic limits).  Secrets and the database DSN come
from environment variables (``.env``), never from this file.

Usage::

    from agora.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.site_name)         # "Agora"
    print(cfg.max_topic_options) # 10
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True, slots=True)
class AgoraConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str

    # API
    api_port: int

    # Topics
    max_topic_options: int  # Upper bound on options of a MULTI_CHOICE topic

    # Listings
    default_page_size: int = 20


def load_config(path: str | Path = "config.yaml") -> AgoraConfig:
    """Read *path* and return an :class:`AgoraConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return AgoraConfig(
        site_name=raw["site_name"],
        api_port=int(raw["api_port"]),
        max_topic_options=int(raw["max_topic_options"]),
        default_page_size=int(raw.get("default_page_size", 20)),
    )
