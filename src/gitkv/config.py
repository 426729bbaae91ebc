"""Configuration for the gitkv database."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class GitKVConfig:
    """Configuration for a gitkv repository connection."""

    api_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    request_timeout_s: float = 10.0
    max_workers: int = 16
    gc_batch_size: int = 50
    content_cache_max_entries: int = 1024
    content_cache_max_bytes: int = 1024 * 1024
    content_cache_max_entry_bytes: int = 1024
    message_cache_max_entries: int = 4096
    cdn_enabled: bool = True
