"""
Delivery configuration.

Broadcaster credentials come from the environment and are never logged.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DISCORD_API_BASE = "https://discord.com/api/v10"


@dataclass
class DiscordConfig:
    """Discord broadcaster configuration."""

    enabled: bool = True
    bot_token: str = field(default="", repr=False)  # From DISCORD_BOT_TOKEN env var
    api_base: str = DISCORD_API_BASE
    timeout_s: float = 10.0
    max_retries: int = 2
    max_retry_after_s: float = 5.0  # Cap on honoured 429 retry_after

    def __post_init__(self) -> None:
        if self.enabled:
            if not self.bot_token:
                self.bot_token = os.environ.get("DISCORD_BOT_TOKEN", "")
            if not self.bot_token:
                raise ValueError("DISCORD_BOT_TOKEN required when Discord broadcaster enabled")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        self.api_base = self.api_base.rstrip("/")


@dataclass
class DeliveryConfig:
    """Main delivery configuration."""

    discord: DiscordConfig = field(default_factory=lambda: DiscordConfig(enabled=False))

    # Dry run mode: build and log messages but don't send
    dry_run: bool = False
