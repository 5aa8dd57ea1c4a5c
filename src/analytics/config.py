import logging
import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOG_PREFIX = "Kargo Analytics: "

# Host option names -> dataclass fields
_OPTION_ALIASES = {
    "sampling": "sampling",
    "sendWinEvents": "send_win_events",
    "sendDelay": "send_delay_ms",
    "cleanupDelay": "cleanup_delay_ms",
    "endpoint": "endpoint_base",
}


@dataclass(frozen=True)
class AnalyticsConfig:
    """Configuration for the auction analytics adapter."""
    # Percentage of sessions whose payloads are delivered (0 disables delivery)
    sampling: float = 100
    send_win_events: bool = True
    # Delay between auctionEnd and the auction post, lets late bidWon events land
    send_delay_ms: int = 500
    # Grace period between "sent" and eviction from the cache
    cleanup_delay_ms: int = 30_000

    endpoint_base: str = "https://krk.kargo.com/api/v2/analytics"
    own_bidder_code: str = "kargo"
    analytics_version: str = "2.0"
    client_version: str = "1.0.0"

    # Payload size control
    max_advertiser_domains: int = 5
    http_timeout_s: float = 2.0

    @property
    def auction_url(self) -> str:
        return f"{self.endpoint_base.rstrip('/')}/auction"

    @property
    def win_url(self) -> str:
        return f"{self.endpoint_base.rstrip('/')}/win"

    @classmethod
    def from_options(cls, options: Optional[Dict[str, Any]] = None) -> "AnalyticsConfig":
        """
        Build a config from host-supplied options.

        Accepts both the host's camelCase option names and the field names.
        Unknown keys are ignored; invalid values fall back to the defaults.
        """
        base = cls()
        if not options:
            return base

        known = {f.name for f in fields(cls)}
        overrides: Dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in known:
                overrides[name] = value

        if "sampling" in overrides:
            overrides["sampling"] = _validate_sampling(overrides["sampling"], base.sampling)
        if "send_delay_ms" in overrides:
            overrides["send_delay_ms"] = _validate_delay(overrides["send_delay_ms"], base.send_delay_ms)
        if "cleanup_delay_ms" in overrides:
            overrides["cleanup_delay_ms"] = _validate_delay(overrides["cleanup_delay_ms"], base.cleanup_delay_ms)
        if "send_win_events" in overrides:
            overrides["send_win_events"] = _validate_flag(overrides["send_win_events"], base.send_win_events)

        return replace(base, **overrides)


def _validate_sampling(value: Any, default: float) -> float:
    try:
        # A boolean is not a percentage
        rate = math.nan if isinstance(value, bool) else float(value)
    except (TypeError, ValueError):
        rate = math.nan
    if math.isnan(rate) or rate < 0 or rate > 100:
        logger.warning(f"{LOG_PREFIX}Invalid sampling rate {value!r}, using {default}%")
        return default
    return rate


def _validate_delay(value: Any, default: int) -> int:
    try:
        delay = 0 if isinstance(value, bool) else int(value)
    except (TypeError, ValueError):
        delay = 0
    if delay <= 0:
        logger.warning(f"{LOG_PREFIX}Invalid delay {value!r}, using {default}ms")
        return default
    return delay


_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off")


def _validate_flag(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    logger.warning(f"{LOG_PREFIX}Invalid flag {value!r}, using {default}")
    return default


# Global default config instance
config = AnalyticsConfig()
