import logging
import random
from typing import Any, Callable, Dict, Optional

from src.analytics.cache import AuctionCache
from src.analytics.config import LOG_PREFIX, AnalyticsConfig
from src.analytics.delivery import DeliveryScheduler
from src.analytics.handlers import EventHandlers
from src.analytics.host import HostBridge
from src.analytics.sampling import SamplingGate
from src.analytics.schema import EventType
from src.analytics.timers import Scheduler
from src.monitoring.metrics import EVENTS_TRACKED, HANDLER_ERRORS

logger = logging.getLogger(__name__)

ADAPTER_CODE = "kargo"


class AnalyticsAdapter:
    """
    Auction analytics adapter.

    Owns the aggregation state for one adapter lifetime: the auction cache,
    the ingestion handlers and the delivery scheduler.

    Attributes:
        cache (AuctionCache): Live auction records.
        handlers (EventHandlers): Per-event ingestion handlers.
        delivery (DeliveryScheduler): Debounced auction sends, win sends, eviction.
        gate (SamplingGate): Session sampling decision.
    """

    code = ADAPTER_CODE

    def __init__(self, transport, scheduler: Scheduler, host: Optional[HostBridge] = None,
                 rng: Callable[[], float] = random.random):
        self.cache = AuctionCache()
        self.gate = SamplingGate(rng)
        self.delivery = DeliveryScheduler(self.cache, transport, scheduler, self.gate, AnalyticsConfig())
        self.handlers = EventHandlers(self.cache, self.delivery, host or HostBridge())
        self.enabled = False

    @property
    def settings(self) -> AnalyticsConfig:
        return self.delivery.settings

    @property
    def sampled(self) -> bool:
        return self.gate.sampled

    def enable_analytics(self, options: Optional[Dict[str, Any]] = None):
        """
        Apply configuration and draw the session sampling decision.

        Args:
            options (dict): Host options (sampling, sendWinEvents, sendDelay, ...).
        """
        settings = AnalyticsConfig.from_options(options)
        self.delivery.settings = settings
        self.gate.decide(settings.sampling)
        self.enabled = True
        logger.info(
            f"{LOG_PREFIX}enabled (sampling={settings.sampling}%, "
            f"sendWinEvents={settings.send_win_events}, sendDelay={settings.send_delay_ms}ms)"
        )

    def disable_analytics(self):
        """Cancel pending timers, drop all cached auctions and reset configuration."""
        self.delivery.cancel_all()
        self.cache.clear()
        self.delivery.settings = AnalyticsConfig()
        self.gate.reset()
        self.enabled = False
        logger.info(f"{LOG_PREFIX}disabled")

    def track(self, event_type: Any, args: Any = None) -> bool:
        """
        Feed one host lifecycle event into the pipeline.

        Unknown event kinds are ignored. Never raises: a failing event is
        logged with its kind and processing continues with the next one.

        Returns:
            bool: True when the event kind was recognised and dispatched.
        """
        if not self.enabled:
            return False
        try:
            kind = EventType(event_type)
        except ValueError:
            return False

        EVENTS_TRACKED.labels(event=kind.value).inc()
        try:
            self.handlers.dispatch(kind, args)
        except Exception as e:
            HANDLER_ERRORS.labels(event=kind.value).inc()
            logger.error(f"{LOG_PREFIX}Error handling {kind.value}: {e}", exc_info=True)
        return True
