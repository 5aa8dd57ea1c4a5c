import logging
from typing import Optional

from src.analytics.cache import AuctionCache
from src.analytics.config import LOG_PREFIX, AnalyticsConfig, config
from src.analytics.formatters import format_auction_payload, format_win_payload
from src.analytics.records import AuctionRecord
from src.analytics.sampling import SamplingGate
from src.analytics.timers import Scheduler
from src.monitoring.metrics import PAYLOADS

logger = logging.getLogger(__name__)


class DeliveryScheduler:
    """
    Sends the two payload kinds and drives each record to "sent" and eviction.

    Per auction: idle -> armed (auctionEnd) -> sent (debounce fired) -> evicted
    (after the cleanup grace period). A failed post still reaches "sent";
    duplicate-send avoidance wins over delivery guarantees.
    """

    def __init__(self, cache: AuctionCache, transport, scheduler: Scheduler, gate: SamplingGate,
                 settings: AnalyticsConfig = config):
        self.cache = cache
        self.transport = transport
        self.scheduler = scheduler
        self.gate = gate
        self.settings = settings

    def arm(self, record: AuctionRecord) -> bool:
        """Start the debounce timer for a record. Re-arming is a no-op."""
        if record.armed or record.sent:
            return False
        record.armed = True
        self.scheduler.schedule(
            self.settings.send_delay_ms,
            lambda: self.send_auction(record.auction_id, record),
            name=f"send-auction:{record.auction_id}",
        )
        return True

    def send_auction(self, auction_id: str, record: Optional[AuctionRecord] = None):
        current = self.cache.get(auction_id)
        if current is None or current.sent:
            return
        if record is not None and current is not record:
            # The id was re-initialized after this timer was armed
            return

        if not self.gate.sampled:
            PAYLOADS.labels(kind="auction", outcome="suppressed").inc()
            self.mark_sent(current)
            return

        try:
            payload = format_auction_payload(current, self.settings, self.scheduler.now())
            self.transport.post(self.settings.auction_url, payload)
            PAYLOADS.labels(kind="auction", outcome="sent").inc()
        except Exception as e:
            PAYLOADS.labels(kind="auction", outcome="failed").inc()
            logger.error(f"{LOG_PREFIX}Failed to send auction analytics for {auction_id}: {e}")
        finally:
            self.mark_sent(current)

    def send_win(self, record: AuctionRecord, ad_unit_code: str) -> bool:
        """Post a win payload for one slot right away. Not debounced."""
        if not self.settings.send_win_events or record.sent:
            return False
        if not self.gate.sampled:
            PAYLOADS.labels(kind="win", outcome="suppressed").inc()
            return False

        try:
            payload = format_win_payload(record, ad_unit_code, self.settings, self.scheduler.now())
            if payload is None:
                return False
            self.transport.post(self.settings.win_url, payload)
            PAYLOADS.labels(kind="win", outcome="sent").inc()
            return True
        except Exception as e:
            PAYLOADS.labels(kind="win", outcome="failed").inc()
            logger.error(f"{LOG_PREFIX}Error sending win analytics for {record.auction_id}/{ad_unit_code}: {e}")
            return False

    def mark_sent(self, record: AuctionRecord):
        record.sent = True
        self.scheduler.schedule(
            self.settings.cleanup_delay_ms,
            lambda: self.cache.remove(record.auction_id, record),
            name=f"evict:{record.auction_id}",
        )

    def cancel_all(self):
        self.scheduler.cancel_all()
