import functools
import logging
from typing import List

from src.analytics.cache import AuctionCache
from src.analytics.config import LOG_PREFIX, AnalyticsConfig
from src.analytics.delivery import DeliveryScheduler
from src.analytics.extractors import convert_to_usd, extract_consent, extract_sizes
from src.analytics.host import HostBridge
from src.analytics.records import AdUnitRecord, BidRecord, BidStatus, WinnerRecord
from src.analytics.schema import (
    AuctionEndEvent,
    AuctionInitEvent,
    BidderDoneEvent,
    BidderErrorEvent,
    BidRequestedEvent,
    BidResponseEvent,
    BidTimeoutEntry,
    BidWonEvent,
    EventType,
    NoBidEvent,
    decode_event,
)
from src.monitoring.metrics import HANDLER_ERRORS
from src.utils.validation import Validator

logger = logging.getLogger(__name__)


def _absorbs_errors(event_type: EventType):
    """One bad event must never interrupt the events after it."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, event):
            try:
                fn(self, event)
            except Exception as e:
                HANDLER_ERRORS.labels(event=event_type.value).inc()
                logger.error(f"{LOG_PREFIX}Error handling {event_type.value}: {e}", exc_info=True)
        return wrapper
    return decorator


class EventHandlers:
    """
    Ingestion handlers, one per lifecycle event.

    Each handler mutates the cached record for its auction id in place and
    silently no-ops when the auction (or the ad slot) is unknown: either it
    was never initialized or it has already been evicted.
    """

    def __init__(self, cache: AuctionCache, delivery: DeliveryScheduler, host: HostBridge):
        self.cache = cache
        self.delivery = delivery
        self.host = host

    @property
    def settings(self) -> AnalyticsConfig:
        return self.delivery.settings

    def now(self) -> float:
        return self.delivery.scheduler.now()

    def dispatch(self, event_type: EventType, args):
        event = decode_event(event_type, args)
        HANDLERS[event_type](self, event)

    def _to_usd(self, cpm, currency):
        return convert_to_usd(cpm, currency, self.host.convert_currency)

    @_absorbs_errors(EventType.AUCTION_INIT)
    def auction_init(self, event: AuctionInitEvent):
        if not event.auctionId:
            logger.warning(f"{LOG_PREFIX}auctionInit missing auctionId")
            return

        first_request = event.bidderRequests[0] if event.bidderRequests else None
        record = self.cache.create(
            event.auctionId,
            created_at=self.now(),
            timeout=event.timeout,
            bidder_requests=[br.bidderCode for br in event.bidderRequests],
            consent=extract_consent(first_request),
            page_url=first_request.page_url if first_request else None,
        )

        for ad_unit in event.adUnits:
            if not ad_unit.code:
                continue
            record.ad_units[ad_unit.code] = AdUnitRecord(
                code=ad_unit.code,
                media_types=list(ad_unit.mediaTypes),
                sizes=ad_unit.sizes if ad_unit.sizes is not None else extract_sizes(ad_unit.mediaTypes),
            )

    @_absorbs_errors(EventType.BID_REQUESTED)
    def bid_requested(self, event: BidRequestedEvent):
        record = self.cache.get(event.auctionId)
        if record is None:
            return

        is_own = event.bidderCode == self.settings.own_bidder_code
        for bid in event.bids:
            ad_unit = record.ad_units.get(bid.adUnitCode) if bid.adUnitCode else None
            if ad_unit is None or not bid.bidId or bid.bidId in ad_unit.bids:
                continue
            ad_unit.bids[bid.bidId] = BidRecord(
                bidder=event.bidderCode,
                bid_id=bid.bidId,
                request_timestamp=self.now(),
                is_own_bidder=is_own,
            )

    @_absorbs_errors(EventType.BID_RESPONSE)
    def bid_response(self, event: BidResponseEvent):
        record = self.cache.get(event.auctionId)
        if record is None:
            return
        ad_unit = record.ad_units.get(event.adUnitCode) if event.adUnitCode else None
        if ad_unit is None:
            return

        key = event.bid_key
        if not key:
            logger.debug(f"{LOG_PREFIX}bidResponse without request id in {event.auctionId}")
            return

        cpm_usd = self._to_usd(event.cpm, event.currency)
        bid = ad_unit.bids.get(key)
        if bid is None:
            bid = BidRecord(bidder=event.actual_bidder, bid_id=event.requestId)

        bid.bidder = event.actual_bidder or bid.bidder
        bid.bid_id = event.requestId or key
        bid.status = BidStatus.RECEIVED
        bid.cpm = event.cpm
        bid.currency = event.currency
        bid.cpm_usd = cpm_usd
        bid.response_time = event.timeToRespond
        bid.media_type = event.mediaType
        bid.size = f"{event.width}x{event.height}" if event.width and event.height else None
        bid.deal_id = event.dealId
        bid.advertiser_domains = (
            Validator.truncate_list(event.meta.advertiserDomains, self.settings.max_advertiser_domains)
            if event.meta else None
        )
        bid.is_own_bidder = bid.bidder == self.settings.own_bidder_code
        ad_unit.bids[key] = bid

        record.bids_received.append({
            "adUnitCode": event.adUnitCode,
            "bidder": bid.bidder,
            "cpm": event.cpm,
            "cpmUsd": cpm_usd,
        })

    @_absorbs_errors(EventType.NO_BID)
    def no_bid(self, event: NoBidEvent):
        record = self.cache.get(event.auctionId)
        if record is None:
            return
        ad_unit = record.ad_units.get(event.adUnitCode) if event.adUnitCode else None
        if ad_unit is None:
            return

        bid = ad_unit.bids.get(event.bidId) if event.bidId else None
        if bid is not None and bid.status == BidStatus.PENDING:
            bid.status = BidStatus.NO_BID

        # Counted per event, independent of the bid record
        record.no_bids.append({"adUnitCode": event.adUnitCode, "bidder": event.bidder})

    @_absorbs_errors(EventType.BID_TIMEOUT)
    def bid_timeout(self, entries: List[BidTimeoutEntry]):
        for entry in entries:
            record = self.cache.get(entry.auctionId)
            if record is None:
                continue
            ad_unit = record.ad_units.get(entry.adUnitCode) if entry.adUnitCode else None
            if ad_unit is None:
                continue

            bid = ad_unit.bids.get(entry.bidId) if entry.bidId else None
            if bid is not None and bid.status == BidStatus.PENDING:
                bid.status = BidStatus.TIMEOUT
            record.timeouts.append({"adUnitCode": entry.adUnitCode, "bidder": entry.bidder})

    @_absorbs_errors(EventType.BIDDER_DONE)
    def bidder_done(self, event: BidderDoneEvent):
        record = self.cache.get(event.auctionId)
        if record is None:
            return

        for done in event.bids:
            ad_unit = record.ad_units.get(done.adUnitCode) if done.adUnitCode else None
            cached = ad_unit.bids.get(done.bidId) if ad_unit and done.bidId else None
            if cached is None:
                continue
            # Bidder finished without answering this bid
            if cached.status == BidStatus.PENDING:
                cached.status = BidStatus.NO_BID
            if done.serverResponseTimeMs is not None:
                cached.server_response_time = done.serverResponseTimeMs

    @_absorbs_errors(EventType.BIDDER_ERROR)
    def bidder_error(self, event: BidderErrorEvent):
        record = self.cache.get(event.effective_auction_id)
        if record is None:
            return

        record.errors.append({
            "bidder": event.bidderCode,
            "error": {
                "message": (event.error.message if event.error else None) or "Unknown error",
                "status": event.error.status if event.error else None,
            },
            "timestamp": int(self.now()),
        })

        if not event.bidderCode:
            return
        for ad_unit in record.ad_units.values():
            for bid in ad_unit.bids.values():
                if bid.bidder == event.bidderCode and bid.status == BidStatus.PENDING:
                    bid.status = BidStatus.ERROR

    @_absorbs_errors(EventType.AUCTION_END)
    def auction_end(self, event: AuctionEndEvent):
        record = self.cache.get(event.auctionId)
        if record is None or record.sent or record.armed:
            return

        record.ended_at = self.now()
        record.duration = record.ended_at - record.created_at

        try:
            for bid in self.host.highest_cpm_bids():
                if bid.auctionId != record.auction_id or not bid.adUnitCode:
                    continue
                current = record.winning_bids.get(bid.adUnitCode)
                if current is not None and current.explicit:
                    continue
                record.winning_bids[bid.adUnitCode] = WinnerRecord(
                    bidder=bid.actual_bidder,
                    cpm=bid.cpm,
                    cpm_usd=self._to_usd(bid.cpm, bid.currency),
                    bid_id=bid.requestId,
                )
        except Exception as e:
            logger.error(f"{LOG_PREFIX}Error getting highest CPM bids: {e}")

        self.delivery.arm(record)

    @_absorbs_errors(EventType.BID_WON)
    def bid_won(self, event: BidWonEvent):
        record = self.cache.get(event.auctionId)
        if record is None:
            return
        code = event.adUnitCode
        if not code:
            logger.warning(f"{LOG_PREFIX}bidWon without adUnitCode in {event.auctionId}")
            return

        bidder = event.actual_bidder
        record.winning_bids[code] = WinnerRecord(
            bidder=bidder,
            cpm=event.cpm,
            cpm_usd=self._to_usd(event.cpm, event.currency),
            bid_id=event.requestId,
            explicit=True,
        )

        # The event may not carry the bid id used internally, so match on bidder too
        ad_unit = record.ad_units.get(code)
        if ad_unit is not None:
            for bid in ad_unit.bids.values():
                if (event.requestId and bid.bid_id == event.requestId) or (bidder and bid.bidder == bidder):
                    bid.won = True

        self.delivery.send_win(record, code)


HANDLERS = {
    EventType.AUCTION_INIT: EventHandlers.auction_init,
    EventType.BID_REQUESTED: EventHandlers.bid_requested,
    EventType.BID_RESPONSE: EventHandlers.bid_response,
    EventType.NO_BID: EventHandlers.no_bid,
    EventType.BID_TIMEOUT: EventHandlers.bid_timeout,
    EventType.BIDDER_DONE: EventHandlers.bidder_done,
    EventType.BIDDER_ERROR: EventHandlers.bidder_error,
    EventType.AUCTION_END: EventHandlers.auction_end,
    EventType.BID_WON: EventHandlers.bid_won,
}

_unhandled = set(EventType) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(f"No handler registered for {sorted(e.value for e in _unhandled)}")
