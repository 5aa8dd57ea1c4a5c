import pytest

from src.analytics.adapter import AnalyticsAdapter
from src.analytics.host import HostBridge
from src.analytics.timers import ManualScheduler
from src.analytics.transport import MemoryTransport

AUCTION_ID = "66529d4c-8998-47c2-ab3e-5b953490b98f"
PAGE_URL = "https://publisher.example/article"


class Lifecycle:
    """Emits host lifecycle events for one auction into an adapter."""

    def __init__(self, adapter, auction_id=AUCTION_ID):
        self.adapter = adapter
        self.auction_id = auction_id

    def init(self, ad_units=("slot-a",), bidders=("kargo", "appnexus"), timeout=1000, **extra):
        args = {
            "auctionId": self.auction_id,
            "timeout": timeout,
            "adUnits": [{"code": code, "mediaTypes": {"banner": {"sizes": [[300, 250]]}}} for code in ad_units],
            "bidderRequests": [
                {"bidderCode": b, "auctionId": self.auction_id, "refererInfo": {"topmostLocation": PAGE_URL}}
                for b in bidders
            ],
        }
        args.update(extra)
        return self.adapter.track("auctionInit", args)

    def requested(self, bidder, bids):
        return self.adapter.track("bidRequested", {
            "auctionId": self.auction_id,
            "bidderCode": bidder,
            "bids": [{"bidId": bid_id, "adUnitCode": code} for bid_id, code in bids],
        })

    def response(self, bidder, bid_id, ad_unit="slot-a", cpm=2.5, **extra):
        args = {
            "auctionId": self.auction_id,
            "adUnitCode": ad_unit,
            "bidderCode": bidder,
            "requestId": bid_id,
            "cpm": cpm,
            "currency": "USD",
            "timeToRespond": 150,
        }
        args.update(extra)
        return self.adapter.track("bidResponse", args)

    def no_bid(self, bidder, bid_id, ad_unit="slot-a"):
        return self.adapter.track("noBid", {
            "auctionId": self.auction_id, "adUnitCode": ad_unit, "bidder": bidder, "bidId": bid_id,
        })

    def timeout(self, entries):
        return self.adapter.track("bidTimeout", [
            {"auctionId": self.auction_id, "bidder": bidder, "bidId": bid_id, "adUnitCode": code}
            for bidder, bid_id, code in entries
        ])

    def done(self, bidder, bids):
        return self.adapter.track("bidderDone", {
            "auctionId": self.auction_id,
            "bidderCode": bidder,
            "bids": list(bids),
        })

    def error(self, bidder, message="Server error", status=500, **extra):
        args = {"auctionId": self.auction_id, "bidderCode": bidder, "error": {"message": message, "status": status}}
        args.update(extra)
        return self.adapter.track("bidderError", args)

    def end(self):
        return self.adapter.track("auctionEnd", {"auctionId": self.auction_id})

    def won(self, bidder, bid_id, ad_unit="slot-a", cpm=3.0, currency="USD"):
        return self.adapter.track("bidWon", {
            "auctionId": self.auction_id,
            "adUnitCode": ad_unit,
            "bidderCode": bidder,
            "cpm": cpm,
            "currency": currency,
            "requestId": bid_id,
        })

    @property
    def record(self):
        return self.adapter.cache.get(self.auction_id)


@pytest.fixture
def scheduler():
    return ManualScheduler(start_ms=1_000_000)


@pytest.fixture
def transport():
    return MemoryTransport()


@pytest.fixture
def host():
    return HostBridge()


@pytest.fixture
def adapter(transport, scheduler, host):
    # rng of 0.0 always lands inside the sample
    analytics = AnalyticsAdapter(transport=transport, scheduler=scheduler, host=host, rng=lambda: 0.0)
    analytics.enable_analytics({})
    yield analytics
    analytics.disable_analytics()


@pytest.fixture
def lifecycle(adapter):
    return Lifecycle(adapter)


@pytest.fixture
def events_for():
    """Builds a Lifecycle for an adapter created inside the test."""
    return Lifecycle
