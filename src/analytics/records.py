from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class BidStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    NO_BID = "no-bid"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass(slots=True)
class BidRecord:
    """
    One requested bid within an ad slot.
    Status moves from pending to exactly one terminal state; a bid response may
    still mark a late bid as received.
    """

    bidder: Optional[str]
    bid_id: Optional[str]
    status: BidStatus = BidStatus.PENDING
    is_own_bidder: bool = False
    cpm: Optional[float] = None
    currency: Optional[str] = None
    cpm_usd: Optional[float] = None
    response_time: Optional[int] = None
    won: bool = False
    request_timestamp: Optional[float] = None
    media_type: Optional[str] = None
    size: Optional[str] = None
    deal_id: Optional[str] = None
    advertiser_domains: Optional[List[Any]] = None
    server_response_time: Optional[int] = None


@dataclass(slots=True)
class AdUnitRecord:
    code: str
    media_types: List[str] = field(default_factory=list)
    sizes: List[Any] = field(default_factory=list)
    bids: Dict[str, BidRecord] = field(default_factory=dict)


@dataclass(slots=True)
class WinnerRecord:
    bidder: Optional[str]
    cpm: Optional[float]
    cpm_usd: Optional[float]
    bid_id: Optional[str]
    # Set by an explicit bidWon; highest-bid lookups never replace it
    explicit: bool = False


@dataclass(slots=True)
class AuctionRecord:
    """Aggregated state of one auction lifecycle, keyed by the host's auction id."""

    auction_id: str
    created_at: float
    timeout: Optional[int] = None
    ad_units: Dict[str, AdUnitRecord] = field(default_factory=dict)
    bidder_requests: List[Optional[str]] = field(default_factory=list)

    # Flat sequences, only used for aggregate counts
    bids_received: List[Dict[str, Any]] = field(default_factory=list)
    no_bids: List[Dict[str, Any]] = field(default_factory=list)
    timeouts: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    winning_bids: Dict[str, WinnerRecord] = field(default_factory=dict)
    consent: Optional[Dict[str, Any]] = None
    page_url: Optional[str] = None

    ended_at: Optional[float] = None
    duration: Optional[float] = None
    armed: bool = False
    sent: bool = False

    def own_bids(self, ad_unit_code: str) -> List[BidRecord]:
        ad_unit = self.ad_units.get(ad_unit_code)
        if ad_unit is None:
            return []
        return [bid for bid in ad_unit.bids.values() if bid.is_own_bidder]
