from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict

from src.utils.validation import Validator


class EventType(str, Enum):
    """Auction lifecycle events emitted by the host, keyed by their host names."""

    AUCTION_INIT = "auctionInit"
    BID_REQUESTED = "bidRequested"
    BID_RESPONSE = "bidResponse"
    NO_BID = "noBid"
    BID_TIMEOUT = "bidTimeout"
    BIDDER_DONE = "bidderDone"
    BIDDER_ERROR = "bidderError"
    AUCTION_END = "auctionEnd"
    BID_WON = "bidWon"


def _as_int(value: Any) -> Optional[int]:
    number = Validator.parse_number(value)
    return int(number) if number is not None else None


def _as_optional_list(value: Any) -> Optional[List[Any]]:
    if value is None:
        return None
    return Validator.parse_list(value)


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    return [item for item in Validator.parse_list(value) if isinstance(item, dict)]


def _dict_or_none(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def _error_detail(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, str):
        return {"message": value}
    return _dict_or_none(value)


# Lenient field types: malformed input decodes to None/empty, never raises
LenientStr = Annotated[Optional[str], BeforeValidator(lambda v: Validator.sanitize_string(v))]
LenientFloat = Annotated[Optional[float], BeforeValidator(lambda v: Validator.parse_number(v))]
LenientInt = Annotated[Optional[int], BeforeValidator(_as_int)]
LenientBool = Annotated[bool, BeforeValidator(lambda v: bool(v))]
LenientList = Annotated[Optional[List[Any]], BeforeValidator(_as_optional_list)]
LenientDict = Annotated[Dict[str, Any], BeforeValidator(lambda v: v if isinstance(v, dict) else {})]


class EventModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RefererInfo(EventModel):
    topmostLocation: LenientStr = None
    page: LenientStr = None


class GdprConsent(EventModel):
    gdprApplies: LenientBool = False
    consentString: LenientStr = None


class GppConsent(EventModel):
    gppString: LenientStr = None
    applicableSections: LenientList = None


class BidderRequest(EventModel):
    bidderCode: LenientStr = None
    auctionId: LenientStr = None
    refererInfo: Annotated[Optional[RefererInfo], BeforeValidator(_dict_or_none)] = None
    gdprConsent: Annotated[Optional[GdprConsent], BeforeValidator(_dict_or_none)] = None
    uspConsent: LenientStr = None
    gppConsent: Annotated[Optional[GppConsent], BeforeValidator(_dict_or_none)] = None
    coppa: LenientBool = False

    @property
    def page_url(self) -> Optional[str]:
        if self.refererInfo is None:
            return None
        return self.refererInfo.topmostLocation or self.refererInfo.page


class AdUnit(EventModel):
    code: LenientStr = None
    mediaTypes: LenientDict = {}
    sizes: LenientList = None


class AuctionInitEvent(EventModel):
    auctionId: LenientStr = None
    timeout: LenientInt = None
    adUnits: Annotated[List[AdUnit], BeforeValidator(_dict_items)] = []
    bidderRequests: Annotated[List[BidderRequest], BeforeValidator(_dict_items)] = []


class RequestedBid(EventModel):
    bidId: LenientStr = None
    adUnitCode: LenientStr = None


class BidRequestedEvent(EventModel):
    auctionId: LenientStr = None
    bidderCode: LenientStr = None
    bids: Annotated[List[RequestedBid], BeforeValidator(_dict_items)] = []


class BidMeta(EventModel):
    advertiserDomains: LenientList = None


class BidResponseEvent(EventModel):
    auctionId: LenientStr = None
    adUnitCode: LenientStr = None
    bidder: LenientStr = None
    bidderCode: LenientStr = None
    requestId: LenientStr = None
    originalRequestId: LenientStr = None
    cpm: LenientFloat = None
    currency: LenientStr = None
    timeToRespond: LenientInt = None
    mediaType: LenientStr = None
    width: LenientInt = None
    height: LenientInt = None
    dealId: LenientStr = None
    meta: Annotated[Optional[BidMeta], BeforeValidator(_dict_or_none)] = None

    @property
    def bid_key(self) -> Optional[str]:
        # Multi-bid responses carry the id of the request they answer
        return self.originalRequestId or self.requestId

    @property
    def actual_bidder(self) -> Optional[str]:
        return self.bidderCode or self.bidder


class NoBidEvent(EventModel):
    auctionId: LenientStr = None
    adUnitCode: LenientStr = None
    bidder: LenientStr = None
    bidId: LenientStr = None


class BidTimeoutEntry(NoBidEvent):
    pass


class DoneBid(EventModel):
    bidId: LenientStr = None
    adUnitCode: LenientStr = None
    serverResponseTimeMs: LenientInt = None


class BidderDoneEvent(EventModel):
    auctionId: LenientStr = None
    bidderCode: LenientStr = None
    bids: Annotated[List[DoneBid], BeforeValidator(_dict_items)] = []


class BidderErrorDetail(EventModel):
    message: LenientStr = None
    status: LenientInt = None


class BidderErrorEvent(EventModel):
    auctionId: LenientStr = None
    bidderCode: LenientStr = None
    error: Annotated[Optional[BidderErrorDetail], BeforeValidator(_error_detail)] = None
    bidderRequest: Annotated[Optional[BidderRequest], BeforeValidator(_dict_or_none)] = None

    @property
    def effective_auction_id(self) -> Optional[str]:
        if self.auctionId:
            return self.auctionId
        return self.bidderRequest.auctionId if self.bidderRequest else None


class AuctionEndEvent(EventModel):
    auctionId: LenientStr = None


class BidWonEvent(EventModel):
    auctionId: LenientStr = None
    adUnitCode: LenientStr = None
    bidderCode: LenientStr = None
    bidder: LenientStr = None
    cpm: LenientFloat = None
    currency: LenientStr = None
    requestId: LenientStr = None

    @property
    def actual_bidder(self) -> Optional[str]:
        return self.bidderCode or self.bidder


class HighestCpmBid(BidWonEvent):
    """Entry of the host's highest-CPM-bids query."""


EVENT_MODELS = {
    EventType.AUCTION_INIT: AuctionInitEvent,
    EventType.BID_REQUESTED: BidRequestedEvent,
    EventType.BID_RESPONSE: BidResponseEvent,
    EventType.NO_BID: NoBidEvent,
    EventType.BID_TIMEOUT: BidTimeoutEntry,
    EventType.BIDDER_DONE: BidderDoneEvent,
    EventType.BIDDER_ERROR: BidderErrorEvent,
    EventType.AUCTION_END: AuctionEndEvent,
    EventType.BID_WON: BidWonEvent,
}


def decode_event(event_type: EventType, args: Any) -> Union[EventModel, List[EventModel]]:
    """
    Decode a raw host payload into its typed event model.

    bidTimeout carries a list of timed-out bids and decodes to a list of entries;
    non-object entries are skipped. Every other kind decodes from an object;
    a non-object payload decodes as an empty event.
    """
    model = EVENT_MODELS[event_type]
    if event_type is EventType.BID_TIMEOUT:
        return [model.model_validate(entry) for entry in _dict_items(args)]
    return model.model_validate(args if isinstance(args, dict) else {})


def decode_highest_bids(raw: Any) -> List[HighestCpmBid]:
    return [HighestCpmBid.model_validate(entry) for entry in _dict_items(raw)]
