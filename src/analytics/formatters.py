from typing import Any, Dict, List, Optional

from src.analytics.config import AnalyticsConfig
from src.analytics.extractors import average, calculate_margin, calculate_rank
from src.analytics.records import AuctionRecord, BidStatus


def extract_own_bidder_metrics(record: AuctionRecord) -> Dict[str, Any]:
    """Performance block for the adapter's own bidder, with competitive fields per slot."""
    own_bids: List[Dict[str, Any]] = []

    for code, ad_unit in record.ad_units.items():
        winner = record.winning_bids.get(code)
        for bid in ad_unit.bids.values():
            if not bid.is_own_bidder:
                continue
            own_bids.append({
                "adUnitCode": code,
                "status": bid.status.value,
                "cpm": bid.cpm_usd,
                "responseTime": bid.response_time,
                "won": bid.won,
                "winningBidder": winner.bidder if winner else None,
                "winningCpm": (winner.cpm_usd or None) if winner else None,
                "marginToWin": calculate_margin(winner.cpm_usd if winner else None, bid.cpm_usd),
                "rank": calculate_rank(ad_unit, bid),
            })

    return {
        "bidCount": len(own_bids),
        "bids": own_bids,
        "winCount": sum(1 for b in own_bids if b["won"]),
        "avgResponseTime": average(b["responseTime"] for b in own_bids),
        "avgCpm": average(b["cpm"] for b in own_bids if b["cpm"]),
    }


def count_total_bids(record: AuctionRecord) -> int:
    return sum(len(ad_unit.bids) for ad_unit in record.ad_units.values())


def format_auction_payload(record: AuctionRecord, settings: AnalyticsConfig, now: float) -> Dict[str, Any]:
    """Auction-level summary posted once per auction."""
    ad_units = []
    for code, ad_unit in record.ad_units.items():
        winner = record.winning_bids.get(code)
        ad_units.append({
            "code": code,
            "mediaTypes": list(ad_unit.media_types),
            "bidders": [
                {
                    "bidder": bid.bidder,
                    "status": bid.status.value,
                    "cpm": bid.cpm_usd if bid.status == BidStatus.RECEIVED else None,
                    "responseTime": bid.response_time or None,
                    "isKargo": bid.is_own_bidder,
                    "won": bid.won,
                }
                for bid in ad_unit.bids.values()
            ],
            "winningBidder": winner.bidder if winner else None,
            "winningCpm": (winner.cpm_usd or None) if winner else None,
        })

    return {
        # Metadata
        "version": settings.analytics_version,
        "timestamp": int(now),
        "prebidVersion": settings.client_version,
        "auctionId": record.auction_id,
        # Timing
        "auctionTimeout": record.timeout,
        "auctionDuration": int(record.duration) if record.duration is not None else None,
        "pageUrl": record.page_url,
        "consent": record.consent,
        "kargo": extract_own_bidder_metrics(record),
        "auction": {
            "bidderCount": len(record.bidder_requests),
            "totalBidsRequested": count_total_bids(record),
            "totalBidsReceived": len(record.bids_received),
            "totalNoBids": len(record.no_bids),
            "totalTimeouts": len(record.timeouts),
            "totalErrors": len(record.errors),
        },
        "adUnits": ad_units,
        "errors": [dict(error) for error in record.errors],
    }


def format_win_payload(record: AuctionRecord, ad_unit_code: str, settings: AnalyticsConfig,
                       now: float) -> Optional[Dict[str, Any]]:
    """Win summary for one slot; None when no winner is recorded for it."""
    winner = record.winning_bids.get(ad_unit_code)
    if winner is None:
        return None

    ad_unit = record.ad_units.get(ad_unit_code)
    own_bids = record.own_bids(ad_unit_code)
    own_bid = own_bids[0] if own_bids else None

    if own_bid is not None:
        own_block = {
            "participated": True,
            "cpm": own_bid.cpm_usd,
            "margin": calculate_margin(winner.cpm_usd, own_bid.cpm_usd),
            "rank": calculate_rank(ad_unit, own_bid),
        }
    else:
        own_block = {"participated": False, "cpm": None, "margin": None, "rank": None}

    return {
        "version": settings.analytics_version,
        "timestamp": int(now),
        "auctionId": record.auction_id,
        "adUnitCode": ad_unit_code,
        "winner": {
            "bidder": winner.bidder,
            "cpm": winner.cpm,
            "cpmUsd": winner.cpm_usd,
        },
        "kargo": own_block,
    }
