import argparse
import json
import logging
import random
import sys
import uuid
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from src.analytics.adapter import AnalyticsAdapter
from src.analytics.host import HostBridge
from src.analytics.schema import EventType
from src.analytics.timers import ManualScheduler
from src.analytics.transport import MemoryTransport
from src.utils.validation import Validator

logger = logging.getLogger(__name__)


class EventReplayer:
    """
    Replays a recorded stream of lifecycle events through the adapter on a
    virtual clock and captures every payload that would have been posted.
    """

    def __init__(self, options: Optional[Dict[str, Any]] = None, host: Optional[HostBridge] = None,
                 rng=random.random):
        self.scheduler = ManualScheduler()
        self.transport = MemoryTransport()
        self.adapter = AnalyticsAdapter(self.transport, self.scheduler, host=host, rng=rng)
        self.adapter.enable_analytics(options)

    def run(self, events: Iterable[Dict[str, Any]]) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Feed events in order. `offsetMs` (optional) positions an event on the
        virtual clock; timers falling due before it fire first.
        """
        for event in events:
            offset = Validator.parse_number(event.get("offsetMs"))
            if offset is not None and offset > self.scheduler.now():
                self.scheduler.run_until(offset)
            self.adapter.track(event.get("eventType"), event.get("args"))

        # Flush pending sends and evictions
        self.scheduler.run_all()
        return list(self.transport.requests)


def load_events(path: str) -> Iterator[Dict[str, Any]]:
    """Read a JSON-lines event log, skipping lines that are not JSON objects."""
    with open(path, "r") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping line {line_no}: {e}")
                continue
            if isinstance(event, dict):
                yield event


# Mock Data Generator
def generate_mock_auction(auction_id: Optional[str] = None, n_slots: int = 2,
                          bidders: Sequence[str] = ("kargo", "appnexus", "rubicon"),
                          start_ms: float = 0.0, no_bid_rate: float = 0.2,
                          rng: Optional[np.random.Generator] = None) -> Iterator[Dict[str, Any]]:
    """Yield one synthetic auction lifecycle with log-normal CPMs."""
    rng = rng or np.random.default_rng()
    auction_id = auction_id or str(uuid.uuid4())
    slots = [f"slot-{i}" for i in range(n_slots)]

    def event(kind: EventType, offset: float, args: Any) -> Dict[str, Any]:
        return {"eventType": kind.value, "offsetMs": start_ms + offset, "args": args}

    yield event(EventType.AUCTION_INIT, 0, {
        "auctionId": auction_id,
        "timeout": 1000,
        "adUnits": [{"code": code, "mediaTypes": {"banner": {"sizes": [[300, 250]]}}} for code in slots],
        "bidderRequests": [
            {"bidderCode": bidder, "auctionId": auction_id, "refererInfo": {"page": "https://example.com/article"}}
            for bidder in bidders
        ],
    })

    bid_ids = {(bidder, code): f"{bidder}-{code}-{i}" for i, (bidder, code) in
               enumerate((b, c) for b in bidders for c in slots)}
    for bidder in bidders:
        yield event(EventType.BID_REQUESTED, 5, {
            "auctionId": auction_id,
            "bidderCode": bidder,
            "bids": [{"bidId": bid_ids[(bidder, code)], "adUnitCode": code} for code in slots],
        })

    best: Dict[str, Tuple[float, str, str]] = {}
    for (bidder, code), bid_id in bid_ids.items():
        response_time = int(rng.integers(40, 400))
        if rng.random() < no_bid_rate:
            yield event(EventType.NO_BID, 5 + response_time, {
                "auctionId": auction_id, "adUnitCode": code, "bidder": bidder, "bidId": bid_id,
            })
            continue
        # Log-normal CPM (median ~1.6, heavy tail)
        cpm = round(float(rng.lognormal(0.5, 0.6)), 2)
        yield event(EventType.BID_RESPONSE, 5 + response_time, {
            "auctionId": auction_id, "adUnitCode": code, "bidderCode": bidder,
            "requestId": bid_id, "cpm": cpm, "currency": "USD", "timeToRespond": response_time,
            "width": 300, "height": 250, "mediaType": "banner",
        })
        if code not in best or cpm > best[code][0]:
            best[code] = (cpm, bidder, bid_id)

    yield event(EventType.AUCTION_END, 1000, {"auctionId": auction_id})

    for code, (cpm, bidder, bid_id) in best.items():
        yield event(EventType.BID_WON, 1100, {
            "auctionId": auction_id, "adUnitCode": code, "bidderCode": bidder,
            "cpm": cpm, "currency": "USD", "requestId": bid_id,
        })


def generate_mock_stream(n: int = 100, seed: Optional[int] = None, spacing_ms: float = 2000.0
                         ) -> Iterator[Dict[str, Any]]:
    rng = np.random.default_rng(seed)
    for i in range(n):
        yield from generate_mock_auction(auction_id=f"sim-{i}", start_ms=i * spacing_ms, rng=rng)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay auction lifecycle events through the analytics adapter")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--events", help="JSON-lines event log ({eventType, args, offsetMs})")
    source.add_argument("--mock", type=int, help="Generate N synthetic auctions")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--sampling", type=float, default=100)
    parser.add_argument("--send-delay", type=int, default=500)
    parser.add_argument("--no-win-events", action="store_true")
    parser.add_argument("--output", help="Write captured payloads as JSON lines (default: stdout)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    options = {
        "sampling": args.sampling,
        "sendDelay": args.send_delay,
        "sendWinEvents": not args.no_win_events,
    }
    replayer = EventReplayer(options)
    events = load_events(args.events) if args.events else generate_mock_stream(args.mock, seed=args.seed)
    requests = replayer.run(events)

    out = open(args.output, "w") if args.output else sys.stdout
    try:
        for url, payload in requests:
            out.write(json.dumps({"url": url, "payload": payload}) + "\n")
    finally:
        if args.output:
            out.close()

    auctions = sum(1 for url, _ in requests if url.endswith("/auction"))
    logger.info(f"Replay complete: {auctions} auction payloads, {len(requests) - auctions} win payloads")
    return 0


if __name__ == "__main__":
    sys.exit(main())
