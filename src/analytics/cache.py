import logging
from typing import Dict, Iterator, Optional

from src.analytics.records import AuctionRecord
from src.monitoring.metrics import LIVE_AUCTIONS

logger = logging.getLogger(__name__)


class AuctionCache:
    """
    Live auction records keyed by auction id.

    Reads never create records; only auctionInit does, through `create`.
    One instance is owned per adapter lifetime.
    """

    def __init__(self):
        self._auctions: Dict[str, AuctionRecord] = {}

    def get(self, auction_id: Optional[str]) -> Optional[AuctionRecord]:
        if not auction_id:
            return None
        return self._auctions.get(auction_id)

    def create(self, auction_id: str, created_at: float, **init_args) -> AuctionRecord:
        """Create a fresh record, replacing any prior state for the same id."""
        if auction_id in self._auctions:
            logger.debug(f"Resetting cached auction {auction_id}")
        record = AuctionRecord(auction_id=auction_id, created_at=created_at, **init_args)
        self._auctions[auction_id] = record
        LIVE_AUCTIONS.set(len(self._auctions))
        return record

    def remove(self, auction_id: str, record: Optional[AuctionRecord] = None) -> bool:
        """
        Drop a record. When `record` is given, only drop it if it is still the
        live record for that id (a re-initialized auction is left alone).
        """
        current = self._auctions.get(auction_id)
        if current is None:
            return False
        if record is not None and current is not record:
            return False
        del self._auctions[auction_id]
        LIVE_AUCTIONS.set(len(self._auctions))
        return True

    def clear(self):
        self._auctions.clear()
        LIVE_AUCTIONS.set(0)

    def __len__(self) -> int:
        return len(self._auctions)

    def __contains__(self, auction_id: object) -> bool:
        return auction_id in self._auctions

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._auctions))
