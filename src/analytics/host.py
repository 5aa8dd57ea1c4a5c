from typing import Any, Callable, List, Optional

from src.analytics.extractors import CurrencyConverter
from src.analytics.schema import HighestCpmBid, decode_highest_bids


class HostBridge:
    """
    Capabilities consumed from the host auction engine: the current
    highest-CPM bid per ad slot and an optional currency converter.
    """

    def __init__(self, highest_cpm_bids: Optional[Callable[[], Any]] = None,
                 convert_currency: Optional[CurrencyConverter] = None):
        self._highest_cpm_bids = highest_cpm_bids
        self.convert_currency = convert_currency

    def highest_cpm_bids(self) -> List[HighestCpmBid]:
        if self._highest_cpm_bids is None:
            return []
        return decode_highest_bids(self._highest_cpm_bids())
