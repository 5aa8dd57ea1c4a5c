import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np

from src.analytics.config import LOG_PREFIX
from src.analytics.records import AdUnitRecord, BidRecord, BidStatus
from src.analytics.schema import BidderRequest
from src.utils.validation import Validator

logger = logging.getLogger(__name__)

CURRENCY_USD = "USD"
CONSENT_PRESENT = "[present]"

CurrencyConverter = Callable[[float, str, str], Any]


def convert_to_usd(cpm: Optional[float], currency: Optional[str],
                   converter: Optional[CurrencyConverter] = None) -> Optional[float]:
    """
    Normalize a CPM to USD with 3 decimals.

    Returns None when there is no positive CPM. Falls back to the original
    value when no converter is available or the conversion fails.
    """
    if cpm is None or cpm <= 0:
        return None

    if not currency or currency.upper() == CURRENCY_USD:
        return round(float(cpm), 3)

    if converter is not None:
        try:
            converted = Validator.parse_number(converter(cpm, currency, CURRENCY_USD))
            if converted is not None:
                return round(converted, 3)
            logger.warning(f"{LOG_PREFIX}Currency conversion returned no value for {currency}")
        except Exception as e:
            logger.warning(f"{LOG_PREFIX}Currency conversion failed: {e}")

    return round(float(cpm), 3)


def extract_sizes(media_types: Optional[Dict[str, Any]]) -> List[Any]:
    """Collect declared banner sizes and the video player size."""
    if not media_types:
        return []

    sizes: List[Any] = []
    banner = media_types.get("banner")
    if isinstance(banner, dict):
        sizes.extend(Validator.parse_list(banner.get("sizes")))

    video = media_types.get("video")
    if isinstance(video, dict):
        player_size = Validator.parse_list(video.get("playerSize"))
        if player_size:
            sizes.append(player_size[0] if isinstance(player_size[0], (list, tuple)) else player_size)
    return sizes


def extract_consent(bidder_request: Optional[BidderRequest]) -> Optional[Dict[str, Any]]:
    """
    Snapshot privacy signals from a bidder request.
    Raw GDPR/GPP consent strings are replaced by a presence marker.
    """
    if bidder_request is None:
        return None

    consent: Dict[str, Any] = {}

    if bidder_request.gdprConsent is not None:
        gdpr = bidder_request.gdprConsent
        consent["gdpr"] = {
            "applies": gdpr.gdprApplies,
            "consentString": CONSENT_PRESENT if gdpr.consentString else None,
        }

    if bidder_request.uspConsent:
        consent["usp"] = bidder_request.uspConsent

    if bidder_request.gppConsent is not None:
        gpp = bidder_request.gppConsent
        consent["gpp"] = {
            "gppString": CONSENT_PRESENT if gpp.gppString else None,
            "applicableSections": gpp.applicableSections,
        }

    if bidder_request.coppa:
        consent["coppa"] = True

    return consent or None


def calculate_rank(ad_unit: Optional[AdUnitRecord], bid: Optional[BidRecord]) -> Optional[int]:
    """
    1-based position of a bid's USD CPM among the slot's received bids,
    highest first. None unless the bid was received with a positive CPM.
    """
    if ad_unit is None or bid is None:
        return None
    if bid.status != BidStatus.RECEIVED or not bid.cpm_usd or bid.cpm_usd <= 0:
        return None

    cpms = sorted(
        (b.cpm_usd for b in ad_unit.bids.values()
         if b.status == BidStatus.RECEIVED and b.cpm_usd and b.cpm_usd > 0),
        reverse=True,
    )
    try:
        return cpms.index(bid.cpm_usd) + 1
    except ValueError:
        return None


def calculate_margin(winning_cpm_usd: Optional[float], own_cpm_usd: Optional[float]) -> Optional[float]:
    """Distance to the winning bid in USD; positive when the own bid lost."""
    if not winning_cpm_usd or not own_cpm_usd:
        return None
    return round(winning_cpm_usd - own_cpm_usd, 3)


def average(values: Iterable[Any]) -> Optional[float]:
    """Mean of the numeric, non-NaN values rounded to 2 decimals."""
    numbers = [Validator.parse_number(v) for v in values]
    arr = np.array([n for n in numbers if n is not None], dtype=float)
    if arr.size == 0:
        return None
    return round(float(np.mean(arr)), 2)
