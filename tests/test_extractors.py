import math

import pytest
from unittest.mock import MagicMock

from src.analytics.extractors import (
    average,
    calculate_margin,
    calculate_rank,
    convert_to_usd,
    extract_consent,
    extract_sizes,
)
from src.analytics.records import AdUnitRecord, BidRecord, BidStatus
from src.analytics.schema import BidderRequest


def _received(bidder, cpm_usd):
    return BidRecord(bidder=bidder, bid_id=f"{bidder}-1", status=BidStatus.RECEIVED, cpm_usd=cpm_usd)


def test_convert_usd_rounds_to_three_decimals():
    assert convert_to_usd(2.34567, "USD") == 2.346
    assert convert_to_usd(1.5, None) == 1.5
    assert convert_to_usd(1.5, "usd") == 1.5


def test_convert_non_positive_cpm_is_null():
    assert convert_to_usd(0, "USD") is None
    assert convert_to_usd(-1.0, "USD") is None
    assert convert_to_usd(None, "EUR") is None


def test_convert_uses_host_converter():
    converter = MagicMock(return_value=2.2222)
    assert convert_to_usd(2.0, "EUR", converter) == 2.222
    converter.assert_called_once_with(2.0, "EUR", "USD")


def test_convert_falls_back_to_original_value():
    # No converter available
    assert convert_to_usd(2.0, "EUR") == 2.0
    # Converter raises
    failing = MagicMock(side_effect=RuntimeError("no rates"))
    assert convert_to_usd(3.14159, "EUR", failing) == 3.142
    # Converter returns garbage
    assert convert_to_usd(1.0, "EUR", lambda *a: "n/a") == 1.0


def test_extract_sizes_banner_and_video():
    sizes = extract_sizes({
        "banner": {"sizes": [[300, 250], [728, 90]]},
        "video": {"playerSize": [[640, 480]]},
    })
    assert sizes == [[300, 250], [728, 90], [640, 480]]
    assert extract_sizes({"video": {"playerSize": [640, 480]}}) == [[640, 480]]
    assert extract_sizes(None) == []


def test_extract_consent_scrubs_raw_strings():
    request = BidderRequest.model_validate({
        "gdprConsent": {"gdprApplies": True, "consentString": "CO-RAW-TCF-STRING"},
        "uspConsent": "1YNN",
        "gppConsent": {"gppString": "DBABMA~RAW-GPP", "applicableSections": [7]},
        "coppa": True,
    })
    consent = extract_consent(request)
    assert consent == {
        "gdpr": {"applies": True, "consentString": "[present]"},
        "usp": "1YNN",
        "gpp": {"gppString": "[present]", "applicableSections": [7]},
        "coppa": True,
    }
    assert "CO-RAW-TCF-STRING" not in str(consent)
    assert "DBABMA~RAW-GPP" not in str(consent)


def test_extract_consent_absent():
    assert extract_consent(None) is None
    assert extract_consent(BidderRequest.model_validate({"bidderCode": "kargo"})) is None
    gdpr_only = extract_consent(BidderRequest.model_validate({"gdprConsent": {"gdprApplies": False}}))
    assert gdpr_only == {"gdpr": {"applies": False, "consentString": None}}


def test_rank_among_received_bids():
    own = _received("kargo", 2.0)
    ad_unit = AdUnitRecord(code="slot-a", bids={
        "a": _received("appnexus", 3.0),
        "k": own,
        "r": _received("rubicon", 1.0),
        "p": BidRecord(bidder="pending", bid_id="p"),
    })
    assert calculate_rank(ad_unit, own) == 2
    assert calculate_rank(ad_unit, ad_unit.bids["a"]) == 1
    assert calculate_rank(ad_unit, ad_unit.bids["p"]) is None


def test_rank_ties_use_first_position():
    own = _received("kargo", 2.0)
    ad_unit = AdUnitRecord(code="slot-a", bids={"x": _received("appnexus", 2.0), "k": own})
    assert calculate_rank(ad_unit, own) == 1


def test_rank_null_without_positive_cpm():
    bid = BidRecord(bidder="kargo", bid_id="k", status=BidStatus.RECEIVED, cpm_usd=None)
    ad_unit = AdUnitRecord(code="slot-a", bids={"k": bid})
    assert calculate_rank(ad_unit, bid) is None
    assert calculate_rank(None, bid) is None


def test_margin():
    assert calculate_margin(3.0, 2.5) == 0.5
    assert calculate_margin(2.123, 2.123) == 0.0
    assert calculate_margin(None, 2.5) is None
    assert calculate_margin(3.0, None) is None


@pytest.mark.parametrize("values, expected", [
    ([1, 2, 3, 4], 2.5),
    ([192], 192),
    ([1.111, 2.222, None], 1.67),
    ([None, math.nan, "x"], None),
    ([], None),
])
def test_average(values, expected):
    assert average(values) == expected
