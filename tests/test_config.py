import pytest

from src.analytics.config import AnalyticsConfig, config
from src.analytics.schema import EventType, decode_event


def test_defaults():
    assert config.sampling == 100
    assert config.send_win_events is True
    assert config.send_delay_ms == 500
    assert config.cleanup_delay_ms == 30_000
    assert config.auction_url.endswith("/analytics/auction")
    assert config.win_url.endswith("/analytics/win")


def test_from_options_accepts_host_names():
    settings = AnalyticsConfig.from_options({"sampling": 25, "sendWinEvents": False, "sendDelay": 250, "bundleId": ""})
    assert settings.sampling == 25
    assert settings.send_win_events is False
    assert settings.send_delay_ms == 250


@pytest.mark.parametrize("value", [-1, 101, "abc", None, float("nan")])
def test_invalid_sampling_falls_back(value):
    assert AnalyticsConfig.from_options({"sampling": value}).sampling == 100


def test_boolean_sampling_falls_back():
    assert AnalyticsConfig.from_options({"sampling": True}).sampling == 100
    assert AnalyticsConfig.from_options({"sampling": False}).sampling == 100


@pytest.mark.parametrize("value, expected", [
    ("false", False),
    ("False", False),
    ("0", False),
    ("no", False),
    (0, False),
    ("true", True),
    (" YES ", True),
    (1, True),
    ("maybe", True),
    (None, True),
    ([], True),
])
def test_send_win_events_parses_strings(value, expected):
    assert AnalyticsConfig.from_options({"sendWinEvents": value}).send_win_events is expected


def test_boolean_delay_falls_back():
    assert AnalyticsConfig.from_options({"sendDelay": True}).send_delay_ms == 500


def test_zero_sampling_is_kept():
    assert AnalyticsConfig.from_options({"sampling": 0}).sampling == 0


def test_invalid_delay_falls_back():
    assert AnalyticsConfig.from_options({"sendDelay": -5}).send_delay_ms == 500
    assert AnalyticsConfig.from_options({"sendDelay": "soon"}).send_delay_ms == 500


def test_endpoint_override():
    settings = AnalyticsConfig.from_options({"endpoint": "http://collector.local/api/"})
    assert settings.auction_url == "http://collector.local/api/auction"
    assert settings.win_url == "http://collector.local/api/win"


def test_decode_tolerates_malformed_fields():
    event = decode_event(EventType.BID_RESPONSE, {
        "auctionId": "a1",
        "adUnitCode": "slot-a",
        "cpm": "not-a-number",
        "timeToRespond": {"ms": 3},
        "width": "300",
        "height": 250.0,
        "meta": "oops",
    })
    assert event.cpm is None
    assert event.timeToRespond is None
    assert event.width == 300
    assert event.height == 250
    assert event.meta is None


def test_decode_non_object_payload():
    event = decode_event(EventType.AUCTION_END, "garbage")
    assert event.auctionId is None
    assert decode_event(EventType.BID_TIMEOUT, {"not": "a list"}) == []
    entries = decode_event(EventType.BID_TIMEOUT, [{"auctionId": "a1"}, "junk", None])
    assert len(entries) == 1


def test_decode_bidder_error_string_message():
    event = decode_event(EventType.BIDDER_ERROR, {"bidderCode": "x", "error": "boom",
                                                  "bidderRequest": {"auctionId": "a9"}})
    assert event.error.message == "boom"
    assert event.effective_auction_id == "a9"
