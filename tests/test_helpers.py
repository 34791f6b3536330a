from audio_relay.utils.helpers import format_bytes, header_lines_to_dict, is_http_url, media_url_for
from audio_relay.utils.metrics import TransferTracker

from .conftest import FakeClock


def test_media_url_for():
    assert media_url_for("dQw4w9WgXcQ") == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert media_url_for("a b&c") == "https://www.youtube.com/watch?v=a+b%26c"
    assert media_url_for("https://example.com/x.m4a") == "https://example.com/x.m4a"


def test_is_http_url():
    assert is_http_url("http://a/b")
    assert is_http_url("HTTPS://a/b")
    assert not is_http_url("ftp://a/b")
    assert not is_http_url("abc123")


def test_header_lines_to_dict_skips_malformed():
    assert header_lines_to_dict(["Referer:https://x/", "bogus", "Empty:"]) == {"Referer": "https://x/"}


def test_format_bytes():
    assert format_bytes(512) == "512B"
    assert format_bytes(2048) == "2.0KB"
    assert format_bytes(3 * 1024 * 1024) == "3.0MB"


def test_transfer_tracker():
    clock = FakeClock(0.0)
    tracker = TransferTracker(clock=clock)

    clock.advance(0.25)
    tracker.record_chunk(1000)
    clock.advance(0.75)
    tracker.record_chunk(1000)
    tracker.finish()
    clock.advance(10)

    m = tracker.get_metrics()
    assert m["bytes_sent"] == 2000
    assert m["chunks_sent"] == 2
    assert m["duration_s"] == 1.0
    assert m["throughput_bps"] == 2000.0
    assert m["ttfb_ms"] == 250.0


def test_tracker_without_data():
    m = TransferTracker(clock=FakeClock(0.0)).get_metrics()
    assert m["ttfb_ms"] is None
    assert m["throughput_bps"] == 0.0
