"""Unit tests for per-feed state and interval backoff."""

from sieve.ingestion.interfaces import FeedConfig, FeedState


def make_state(interval: float = 60.0) -> FeedState:
    return FeedState(config=FeedConfig(feed_id="f", url="https://example.com/rss", poll_interval_seconds=interval))


class TestFeedState:
    """Tests for FeedState."""

    def test_starts_at_base_interval(self):
        state = make_state(90.0)
        assert state.current_interval == 90.0
        assert state.consecutive_failures == 0

    def test_no_backoff_until_threshold(self):
        state = make_state()
        for _ in range(3):
            state.record_failure(threshold=3, factor=2.0, cap=3600.0)
        assert state.consecutive_failures == 3
        assert state.current_interval == 60.0

    def test_backoff_is_monotonic_and_capped(self):
        """Consecutive failures never shrink the interval and never pass the cap."""
        state = make_state()
        intervals = []
        for _ in range(12):
            state.record_failure(threshold=2, factor=2.0, cap=1000.0)
            intervals.append(state.current_interval)

        assert intervals == sorted(intervals)
        assert max(intervals) == 1000.0
        assert intervals[2] == 120.0
        assert intervals[3] == 240.0

    def test_success_resets_to_base(self):
        state = make_state()
        for _ in range(6):
            state.record_failure(threshold=1, factor=3.0, cap=10000.0)
        assert state.current_interval > 60.0

        state.record_success()
        assert state.current_interval == 60.0
        assert state.consecutive_failures == 0
        assert state.last_success_at is not None

    def test_cap_below_base_keeps_base(self):
        state = make_state(600.0)
        for _ in range(5):
            state.record_failure(threshold=0, factor=2.0, cap=100.0)
        assert state.current_interval == 600.0

    def test_conditional_headers(self):
        state = make_state()
        assert state.conditional_headers() == {}

        state.update_validators("abc", "Wed, 21 Oct 2015 07:28:00 GMT")
        assert state.conditional_headers() == {
            "If-None-Match": '"abc"',
            "If-Modified-Since": "Wed, 21 Oct 2015 07:28:00 GMT",
        }

        state.update_validators('W/"weak"', None)
        assert state.conditional_headers() == {"If-None-Match": 'W/"weak"'}

    def test_fetch_stats(self):
        state = make_state()
        state.record_fetch(success=False, fetch_time_ms=100)
        assert state.fetch_count == 1
        assert state.success_rate < 1.0
        assert state.avg_fetch_time_ms == 10
        assert state.last_fetch_at is not None
