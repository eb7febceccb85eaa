"""
Unit Tests - Traffic Reducers
"""
from storefront_analytics.analytics.records import AnalyticsEventRecord, parse_records
from storefront_analytics.analytics.traffic import reduce_traffic
from tests.conftest import make_event


def events_of(rows):
    records, _ = parse_records(AnalyticsEventRecord, rows, "analytics_events")
    return records


class TestTrafficReport:
    """Tests for reduce_traffic"""

    def test_kpis(self, sample_events, previous_events):
        report = reduce_traffic(events_of(sample_events), events_of(previous_events))
        kpis = report.kpis

        assert kpis.total_visits == 6
        assert kpis.unique_visitors == 2
        assert kpis.bounce_rate == 50.0
        assert kpis.click_through_rate == 16.7
        assert kpis.avg_session_duration == 60
        assert kpis.avg_scroll_depth == 50

    def test_trends_against_previous_window(self, sample_events, previous_events):
        kpis = reduce_traffic(events_of(sample_events), events_of(previous_events)).kpis
        assert kpis.visits_trend == 100.0
        assert kpis.visitors_trend == -33.3

    def test_no_previous_data_gives_zero_trend(self, sample_events):
        kpis = reduce_traffic(events_of(sample_events), []).kpis
        assert kpis.visits_trend == 0.0
        assert kpis.visitors_trend == 0.0

    def test_time_series_by_day(self, sample_events):
        report = reduce_traffic(events_of(sample_events), [])
        assert len(report.time_series) == 1
        point = report.time_series[0]
        assert point.visits == 6
        assert point.unique_visitors == 2
        assert point.avg_session_duration == 60

    def test_device_and_browser_breakdown(self, sample_events):
        report = reduce_traffic(events_of(sample_events), [])
        assert [(d.name, d.value, d.percentage) for d in report.devices] == [
            ("Desktop", 7, 78),
            ("Mobile", 2, 22),
        ]
        assert [b.name for b in report.browsers] == ["Chrome", "Safari"]

    def test_missing_device_is_unknown(self):
        report = reduce_traffic(events_of([make_event("a", "/")]), [])
        assert report.devices[0].name == "Unknown"
        assert report.browsers[0].name == "unknown"

    def test_landing_and_exit_pages(self):
        rows = [
            make_event("a", "/", minutes=0),
            make_event("a", "/product/aero-runner", minutes=1),
            make_event("a", "/cart", minutes=2),
            make_event("b", "/sale", minutes=0),
            make_event("c", "/", minutes=5),
        ]
        report = reduce_traffic(events_of(rows), [])

        assert [(p.page, p.visits, p.percentage) for p in report.landing_pages] == [
            ("/", 2, 67),
            ("/sale", 1, 33),
        ]
        assert [p.page for p in report.exit_pages] == ["/", "/cart", "/sale"]

    def test_recent_events_newest_first_and_capped(self, sample_events):
        report = reduce_traffic(events_of(sample_events), [], recent_limit=3)
        assert len(report.recent_events) == 3
        times = [e.created_at for e in report.recent_events]
        assert times == sorted(times, reverse=True)
        assert report.recent_events[0].click_target == "product_thumbnail"

    def test_empty(self):
        report = reduce_traffic([], [])
        assert report.kpis.total_visits == 0
        assert report.kpis.bounce_rate == 0
        assert report.time_series == ()
        assert report.landing_pages == ()
