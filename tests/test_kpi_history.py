"""Tests for snapshot generation, team aggregation and history series."""
import datetime

import pytest

from errors import NotFoundError, ValidationError
from kpi_config import KPIConfig
from kpi_history import aggregate_team_kpis, snapshots_to_frame
from models import KPITrend
from conftest import make_snapshot


def seed_march(developer_id, make_ticket):
    """Two on-time tickets and one late ticket assigned in March 2024."""
    assigned = datetime.datetime(2024, 3, 4, 9, 0)
    due = datetime.datetime(2024, 3, 8, 18, 0)
    make_ticket(developer_id, assigned, due, completed=datetime.datetime(2024, 3, 7, 12, 0))
    make_ticket(developer_id, assigned, due, completed=datetime.datetime(2024, 3, 8, 10, 0))
    return make_ticket(developer_id, assigned, due, completed=datetime.datetime(2024, 3, 11, 10, 0))


class TestGenerate:
    """Tests for generate_monthly_kpi and previews"""

    def test_generate_persists(self, history, repository, make_developer, make_ticket):
        dev = make_developer()
        seed_march(dev.id, make_ticket)

        kpi = history.generate_monthly_kpi(dev.id, 3, 2024)

        assert kpi.total_tickets == 3
        assert kpi.on_time_tickets == 2
        assert kpi.on_time_rate == pytest.approx(66.67)
        assert repository.get_kpi_snapshot(dev.id, 3, 2024).id == kpi.id

    def test_regenerate_overwrites(self, history, repository, make_developer, make_ticket):
        dev = make_developer()
        first = history.generate_monthly_kpi(dev.id, 3, 2024)
        seed_march(dev.id, make_ticket)
        second = history.generate_monthly_kpi(dev.id, 3, 2024)

        stored = repository.get_historical_kpis(dev.id)
        assert len(stored) == 1
        assert second.id == first.id
        assert stored[0].total_tickets == 3

    def test_zero_activity(self, history, make_developer):
        dev = make_developer()
        kpi = history.generate_monthly_kpi(dev.id, 3, 2024)
        assert kpi.total_tickets == 0
        assert kpi.on_time_rate == 0.0
        assert kpi.delivery_score == 0.0
        assert kpi.quality_score == 100.0
        assert kpi.trend is None

    def test_unknown_developer(self, history):
        with pytest.raises(NotFoundError):
            history.generate_monthly_kpi("missing", 3, 2024)

    def test_invalid_month(self, history, make_developer):
        dev = make_developer()
        with pytest.raises(ValidationError):
            history.generate_monthly_kpi(dev.id, 13, 2024)

    def test_preview_not_persisted(self, history, repository, make_developer):
        dev = make_developer()
        kpi = history.preview_monthly_kpi(dev.id, 3, 2024)
        assert kpi.id == f"preview-{dev.id}-2024-3"
        assert repository.get_historical_kpis(dev.id) == []

    def test_current_month_uses_clock(self, history, repository, make_developer):
        dev = make_developer()
        kpi = history.get_current_month_kpi(dev.id)
        assert (kpi.month, kpi.year) == (3, 2024)
        assert repository.get_historical_kpis(dev.id) == []

    def test_uses_stored_config(self, history, config_store, make_developer, make_ticket):
        dev = make_developer()
        seed_march(dev.id, make_ticket)
        config_store.set(KPIConfig(delivery_weight=1.0, quality_weight=0.0))
        kpi = history.generate_monthly_kpi(dev.id, 3, 2024)
        assert kpi.overall_score == kpi.delivery_score

    def test_get_or_generate_serves_stored(self, history, repository, make_developer):
        dev = make_developer()
        repository.upsert_kpi_snapshot(make_snapshot(dev.id, 3, 2024, 42.0))
        assert history.get_or_generate(dev.id, 3, 2024).overall_score == 42.0
        assert history.get_or_generate(dev.id, 3, 2024, force=True).overall_score == 50.0


class TestTrendFromHistory:
    """Tests for trend classification against stored snapshots"""

    def test_declining_after_strong_months(self, history, repository, make_developer):
        dev = make_developer()
        for month, year in [(12, 2023), (1, 2024), (2, 2024)]:
            repository.upsert_kpi_snapshot(make_snapshot(dev.id, month, year, 90.0))
        # zero activity scores 50
        assert history.generate_monthly_kpi(dev.id, 3, 2024).trend == KPITrend.DECLINING

    def test_later_periods_ignored(self, history, repository, make_developer):
        dev = make_developer()
        for month in (4, 5, 6):
            repository.upsert_kpi_snapshot(make_snapshot(dev.id, month, 2024, 90.0))
        assert history.generate_monthly_kpi(dev.id, 3, 2024).trend is None

    def test_history_trend(self, history, repository, make_developer):
        dev = make_developer()
        for month, score in [(1, 50.0), (2, 50.0), (3, 50.0), (4, 70.0)]:
            repository.upsert_kpi_snapshot(make_snapshot(dev.id, month, 2024, score))
        assert history.history_trend(dev.id) == KPITrend.IMPROVING


class TestTeamAggregate:
    """Tests for team aggregation"""

    def test_aggregate_means_and_sums(self):
        team = aggregate_team_kpis([
            make_snapshot("dev-1", 3, 2024, 80.0, total_tickets=4, total_bugs=1, on_time_rate=100.0),
            make_snapshot("dev-2", 3, 2024, 60.0, total_tickets=6, total_bugs=2, on_time_rate=50.0),
        ], 3, 2024)
        assert team.id == "team-2024-3"
        assert team.developer_id == "all"
        assert team.overall_score == 70.0
        assert team.on_time_rate == 75.0
        assert team.total_tickets == 10
        assert team.total_bugs == 3
        assert team.trend is None

    def test_aggregate_drops_trend(self):
        snapshot = make_snapshot("dev-1", 3, 2024, 80.0)
        snapshot.trend = KPITrend.IMPROVING
        assert aggregate_team_kpis([snapshot], 3, 2024).trend is None

    def test_aggregate_empty(self):
        assert aggregate_team_kpis([], 3, 2024) is None

    def test_team_from_previews(self, history, monkeypatch, make_developer):
        devs = [make_developer(), make_developer()]
        scores = {devs[0].id: 80.0, devs[1].id: 60.0}

        def fake_preview(developer_id, month, year):
            return make_snapshot(developer_id, month, year, scores[developer_id], total_tickets=5)

        monkeypatch.setattr(history, "preview_monthly_kpi", fake_preview)
        team = history.generate_team_kpi(3, 2024)
        assert team.overall_score == 70.0
        assert team.total_tickets == 10

    def test_failing_developer_excluded(self, history, monkeypatch, make_developer):
        good, bad = make_developer(), make_developer()

        def fake_preview(developer_id, month, year):
            if developer_id == bad.id:
                raise RuntimeError("boom")
            return make_snapshot(developer_id, month, year, 80.0, total_tickets=2)

        monkeypatch.setattr(history, "preview_monthly_kpi", fake_preview)
        team = history.generate_team_kpi(3, 2024)
        assert team.overall_score == 80.0
        assert team.total_tickets == 2

    def test_all_failing_returns_none(self, history, monkeypatch, make_developer):
        make_developer()

        def fake_preview(developer_id, month, year):
            raise RuntimeError("boom")

        monkeypatch.setattr(history, "preview_monthly_kpi", fake_preview)
        assert history.generate_team_kpi(3, 2024) is None

    def test_no_developers(self, history):
        assert history.generate_team_kpi(3, 2024) is None

    def test_team_is_read_only(self, history, repository, make_developer, make_ticket):
        devs = [make_developer(), make_developer()]
        for dev in devs:
            seed_march(dev.id, make_ticket)
        team = history.generate_team_kpi(3, 2024)
        assert team.total_tickets == 6
        for dev in devs:
            assert repository.get_historical_kpis(dev.id) == []

    def test_inactive_developers_skipped(self, history, directory, make_developer, make_ticket):
        active, inactive = make_developer(), make_developer()
        seed_march(active.id, make_ticket)
        seed_march(inactive.id, make_ticket)
        directory.deactivate_developer(inactive.id)
        assert history.generate_team_kpi(3, 2024).total_tickets == 3


class TestSeries:
    """Tests for the pandas-backed history series"""

    @pytest.fixture
    def seeded(self, repository, make_developer):
        dev = make_developer()
        for month, score in [(1, 60.0), (2, 70.0), (3, 80.0), (4, 90.0)]:
            repository.upsert_kpi_snapshot(make_snapshot(dev.id, month, 2024, score))
        return dev

    def test_history_frame_sorted(self, history, seeded):
        frame = history.history_frame(seeded.id)
        assert list(frame["period"]) == ["2024-01", "2024-02", "2024-03", "2024-04"]

    def test_trend_series_last_n(self, history, seeded):
        series = history.trend_series(seeded.id, last_n=2)
        assert list(series["period"]) == ["2024-03", "2024-04"]
        assert list(series["overall_score"]) == [80.0, 90.0]

    def test_rolling_scores(self, history, seeded):
        rolling = history.rolling_scores(seeded.id, window=3)
        assert list(rolling["overall_score"]) == [60.0, 65.0, 70.0, 80.0]

    def test_score_averages(self, history, seeded):
        assert history.score_averages(seeded.id)["overall_score"] == 75.0

    def test_score_averages_empty(self, history, make_developer):
        dev = make_developer()
        assert history.score_averages(dev.id) == {
            "delivery_score": 0.0, "quality_score": 0.0, "overall_score": 0.0,
        }

    def test_empty_frame_has_columns(self):
        frame = snapshots_to_frame([])
        assert frame.empty
        assert "overall_score" in frame.columns
        assert "period" in frame.columns
