"""KPI history: snapshot generation, team aggregation and trend series."""
import datetime
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd

from config import TEAM_WORKERS, TEAM_DEVELOPER_ID, TREND_WINDOW
from kpi_calculator import compute_monthly_kpi, scores_before_period, calculate_trend, sort_chronologically
from kpi_config import ConfigStore
from models import MonthlyKPI, validate_period

logger = logging.getLogger(__name__)

COUNT_FIELDS = [
    "total_tickets", "completed_tickets", "on_time_tickets", "late_tickets", "reopened_tickets",
    "total_bugs", "developer_error_bugs", "conceptual_bugs", "other_bugs",
]
RATE_FIELDS = [
    "on_time_rate", "avg_delivery_time", "delivery_score", "quality_score", "overall_score",
]
SCORE_FIELDS = ["delivery_score", "quality_score", "overall_score"]
KPI_COLUMNS = ["id", "developer_id", "month", "year"] + COUNT_FIELDS + RATE_FIELDS + ["trend", "generated_at"]


def snapshots_to_frame(snapshots: Iterable[MonthlyKPI]) -> pd.DataFrame:
    """Build a chronologically sorted DataFrame with a 'period' (YYYY-MM) column."""
    rows = [kpi.to_dict() for kpi in snapshots]
    if not rows:
        return pd.DataFrame(columns=KPI_COLUMNS + ["period"])

    frame = pd.DataFrame(rows, columns=KPI_COLUMNS)
    frame.sort_values(by=["year", "month"], inplace=True)
    frame["period"] = frame.apply(lambda row: f"{int(row['year']):04d}-{int(row['month']):02d}", axis=1)
    return frame.reset_index(drop=True)


def aggregate_team_kpis(snapshots: List[MonthlyKPI], month: int, year: int,
                        generated_at: Optional[datetime.datetime] = None) -> Optional[MonthlyKPI]:
    """Combine per-developer snapshots into a team row.

    Count fields are summed and rate/score fields are averaged across
    developers. Team rows never carry a trend. Returns None for no input.
    """
    if not snapshots:
        return None

    frame = snapshots_to_frame(snapshots)
    sums = frame[COUNT_FIELDS].sum()
    means = frame[RATE_FIELDS].astype(float).mean()

    team = MonthlyKPI(
        id=f"team-{year}-{month}",
        developer_id=TEAM_DEVELOPER_ID,
        month=month,
        year=year,
        trend=None,
        generated_at=generated_at or datetime.datetime.now(),
    )
    for name in COUNT_FIELDS:
        setattr(team, name, int(sums[name]))
    for name in RATE_FIELDS:
        setattr(team, name, round(float(means[name]), 2))
    return team


class KPIHistory:
    """Generates, stores and aggregates monthly KPI snapshots.

    The repository must provide get_developer, list_developers,
    list_tickets_for_developer_in_period, list_bugs_for_developer_in_period,
    get_historical_kpis and upsert_kpi_snapshot.
    """

    def __init__(self, repository, config_store: Optional[ConfigStore] = None,
                 clock: Optional[Callable[[], datetime.datetime]] = None,
                 max_workers: Optional[int] = None):
        self.repository = repository
        self.config_store = config_store if config_store is not None else ConfigStore()
        self.clock = clock or datetime.datetime.now
        self.max_workers = max_workers or TEAM_WORKERS

    def _compute(self, developer_id: str, month: int, year: int, kpi_id: str) -> MonthlyKPI:
        validate_period(month, year)
        # Raises NotFoundError for unknown developers
        self.repository.get_developer(developer_id)

        config = self.config_store.get()
        tickets = self.repository.list_tickets_for_developer_in_period(developer_id, month, year)
        bugs = self.repository.list_bugs_for_developer_in_period(developer_id, month, year)
        history = self.repository.get_historical_kpis(developer_id)

        return compute_monthly_kpi(
            kpi_id=kpi_id,
            developer_id=developer_id,
            month=month,
            year=year,
            tickets=tickets,
            bugs=bugs,
            config=config,
            previous_scores=scores_before_period(history, month, year),
            generated_at=self.clock(),
        )

    def generate_monthly_kpi(self, developer_id: str, month: int, year: int) -> MonthlyKPI:
        """Compute, persist and return the snapshot for a developer and period."""
        kpi = self._compute(developer_id, month, year, kpi_id=str(uuid.uuid4()))
        stored = self.repository.upsert_kpi_snapshot(kpi)
        logger.info(
            f"Generated KPI for {developer_id} {year}-{month:02d}: overall={stored.overall_score}"
        )
        return stored

    def preview_monthly_kpi(self, developer_id: str, month: int, year: int) -> MonthlyKPI:
        """Compute a snapshot without storing it."""
        return self._compute(developer_id, month, year, kpi_id=f"preview-{developer_id}-{year}-{month}")

    def get_current_month_kpi(self, developer_id: str) -> MonthlyKPI:
        """Live preview for the current month; never persisted."""
        now = self.clock()
        return self.preview_monthly_kpi(developer_id, now.month, now.year)

    def get_kpi_history(self, developer_id: str) -> List[MonthlyKPI]:
        """All stored snapshots for a developer, newest first."""
        return self.repository.get_historical_kpis(developer_id)

    def get_or_generate(self, developer_id: str, month: int, year: int, force: bool = False) -> MonthlyKPI:
        """Serve the stored snapshot for the period, generating it when absent or forced."""
        if not force:
            for kpi in self.repository.get_historical_kpis(developer_id):
                if kpi.month == month and kpi.year == year:
                    return kpi
        return self.generate_monthly_kpi(developer_id, month, year)

    def generate_team_kpi(self, month: int, year: int) -> Optional[MonthlyKPI]:
        """Aggregate KPI across all active developers for a period.

        Per-developer KPIs are computed concurrently and read-only. A developer
        whose computation fails is left out; if none succeed, returns None.
        """
        validate_period(month, year)
        developers = self.repository.list_developers()
        if not developers:
            logger.warning("No active developers found for team KPI")
            return None

        results = []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(developers))) as executor:
            future_to_developer = {
                executor.submit(self.preview_monthly_kpi, developer.id, month, year): developer
                for developer in developers
            }
            for future in as_completed(future_to_developer):
                developer = future_to_developer[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.warning(f"Excluding {developer.id} from team KPI {year}-{month:02d}: {e}")

        if not results:
            logger.warning(f"No KPI data for any developer in {year}-{month:02d}")
            return None

        logger.info(f"Aggregated team KPI {year}-{month:02d} over {len(results)} developers")
        return aggregate_team_kpis(results, month, year, generated_at=self.clock())

    # --- Series for charts ---

    def history_frame(self, developer_id: str) -> pd.DataFrame:
        return snapshots_to_frame(self.repository.get_historical_kpis(developer_id))

    def trend_series(self, developer_id: str, last_n: int = 12) -> pd.DataFrame:
        """Scores of the last N stored periods, oldest first."""
        frame = self.history_frame(developer_id)
        return frame[["period"] + SCORE_FIELDS].tail(last_n).reset_index(drop=True)

    def rolling_scores(self, developer_id: str, window: int = TREND_WINDOW) -> pd.DataFrame:
        """Rolling mean of each score over `window` periods (shorter at the start)."""
        frame = self.history_frame(developer_id)
        rolling = frame[SCORE_FIELDS].astype(float).rolling(window=window, min_periods=1).mean().round(2)
        rolling.insert(0, "period", frame["period"])
        return rolling

    def score_averages(self, developer_id: str) -> Dict[str, float]:
        """Mean of each score across all stored periods (0 when there are none)."""
        frame = self.history_frame(developer_id)
        if frame.empty:
            return {name: 0.0 for name in SCORE_FIELDS}
        means = frame[SCORE_FIELDS].astype(float).mean()
        return {name: round(float(means[name]), 2) for name in SCORE_FIELDS}

    def history_trend(self, developer_id: str):
        """Trend over the whole stored history, or None with fewer than 4 periods."""
        history = sort_chronologically(self.repository.get_historical_kpis(developer_id))
        return calculate_trend([kpi.overall_score for kpi in history])
