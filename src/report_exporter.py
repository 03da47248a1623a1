"""Report export module: CSV rendering and tabular report frames."""
import io
import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from config import MONTH_NAMES
from errors import AggregateFailureError
from kpi_history import KPIHistory, snapshots_to_frame
from models import MonthlyKPI, validate_period

logger = logging.getLogger(__name__)

TEAM_LABEL = "All Developers (Team)"

# Display name -> MonthlyKPI attribute, in report column order
REPORT_COLUMNS = {
    "Total Tickets": "total_tickets",
    "Completed Tickets": "completed_tickets",
    "On-Time Tickets": "on_time_tickets",
    "Late Tickets": "late_tickets",
    "Reopened Tickets": "reopened_tickets",
    "On-Time Rate": "on_time_rate",
    "Avg Delivery Time": "avg_delivery_time",
    "Total Bugs": "total_bugs",
    "Developer Error Bugs": "developer_error_bugs",
    "Conceptual Bugs": "conceptual_bugs",
    "Other Bugs": "other_bugs",
    "Delivery Score": "delivery_score",
    "Quality Score": "quality_score",
    "Overall Score": "overall_score",
}
PERCENT_METRICS = {"On-Time Rate", "Delivery Score", "Quality Score", "Overall Score"}
DAYS_METRICS = {"Avg Delivery Time"}


def _format_metric(label: str, value) -> str:
    if label in PERCENT_METRICS:
        return f"{value:.2f}%"
    if label in DAYS_METRICS:
        return f"{value:.2f} days"
    return str(value)


def metric_rows(kpi: MonthlyKPI) -> pd.DataFrame:
    """Two-column Metric/Value frame for a single snapshot."""
    rows = [
        {"Metric": label, "Value": _format_metric(label, getattr(kpi, attr))}
        for label, attr in REPORT_COLUMNS.items()
    ]
    if kpi.trend is not None:
        rows.append({"Metric": "Trend", "Value": kpi.trend.value})
    return pd.DataFrame(rows, columns=["Metric", "Value"])


def render_kpi_csv(kpi: MonthlyKPI, developer_label: str, generated_at) -> str:
    """Render a snapshot as the CSV report text.

    The report starts with a short preamble (title, period, developer,
    generation time), a blank line, then the Metric/Value table.
    """
    preamble = [
        "KPI Report",
        f"Period: {MONTH_NAMES[kpi.month - 1]} {kpi.year}",
        f"Developer: {developer_label}",
        f"Generated: {generated_at:%Y-%m-%d %H:%M:%S}",
        "",
    ]
    buffer = io.StringIO()
    buffer.write("\n".join(preamble) + "\n")
    metric_rows(kpi).to_csv(buffer, index=False, lineterminator="\n")
    return buffer.getvalue()


def _stored_snapshot(history: KPIHistory, developer_id: str, month: int, year: int) -> Optional[MonthlyKPI]:
    for kpi in history.get_kpi_history(developer_id):
        if kpi.month == month and kpi.year == year:
            return kpi
    return None


def export_monthly_kpi_csv(history: KPIHistory, developer_id: Optional[str], month: int, year: int) -> str:
    """Export a month's KPI for one developer, or the whole team, as CSV text.

    Args:
        history: KPIHistory used for stored snapshots and live computation
        developer_id: Developer to report on, or None for the team aggregate
        month: Period month (1-12)
        year: Period year

    Returns:
        CSV report text

    Raises:
        AggregateFailureError: A team report was requested but no developer
            produced data for the period
        NotFoundError: The developer does not exist
    """
    validate_period(month, year)

    if developer_id is None:
        kpi = history.generate_team_kpi(month, year)
        if kpi is None:
            raise AggregateFailureError(f"No KPI data available for the team in {year}-{month:02d}")
        label = TEAM_LABEL
    else:
        kpi = _stored_snapshot(history, developer_id, month, year)
        if kpi is None:
            logger.info(f"No stored KPI for {developer_id} {year}-{month:02d}, computing live")
            kpi = history.preview_monthly_kpi(developer_id, month, year)
        label = developer_id

    return render_kpi_csv(kpi, label, kpi.generated_at or history.clock())


def build_report_frame(snapshots: Iterable[MonthlyKPI], team: Optional[MonthlyKPI] = None,
                       developer_names: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """Monthly report table, one row per developer plus an optional team row.

    Args:
        snapshots: Per-developer snapshots for the period
        team: Team aggregate appended as the last row
        developer_names: Optional id -> display name mapping

    Returns:
        DataFrame with Developer and Period columns followed by REPORT_COLUMNS
        and Trend
    """
    developer_names = developer_names or {}
    rows: List[MonthlyKPI] = sorted(
        snapshots, key=lambda kpi: developer_names.get(kpi.developer_id, kpi.developer_id)
    )
    if team is not None:
        rows.append(team)

    records = []
    for kpi in rows:
        if kpi is team:
            name = TEAM_LABEL
        else:
            name = developer_names.get(kpi.developer_id, kpi.developer_id)
        record = {"Developer": name, "Period": f"{kpi.year:04d}-{kpi.month:02d}"}
        for label, attr in REPORT_COLUMNS.items():
            record[label] = getattr(kpi, attr)
        record["Trend"] = kpi.trend.value if kpi.trend else ""
        records.append(record)

    return pd.DataFrame(records, columns=["Developer", "Period"] + list(REPORT_COLUMNS) + ["Trend"])


def build_history_frame(snapshots: Iterable[MonthlyKPI],
                        developer_names: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """Long-format score history (developer, period, three scores, trend)."""
    developer_names = developer_names or {}
    frame = snapshots_to_frame(snapshots)
    history = pd.DataFrame({
        "Developer": frame["developer_id"].map(lambda dev: developer_names.get(dev, dev)),
        "Period": frame["period"],
        "Delivery Score": frame["delivery_score"],
        "Quality Score": frame["quality_score"],
        "Overall Score": frame["overall_score"],
        "Trend": frame["trend"].fillna(""),
    })
    return history.sort_values(by=["Developer", "Period"]).reset_index(drop=True)
