"""KPI calculator module for per-developer monthly scores.

Delivery measures on-time completion of the tickets assigned in a period,
penalized for rework. Quality starts at 100 and loses points for bugs the
developer introduced, by bug type and severity. Overall is the weighted
combination of the two, and trend compares recent periods with older ones.
"""
import datetime
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Dict

from config import (
    EARLY_DELIVERY_MARGIN_DAYS,
    TREND_WINDOW,
    TREND_THRESHOLD,
    TREND_MIN_PERIODS,
    SCORE_MIN,
    SCORE_MAX,
)
from kpi_config import KPIConfig
from models import (
    Ticket, Bug, MonthlyKPI, BugType, BugSeverity, TicketComplexity, KPITrend,
    validate_period,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass
class TicketMetrics:
    total_tickets: int = 0
    completed_tickets: int = 0
    on_time_tickets: int = 0
    late_tickets: int = 0
    reopened_tickets: int = 0
    early_deliveries: int = 0
    late_critical_tickets: int = 0
    total_delivery_days: float = 0.0

    @property
    def on_time_rate(self) -> float:
        if self.completed_tickets == 0:
            return 0.0
        return self.on_time_tickets / self.completed_tickets * 100

    @property
    def avg_delivery_time(self) -> float:
        if self.completed_tickets == 0:
            return 0.0
        return self.total_delivery_days / self.completed_tickets


def _empty_severity_counts():
    return {severity: 0 for severity in BugSeverity}


@dataclass
class BugMetrics:
    total_bugs: int = 0
    developer_error_bugs: int = 0
    conceptual_bugs: int = 0
    developer_error_by_severity: Dict[BugSeverity, int] = field(default_factory=_empty_severity_counts)
    conceptual_by_severity: Dict[BugSeverity, int] = field(default_factory=_empty_severity_counts)

    @property
    def other_bugs(self) -> int:
        return max(0, self.total_bugs - self.developer_error_bugs - self.conceptual_bugs)


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def calculate_ticket_metrics(tickets: Iterable[Ticket]) -> TicketMetrics:
    """Count delivery metrics over the tickets assigned in a period.

    A ticket counts as completed only when its status is completed and it has
    a completion date. On-time means completed_date <= due_date, compared at
    full timestamp precision.

    Args:
        tickets: Tickets assigned to the developer within the period

    Returns:
        TicketMetrics with counts and summed delivery days
    """
    metrics = TicketMetrics()
    early_margin = datetime.timedelta(days=EARLY_DELIVERY_MARGIN_DAYS)

    for ticket in tickets:
        metrics.total_tickets += 1

        # Reopens count across the whole population, not just completed tickets
        if ticket.reopen_count > 0:
            metrics.reopened_tickets += 1

        if not ticket.is_completed:
            continue

        metrics.completed_tickets += 1
        if ticket.completed_date <= ticket.due_date:
            metrics.on_time_tickets += 1
            if ticket.due_date - ticket.completed_date > early_margin:
                metrics.early_deliveries += 1
        else:
            metrics.late_tickets += 1
            if ticket.complexity == TicketComplexity.CRITICAL:
                metrics.late_critical_tickets += 1

        elapsed = (ticket.completed_date - ticket.assigned_date).total_seconds()
        metrics.total_delivery_days += elapsed / SECONDS_PER_DAY

    return metrics


def calculate_bug_metrics(bugs: Iterable[Bug]) -> BugMetrics:
    """Classify the bugs attributed to a developer within a period.

    requirement_change, environment and third_party bugs are counted as
    "other" and never reach the penalty tables.
    """
    metrics = BugMetrics()

    for bug in bugs:
        metrics.total_bugs += 1
        if bug.bug_type == BugType.DEVELOPER_ERROR:
            metrics.developer_error_bugs += 1
            metrics.developer_error_by_severity[BugSeverity.parse(bug.severity)] += 1
        elif bug.bug_type == BugType.CONCEPTUAL:
            metrics.conceptual_bugs += 1
            metrics.conceptual_by_severity[BugSeverity.parse(bug.severity)] += 1

    return metrics


def calculate_delivery_score(metrics: TicketMetrics, config: KPIConfig) -> float:
    """Delivery score from the on-time rate.

    Formula:
        on_time_rate
        - reopened_tickets * reopen_penalty
        + early_deliveries * early_delivery_bonus
        - late_critical_tickets * late_critical_penalty

    Clamped to 0-100.
    """
    score = metrics.on_time_rate
    score -= metrics.reopened_tickets * config.reopen_penalty
    score += metrics.early_deliveries * config.early_delivery_bonus
    score -= metrics.late_critical_tickets * config.late_critical_penalty
    return clamp_score(score)


def calculate_quality_score(metrics: BugMetrics, config: KPIConfig) -> float:
    """Quality score: 100 minus severity penalties, clamped to 0-100.

    developer_error bugs use config.bug_penalties and conceptual bugs use
    config.conceptual_penalties.
    """
    deduction = 0.0
    for severity, count in metrics.developer_error_by_severity.items():
        deduction += count * config.bug_penalties.for_severity(severity)
    for severity, count in metrics.conceptual_by_severity.items():
        deduction += count * config.conceptual_penalties.for_severity(severity)
    return clamp_score(SCORE_MAX - deduction)


def normalize_weights(delivery_weight: float, quality_weight: float):
    """Scale the weights so they sum to 1.0.

    Negative weights are treated as zero; if nothing positive is left the
    split falls back to an even 50/50.
    """
    delivery_weight = max(0.0, delivery_weight)
    quality_weight = max(0.0, quality_weight)
    total = delivery_weight + quality_weight
    if total <= 0:
        logger.warning("KPI weights sum to zero, falling back to an even split")
        return 0.5, 0.5
    return delivery_weight / total, quality_weight / total


def calculate_overall_score(delivery_score: float, quality_score: float, config: KPIConfig) -> float:
    delivery_weight, quality_weight = normalize_weights(config.delivery_weight, config.quality_weight)
    return clamp_score(delivery_score * delivery_weight + quality_score * quality_weight)


def calculate_trend(scores: Sequence[float]) -> Optional[KPITrend]:
    """Classify a chronological series of overall scores (most recent last).

    The mean of the last TREND_WINDOW scores is compared with the mean of the
    up to TREND_WINDOW scores before them. Returns None when the series is
    too short to have both windows.
    """
    if len(scores) < TREND_MIN_PERIODS:
        return None

    recent = scores[-TREND_WINDOW:]
    older = scores[-2 * TREND_WINDOW:-TREND_WINDOW]

    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)
    diff = recent_avg - older_avg

    if diff > TREND_THRESHOLD:
        return KPITrend.IMPROVING
    if diff < -TREND_THRESHOLD:
        return KPITrend.DECLINING
    return KPITrend.STABLE


def sort_chronologically(snapshots: Iterable[MonthlyKPI]) -> List[MonthlyKPI]:
    return sorted(snapshots, key=lambda kpi: (kpi.year, kpi.month))


def scores_before_period(history: Iterable[MonthlyKPI], month: int, year: int) -> List[float]:
    """Overall scores of snapshots strictly before (month, year), oldest first."""
    earlier = [kpi for kpi in history if (kpi.year, kpi.month) < (year, month)]
    return [kpi.overall_score for kpi in sort_chronologically(earlier)]


def compute_monthly_kpi(
    kpi_id: str,
    developer_id: str,
    month: int,
    year: int,
    tickets: Iterable[Ticket],
    bugs: Iterable[Bug],
    config: KPIConfig,
    previous_scores: Sequence[float] = (),
    generated_at: Optional[datetime.datetime] = None,
) -> MonthlyKPI:
    """Compute a full MonthlyKPI snapshot for one developer and period.

    Args:
        kpi_id: Identifier to give the snapshot
        developer_id: Developer the tickets and bugs belong to
        month: Period month (1-12)
        year: Period year
        tickets: Tickets assigned to the developer within the period
        bugs: Bugs attributed to the developer within the period
        config: Active KPI configuration
        previous_scores: Overall scores of earlier periods, oldest first
        generated_at: Timestamp to record, defaults to now

    Returns:
        MonthlyKPI with metrics, scores and (when computable) trend
    """
    validate_period(month, year)

    ticket_metrics = calculate_ticket_metrics(tickets)
    bug_metrics = calculate_bug_metrics(bugs)

    delivery_score = calculate_delivery_score(ticket_metrics, config)
    quality_score = calculate_quality_score(bug_metrics, config)
    overall_score = calculate_overall_score(delivery_score, quality_score, config)

    trend = calculate_trend(list(previous_scores) + [overall_score])

    logger.debug(
        f"KPI {developer_id} {year}-{month:02d}: delivery={delivery_score:.1f} "
        f"quality={quality_score:.1f} overall={overall_score:.1f} trend={trend}"
    )

    return MonthlyKPI(
        id=kpi_id,
        developer_id=developer_id,
        month=month,
        year=year,
        total_tickets=ticket_metrics.total_tickets,
        completed_tickets=ticket_metrics.completed_tickets,
        on_time_tickets=ticket_metrics.on_time_tickets,
        late_tickets=ticket_metrics.late_tickets,
        reopened_tickets=ticket_metrics.reopened_tickets,
        on_time_rate=round(ticket_metrics.on_time_rate, 2),
        avg_delivery_time=round(ticket_metrics.avg_delivery_time, 2),
        total_bugs=bug_metrics.total_bugs,
        developer_error_bugs=bug_metrics.developer_error_bugs,
        conceptual_bugs=bug_metrics.conceptual_bugs,
        other_bugs=bug_metrics.other_bugs,
        delivery_score=round(delivery_score, 2),
        quality_score=round(quality_score, 2),
        overall_score=round(overall_score, 2),
        trend=trend,
        generated_at=generated_at or datetime.datetime.now(),
    )
