"""Domain types for developers, tickets, bugs and monthly KPI snapshots."""
import datetime
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Dict, Any, Tuple

from errors import ValidationError


class _ParseableEnum(str, Enum):
    """String enum that reports bad values as ValidationError."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValidationError(f"Invalid {cls.__name__}: {value!r} (expected one of {allowed})")


class DeveloperRole(_ParseableEnum):
    JUNIOR = "junior"
    MID = "mid"
    SENIOR = "senior"
    LEAD = "lead"


class TicketStatus(_ParseableEnum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"
    REOPENED = "reopened"


class TicketComplexity(_ParseableEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BugSeverity(_ParseableEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BugType(_ParseableEnum):
    DEVELOPER_ERROR = "developer_error"
    CONCEPTUAL = "conceptual"
    REQUIREMENT_CHANGE = "requirement_change"
    ENVIRONMENT = "environment"
    THIRD_PARTY = "third_party"


class KPITrend(_ParseableEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass
class Developer:
    id: str
    name: str
    email: str
    role: DeveloperRole
    start_date: datetime.date
    team: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


@dataclass
class Ticket:
    id: str
    title: str
    developer_id: str
    assigned_date: datetime.datetime
    due_date: datetime.datetime
    status: TicketStatus = TicketStatus.ASSIGNED
    complexity: TicketComplexity = TicketComplexity.MEDIUM
    description: Optional[str] = None
    completed_date: Optional[datetime.datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    reopen_count: int = 0
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TicketStatus.COMPLETED and self.completed_date is not None


@dataclass
class Bug:
    id: str
    ticket_id: str
    developer_id: str
    title: str
    severity: BugSeverity
    bug_type: BugType
    created_at: datetime.datetime
    description: Optional[str] = None
    reported_by: Optional[str] = None
    is_resolved: bool = False
    resolved_date: Optional[datetime.datetime] = None
    resolved_by_developer_id: Optional[str] = None
    fix_ticket_id: Optional[str] = None
    updated_at: Optional[datetime.datetime] = None


@dataclass
class MonthlyKPI:
    id: str
    developer_id: str
    month: int
    year: int

    # Ticket Metrics
    total_tickets: int = 0
    completed_tickets: int = 0
    on_time_tickets: int = 0
    late_tickets: int = 0
    reopened_tickets: int = 0

    # Time Metrics
    on_time_rate: float = 0.0
    avg_delivery_time: float = 0.0

    # Bug Metrics
    total_bugs: int = 0
    developer_error_bugs: int = 0
    conceptual_bugs: int = 0
    other_bugs: int = 0

    # Calculated Scores
    delivery_score: float = 0.0
    quality_score: float = 0.0
    overall_score: float = 0.0

    trend: Optional[KPITrend] = None
    generated_at: Optional[datetime.datetime] = None

    @property
    def period(self) -> Tuple[int, int]:
        return (self.year, self.month)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["trend"] = self.trend.value if self.trend else None
        return data


# --- Boundary inputs ---

@dataclass
class CreateDeveloperInput:
    name: str
    email: str
    role: str
    start_date: datetime.date
    team: Optional[str] = None


@dataclass
class UpdateDeveloperInput:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    team: Optional[str] = None
    is_active: Optional[bool] = None


@dataclass
class CreateTicketInput:
    title: str
    developer_id: str
    due_date: datetime.datetime
    complexity: str = "medium"
    description: Optional[str] = None
    estimated_hours: Optional[float] = None
    assigned_date: Optional[datetime.datetime] = None


@dataclass
class UpdateTicketInput:
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    developer_id: Optional[str] = None
    due_date: Optional[datetime.datetime] = None
    status: Optional[str] = None
    estimated_hours: Optional[float] = None
    complexity: Optional[str] = None


@dataclass
class CreateBugInput:
    ticket_id: str
    title: str
    severity: str
    bug_type: str
    description: Optional[str] = None
    reported_by: Optional[str] = None
    developer_id: Optional[str] = None
    created_at: Optional[datetime.datetime] = None


@dataclass
class UpdateBugInput:
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    severity: Optional[str] = None
    bug_type: Optional[str] = None


def validate_period(month: int, year: int):
    """Reject months outside 1-12 and non-positive years."""
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12 (got {month!r})")
    if not isinstance(year, int) or year < 1:
        raise ValidationError(f"Year must be a positive integer (got {year!r})")


def period_bounds(month: int, year: int) -> Tuple[datetime.datetime, datetime.datetime]:
    """Return the [start, end) datetimes covering a (month, year) period."""
    validate_period(month, year)
    start = datetime.datetime(year, month, 1)
    if month == 12:
        end = datetime.datetime(year + 1, 1, 1)
    else:
        end = datetime.datetime(year, month + 1, 1)
    return start, end
