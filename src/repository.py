"""Repository over the tracker database.

Maps ORM records to the domain dataclasses and provides the period queries
the KPI engine consumes:

- list_tickets_for_developer_in_period: tickets by *assignment* date
- list_bugs_for_developer_in_period: bugs by *creation* date
- get_historical_kpis / upsert_kpi_snapshot: stored monthly snapshots
"""
import logging
from typing import List, Optional

from database import DatabaseManager, DeveloperRecord, TicketRecord, BugRecord, KPISnapshotRecord
from errors import NotFoundError
from models import (
    Developer, Ticket, Bug, MonthlyKPI,
    DeveloperRole, TicketStatus, TicketComplexity, BugSeverity, BugType, KPITrend,
    period_bounds,
)

logger = logging.getLogger(__name__)

DEVELOPER_FIELDS = ["name", "email", "team", "start_date", "is_active", "created_at", "updated_at"]
TICKET_FIELDS = [
    "title", "description", "developer_id", "assigned_date", "due_date", "completed_date",
    "estimated_hours", "actual_hours", "reopen_count", "created_at", "updated_at",
]
BUG_FIELDS = [
    "ticket_id", "developer_id", "reported_by", "title", "description", "is_resolved",
    "resolved_date", "resolved_by_developer_id", "fix_ticket_id", "created_at", "updated_at",
]
KPI_FIELDS = [
    "total_tickets", "completed_tickets", "on_time_tickets", "late_tickets", "reopened_tickets",
    "on_time_rate", "avg_delivery_time",
    "total_bugs", "developer_error_bugs", "conceptual_bugs", "other_bugs",
    "delivery_score", "quality_score", "overall_score", "generated_at",
]


def _copy_fields(source, target, fields):
    for name in fields:
        setattr(target, name, getattr(source, name))


def _to_developer(record: DeveloperRecord) -> Developer:
    return Developer(
        id=record.id,
        name=record.name,
        email=record.email,
        role=DeveloperRole.parse(record.role),
        team=record.team,
        start_date=record.start_date,
        is_active=record.is_active,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_ticket(record: TicketRecord) -> Ticket:
    return Ticket(
        id=record.id,
        title=record.title,
        description=record.description,
        developer_id=record.developer_id,
        assigned_date=record.assigned_date,
        due_date=record.due_date,
        completed_date=record.completed_date,
        status=TicketStatus.parse(record.status),
        complexity=TicketComplexity.parse(record.complexity),
        estimated_hours=record.estimated_hours,
        actual_hours=record.actual_hours,
        reopen_count=record.reopen_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_bug(record: BugRecord) -> Bug:
    return Bug(
        id=record.id,
        ticket_id=record.ticket_id,
        developer_id=record.developer_id,
        reported_by=record.reported_by,
        title=record.title,
        description=record.description,
        severity=BugSeverity.parse(record.severity),
        bug_type=BugType.parse(record.bug_type),
        is_resolved=record.is_resolved,
        resolved_date=record.resolved_date,
        resolved_by_developer_id=record.resolved_by_developer_id,
        fix_ticket_id=record.fix_ticket_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_kpi(record: KPISnapshotRecord) -> MonthlyKPI:
    kpi = MonthlyKPI(
        id=record.id,
        developer_id=record.developer_id,
        month=record.month,
        year=record.year,
        trend=KPITrend.parse(record.trend) if record.trend else None,
    )
    _copy_fields(record, kpi, KPI_FIELDS)
    return kpi


class TrackerRepository:
    """Data access for developers, tickets, bugs and KPI snapshots."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    # --- Developers ---

    def add_developer(self, developer: Developer) -> Developer:
        with self.db.get_session() as session:
            record = DeveloperRecord(id=developer.id, role=developer.role.value)
            _copy_fields(developer, record, DEVELOPER_FIELDS)
            session.add(record)
        logger.info(f"Created developer {developer.id} ({developer.name})")
        return developer

    def get_developer(self, developer_id: str) -> Developer:
        with self.db.get_session() as session:
            record = session.get(DeveloperRecord, developer_id)
            if record is None:
                raise NotFoundError("Developer", developer_id)
            return _to_developer(record)

    def list_developers(self, include_inactive: bool = False) -> List[Developer]:
        """List developers by name; deactivated ones only when asked."""
        with self.db.get_session() as session:
            query = session.query(DeveloperRecord)
            if not include_inactive:
                query = query.filter(DeveloperRecord.is_active.is_(True))
            return [_to_developer(r) for r in query.order_by(DeveloperRecord.name).all()]

    def save_developer(self, developer: Developer) -> Developer:
        with self.db.get_session() as session:
            record = session.get(DeveloperRecord, developer.id)
            if record is None:
                raise NotFoundError("Developer", developer.id)
            _copy_fields(developer, record, DEVELOPER_FIELDS)
            record.role = developer.role.value
        return developer

    # --- Tickets ---

    def add_ticket(self, ticket: Ticket) -> Ticket:
        with self.db.get_session() as session:
            record = TicketRecord(
                id=ticket.id, status=ticket.status.value, complexity=ticket.complexity.value
            )
            _copy_fields(ticket, record, TICKET_FIELDS)
            session.add(record)
        return ticket

    def get_ticket(self, ticket_id: str) -> Ticket:
        with self.db.get_session() as session:
            record = session.get(TicketRecord, ticket_id)
            if record is None:
                raise NotFoundError("Ticket", ticket_id)
            return _to_ticket(record)

    def save_ticket(self, ticket: Ticket) -> Ticket:
        with self.db.get_session() as session:
            self._write_ticket(session, ticket)
        return ticket

    @staticmethod
    def _write_ticket(session, ticket: Ticket):
        record = session.get(TicketRecord, ticket.id)
        if record is None:
            raise NotFoundError("Ticket", ticket.id)
        _copy_fields(ticket, record, TICKET_FIELDS)
        record.status = ticket.status.value
        record.complexity = ticket.complexity.value

    def list_tickets(self, developer_id: Optional[str] = None, status=None) -> List[Ticket]:
        with self.db.get_session() as session:
            query = session.query(TicketRecord)
            if developer_id is not None:
                query = query.filter(TicketRecord.developer_id == developer_id)
            if status is not None:
                query = query.filter(TicketRecord.status == TicketStatus.parse(status).value)
            return [_to_ticket(r) for r in query.order_by(TicketRecord.assigned_date).all()]

    def list_tickets_for_developer_in_period(self, developer_id: str, month: int, year: int) -> List[Ticket]:
        """Tickets owned by the developer and *assigned* within the period."""
        start, end = period_bounds(month, year)
        with self.db.get_session() as session:
            records = (
                session.query(TicketRecord)
                .filter(
                    TicketRecord.developer_id == developer_id,
                    TicketRecord.assigned_date >= start,
                    TicketRecord.assigned_date < end,
                )
                .order_by(TicketRecord.assigned_date)
                .all()
            )
            return [_to_ticket(r) for r in records]

    # --- Bugs ---

    def add_bug(self, bug: Bug) -> Bug:
        with self.db.get_session() as session:
            record = BugRecord(id=bug.id, severity=bug.severity.value, bug_type=bug.bug_type.value)
            _copy_fields(bug, record, BUG_FIELDS)
            session.add(record)
        return bug

    def get_bug(self, bug_id: str) -> Bug:
        with self.db.get_session() as session:
            record = session.get(BugRecord, bug_id)
            if record is None:
                raise NotFoundError("Bug", bug_id)
            return _to_bug(record)

    def save_bug(self, bug: Bug, fix_ticket: Optional[Ticket] = None) -> Bug:
        """Persist a bug, and optionally its fix ticket, in one transaction."""
        with self.db.get_session() as session:
            record = session.get(BugRecord, bug.id)
            if record is None:
                raise NotFoundError("Bug", bug.id)
            _copy_fields(bug, record, BUG_FIELDS)
            record.severity = bug.severity.value
            record.bug_type = bug.bug_type.value
            if fix_ticket is not None:
                self._write_ticket(session, fix_ticket)
        return bug

    def list_bugs(self, developer_id: Optional[str] = None, ticket_id: Optional[str] = None,
                  is_resolved: Optional[bool] = None) -> List[Bug]:
        with self.db.get_session() as session:
            query = session.query(BugRecord)
            if developer_id is not None:
                query = query.filter(BugRecord.developer_id == developer_id)
            if ticket_id is not None:
                query = query.filter(BugRecord.ticket_id == ticket_id)
            if is_resolved is not None:
                query = query.filter(BugRecord.is_resolved.is_(is_resolved))
            return [_to_bug(r) for r in query.order_by(BugRecord.created_at).all()]

    def list_bugs_for_developer_in_period(self, developer_id: str, month: int, year: int) -> List[Bug]:
        """Bugs attributed to the developer and created within the period."""
        start, end = period_bounds(month, year)
        with self.db.get_session() as session:
            records = (
                session.query(BugRecord)
                .filter(
                    BugRecord.developer_id == developer_id,
                    BugRecord.created_at >= start,
                    BugRecord.created_at < end,
                )
                .order_by(BugRecord.created_at)
                .all()
            )
            return [_to_bug(r) for r in records]

    # --- KPI snapshots ---

    def get_historical_kpis(self, developer_id: str) -> List[MonthlyKPI]:
        """All stored snapshots for a developer, newest period first."""
        with self.db.get_session() as session:
            records = (
                session.query(KPISnapshotRecord)
                .filter(KPISnapshotRecord.developer_id == developer_id)
                .order_by(KPISnapshotRecord.year.desc(), KPISnapshotRecord.month.desc())
                .all()
            )
            return [_to_kpi(r) for r in records]

    def get_kpi_snapshot(self, developer_id: str, month: int, year: int) -> Optional[MonthlyKPI]:
        with self.db.get_session() as session:
            record = (
                session.query(KPISnapshotRecord)
                .filter_by(developer_id=developer_id, month=month, year=year)
                .one_or_none()
            )
            return _to_kpi(record) if record is not None else None

    def upsert_kpi_snapshot(self, snapshot: MonthlyKPI) -> MonthlyKPI:
        """Store a snapshot, overwriting any row for the same developer and period.

        An overwritten row keeps its original id; the returned snapshot carries it.
        """
        with self.db.get_session() as session:
            record = (
                session.query(KPISnapshotRecord)
                .filter_by(developer_id=snapshot.developer_id, month=snapshot.month, year=snapshot.year)
                .one_or_none()
            )
            if record is None:
                record = KPISnapshotRecord(
                    id=snapshot.id,
                    developer_id=snapshot.developer_id,
                    month=snapshot.month,
                    year=snapshot.year,
                )
                session.add(record)
            else:
                logger.info(
                    f"Overwriting KPI snapshot for {snapshot.developer_id} "
                    f"{snapshot.year}-{snapshot.month:02d}"
                )
                snapshot.id = record.id
            _copy_fields(snapshot, record, KPI_FIELDS)
            record.trend = snapshot.trend.value if snapshot.trend else None
        return snapshot
