"""Edit-boundary operations for developers, tickets and bugs.

Ticket status moves along assigned -> in_progress -> review -> completed.
A completed ticket only leaves that state through reopen(), which counts
the rework; a reopened ticket resumes at in_progress.
"""
import datetime
import logging
import uuid
from typing import Callable, Optional

from errors import InvalidTransitionError, ValidationError
from models import (
    Developer, Ticket, Bug,
    CreateDeveloperInput, UpdateDeveloperInput, CreateTicketInput, UpdateTicketInput,
    CreateBugInput, UpdateBugInput,
    DeveloperRole, TicketStatus, TicketComplexity, BugSeverity, BugType,
)
from repository import TrackerRepository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    TicketStatus.ASSIGNED: {TicketStatus.IN_PROGRESS},
    TicketStatus.IN_PROGRESS: {TicketStatus.REVIEW, TicketStatus.ASSIGNED},
    TicketStatus.REVIEW: {TicketStatus.COMPLETED, TicketStatus.IN_PROGRESS},
    TicketStatus.COMPLETED: set(),
    TicketStatus.REOPENED: {TicketStatus.IN_PROGRESS},
}

# Completing again from completed accumulates more hours
COMPLETABLE_FROM = {TicketStatus.REVIEW, TicketStatus.COMPLETED}


def _require_non_negative(name, value):
    if value is not None and value < 0:
        raise ValidationError(f"{name} must be non-negative (got {value})")


def _require_text(name, value):
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value).strip()


class _Workflow:
    def __init__(self, repository: TrackerRepository,
                 clock: Optional[Callable[[], datetime.datetime]] = None):
        self.repository = repository
        self.clock = clock or datetime.datetime.now


class DeveloperDirectory(_Workflow):
    """Create, edit and soft-delete developers."""

    def create_developer(self, data: CreateDeveloperInput) -> Developer:
        now = self.clock()
        developer = Developer(
            id=str(uuid.uuid4()),
            name=_require_text("Name", data.name),
            email=_require_text("Email", data.email),
            role=DeveloperRole.parse(data.role),
            team=data.team,
            start_date=data.start_date,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        return self.repository.add_developer(developer)

    def update_developer(self, data: UpdateDeveloperInput) -> Developer:
        developer = self.repository.get_developer(data.id)
        if data.name is not None:
            developer.name = _require_text("Name", data.name)
        if data.email is not None:
            developer.email = _require_text("Email", data.email)
        if data.role is not None:
            developer.role = DeveloperRole.parse(data.role)
        if data.team is not None:
            developer.team = data.team or None
        if data.is_active is not None:
            developer.is_active = data.is_active
        developer.updated_at = self.clock()
        return self.repository.save_developer(developer)

    def deactivate_developer(self, developer_id: str) -> Developer:
        """Soft delete: hide from current listings, keep all history."""
        developer = self.repository.get_developer(developer_id)
        developer.is_active = False
        developer.updated_at = self.clock()
        logger.info(f"Deactivated developer {developer_id}")
        return self.repository.save_developer(developer)

    def reactivate_developer(self, developer_id: str) -> Developer:
        developer = self.repository.get_developer(developer_id)
        developer.is_active = True
        developer.updated_at = self.clock()
        return self.repository.save_developer(developer)


class TicketWorkflow(_Workflow):
    """Ticket creation, status transitions, completion and reopening."""

    def create_ticket(self, data: CreateTicketInput) -> Ticket:
        self.repository.get_developer(data.developer_id)
        _require_non_negative("Estimated hours", data.estimated_hours)

        now = self.clock()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            title=_require_text("Title", data.title),
            description=data.description,
            developer_id=data.developer_id,
            assigned_date=data.assigned_date or now,
            due_date=data.due_date,
            status=TicketStatus.ASSIGNED,
            complexity=TicketComplexity.parse(data.complexity),
            estimated_hours=data.estimated_hours,
            reopen_count=0,
            created_at=now,
            updated_at=now,
        )
        return self.repository.add_ticket(ticket)

    def update_ticket(self, data: UpdateTicketInput) -> Ticket:
        ticket = self.repository.get_ticket(data.id)
        if data.title is not None:
            ticket.title = _require_text("Title", data.title)
        if data.description is not None:
            ticket.description = data.description
        if data.developer_id is not None:
            self.repository.get_developer(data.developer_id)
            ticket.developer_id = data.developer_id
        if data.due_date is not None:
            ticket.due_date = data.due_date
        if data.estimated_hours is not None:
            _require_non_negative("Estimated hours", data.estimated_hours)
            ticket.estimated_hours = data.estimated_hours
        if data.complexity is not None:
            ticket.complexity = TicketComplexity.parse(data.complexity)
        if data.status is not None:
            self._transition(ticket, TicketStatus.parse(data.status))
        ticket.updated_at = self.clock()
        return self.repository.save_ticket(ticket)

    def update_status(self, ticket_id: str, status) -> Ticket:
        ticket = self.repository.get_ticket(ticket_id)
        self._transition(ticket, TicketStatus.parse(status))
        ticket.updated_at = self.clock()
        return self.repository.save_ticket(ticket)

    def _transition(self, ticket: Ticket, target: TicketStatus):
        if target == ticket.status:
            return
        if target not in ALLOWED_TRANSITIONS[ticket.status]:
            raise InvalidTransitionError(ticket.id, ticket.status.value, target.value)
        if target == TicketStatus.COMPLETED:
            ticket.completed_date = self.clock()
        ticket.status = target

    def complete_ticket(self, ticket_id: str, actual_hours: Optional[float] = None,
                        completion_date: Optional[datetime.datetime] = None) -> Ticket:
        """Mark a ticket completed, adding actual_hours to any hours already logged.

        Can be called again on a completed ticket to log more hours; the
        latest completion date always wins.
        """
        _require_non_negative("Actual hours", actual_hours)
        ticket = self.repository.get_ticket(ticket_id)
        if ticket.status not in COMPLETABLE_FROM:
            raise InvalidTransitionError(ticket.id, ticket.status.value, TicketStatus.COMPLETED.value)

        if actual_hours is not None:
            ticket.actual_hours = (ticket.actual_hours or 0.0) + actual_hours
        ticket.completed_date = completion_date or self.clock()
        ticket.status = TicketStatus.COMPLETED
        ticket.updated_at = self.clock()
        logger.info(f"Completed ticket {ticket_id} (actual hours: {ticket.actual_hours})")
        return self.repository.save_ticket(ticket)

    def reopen_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.repository.get_ticket(ticket_id)
        if ticket.status != TicketStatus.COMPLETED:
            raise InvalidTransitionError(ticket.id, ticket.status.value, TicketStatus.REOPENED.value)

        ticket.status = TicketStatus.REOPENED
        ticket.reopen_count += 1
        ticket.updated_at = self.clock()
        logger.info(f"Reopened ticket {ticket_id} (reopen count: {ticket.reopen_count})")
        return self.repository.save_ticket(ticket)

    def update_completion_date(self, ticket_id: str, completion_date: datetime.datetime) -> Ticket:
        ticket = self.repository.get_ticket(ticket_id)
        if ticket.status != TicketStatus.COMPLETED:
            raise ValidationError(f"Ticket {ticket_id} is not completed")
        ticket.completed_date = completion_date
        ticket.updated_at = self.clock()
        return self.repository.save_ticket(ticket)

    def update_due_date(self, ticket_id: str, due_date: datetime.datetime) -> Ticket:
        ticket = self.repository.get_ticket(ticket_id)
        ticket.due_date = due_date
        ticket.updated_at = self.clock()
        return self.repository.save_ticket(ticket)

    def update_reopen_count(self, ticket_id: str, reopen_count: int) -> Ticket:
        if reopen_count < 0:
            raise ValidationError(f"Reopen count must be non-negative (got {reopen_count})")
        ticket = self.repository.get_ticket(ticket_id)
        ticket.reopen_count = reopen_count
        ticket.updated_at = self.clock()
        return self.repository.save_ticket(ticket)


class BugWorkflow(_Workflow):
    """Bug creation, reclassification and resolution."""

    def create_bug(self, data: CreateBugInput) -> Bug:
        """Record a bug found in a ticket.

        The bug is attributed to the ticket owner unless developer_id says
        otherwise; that developer takes the quality penalty.
        """
        ticket = self.repository.get_ticket(data.ticket_id)
        developer_id = data.developer_id or ticket.developer_id
        self.repository.get_developer(developer_id)

        now = self.clock()
        bug = Bug(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            developer_id=developer_id,
            reported_by=data.reported_by,
            title=_require_text("Title", data.title),
            description=data.description,
            severity=BugSeverity.parse(data.severity),
            bug_type=BugType.parse(data.bug_type),
            created_at=data.created_at or now,
            updated_at=now,
        )
        return self.repository.add_bug(bug)

    def update_bug(self, data: UpdateBugInput) -> Bug:
        bug = self.repository.get_bug(data.id)
        if data.title is not None:
            bug.title = _require_text("Title", data.title)
        if data.description is not None:
            bug.description = data.description
        if data.severity is not None:
            bug.severity = BugSeverity.parse(data.severity)
        if data.bug_type is not None:
            bug.bug_type = BugType.parse(data.bug_type)
        bug.updated_at = self.clock()
        return self.repository.save_bug(bug)

    def reclassify_bug(self, bug_id: str, bug_type) -> Bug:
        """Change a bug's type; a no-op when the type is unchanged."""
        new_type = BugType.parse(bug_type)
        bug = self.repository.get_bug(bug_id)
        if bug.bug_type == new_type:
            return bug

        logger.info(f"Reclassified bug {bug_id}: {bug.bug_type.value} -> {new_type.value}")
        bug.bug_type = new_type
        bug.updated_at = self.clock()
        return self.repository.save_bug(bug)

    def resolve_bug(self, bug_id: str, resolved_by_developer_id: Optional[str] = None,
                    fix_ticket_id: Optional[str] = None, fix_hours: Optional[float] = None,
                    resolved_date: Optional[datetime.datetime] = None) -> Bug:
        """Mark a bug resolved.

        When a resolver, a fix ticket and fix hours are all given, the fix
        hours are added to the fix ticket's actual hours in the same
        transaction.
        """
        _require_non_negative("Fix hours", fix_hours)
        bug = self.repository.get_bug(bug_id)
        if resolved_by_developer_id:
            self.repository.get_developer(resolved_by_developer_id)

        fix_ticket = None
        if fix_ticket_id:
            fix_ticket = self.repository.get_ticket(fix_ticket_id)

        now = self.clock()
        bug.is_resolved = True
        bug.resolved_date = resolved_date or now
        bug.resolved_by_developer_id = resolved_by_developer_id or None
        bug.fix_ticket_id = fix_ticket_id or None
        bug.updated_at = now

        if fix_ticket is not None and resolved_by_developer_id and fix_hours is not None:
            fix_ticket.actual_hours = (fix_ticket.actual_hours or 0.0) + fix_hours
            fix_ticket.updated_at = now
            logger.info(f"Logged {fix_hours}h on fix ticket {fix_ticket.id} for bug {bug_id}")
        else:
            fix_ticket = None

        return self.repository.save_bug(bug, fix_ticket=fix_ticket)

    def update_resolution_date(self, bug_id: str, resolved_date: datetime.datetime) -> Bug:
        bug = self.repository.get_bug(bug_id)
        if not bug.is_resolved:
            raise ValidationError(f"Bug {bug_id} is not resolved")
        bug.resolved_date = resolved_date
        bug.updated_at = self.clock()
        return self.repository.save_bug(bug)
