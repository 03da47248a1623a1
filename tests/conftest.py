"""Shared fixtures: a file-backed SQLite tracker, a fixed clock and record factories."""
import datetime
import itertools

import pytest

from database import DatabaseManager
from kpi_config import ConfigStore
from kpi_history import KPIHistory
from models import (
    Ticket, Bug, MonthlyKPI, CreateDeveloperInput,
    TicketStatus, TicketComplexity, BugSeverity, BugType,
)
from repository import TrackerRepository
from workflow import DeveloperDirectory, TicketWorkflow, BugWorkflow

NOW = datetime.datetime(2024, 3, 20, 12, 0, 0)


def fixed_clock():
    return NOW


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'kpi.db'}")
    manager.create_tables()
    yield manager
    manager.dispose()


@pytest.fixture
def repository(db):
    return TrackerRepository(db)


@pytest.fixture
def config_store(tmp_path):
    return ConfigStore(str(tmp_path / "kpi_config.json"))


@pytest.fixture
def history(repository, config_store):
    return KPIHistory(repository, config_store=config_store, clock=fixed_clock, max_workers=2)


@pytest.fixture
def directory(repository):
    return DeveloperDirectory(repository, clock=fixed_clock)


@pytest.fixture
def tickets(repository):
    return TicketWorkflow(repository, clock=fixed_clock)


@pytest.fixture
def bugs(repository):
    return BugWorkflow(repository, clock=fixed_clock)


@pytest.fixture
def make_developer(directory):
    counter = itertools.count(1)

    def _make(name=None, role="mid", team="core"):
        n = next(counter)
        return directory.create_developer(CreateDeveloperInput(
            name=name or f"Developer {n}",
            email=f"dev{n}@example.com",
            role=role,
            start_date=datetime.date(2023, 1, 1),
            team=team,
        ))
    return _make


@pytest.fixture
def make_ticket(repository):
    """Insert a ticket directly, bypassing the workflow so any state can be staged."""
    counter = itertools.count(1)

    def _make(developer_id, assigned, due, completed=None, status=None,
              reopen_count=0, complexity=TicketComplexity.MEDIUM, actual_hours=None):
        if status is None:
            status = TicketStatus.COMPLETED if completed else TicketStatus.IN_PROGRESS
        ticket = Ticket(
            id=f"ticket-{next(counter)}",
            title="Ticket",
            developer_id=developer_id,
            assigned_date=assigned,
            due_date=due,
            completed_date=completed,
            status=status,
            complexity=complexity,
            actual_hours=actual_hours,
            reopen_count=reopen_count,
            created_at=assigned,
            updated_at=assigned,
        )
        return repository.add_ticket(ticket)
    return _make


@pytest.fixture
def make_bug(repository):
    counter = itertools.count(1)

    def _make(ticket, severity=BugSeverity.MEDIUM, bug_type=BugType.DEVELOPER_ERROR, created_at=None):
        created_at = created_at or ticket.assigned_date
        bug = Bug(
            id=f"bug-{next(counter)}",
            ticket_id=ticket.id,
            developer_id=ticket.developer_id,
            title="Bug",
            severity=severity,
            bug_type=bug_type,
            created_at=created_at,
            updated_at=created_at,
        )
        return repository.add_bug(bug)
    return _make


def make_snapshot(developer_id, month, year, overall, delivery=None, quality=None, **counts):
    """Build a MonthlyKPI with the given scores for seeding history."""
    return MonthlyKPI(
        id=f"kpi-{developer_id}-{year}-{month}",
        developer_id=developer_id,
        month=month,
        year=year,
        delivery_score=delivery if delivery is not None else overall,
        quality_score=quality if quality is not None else overall,
        overall_score=overall,
        generated_at=NOW,
        **counts,
    )
