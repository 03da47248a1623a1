"""Database tables and session management for the KPI tracker."""
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import (
    create_engine, event, Engine, Column, String, Integer, Float, Date, DateTime,
    Text, Boolean, ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL, DB_ECHO

logger = logging.getLogger(__name__)

Base = declarative_base()


class DeveloperRecord(Base):
    __tablename__ = "developers"

    id = Column(String, primary_key=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False)
    team = Column(String(100))
    start_date = Column(Date, nullable=False)
    # Soft delete: history joins must keep resolving after deactivation
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_developers_active", "is_active"),
    )


class TicketRecord(Base):
    __tablename__ = "tickets"

    id = Column(String, primary_key=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    developer_id = Column(String, ForeignKey("developers.id"), nullable=False)
    assigned_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    completed_date = Column(DateTime)
    status = Column(String(20), nullable=False)
    complexity = Column(String(20), nullable=False)
    estimated_hours = Column(Float)
    actual_hours = Column(Float)
    reopen_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_tickets_developer_assigned", "developer_id", "assigned_date"),
        Index("idx_tickets_status", "status"),
    )


class BugRecord(Base):
    __tablename__ = "bugs"

    id = Column(String, primary_key=True)
    ticket_id = Column(String, ForeignKey("tickets.id"), nullable=False)
    developer_id = Column(String, ForeignKey("developers.id"), nullable=False)
    reported_by = Column(String(200))
    title = Column(String(500), nullable=False)
    description = Column(Text)
    severity = Column(String(20), nullable=False)
    bug_type = Column(String(30), nullable=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_date = Column(DateTime)
    resolved_by_developer_id = Column(String, ForeignKey("developers.id"))
    fix_ticket_id = Column(String, ForeignKey("tickets.id"))
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_bugs_developer_created", "developer_id", "created_at"),
        Index("idx_bugs_ticket", "ticket_id"),
    )


class KPISnapshotRecord(Base):
    __tablename__ = "monthly_kpi"

    id = Column(String, primary_key=True)
    developer_id = Column(String, nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    total_tickets = Column(Integer, nullable=False, default=0)
    completed_tickets = Column(Integer, nullable=False, default=0)
    on_time_tickets = Column(Integer, nullable=False, default=0)
    late_tickets = Column(Integer, nullable=False, default=0)
    reopened_tickets = Column(Integer, nullable=False, default=0)

    on_time_rate = Column(Float, nullable=False, default=0.0)
    avg_delivery_time = Column(Float, nullable=False, default=0.0)

    total_bugs = Column(Integer, nullable=False, default=0)
    developer_error_bugs = Column(Integer, nullable=False, default=0)
    conceptual_bugs = Column(Integer, nullable=False, default=0)
    other_bugs = Column(Integer, nullable=False, default=0)

    delivery_score = Column(Float, nullable=False, default=0.0)
    quality_score = Column(Float, nullable=False, default=0.0)
    overall_score = Column(Float, nullable=False, default=0.0)

    trend = Column(String(20))
    generated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("developer_id", "month", "year", name="uq_monthly_kpi_period"),
        Index("idx_monthly_kpi_developer", "developer_id"),
    )


class DatabaseManager:
    """Manages the engine and session factory."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or DATABASE_URL
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self._initialized = False

    def initialize(self) -> None:
        """Initialize database engine and session factory."""
        if self._initialized:
            return

        kwargs = {"echo": DB_ECHO}
        if self.database_url.startswith("sqlite"):
            # Team reports read from worker threads
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool

        try:
            self.engine = create_engine(self.database_url, **kwargs)

            if self.database_url.startswith("sqlite"):
                @event.listens_for(self.engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):
                    """Enforce foreign keys on every SQLite connection."""
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=self.engine,
            )
            self._initialized = True
            logger.info(f"Database initialized: {self.database_url}")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        if not self._initialized:
            self.initialize()
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables ready")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session that commits on success and rolls back on error."""
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
