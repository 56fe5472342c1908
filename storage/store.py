"""
Relational store for CRM records.
Owns the engine and session factory shared by every service.
"""

from sqlalchemy import create_engine, event, func
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Dict, Optional
from pathlib import Path

from config import settings
from models import Base, Company, Lead, Message, MessageDirection
from observability import trace_logger


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


class CRMStore:
    """SQL store for leads, companies, outreach and eval records."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize the store with a database connection."""
        self.database_url = database_url or settings.database_url
        is_sqlite = self.database_url.startswith("sqlite")

        engine_kwargs = {}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_url(self.database_url):
                # One shared connection, otherwise every checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
            else:
                db_path = self.database_url.replace("sqlite:///", "", 1)
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(self.database_url, **engine_kwargs)

        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        # Create tables
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Session:
        """Get database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            trace_logger.error_occurred(
                error_type="database_error",
                error_message=str(e)
            )
            raise
        finally:
            session.close()

    def counts(self) -> Dict[str, int]:
        """Row counts used by health and dashboard endpoints."""
        with self.get_session() as session:
            return {
                "leads": session.query(func.count(Lead.id)).scalar(),
                "companies": session.query(func.count(Company.id)).scalar(),
                "messages_sent": (
                    session.query(func.count(Message.id))
                    .filter(Message.direction == MessageDirection.OUTBOUND)
                    .scalar()
                ),
            }

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
            return True
        except Exception as e:
            trace_logger.error_occurred(
                error_type="database_unreachable",
                error_message=str(e)
            )
            return False


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
