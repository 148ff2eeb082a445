"""SQLAlchemy models for the rollout database."""

from datetime import datetime, UTC
from typing import Any
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Numeric,
    JSON,
    Index,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


class City(Base):
    """City model."""

    __tablename__ = "cities"

    # External geographic code, never generated here
    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String, unique=True, nullable=False)
    status = Column(String(20), nullable=False, default="PLANNING")
    population = Column(Integer, nullable=False, default=0)
    population_15_to_44 = Column(Integer, nullable=False, default=0)
    implementation_start_date = Column(DateTime, nullable=True)
    mesoregion = Column(String, nullable=True)
    gentilic = Column(String, nullable=True)
    mayor = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)
    updated_at = Column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False
    )

    # Relationships
    plan_details = relationship("PlanDetails", back_populates="city", uselist=False)
    planning_results = relationship("PlanningResults", back_populates="city", uselist=False)


class PlanDetails(Base):
    """Phase plan model (one per city)."""

    __tablename__ = "plan_details"

    id = Column(Integer, primary_key=True)
    city_id = Column(Integer, ForeignKey("cities.id"), unique=True, nullable=False)
    # [{"name": str, "tasks": [str, ...]}, ...]
    phases = Column(JSON, nullable=False, default=list)
    start_date = Column(String(7), nullable=False)
    updated_at = Column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False
    )

    # Relationships
    city = relationship("City", back_populates="plan_details")


class PlanningResults(Base):
    """Monthly projected/realized figures model (one per city)."""

    __tablename__ = "planning_results"

    id = Column(Integer, primary_key=True)
    city_id = Column(Integer, ForeignKey("cities.id"), unique=True, nullable=False)
    # {"YYYY-MM": {"amount": "123.45", "provenance": "transactions"}, ...}
    results = Column(JSON, nullable=False, default=dict)
    real_monthly_costs = Column(JSON, nullable=False, default=dict)
    start_date = Column(String(7), nullable=True)
    updated_at = Column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False
    )

    # Relationships
    city = relationship("City", back_populates="planning_results")


class Transaction(Base):
    """Transaction feed model. Written by the payment pipeline, read here."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    city = Column(String, nullable=False)
    type = Column(String(10), nullable=False)
    description = Column(String, nullable=False, default="")
    amount = Column(Numeric(12, 2), nullable=False)
    timestamp = Column(DateTime, nullable=False)

    __table_args__ = (Index("ix_transactions_city_timestamp", "city", "timestamp"),)


def engine_options(database_url: str, connect_timeout: float, query_timeout: float) -> dict[str, Any]:
    """Build create_engine keyword arguments that bound connect and query time."""
    if database_url.startswith("sqlite"):
        # sqlite3's timeout bounds how long a statement waits on a locked file
        return {"connect_args": {"timeout": query_timeout, "check_same_thread": False}}
    options: dict[str, Any] = {"pool_pre_ping": True, "pool_timeout": connect_timeout}
    if database_url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(1, int(connect_timeout)),
            "options": f"-c statement_timeout={int(query_timeout * 1000)}",
        }
    return options


def create_session_factory(
    database_url: str, connect_timeout: float = 5.0, query_timeout: float = 30.0
) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(
        database_url, echo=False, **engine_options(database_url, connect_timeout, query_timeout)
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
