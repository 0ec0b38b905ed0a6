"""ORM Models for the Dowee profitability backend — SQLAlchemy 2.0

Mappings for the tables read by the aggregation services. Ownership of these
tables lies with the CRUD layer; nothing in this package writes to them.
"""
import uuid
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, Index
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── CLIENTS ───────────────────────────────────────────────────────────────────
class Client(Base):
    __tablename__ = "clients"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    segment: Mapped[Optional[str]] = mapped_column(String(50))   # "super" | "normal" | "pas" …
    star: Mapped[bool] = mapped_column(Boolean, default=False)
    projects: Mapped[list["Project"]] = relationship("Project", back_populates="client")


# ── REFERENCE RATES ───────────────────────────────────────────────────────────
class RefTariff(Base):
    """Client billing rates, hourly-equivalent, one per profile."""
    __tablename__ = "ref_tariffs"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    label: Mapped[Optional[str]] = mapped_column(String(255))
    rate_conception: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    rate_crea: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    rate_dev: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))


class RefInternalCost(Base):
    """Internal day-rates; the applicable record has the latest effective_from."""
    __tablename__ = "ref_internal_costs"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    rate_conception: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    rate_crea: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    rate_dev: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    effective_from: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── PROJECTS ──────────────────────────────────────────────────────────────────
class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active | onhold | archived
    client_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("clients.id"))
    tariff_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("ref_tariffs.id"))
    quote_amount: Mapped[Optional[float]] = mapped_column(Numeric(12, 2))
    budget_conception: Mapped[Optional[float]] = mapped_column(Numeric(12, 2))
    budget_crea: Mapped[Optional[float]] = mapped_column(Numeric(12, 2))
    budget_dev: Mapped[Optional[float]] = mapped_column(Numeric(12, 2))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    effort_days: Mapped[Optional[float]] = mapped_column(Numeric(8, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    client: Mapped[Optional["Client"]] = relationship("Client", back_populates="projects")


# ── EMPLOYEES ─────────────────────────────────────────────────────────────────
class Employee(Base):
    __tablename__ = "employees"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    first_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_name: Mapped[Optional[str]] = mapped_column(String(255))
    team: Mapped[Optional[str]] = mapped_column(Text)   # free-form; resolved to a profile at read time
    role: Mapped[Optional[str]] = mapped_column(String(50))


class ProjectEmployee(Base):
    __tablename__ = "project_employees"
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id"), primary_key=True)
    employee_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("employees.id"), primary_key=True)


# ── TIME ENTRIES ──────────────────────────────────────────────────────────────
class PlanItem(Base):
    __tablename__ = "plan_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id"))
    employee_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("employees.id"))
    d: Mapped[date] = mapped_column(Date, nullable=False)
    hour: Mapped[int] = mapped_column(Integer, nullable=False)
    planned_minutes: Mapped[int] = mapped_column(Integer, default=60)

    __table_args__ = (
        Index("ix_plan_items_project_d", "project_id", "d"),
    )


class ActualItem(Base):
    __tablename__ = "actual_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id"))
    employee_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("employees.id"))
    d: Mapped[date] = mapped_column(Date, nullable=False)
    hour: Mapped[int] = mapped_column(Integer, nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, default=60)

    __table_args__ = (
        Index("ix_actual_items_project_d", "project_id", "d"),
    )
