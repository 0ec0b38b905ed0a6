"""
Read-only snapshot records consumed by the aggregation services.

The repository layer maps ORM rows onto these plain dataclasses so the
engines never touch a session and can be tested without a database.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    code: str
    name: str
    status: str = "active"          # active | onhold | archived
    client_id: Optional[str] = None
    tariff_id: Optional[str] = None
    quote_amount: Optional[float] = None
    budget_conception: Optional[float] = None
    budget_crea: Optional[float] = None
    budget_dev: Optional[float] = None
    due_date: Optional[date] = None
    effort_days: Optional[float] = None

    @property
    def is_archived(self) -> bool:
        return self.status == "archived"


@dataclass(frozen=True)
class ClientRecord:
    id: str
    code: str
    name: str
    segment: Optional[str] = None
    star: bool = False


@dataclass(frozen=True)
class EmployeeRecord:
    id: str
    team: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def label(self) -> str:
        """first + last name, else the stored display name, else the raw id."""
        names = " ".join([self.first_name or "", self.last_name or ""]).strip()
        if names:
            return names
        if self.display_name and self.display_name.strip():
            return self.display_name
        return self.id


@dataclass(frozen=True)
class AssignmentRecord:
    project_id: str
    employee_id: str


@dataclass(frozen=True)
class TariffRecord:
    id: str
    label: Optional[str] = None
    rate_conception: Optional[float] = None
    rate_crea: Optional[float] = None
    rate_dev: Optional[float] = None


@dataclass(frozen=True)
class InternalCostRecord:
    rate_conception: Optional[float] = None
    rate_crea: Optional[float] = None
    rate_dev: Optional[float] = None
    effective_from: Optional[date] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TimeEntryRecord:
    """One hour-slot from plan_items or actual_items."""
    project_id: str
    employee_id: str
    d: date
    minutes: float
    hour: Optional[int] = None
