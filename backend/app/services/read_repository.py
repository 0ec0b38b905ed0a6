"""
Read repository — the only place that talks to storage.

Every read returns plain records (app.models.records). The SQL implementation
opens one AsyncSession per read so independent reads can run concurrently
under asyncio.gather. Any storage failure surfaces as SnapshotReadError;
callers never receive a partial snapshot.
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Collection, Dict, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.orm_models import (
    ActualItem, Client, Employee, PlanItem, Project, ProjectEmployee,
    RefInternalCost, RefTariff,
)
from app.models.records import (
    AssignmentRecord, ClientRecord, EmployeeRecord, InternalCostRecord,
    ProjectRecord, TariffRecord, TimeEntryRecord,
)
from app.services.errors import SnapshotReadError

logger = logging.getLogger("dowee-repository")

DateRange = Tuple[date, date]

ACTUAL = "actual"
PLANNED = "planned"
TIME_KINDS = (ACTUAL, PLANNED)


class ReadRepository(ABC):
    """Async read contract consumed by the ledger reader and the service."""

    @abstractmethod
    async def employee_exists(self, employee_id: str) -> bool:
        """Session guard: is *employee_id* a known employee."""

    @abstractmethod
    async def projects(self) -> List[ProjectRecord]: ...

    @abstractmethod
    async def clients(self) -> List[ClientRecord]: ...

    @abstractmethod
    async def employees(self) -> List[EmployeeRecord]: ...

    @abstractmethod
    async def assignments(self) -> List[AssignmentRecord]: ...

    @abstractmethod
    async def tariffs(self) -> List[TariffRecord]: ...

    @abstractmethod
    async def internal_costs(self) -> List[InternalCostRecord]: ...

    @abstractmethod
    async def projects_with_time(
        self, kind: str, project_ids: Collection[str], date_range: Optional[DateRange] = None
    ) -> Set[str]:
        """Existence probe: ids among *project_ids* having at least one *kind* row in range."""

    @abstractmethod
    async def time_entries(
        self, kind: str, project_ids: Collection[str], date_range: Optional[DateRange] = None
    ) -> List[TimeEntryRecord]: ...


@dataclass
class ReferenceSnapshot:
    """Reference data read once per request."""
    projects: List[ProjectRecord] = field(default_factory=list)
    clients: List[ClientRecord] = field(default_factory=list)
    employees: List[EmployeeRecord] = field(default_factory=list)
    assignments: List[AssignmentRecord] = field(default_factory=list)
    tariffs: List[TariffRecord] = field(default_factory=list)
    internal_costs: List[InternalCostRecord] = field(default_factory=list)

    @property
    def employees_by_id(self) -> Dict[str, EmployeeRecord]:
        return {e.id: e for e in self.employees}

    @property
    def clients_by_id(self) -> Dict[str, ClientRecord]:
        return {c.id: c for c in self.clients}

    @property
    def active_projects(self) -> List[ProjectRecord]:
        return [p for p in self.projects if not p.is_archived]


async def load_reference_snapshot(repo: ReadRepository) -> ReferenceSnapshot:
    """Issue the independent reference reads concurrently; fail as a whole."""
    projects, clients, employees, assignments, tariffs, costs = await asyncio.gather(
        repo.projects(),
        repo.clients(),
        repo.employees(),
        repo.assignments(),
        repo.tariffs(),
        repo.internal_costs(),
    )
    return ReferenceSnapshot(
        projects=projects,
        clients=clients,
        employees=employees,
        assignments=assignments,
        tariffs=tariffs,
        internal_costs=costs,
    )


def _num(value) -> Optional[float]:
    return float(value) if value is not None else None


class SqlReadRepository(ReadRepository):
    """SQLAlchemy 2.0 implementation over the Postgres tables."""

    _TIME_TABLES = {
        ACTUAL: (ActualItem, ActualItem.minutes),
        PLANNED: (PlanItem, PlanItem.planned_minutes),
    }

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _scalars(self, stmt, label: str) -> list:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.exception(f"Read failed: {label}")
            raise SnapshotReadError(f"Could not read {label}") from e

    async def _rows(self, stmt, label: str) -> list:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.all())
        except SQLAlchemyError as e:
            logger.exception(f"Read failed: {label}")
            raise SnapshotReadError(f"Could not read {label}") from e

    async def projects(self) -> List[ProjectRecord]:
        rows = await self._scalars(select(Project), "projects")
        try:
            return [
                ProjectRecord(
                    id=str(p.id),
                    code=p.code,
                    name=p.name,
                    status=p.status or "active",
                    client_id=str(p.client_id) if p.client_id else None,
                    tariff_id=str(p.tariff_id) if p.tariff_id else None,
                    quote_amount=_num(p.quote_amount),
                    budget_conception=_num(p.budget_conception),
                    budget_crea=_num(p.budget_crea),
                    budget_dev=_num(p.budget_dev),
                    due_date=p.due_date,
                    effort_days=_num(p.effort_days),
                )
                for p in rows
            ]
        except (TypeError, ValueError) as e:
            raise SnapshotReadError("Malformed row in projects") from e

    async def clients(self) -> List[ClientRecord]:
        rows = await self._scalars(select(Client), "clients")
        return [
            ClientRecord(id=str(c.id), code=c.code, name=c.name, segment=c.segment, star=bool(c.star))
            for c in rows
        ]

    async def employees(self) -> List[EmployeeRecord]:
        rows = await self._scalars(select(Employee), "employees")
        return [
            EmployeeRecord(
                id=str(e.id),
                team=e.team,
                display_name=e.display_name,
                first_name=e.first_name,
                last_name=e.last_name,
            )
            for e in rows
        ]

    async def employee_exists(self, employee_id: str) -> bool:
        try:
            uuid.UUID(str(employee_id))
        except ValueError:
            return False
        rows = await self._scalars(
            select(Employee.id).where(Employee.id == employee_id).limit(1), "employees (guard)"
        )
        return bool(rows)

    async def assignments(self) -> List[AssignmentRecord]:
        rows = await self._rows(
            select(ProjectEmployee.project_id, ProjectEmployee.employee_id), "project_employees"
        )
        return [AssignmentRecord(project_id=str(r[0]), employee_id=str(r[1])) for r in rows]

    async def tariffs(self) -> List[TariffRecord]:
        rows = await self._scalars(select(RefTariff), "ref_tariffs")
        try:
            return [
                TariffRecord(
                    id=str(t.id),
                    label=t.label,
                    rate_conception=_num(t.rate_conception),
                    rate_crea=_num(t.rate_crea),
                    rate_dev=_num(t.rate_dev),
                )
                for t in rows
            ]
        except (TypeError, ValueError) as e:
            raise SnapshotReadError("Malformed row in ref_tariffs") from e

    async def internal_costs(self) -> List[InternalCostRecord]:
        rows = await self._scalars(select(RefInternalCost), "ref_internal_costs")
        try:
            return [
                InternalCostRecord(
                    rate_conception=_num(r.rate_conception),
                    rate_crea=_num(r.rate_crea),
                    rate_dev=_num(r.rate_dev),
                    effective_from=r.effective_from,
                    created_at=r.created_at,
                )
                for r in rows
            ]
        except (TypeError, ValueError) as e:
            raise SnapshotReadError("Malformed row in ref_internal_costs") from e

    def _time_table(self, kind: str):
        try:
            return self._TIME_TABLES[kind]
        except KeyError:
            raise ValueError(f"Unknown time entry kind '{kind}'. Choose from {list(TIME_KINDS)}")

    @staticmethod
    def _in_range(stmt, model, project_ids, date_range):
        stmt = stmt.where(model.project_id.in_(list(project_ids)))
        if date_range is not None:
            start, end = date_range
            stmt = stmt.where(model.d >= start, model.d <= end)
        return stmt

    async def projects_with_time(
        self, kind: str, project_ids: Collection[str], date_range: Optional[DateRange] = None
    ) -> Set[str]:
        if not project_ids:
            return set()
        model, _ = self._time_table(kind)
        stmt = self._in_range(select(model.project_id).distinct(), model, project_ids, date_range)
        rows = await self._scalars(stmt, f"{model.__tablename__} (probe)")
        return {str(pid) for pid in rows}

    async def time_entries(
        self, kind: str, project_ids: Collection[str], date_range: Optional[DateRange] = None
    ) -> List[TimeEntryRecord]:
        if not project_ids:
            return []
        model, minutes_col = self._time_table(kind)
        stmt = self._in_range(
            select(model.project_id, model.employee_id, model.d, model.hour, minutes_col),
            model, project_ids, date_range,
        )
        rows = await self._rows(stmt, model.__tablename__)
        try:
            return [
                TimeEntryRecord(
                    project_id=str(r[0]),
                    employee_id=str(r[1]),
                    d=r[2],
                    hour=r[3],
                    minutes=float(r[4] or 0),
                )
                for r in rows
            ]
        except (TypeError, ValueError) as e:
            raise SnapshotReadError(f"Malformed row in {model.__tablename__}") from e
