"""
conftest.py — Shared pytest fixtures for the Dowee profitability test suite.

No database or external service fixtures are defined here. Engines are pure
functions over records; the service layer runs against ``InMemoryRepository``,
an in-process implementation of the ReadRepository contract.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
from datetime import date, datetime, timezone

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from app.models.records import (  # noqa: E402
    AssignmentRecord,
    ClientRecord,
    EmployeeRecord,
    InternalCostRecord,
    ProjectRecord,
    TariffRecord,
    TimeEntryRecord,
)
from app.services.errors import SnapshotReadError  # noqa: E402
from app.services.read_repository import ACTUAL, PLANNED, ReadRepository  # noqa: E402

# Wednesday, ISO week 11. Its Monday is 2025-03-10.
TODAY = date(2025, 3, 12)


class InMemoryRepository(ReadRepository):
    """
    ReadRepository over plain lists.

    ``fail=True`` makes every read raise SnapshotReadError, as the SQL
    implementation does when storage is unreachable. ``calls`` records every
    read as (method, kind) so tests can assert on the access pattern.
    """

    def __init__(
        self,
        projects=(),
        clients=(),
        employees=(),
        assignments=(),
        tariffs=(),
        internal_costs=(),
        actuals=(),
        plans=(),
        fail=False,
    ):
        self._projects = list(projects)
        self._clients = list(clients)
        self._employees = list(employees)
        self._assignments = list(assignments)
        self._tariffs = list(tariffs)
        self._internal_costs = list(internal_costs)
        self._time = {ACTUAL: list(actuals), PLANNED: list(plans)}
        self.fail = fail
        self.calls = []

    def _read(self, method, kind=None):
        self.calls.append((method, kind))
        if self.fail:
            raise SnapshotReadError(f"Could not read {method}")

    async def employee_exists(self, employee_id):
        self._read("employee_exists")
        return any(e.id == employee_id for e in self._employees)

    async def projects(self):
        self._read("projects")
        return list(self._projects)

    async def clients(self):
        self._read("clients")
        return list(self._clients)

    async def employees(self):
        self._read("employees")
        return list(self._employees)

    async def assignments(self):
        self._read("assignments")
        return list(self._assignments)

    async def tariffs(self):
        self._read("tariffs")
        return list(self._tariffs)

    async def internal_costs(self):
        self._read("internal_costs")
        return list(self._internal_costs)

    def _select(self, kind, project_ids, date_range):
        if kind not in self._time:
            raise ValueError(f"Unknown time entry kind '{kind}'")
        wanted = set(project_ids)
        out = []
        for e in self._time[kind]:
            if e.project_id not in wanted:
                continue
            if date_range is not None and not (date_range[0] <= e.d <= date_range[1]):
                continue
            out.append(e)
        return out

    async def projects_with_time(self, kind, project_ids, date_range=None):
        self._read("projects_with_time", kind)
        return {e.project_id for e in self._select(kind, project_ids, date_range)}

    async def time_entries(self, kind, project_ids, date_range=None):
        self._read("time_entries", kind)
        return self._select(kind, project_ids, date_range)


# ---------------------------------------------------------------------------
# Reference records
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def employees():
    """
    e1 Dev, e2 Créa, e3 no team (→ conception), e4 "Développement" (→ dev).
    """
    return [
        EmployeeRecord(id="e1", team="Dev", first_name="Alice", last_name="Martin"),
        EmployeeRecord(id="e2", team="Créa", first_name="Bruno", last_name="Leroy"),
        EmployeeRecord(id="e3", team=None, display_name="Chloé"),
        EmployeeRecord(id="e4", team="Développement", display_name="Dan"),
    ]


@pytest.fixture(scope="session")
def clients():
    return [
        ClientRecord(id="c1", code="ACM", name="Acme", segment="Super client", star=True),
        ClientRecord(id="c2", code="BET", name="Beta", segment="Pas prioritaire", star=False),
    ]


@pytest.fixture(scope="session")
def tariffs():
    """Hourly billing rates: conception 100, créa 80, dev 90."""
    return [TariffRecord(id="t1", label="Standard", rate_conception=100.0, rate_crea=80.0, rate_dev=90.0)]


@pytest.fixture(scope="session")
def internal_costs():
    """
    Current record (2024-01-01): day-rates 800 / 480 / 640 → hourly 100 / 60 / 80.
    An older record and a future-dated one surround it.
    """
    return [
        InternalCostRecord(
            rate_conception=800.0, rate_crea=500.0, rate_dev=800.0,
            effective_from=date(2023, 1, 1),
            created_at=datetime(2023, 1, 1, tzinfo=timezone.utc),
        ),
        InternalCostRecord(
            rate_conception=800.0, rate_crea=480.0, rate_dev=640.0,
            effective_from=date(2024, 1, 1),
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ),
        InternalCostRecord(
            rate_conception=1000.0, rate_crea=1000.0, rate_dev=1000.0,
            effective_from=date(2099, 1, 1),
            created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture(scope="session")
def projects():
    """
    p1: star client, tariff t1, quote 10 000, due in 2 days, 5 effort days.
    p2: client Beta, no tariff, sold from budgets (1000 + 500), 0.5 effort days.
    p3: archived.
    p4: no client, nothing sold, no time.
    """
    return [
        ProjectRecord(
            id="p1", code="P001", name="Site vitrine", client_id="c1", tariff_id="t1",
            quote_amount=10_000.0, due_date=date(2025, 3, 14), effort_days=5.0,
        ),
        ProjectRecord(
            id="p2", code="P002", name="Campagne", client_id="c2",
            budget_conception=1000.0, budget_crea=500.0, effort_days=0.5,
        ),
        ProjectRecord(id="p3", code="P003", name="Ancien", status="archived", client_id="c1"),
        ProjectRecord(id="p4", code="P004", name="Interne", quote_amount=0.0),
    ]


@pytest.fixture(scope="session")
def assignments():
    return [
        AssignmentRecord("p1", "e1"),
        AssignmentRecord("p1", "e2"),
        AssignmentRecord("p2", "e2"),
        AssignmentRecord("p2", "e3"),
        AssignmentRecord("p3", "e1"),
        AssignmentRecord("p4", "e4"),
    ]


@pytest.fixture(scope="session")
def actuals():
    """
    p1: e1 2 h on Monday (two hour-slots), e2 1.5 h on Tuesday.
    p3 (archived): e1 1 h.
    """
    return [
        TimeEntryRecord("p1", "e1", date(2025, 3, 10), 60.0, hour=9),
        TimeEntryRecord("p1", "e1", date(2025, 3, 10), 60.0, hour=10),
        TimeEntryRecord("p1", "e2", date(2025, 3, 11), 90.0, hour=14),
        TimeEntryRecord("p3", "e1", date(2025, 3, 10), 60.0, hour=11),
    ]


@pytest.fixture(scope="session")
def plans():
    """
    p1: e1 8 h Wednesday (shadowed by p1's actuals).
    p2: e2 4 h Monday, e3 2 h Tuesday (p2 has no actuals).
    """
    return [
        TimeEntryRecord("p1", "e1", date(2025, 3, 12), 480.0),
        TimeEntryRecord("p2", "e2", date(2025, 3, 10), 240.0),
        TimeEntryRecord("p2", "e3", date(2025, 3, 11), 120.0),
    ]


# ---------------------------------------------------------------------------
# Repository / service fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def repo(projects, clients, employees, assignments, tariffs, internal_costs, actuals, plans):
    """Fresh InMemoryRepository over the full sample dataset."""
    return InMemoryRepository(
        projects=projects,
        clients=clients,
        employees=employees,
        assignments=assignments,
        tariffs=tariffs,
        internal_costs=internal_costs,
        actuals=actuals,
        plans=plans,
    )


@pytest.fixture
def failing_repo():
    return InMemoryRepository(fail=True)


@pytest.fixture
def empty_repo():
    return InMemoryRepository()


@pytest.fixture
def repo_factory():
    """InMemoryRepository constructor, for tests that bring their own rows."""
    return InMemoryRepository


@pytest.fixture
def service(repo):
    """ProfitabilityService pinned to TODAY over the sample dataset."""
    from app.services.profitability_service import ProfitabilityService
    return ProfitabilityService(repo, today=TODAY)


@pytest.fixture
def rates(tariffs, internal_costs):
    """RateProvider evaluated at TODAY: hourly cost 100 / 60 / 80."""
    from app.services.rate_provider import RateProvider
    return RateProvider(tariffs, internal_costs, now=TODAY)


@pytest.fixture(scope="session")
def today():
    return TODAY
