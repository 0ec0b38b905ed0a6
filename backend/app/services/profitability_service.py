"""
ProfitabilityService — request-level orchestration of the aggregation engines.

Each public operation:
  1. validates its parameters (InvalidRequestError, before any read),
  2. loads one reference snapshot (concurrent reads),
  3. resolves the scope, then reads time through the ledger exactly once so
     every figure of the response shares the same actual/planned decision,
  4. emits plain dicts rounded to 2 decimals.

A storage failure anywhere propagates as SnapshotReadError; nothing partial
is returned.
"""
import asyncio
import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from app.config import HOURS_PER_DAY, MINUTES_PER_HOUR, YEAR_MAX, YEAR_MIN
from app.models.records import EmployeeRecord, ProjectRecord
from app.services.aggregation_engine import aggregate
from app.services.alert_engine import AlertEvaluator, ProjectMetrics, clamp_limit
from app.services.errors import InvalidRequestError, NotFoundError
from app.services.financial_summary import (
    margin_figures,
    sold_amount,
    summarize_clients,
    summarize_portfolio,
    summarize_project,
)
from app.services.perf_monitor import timed_async
from app.services.profile_resolver import PROFILES, rate_field, resolve_profile, section_key
from app.services.rate_provider import RateProvider
from app.services.read_repository import (
    ACTUAL,
    PLANNED,
    ReadRepository,
    ReferenceSnapshot,
    load_reference_snapshot,
)
from app.services.scope_filter import resolve_scope, validate_scope
from app.services.scoring_engine import days_left, score_project
from app.services.time_ledger import TimeLedgerReader

logger = logging.getLogger("dowee-profitability")


def monday_of(d: date) -> date:
    return d - timedelta(days=d.weekday())


def _none_if_zero(value: float) -> Optional[float]:
    return round(value, 2) if value else None


class ProfitabilityService:
    """
    Parameters
    ----------
    repository : ReadRepository
    today : fixed UTC calendar date; defaults to the current UTC date per call
    """

    def __init__(self, repository: ReadRepository, today: Optional[date] = None) -> None:
        self.repository = repository
        self.ledger = TimeLedgerReader(repository)
        self._today = today
        self.alert_evaluator = AlertEvaluator()

    @property
    def today(self) -> date:
        return self._today or datetime.now(timezone.utc).date()

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _validate_year(self, year: Any) -> int:
        if year is None:
            return self.today.year
        if isinstance(year, bool) or not isinstance(year, (int, float)):
            raise InvalidRequestError(f"year must be a number, got {year!r}")
        if isinstance(year, float):
            if not math.isfinite(year) or not year.is_integer():
                raise InvalidRequestError(f"year must be a finite integer, got {year!r}")
            year = int(year)
        if not YEAR_MIN <= year <= YEAR_MAX:
            raise InvalidRequestError(f"year must be within [{YEAR_MIN}, {YEAR_MAX}], got {year}")
        return year

    @staticmethod
    def _validate_limit(limit: Any) -> int:
        if limit is None:
            return clamp_limit(None)
        if isinstance(limit, bool) or not isinstance(limit, (int, float)):
            raise InvalidRequestError(f"limit must be a number, got {limit!r}")
        if isinstance(limit, float) and not math.isfinite(limit):
            raise InvalidRequestError("limit must be finite")
        return clamp_limit(int(limit))

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _rates(self, snapshot: ReferenceSnapshot) -> RateProvider:
        return RateProvider(snapshot.tariffs, snapshot.internal_costs, now=self.today)

    @staticmethod
    def _requester(snapshot: ReferenceSnapshot, requester_id: str) -> Optional[EmployeeRecord]:
        return snapshot.employees_by_id.get(requester_id)

    def _select(self, snapshot: ReferenceSnapshot, requester_id: str, scope: str, team: Optional[str] = None):
        me = self._requester(snapshot, requester_id)
        return resolve_scope(
            scope,
            requester_id,
            me.team if me else None,
            snapshot.projects,
            snapshot.employees,
            snapshot.assignments,
            team=team,
        )

    @staticmethod
    def _client_ref(snapshot: ReferenceSnapshot, project: ProjectRecord) -> Optional[Dict[str, str]]:
        client = snapshot.clients_by_id.get(project.client_id) if project.client_id else None
        if client is None:
            return None
        return {"id": client.id, "code": client.code, "name": client.name}

    @staticmethod
    def _sold_block(projects: List[ProjectRecord]) -> Dict[str, Any]:
        total = sum(sold_amount(p) for p in projects)
        by_section = {
            section_key(profile): _none_if_zero(
                sum(getattr(p, rate_field(profile, "budget")) or 0.0 for p in projects)
            )
            for profile in PROFILES
        }
        return {"total_ht": _none_if_zero(total), "by_section": by_section}

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @timed_async
    async def portfolio_overview(
        self,
        requester_id: str,
        scope: str,
        year: Any = None,
        team: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Sold vs realized for a scope and calendar year, with weekly buckets."""
        validate_scope(scope)
        year = self._validate_year(year)

        snapshot = await load_reference_snapshot(self.repository)
        selection = self._select(snapshot, requester_id, scope, team)
        ledger = await self.ledger.load_project_time(
            selection.project_ids,
            (date(year, 1, 1), date(year, 12, 31)),
            selection.allowed_employee_ids,
        )
        projects = [p for p in snapshot.active_projects if p.id in selection.project_ids]
        projects_by_id = {p.id: p for p in projects}
        agg = aggregate(ledger.rows, snapshot.employees_by_id, self._rates(snapshot), projects_by_id)

        sections = agg.sections()
        totals = agg.emitted_totals()
        summary = summarize_portfolio(projects, agg.cost_by_project())
        logger.info(
            f"Portfolio overview: scope={scope} year={year} projects={len(projects)} "
            f"rows={len(ledger.rows)}",
            extra={"scope": scope, "employee_id": requester_id},
        )
        return {
            "scope": scope,
            "year": year,
            "team": selection.profile.value if selection.profile else None,
            "sold": self._sold_block(projects),
            "realized": {
                "total_hours": totals["hours"],
                "total_cost": totals["cost"],
                "by_section": {k: {"hours": v["hours"], "cost": v["cost"]} for k, v in sections.items()},
            },
            "margin": {"margin": summary["margin"], "margin_pct": summary["margin_pct"]},
            "team_breakdown": {
                "members": agg.by_member(),
                "totals": {
                    **{k: v["hours"] for k, v in sections.items()},
                    "total": totals["hours"],
                },
            },
            "weekly": {
                "year": year,
                "weeks": agg.by_week(),
                "monthly_totals": agg.monthly_totals(),
            },
        }

    @timed_async
    async def project_overview(self, project_id: str, year: Any = None) -> Dict[str, Any]:
        """One project valued at its tariff (billing rate), internal cost alongside."""
        year = self._validate_year(year)
        snapshot = await load_reference_snapshot(self.repository)
        project = next((p for p in snapshot.active_projects if p.id == project_id), None)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        rates = self._rates(snapshot)
        ledger = await self.ledger.load_project_time(
            [project.id], (date(year, 1, 1), date(year, 12, 31))
        )
        agg = aggregate(ledger.rows, snapshot.employees_by_id, rates, {project.id: project})
        tariff = rates.tariff_for(project)
        sections = agg.sections()
        totals = agg.emitted_totals()

        return {
            "project": {
                "id": project.id,
                "code": project.code,
                "name": project.name,
                "client": self._client_ref(snapshot, project),
                "quote_amount": project.quote_amount,
                "budgets": {
                    "conception": project.budget_conception,
                    "crea": project.budget_crea,
                    "dev": project.budget_dev,
                },
                "tariff": {
                    "id": tariff.id,
                    "label": tariff.label,
                    "rate_conception": tariff.rate_conception,
                    "rate_crea": tariff.rate_crea,
                    "rate_dev": tariff.rate_dev,
                } if tariff else None,
            },
            "time_source": ledger.source_by_project.get(project.id),
            "sold": self._sold_block([project]),
            "realized": {
                "total_hours": totals["hours"],
                "total_billed": totals["billed"],
                "total_cost": totals["cost"],
                "by_section": sections,
            },
            "financial": margin_figures(sold_amount(project), agg.total_cost),
            "team_breakdown": {
                "members": agg.by_member(),
                "totals": {
                    **{k: v["hours"] for k, v in sections.items()},
                    "total": totals["hours"],
                },
            },
            "weekly": {
                "year": year,
                "weeks": agg.by_week(),
                "monthly_totals": agg.monthly_totals(),
            },
        }

    @timed_async
    async def project_scores(self, requester_id: str, scope: str = "global") -> List[Dict[str, Any]]:
        """Priority score for every project in scope, highest first."""
        validate_scope(scope)
        snapshot = await load_reference_snapshot(self.repository)
        selection = self._select(snapshot, requester_id, scope)
        ledger = await self.ledger.load_project_time(
            selection.project_ids, None, selection.allowed_employee_ids
        )
        agg = aggregate(ledger.rows, snapshot.employees_by_id, self._rates(snapshot))

        clients = snapshot.clients_by_id
        today = self.today
        scores = []
        for p in snapshot.active_projects:
            if p.id not in selection.project_ids:
                continue
            margin_pct = summarize_project(p, agg.project_totals(p.id).cost)["margin_pct"]
            client = clients.get(p.client_id) if p.client_id else None
            scores.append(score_project(p, client, margin_pct, today))
        scores.sort(key=lambda s: (-s["score"], s["code"]))
        return scores

    @timed_async
    async def alerts(self, requester_id: str, scope: str = "me", limit: Any = None) -> List[Dict[str, Any]]:
        """Severity-ordered alerts for the projects in scope."""
        validate_scope(scope)
        limit = self._validate_limit(limit)

        snapshot = await load_reference_snapshot(self.repository)
        selection = self._select(snapshot, requester_id, scope)
        ledger = await self.ledger.load_project_time(
            selection.project_ids, None, selection.allowed_employee_ids
        )
        agg = aggregate(ledger.rows, snapshot.employees_by_id, self._rates(snapshot))

        today = self.today
        metrics = []
        for p in snapshot.active_projects:
            if p.id not in selection.project_ids:
                continue
            totals = agg.project_totals(p.id)
            sold = sold_amount(p)
            figures = margin_figures(sold, totals.cost)
            metrics.append(ProjectMetrics(
                project=p,
                days_left=days_left(p.due_date, today),
                days_used=totals.hours / HOURS_PER_DAY,
                sold=sold,
                cost=totals.cost,
                margin=sold - totals.cost,
                margin_pct=figures["margin_pct"],
            ))
        return [a.to_dict() for a in self.alert_evaluator.evaluate(metrics, limit)]

    @timed_async
    async def project_profitability(self, client_id: Optional[str] = None) -> Dict[str, Any]:
        """Sold, internal cost and margin per active project (all time)."""
        snapshot = await load_reference_snapshot(self.repository)
        projects = snapshot.active_projects
        if client_id:
            projects = [p for p in projects if p.client_id == client_id]

        ledger = await self.ledger.load_project_time([p.id for p in projects])
        agg = aggregate(ledger.rows, snapshot.employees_by_id, self._rates(snapshot))

        rows = []
        for p in projects:
            summary = summarize_project(p, agg.project_totals(p.id).cost)
            rows.append({**summary, "client": self._client_ref(snapshot, p)})
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "projects": rows,
        }

    @timed_async
    async def client_profitability(self) -> Dict[str, Any]:
        """Per-client totals; one margin computed on summed sold and cost."""
        snapshot = await load_reference_snapshot(self.repository)
        projects = snapshot.active_projects
        ledger = await self.ledger.load_project_time([p.id for p in projects])
        agg = aggregate(ledger.rows, snapshot.employees_by_id, self._rates(snapshot))
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "clients": summarize_clients(projects, snapshot.clients_by_id, agg.cost_by_project()),
        }

    @timed_async
    async def project_costs(self) -> Dict[str, Dict[str, float]]:
        """Planned and actual internal cost per project, side by side."""
        snapshot = await load_reference_snapshot(self.repository)
        ids = [p.id for p in snapshot.active_projects]
        if not ids:
            return {}
        planned, actual = await asyncio.gather(
            self.repository.time_entries(PLANNED, ids),
            self.repository.time_entries(ACTUAL, ids),
        )
        rates = self._rates(snapshot)
        employees = snapshot.employees_by_id

        out: Dict[str, Dict[str, float]] = {}
        for kind, entries in ((PLANNED, planned), (ACTUAL, actual)):
            for e in entries:
                emp = employees.get(e.employee_id)
                hours = (e.minutes or 0) / MINUTES_PER_HOUR
                cost = hours * rates.cost_rate(resolve_profile(emp.team if emp else None))
                row = out.setdefault(e.project_id, {
                    "hours_planned": 0.0, "hours_actual": 0.0,
                    "cost_planned": 0.0, "cost_actual": 0.0,
                })
                row[f"hours_{kind}"] += hours
                row[f"cost_{kind}"] += cost
        return {pid: {k: round(v, 2) for k, v in row.items()} for pid, row in out.items()}

    @timed_async
    async def time_cost_overview(self, requester_id: str, start: Optional[date] = None) -> Dict[str, Any]:
        """Planned vs actual hours and cost over a 7-day window (global, per profile, me)."""
        start = start or monday_of(self.today)
        end = start + timedelta(days=6)

        snapshot = await load_reference_snapshot(self.repository)
        ids = [p.id for p in snapshot.active_projects]
        planned, actual = [], []
        if ids:
            planned, actual = await asyncio.gather(
                self.repository.time_entries(PLANNED, ids, (start, end)),
                self.repository.time_entries(ACTUAL, ids, (start, end)),
            )
        rates = self._rates(snapshot)
        employees = snapshot.employees_by_id

        def _bucket():
            return {"hours_planned": 0.0, "hours_actual": 0.0, "cost_planned": 0.0, "cost_actual": 0.0}

        overall = _bucket()
        me = _bucket()
        by_team = {p: _bucket() for p in PROFILES}
        for kind, entries in ((PLANNED, planned), (ACTUAL, actual)):
            for e in entries:
                emp = employees.get(e.employee_id)
                profile = resolve_profile(emp.team if emp else None)
                hours = (e.minutes or 0) / MINUTES_PER_HOUR
                cost = hours * rates.cost_rate(profile)
                targets = [overall, by_team[profile]]
                if e.employee_id == requester_id:
                    targets.append(me)
                for t in targets:
                    t[f"hours_{kind}"] += hours
                    t[f"cost_{kind}"] += cost

        def _rounded(b):
            return {k: round(v, 2) for k, v in b.items()}

        return {
            "range": {"start": start.isoformat(), "end": end.isoformat()},
            "global": _rounded(overall),
            "by_team": [{"team": p.value, **_rounded(by_team[p])} for p in PROFILES],
            "me": _rounded(me),
        }

    @timed_async
    async def metrics_overview(self, requester_id: str) -> Dict[str, Any]:
        """Project counts: overall, per profile, and the requester's own."""
        snapshot = await load_reference_snapshot(self.repository)
        active = snapshot.active_projects
        active_ids = {p.id for p in active}
        employees = snapshot.employees_by_id

        per_team = {p: set() for p in PROFILES}
        mine = set()
        for a in snapshot.assignments:
            if a.project_id not in active_ids:
                continue
            emp = employees.get(a.employee_id)
            if emp is not None:
                per_team[resolve_profile(emp.team)].add(a.project_id)
            if a.employee_id == requester_id:
                mine.add(a.project_id)

        return {
            "global": {
                "nb_projects_total": len(active),
                "nb_projects_active": sum(1 for p in active if p.status == "active"),
                "nb_projects_onhold": sum(1 for p in active if p.status == "onhold"),
            },
            "by_team": [
                {"team": p.value, "nb_projects_active_distinct": len(per_team[p])}
                for p in PROFILES
            ],
            "me": {"nb_projects_mine": len(mine)},
        }
