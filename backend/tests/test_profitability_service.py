"""
test_profitability_service.py — End-to-end service operations over the
sample dataset in conftest.py.

Reference figures (hourly cost conception 100, créa 60, dev 80):
  p1 (actuals)  e1 dev 2 h = 160, e2 créa 1.5 h = 90      → cost 250, sold 10 000
  p2 (plans)    e2 créa 4 h = 240, e3 conception 2 h = 200 → cost 440, sold 1 500
  p4            no time                                   → cost 0,   sold 0
  p3 is archived and never appears.

All tests are pure unit tests; no database or external services required.
"""

import asyncio
import math
from datetime import date

import pytest

from app.models.records import ProjectRecord, TimeEntryRecord
from app.services.errors import InvalidRequestError, NotFoundError, SnapshotReadError
from app.services.perf_monitor import tracker
from app.services.profitability_service import ProfitabilityService, monday_of
from app.services.read_repository import ACTUAL, PLANNED


def run(coro):
    return asyncio.run(coro)


# ===========================================================================
# Portfolio overview
# ===========================================================================

class TestPortfolioOverview:

    def test_global_totals(self, service):
        result = run(service.portfolio_overview("e1", "global", 2025))
        assert result["sold"]["total_ht"] == 11_500.0
        assert result["sold"]["by_section"] == {"conception": 1000.0, "crea": 500.0, "dev": None}
        assert result["realized"]["total_hours"] == 9.5
        assert result["realized"]["total_cost"] == 690.0
        assert result["realized"]["by_section"]["crea"] == {"hours": 5.5, "cost": 330.0}
        assert result["margin"] == {"margin": 10_810.0, "margin_pct": 94.0}

    def test_members_and_weeks(self, service):
        result = run(service.portfolio_overview("e1", "global", 2025))
        members = result["team_breakdown"]["members"]
        assert [(m["name"], m["hours"]) for m in members] == [
            ("Bruno Leroy", 5.5), ("Alice Martin", 2.0), ("Chloé", 2.0),
        ]
        assert result["team_breakdown"]["totals"] == {
            "conception": 2.0, "crea": 5.5, "dev": 2.0, "total": 9.5,
        }
        assert result["weekly"]["weeks"] == [{"week": 11, "month": 3, "hours": 9.5}]
        monthly = {m["month"]: m["hours"] for m in result["weekly"]["monthly_totals"]}
        assert monthly[3] == 9.5
        assert sum(monthly.values()) == 9.5

    def test_archived_project_excluded(self, service):
        """p3 carries one hour of actuals for e1; it must not show up."""
        result = run(service.portfolio_overview("e1", "global", 2025))
        alice = next(m for m in result["team_breakdown"]["members"] if m["id"] == "e1")
        assert alice["hours"] == 2.0

    def test_me_scope_keeps_own_rows(self, service):
        result = run(service.portfolio_overview("e2", "me", 2025))
        assert result["realized"]["total_hours"] == 5.5
        assert result["realized"]["total_cost"] == 330.0
        assert [m["id"] for m in result["team_breakdown"]["members"]] == ["e2"]

    def test_team_scope(self, service):
        result = run(service.portfolio_overview("e1", "team", 2025))
        assert result["team"] == "dev"
        assert result["realized"]["total_hours"] == 2.0
        assert result["realized"]["total_cost"] == 160.0
        # p1 + p4 are in scope
        assert result["sold"]["total_ht"] == 10_000.0

    def test_other_year_is_empty(self, service):
        result = run(service.portfolio_overview("e1", "global", 2024))
        assert result["realized"]["total_hours"] == 0.0
        assert result["weekly"]["weeks"] == []

    def test_default_year_is_today(self, service):
        assert run(service.portfolio_overview("e1", "global"))["year"] == 2025

    @pytest.mark.parametrize("year", [1800, 10_000, "2025", math.nan, math.inf, 2025.5, True])
    def test_invalid_year_rejected_before_reads(self, service, repo, year):
        with pytest.raises(InvalidRequestError):
            run(service.portfolio_overview("e1", "global", year))
        assert repo.calls == []

    def test_unknown_scope_rejected_before_reads(self, service, repo):
        with pytest.raises(InvalidRequestError):
            run(service.portfolio_overview("e1", "everyone", 2025))
        assert repo.calls == []


    def test_emitted_sections_add_up_to_total(self, repo_factory, employees):
        """
        No internal cost record: conception and dev both cost 800 / 8 = 100 / h.
        One minute each: 100 / 60 = 1.666… → 1.67 per section, so the emitted
        total is 3.34 (not round(3.333…) = 3.33). Hours: 0.02 + 0.02 = 0.04.
        """
        repo = repo_factory(
            projects=[ProjectRecord(id="px", code="PX", name="Interne")],
            employees=employees,
            actuals=[
                TimeEntryRecord("px", "e3", date(2025, 3, 10), 1.0),
                TimeEntryRecord("px", "e1", date(2025, 3, 10), 1.0),
            ],
        )
        service = ProfitabilityService(repo, today=date(2025, 3, 12))
        result = run(service.portfolio_overview("e1", "global", 2025))
        realized = result["realized"]
        sections = realized["by_section"].values()
        assert realized["total_cost"] == 3.34
        assert round(sum(s["cost"] for s in sections), 2) == realized["total_cost"]
        assert realized["total_hours"] == 0.04
        assert result["team_breakdown"]["totals"]["total"] == 0.04

    def test_weeks_across_year_boundary(self, repo_factory, employees):
        """
        2022-01-01 is a Saturday of 2021-W52, 2022-12-30 a Friday of 2022-W52.
        Same week number, two buckets, each in its own month.
        """
        repo = repo_factory(
            projects=[ProjectRecord(id="px", code="PX", name="Interne")],
            employees=employees,
            actuals=[
                TimeEntryRecord("px", "e1", date(2022, 1, 1), 60.0),
                TimeEntryRecord("px", "e1", date(2022, 12, 30), 600.0),
            ],
        )
        service = ProfitabilityService(repo, today=date(2025, 3, 12))
        weekly = run(service.portfolio_overview("e1", "global", 2022))["weekly"]
        assert weekly["weeks"] == [
            {"week": 52, "month": 1, "hours": 1.0},
            {"week": 52, "month": 12, "hours": 10.0},
        ]
        monthly = {m["month"]: m["hours"] for m in weekly["monthly_totals"]}
        assert monthly[1] == 1.0
        assert monthly[12] == 10.0


# ===========================================================================
# Project overview
# ===========================================================================

class TestProjectOverview:

    def test_billed_and_cost(self, service):
        result = run(service.project_overview("p1", 2025))
        assert result["time_source"] == ACTUAL
        assert result["realized"]["total_hours"] == 3.5
        assert result["realized"]["total_billed"] == 300.0
        assert result["realized"]["total_cost"] == 250.0
        assert result["financial"] == {
            "sold": 10_000.0, "cost": 250.0, "margin": 9_750.0, "margin_pct": 97.5,
        }
        assert result["project"]["tariff"]["label"] == "Standard"
        assert result["project"]["client"]["name"] == "Acme"

    def test_planned_project_without_tariff(self, service):
        result = run(service.project_overview("p2", 2025))
        assert result["time_source"] == PLANNED
        assert result["project"]["tariff"] is None
        assert result["realized"]["total_billed"] == 0.0
        assert result["realized"]["total_cost"] == 440.0

    @pytest.mark.parametrize("project_id", ["p3", "missing"])
    def test_not_found(self, service, project_id):
        with pytest.raises(NotFoundError):
            run(service.project_overview(project_id, 2025))


# ===========================================================================
# Scores and alerts
# ===========================================================================

class TestProjectScores:

    def test_scores_sorted_desc(self, service):
        """
        p1: (0.25·80 + 0.35·100 + 0.20·90) × 1.15 = 83.95
        p2: 0.25·20 + 0.35·100 + 0.20·50 = 50
        p4: all neutral = 40
        """
        scores = run(service.project_scores("e1", "global"))
        assert [(s["code"], s["score"]) for s in scores] == [
            ("P001", 83.95), ("P002", 50.0), ("P004", 40.0),
        ]
        assert scores[1]["margin_pct"] == 70.67
        assert scores[2]["margin_pct"] is None

    def test_me_scope(self, service):
        scores = run(service.project_scores("e3", "me"))
        assert [s["code"] for s in scores] == ["P002"]


class TestAlerts:

    def test_global_alerts(self, service):
        """
        p1 is due in 2 days → critical deadline.
        p2 used 6 h = 0.75 day of a 0.5 day budget (150 %) → critical budget.
        """
        alerts = run(service.alerts("e1", "global"))
        assert [a["id"] for a in alerts] == ["deadline:p1", "budget_days:p2"]
        assert all(a["severity"] == "critical" for a in alerts)

    def test_me_scope_uses_own_hours(self, service):
        """e2 logged 4 h on p2: 0.5 / 0.5 day = 100 % → warning only."""
        alerts = run(service.alerts("e2", "me"))
        budget = next(a for a in alerts if a["type"] == "budget_days")
        assert budget["severity"] == "warning"
        assert budget["meta"]["days_used"] == 0.5

    def test_limit(self, service):
        assert len(run(service.alerts("e1", "global", limit=1))) == 1
        assert len(run(service.alerts("e1", "global", limit=0))) == 1

    @pytest.mark.parametrize("limit", ["ten", math.inf, math.nan])
    def test_invalid_limit(self, service, limit):
        with pytest.raises(InvalidRequestError):
            run(service.alerts("e1", "global", limit=limit))

    def test_ledger_read_once(self, service, repo):
        run(service.alerts("e1", "global"))
        time_reads = [c for c in repo.calls if c[0] in ("projects_with_time", "time_entries")]
        assert time_reads == [
            ("projects_with_time", ACTUAL),
            ("time_entries", ACTUAL),
            ("time_entries", PLANNED),
        ]


# ===========================================================================
# Profitability dashboards
# ===========================================================================

class TestProfitability:

    def test_project_profitability(self, service):
        rows = {r["code"]: r for r in run(service.project_profitability())["projects"]}
        assert set(rows) == {"P001", "P002", "P004"}
        assert rows["P001"]["margin"] == 9_750.0
        assert rows["P002"]["cost"] == 440.0
        assert rows["P002"]["margin_pct"] == 70.67
        assert rows["P004"]["margin_pct"] is None
        assert rows["P004"]["client"] is None

    def test_project_profitability_by_client(self, service):
        rows = run(service.project_profitability(client_id="c2"))["projects"]
        assert [r["code"] for r in rows] == ["P002"]

    def test_client_profitability(self, service):
        clients = run(service.client_profitability())["clients"]
        assert [c["name"] for c in clients] == ["Acme", "Beta"]
        assert clients[0]["projects_count"] == 1
        assert clients[0]["cost"] == 250.0
        assert clients[1]["margin_pct"] == 70.67

    def test_project_costs(self, service):
        costs = run(service.project_costs())
        assert costs == {
            "p1": {"hours_planned": 8.0, "hours_actual": 3.5, "cost_planned": 640.0, "cost_actual": 250.0},
            "p2": {"hours_planned": 6.0, "hours_actual": 0.0, "cost_planned": 440.0, "cost_actual": 0.0},
        }


class TestTimeCostOverview:

    def test_current_week(self, service):
        result = run(service.time_cost_overview("e1"))
        assert result["range"] == {"start": "2025-03-10", "end": "2025-03-16"}
        assert result["global"] == {
            "hours_planned": 14.0, "hours_actual": 3.5, "cost_planned": 1080.0, "cost_actual": 250.0,
        }
        assert result["me"] == {
            "hours_planned": 8.0, "hours_actual": 2.0, "cost_planned": 640.0, "cost_actual": 160.0,
        }
        by_team = {t["team"]: t for t in result["by_team"]}
        assert by_team["créa"]["hours_actual"] == 1.5
        assert by_team["conception"]["cost_planned"] == 200.0

    def test_custom_start(self, service):
        result = run(service.time_cost_overview("e1", date(2025, 3, 11)))
        assert result["range"]["end"] == "2025-03-17"
        assert result["global"]["hours_planned"] == 10.0
        assert result["global"]["hours_actual"] == 1.5

    def test_monday_of(self):
        assert monday_of(date(2025, 3, 12)) == date(2025, 3, 10)
        assert monday_of(date(2025, 3, 10)) == date(2025, 3, 10)
        assert monday_of(date(2025, 3, 16)) == date(2025, 3, 10)


class TestMetricsOverview:

    def test_counts(self, service):
        result = run(service.metrics_overview("e1"))
        assert result["global"] == {
            "nb_projects_total": 3, "nb_projects_active": 3, "nb_projects_onhold": 0,
        }
        counts = {t["team"]: t["nb_projects_active_distinct"] for t in result["by_team"]}
        assert counts == {"conception": 1, "créa": 2, "dev": 2}
        assert result["me"] == {"nb_projects_mine": 1}


# ===========================================================================
# Degraded inputs and failures
# ===========================================================================

class TestDegraded:

    def test_empty_store(self, empty_repo):
        service = ProfitabilityService(empty_repo, today=date(2025, 3, 12))
        result = run(service.portfolio_overview("e1", "global", 2025))
        assert result["sold"]["total_ht"] is None
        assert result["margin"]["margin_pct"] is None
        assert run(service.project_scores("e1")) == []
        assert run(service.alerts("e1", "global")) == []
        assert run(service.project_costs()) == {}

    def test_storage_failure_fails_whole_request(self, failing_repo):
        tracker.reset()
        service = ProfitabilityService(failing_repo, today=date(2025, 3, 12))
        with pytest.raises(SnapshotReadError):
            run(service.portfolio_overview("e1", "global", 2025))
        metrics = tracker.get_metrics()
        assert metrics["error_count_by_operation"] == {"portfolio_overview": 1}

    def test_successful_calls_are_timed(self, service):
        tracker.reset()
        run(service.metrics_overview("e1"))
        metrics = tracker.get_metrics()
        assert metrics["computations"] == 1
        assert "metrics_overview" in metrics["operation_avg_durations_ms"]
