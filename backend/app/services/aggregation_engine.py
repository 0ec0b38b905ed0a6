"""
AggregationEngine — turns ledger rows into hours and money per profile,
per member, per ISO week and per project.

Two valuations are carried side by side and never mixed:
  - cost   : hours × internal hourly cost (ref_internal_costs)
  - billed : hours × the project's tariff billing rate

Accumulation runs at full precision; figures are rounded to 2 decimals only
when emitted through ``to_dict()`` / ``by_week()`` / ``monthly_totals()``.
Emitted totals are summed from the rounded sections.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.config import MINUTES_PER_HOUR
from app.models.records import EmployeeRecord, ProjectRecord
from app.services.profile_resolver import PROFILES, Profile, resolve_profile, section_key
from app.services.rate_provider import RateProvider
from app.services.time_ledger import LedgerRow


def iso_week_key(d: date) -> Tuple[int, int]:
    """
    (ISO year, ISO week 1–53): the week containing the date's Thursday.
    2022-01-01 is (2021, 52) and 2022-12-30 is (2022, 52).
    """
    iso = d.isocalendar()
    return iso[0], iso[1]


@dataclass
class Totals:
    hours: float = 0.0
    cost: float = 0.0
    billed: float = 0.0

    def add(self, hours: float, cost_rate: float, billing_rate: float) -> None:
        self.hours += hours
        self.cost += hours * cost_rate
        self.billed += hours * billing_rate

    def rounded(self) -> Dict[str, float]:
        return {
            "hours": round(self.hours, 2),
            "cost": round(self.cost, 2),
            "billed": round(self.billed, 2),
        }


@dataclass
class MemberTotals:
    id: str
    name: str
    team: Optional[str]
    hours: float = 0.0


@dataclass
class WeekBucket:
    iso_year: int
    week: int
    first_day: date
    hours: float = 0.0

    @property
    def month(self) -> int:
        return self.first_day.month


@dataclass
class Aggregate:
    by_section: Dict[Profile, Totals] = field(
        default_factory=lambda: {p: Totals() for p in PROFILES}
    )
    members: Dict[str, MemberTotals] = field(default_factory=dict)
    weeks: Dict[Tuple[int, int], WeekBucket] = field(default_factory=dict)
    by_project: Dict[str, Totals] = field(default_factory=dict)

    # ── full-precision totals ──────────────────────────────────────────────
    @property
    def total_hours(self) -> float:
        return sum(t.hours for t in self.by_section.values())

    @property
    def total_cost(self) -> float:
        return sum(t.cost for t in self.by_section.values())

    @property
    def total_billed(self) -> float:
        return sum(t.billed for t in self.by_section.values())

    def project_totals(self, project_id: str) -> Totals:
        return self.by_project.get(project_id) or Totals()

    def cost_by_project(self) -> Dict[str, float]:
        return {pid: t.cost for pid, t in self.by_project.items()}

    # ── emission (rounded) ─────────────────────────────────────────────────
    def by_member(self) -> List[Dict[str, Any]]:
        ordered = sorted(self.members.values(), key=lambda m: (-m.hours, m.name))
        return [
            {"id": m.id, "name": m.name, "team": m.team, "hours": round(m.hours, 2)}
            for m in ordered
        ]

    def by_week(self) -> List[Dict[str, Any]]:
        return [
            {"week": w.week, "month": w.month, "hours": round(w.hours, 2)}
            for w in sorted(self.weeks.values(), key=lambda w: (w.iso_year, w.week))
        ]

    def monthly_totals(self) -> List[Dict[str, Any]]:
        per_month: Dict[int, float] = {}
        for w in self.weeks.values():
            per_month[w.month] = per_month.get(w.month, 0.0) + w.hours
        return [{"month": m, "hours": round(per_month.get(m, 0.0), 2)} for m in range(1, 13)]

    def sections(self) -> Dict[str, Dict[str, float]]:
        return {section_key(p): self.by_section[p].rounded() for p in PROFILES}

    def emitted_totals(self) -> Dict[str, float]:
        """Totals as the sum of the rounded sections, so the emitted parts add up."""
        sections = self.sections().values()
        return {
            k: round(sum(s[k] for s in sections), 2)
            for k in ("hours", "cost", "billed")
        }

    def to_dict(self) -> Dict[str, Any]:
        totals = self.emitted_totals()
        return {
            "total_hours": totals["hours"],
            "total_cost": totals["cost"],
            "total_billed": totals["billed"],
            "by_section": self.sections(),
            "by_member": self.by_member(),
            "by_week": self.by_week(),
            "monthly_totals": self.monthly_totals(),
        }


def aggregate(
    rows: Iterable[LedgerRow],
    employees: Mapping[str, EmployeeRecord],
    rates: RateProvider,
    projects: Optional[Mapping[str, ProjectRecord]] = None,
) -> Aggregate:
    """
    Accumulate *rows* into an Aggregate.

    Rows for employees missing from the snapshot still count (default
    profile) but produce no member line. Without a project mapping, or for a
    project absent from it, the billed valuation is zero.
    """
    projects = projects or {}
    agg = Aggregate()
    cost_rates = rates.hourly_costs()

    for row in rows:
        emp = employees.get(row.employee_id)
        profile = resolve_profile(emp.team if emp else None)
        hours = (row.minutes or 0) / MINUTES_PER_HOUR

        project = projects.get(row.project_id)
        billing = rates.billing_rate(project, profile) if project else 0.0
        cost = cost_rates[profile]

        agg.by_section[profile].add(hours, cost, billing)
        agg.by_project.setdefault(row.project_id, Totals()).add(hours, cost, billing)

        if emp is not None:
            member = agg.members.get(emp.id)
            if member is None:
                member = agg.members[emp.id] = MemberTotals(id=emp.id, name=emp.label, team=emp.team)
            member.hours += hours

        key = iso_week_key(row.d)
        bucket = agg.weeks.get(key)
        if bucket is None:
            bucket = agg.weeks[key] = WeekBucket(iso_year=key[0], week=key[1], first_day=row.d)
        elif row.d < bucket.first_day:
            bucket.first_day = row.d
        bucket.hours += hours

    return agg
