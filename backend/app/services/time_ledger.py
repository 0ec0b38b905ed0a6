"""
TimeLedgerReader — minutes per (project, employee, date) with the
actual-over-planned fallback.

The fallback is decided per project, on the unfiltered population:
a project with at least one actual row anywhere in the range uses actuals
only, even where they are sparse; a project with none uses its plans.
An employee filter (team / me scopes) is applied afterwards, so the same
project never flips between actual and planned data depending on who asks.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Collection, Dict, Iterable, List, Optional, Tuple

from app.services.read_repository import ACTUAL, PLANNED, DateRange, ReadRepository

logger = logging.getLogger("dowee-ledger")


@dataclass(frozen=True)
class LedgerRow:
    project_id: str
    employee_id: str
    d: date
    minutes: float


@dataclass
class LedgerResult:
    rows: List[LedgerRow] = field(default_factory=list)
    # project_id -> "actual" | "planned"; projects with no rows at all are "planned"
    source_by_project: Dict[str, str] = field(default_factory=dict)

    def minutes_by_project(self) -> Dict[str, float]:
        out: Dict[str, float] = defaultdict(float)
        for r in self.rows:
            out[r.project_id] += r.minutes
        return dict(out)

    def restricted_to(self, employee_ids: Optional[Collection[str]]) -> "LedgerResult":
        """Same fallback decisions, rows narrowed to *employee_ids* (None keeps everyone)."""
        if employee_ids is None:
            return self
        allowed = set(employee_ids)
        return LedgerResult(
            rows=[r for r in self.rows if r.employee_id in allowed],
            source_by_project=dict(self.source_by_project),
        )


def _collapse(entries: Iterable) -> List[LedgerRow]:
    """Sum hour-slots into one row per (project, employee, date)."""
    totals: Dict[Tuple[str, str, date], float] = defaultdict(float)
    for e in entries:
        totals[(e.project_id, e.employee_id, e.d)] += float(e.minutes or 0)
    return [
        LedgerRow(project_id=p, employee_id=emp, d=d, minutes=m)
        for (p, emp, d), m in sorted(totals.items(), key=lambda kv: (kv[0][0], kv[0][2], kv[0][1]))
    ]


class TimeLedgerReader:
    """Single entry point for time data; callers never see which table was used."""

    def __init__(self, repository: ReadRepository):
        self.repository = repository

    async def load_project_time(
        self,
        project_ids: Collection[str],
        date_range: Optional[DateRange] = None,
        employee_filter: Optional[Collection[str]] = None,
    ) -> LedgerResult:
        ids = sorted(set(project_ids))
        if not ids:
            return LedgerResult()

        # Phase 1: which projects have any actual row in range
        with_actuals = await self.repository.projects_with_time(ACTUAL, ids, date_range)
        without_actuals = [pid for pid in ids if pid not in with_actuals]

        # Phase 2: bulk read from the winning table for each project group
        source = {pid: (ACTUAL if pid in with_actuals else PLANNED) for pid in ids}
        entries = []
        if with_actuals:
            actuals = await self.repository.time_entries(ACTUAL, sorted(with_actuals), date_range)
            entries.extend(e for e in actuals if source.get(e.project_id) == ACTUAL)
        if without_actuals:
            plans = await self.repository.time_entries(PLANNED, without_actuals, date_range)
            entries.extend(e for e in plans if source.get(e.project_id) == PLANNED)

        rows = _collapse(entries)

        logger.debug(
            f"Ledger loaded: {len(ids)} projects, {len(with_actuals)} on actuals, "
            f"{len(without_actuals)} on plans, {len(rows)} rows"
        )

        result = LedgerResult(rows=rows, source_by_project=source)
        return result.restricted_to(employee_filter)
