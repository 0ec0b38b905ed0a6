"""Alert evaluator — deadline, budget-day and margin alerts per project."""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from app.config import (
    ALERT_LIMIT_DEFAULT,
    ALERT_LIMIT_MAX,
    ALERT_LIMIT_MIN,
    BUDGET_CRITICAL_PCT,
    BUDGET_WARNING_PCT,
    DEADLINE_CRITICAL_DAYS,
    DEADLINE_WARNING_DAYS,
    MARGIN_CRITICAL_PCT,
    MARGIN_WARNING_PCT,
)
from app.models.records import ProjectRecord

logger = logging.getLogger("dowee-alerts")

SEVERITY_RANK = {"critical": 0, "warning": 1, "info": 2}
TYPE_RANK = {"deadline": 0, "budget_days": 1, "margin": 2}


@dataclass
class AlertItem:
    id: str
    project: Dict[str, str]
    type: str       # deadline | budget_days | margin
    severity: str   # critical | warning | info
    short: str
    source: str = "rule"
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProjectMetrics:
    """Per-project inputs, taken from the aggregate and the financial summary."""
    project: ProjectRecord
    days_left: Optional[int]
    days_used: float
    sold: float
    cost: float
    margin: float
    margin_pct: Optional[float]


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return ALERT_LIMIT_DEFAULT
    return max(ALERT_LIMIT_MIN, min(ALERT_LIMIT_MAX, int(limit)))


def _day_offset(days: int) -> str:
    return f"J-{days}" if days >= 0 else f"J+{abs(days)}"


class AlertEvaluator:
    """Rule-based alert generation over ProjectMetrics."""

    def evaluate(self, metrics: Iterable[ProjectMetrics], limit: Optional[int] = None) -> List[AlertItem]:
        items: Dict[str, AlertItem] = {}
        for m in metrics:
            for alert in (self._check_deadline(m), self._check_budget(m), self._check_margin(m)):
                if alert is not None:
                    items[alert.id] = alert

        ordered = sorted(
            items.values(),
            key=lambda a: (SEVERITY_RANK[a.severity], TYPE_RANK[a.type], a.project["code"]),
        )
        logger.info(f"Alert evaluation: {len(ordered)} alerts generated")
        return ordered[: clamp_limit(limit)]

    @staticmethod
    def _ref(p: ProjectRecord) -> Dict[str, str]:
        return {"id": p.id, "code": p.code, "name": p.name}

    # ─── Deadline ─────────────────────────────────────────────────────────

    def _check_deadline(self, m: ProjectMetrics) -> Optional[AlertItem]:
        if m.days_left is None or m.days_left > DEADLINE_WARNING_DAYS:
            return None
        p = m.project
        severity = "critical" if m.days_left <= DEADLINE_CRITICAL_DAYS else "warning"
        return AlertItem(
            id=f"deadline:{p.id}",
            project=self._ref(p),
            type="deadline",
            severity=severity,
            short=f"{p.code} - Échéance {_day_offset(m.days_left)}",
            meta={
                "j_left": m.days_left,
                "due_date": p.due_date.isoformat() if p.due_date else None,
            },
        )

    # ─── Budget days ──────────────────────────────────────────────────────

    def _check_budget(self, m: ProjectMetrics) -> Optional[AlertItem]:
        budget_days = m.project.effort_days
        if budget_days is None or budget_days <= 0:
            return None
        pct = m.days_used / budget_days * 100
        if pct < BUDGET_WARNING_PCT:
            return None
        p = m.project
        severity = "critical" if pct >= BUDGET_CRITICAL_PCT else "warning"
        rest = budget_days - m.days_used
        return AlertItem(
            id=f"budget_days:{p.id}",
            project=self._ref(p),
            type="budget_days",
            severity=severity,
            short=(
                f"{p.code} - Budget: {m.days_used:.1f}j/{budget_days:g}j ({pct:.0f}%) "
                f"· Reste {rest:.1f}j"
            ),
            meta={
                "days_used": round(m.days_used, 2),
                "budget_days": budget_days,
                "budget_pct": round(pct, 2),
                "rest_days": round(rest, 2),
            },
        )

    # ─── Margin ───────────────────────────────────────────────────────────

    def _check_margin(self, m: ProjectMetrics) -> Optional[AlertItem]:
        # None means nothing was sold: unknown, not bad
        if m.margin_pct is None or m.margin_pct >= MARGIN_WARNING_PCT:
            return None
        p = m.project
        severity = "critical" if m.margin_pct < MARGIN_CRITICAL_PCT else "warning"
        return AlertItem(
            id=f"margin:{p.id}",
            project=self._ref(p),
            type="margin",
            severity=severity,
            short=f"{p.code} - Marge {m.margin_pct:.0f}% (€{round(m.margin, 2)})",
            meta={
                "margin_pct": m.margin_pct,
                "margin_eur": round(m.margin, 2),
                "sold_ht": round(m.sold, 2),
                "cost_realized": round(m.cost, 2),
            },
        )
