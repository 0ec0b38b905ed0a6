"""
RateProvider — billing and internal-cost hourly rates per profile.

Billing rates come from the tariff assigned to a project; internal cost comes
from the latest applicable ref_internal_costs record (day-rate / 8).
"""
import logging
from datetime import date, datetime
from typing import Dict, Iterable, Optional

from app.config import DEFAULT_DAY_COST, HOURS_PER_DAY
from app.models.records import InternalCostRecord, ProjectRecord, TariffRecord
from app.services.profile_resolver import PROFILES, Profile, rate_field

logger = logging.getLogger("dowee-rates")


def select_internal_cost(
    records: Iterable[InternalCostRecord],
    now: Optional[date] = None,
) -> Optional[InternalCostRecord]:
    """
    Pick the applicable internal-cost record.

    Ordering is ``effective_from`` descending with nulls last, then
    ``created_at`` descending. Records that only take effect after *now*
    are skipped.
    """
    candidates = [
        r for r in records
        if now is None or r.effective_from is None or r.effective_from <= now
    ]
    if not candidates:
        return None

    def _key(r: InternalCostRecord):
        has_eff = r.effective_from is not None
        created = r.created_at.timestamp() if r.created_at else float("-inf")
        return (has_eff, r.effective_from or date.min, created)

    return max(candidates, key=_key)


class RateProvider:
    """
    Resolves per-profile rates for one request.

    Parameters
    ----------
    tariffs : iterable of TariffRecord
    internal_costs : iterable of InternalCostRecord
    now : date the internal cost must be effective at (defaults to today)
    """

    def __init__(
        self,
        tariffs: Iterable[TariffRecord] = (),
        internal_costs: Iterable[InternalCostRecord] = (),
        now: Optional[date] = None,
    ) -> None:
        self._tariffs: Dict[str, TariffRecord] = {t.id: t for t in tariffs}
        self.internal_cost = select_internal_cost(internal_costs, now or date.today())
        if self.internal_cost is None:
            logger.info("No internal cost record applies; using default day-rates")
        self._hourly_cost: Dict[Profile, float] = {
            p: self._day_cost(p) / HOURS_PER_DAY for p in PROFILES
        }

    def _day_cost(self, profile: Profile) -> float:
        value = None
        if self.internal_cost is not None:
            value = getattr(self.internal_cost, rate_field(profile))
        if value is None:
            return DEFAULT_DAY_COST[profile.value]
        return float(value)

    def cost_rate(self, profile: Profile) -> float:
        """Internal hourly cost for *profile*."""
        return self._hourly_cost[profile]

    def hourly_costs(self) -> Dict[Profile, float]:
        return dict(self._hourly_cost)

    def tariff_for(self, project: ProjectRecord) -> Optional[TariffRecord]:
        if not project.tariff_id:
            return None
        return self._tariffs.get(project.tariff_id)

    def billing_rate(self, project: ProjectRecord, profile: Profile) -> float:
        """Client billing hourly rate; 0.0 for unbilled projects."""
        tariff = self.tariff_for(project)
        if tariff is None:
            return 0.0
        return float(getattr(tariff, rate_field(profile)) or 0.0)
