"""
Engine configuration — single source of truth for costing defaults,
scoring weights and alert thresholds.

Import from here in all services rather than hardcoding values.
"""
from __future__ import annotations

# ── Time conversion ───────────────────────────────────────────────────────────
MINUTES_PER_HOUR: int = 60
HOURS_PER_DAY: int = 8

# ── Internal cost defaults (EUR per day) ─────────────────────────────────────
# Used when no ref_internal_costs record applies, or a record leaves a profile null.
DEFAULT_DAY_COST: dict[str, float] = {
    "conception": 800.0,
    "créa":       500.0,
    "dev":        800.0,
}

# ── Scoring ───────────────────────────────────────────────────────────────────
# Recency and strategic sub-scores have no data source yet; they stay in the
# weighted sum as literal zeros.
SCORE_WEIGHTS: dict[str, float] = {
    "client":    0.25,
    "marge":     0.35,
    "urgence":   0.20,
    "recence":   0.10,
    "strategie": 0.10,
}
STAR_CLIENT_MULTIPLIER: float = 1.15
NEUTRAL_SUB_SCORE: float = 50.0

SEGMENT_SCORES: dict[str, float] = {
    "super": 80.0,
    "pas":   20.0,
}

# ── Alerts ────────────────────────────────────────────────────────────────────
DEADLINE_WARNING_DAYS: int = 7
DEADLINE_CRITICAL_DAYS: int = 3

BUDGET_WARNING_PCT: float = 100.0
BUDGET_CRITICAL_PCT: float = 110.0

MARGIN_WARNING_PCT: float = 15.0
MARGIN_CRITICAL_PCT: float = 5.0

ALERT_LIMIT_DEFAULT: int = 20
ALERT_LIMIT_MIN: int = 1
ALERT_LIMIT_MAX: int = 100

# ── Request validation ────────────────────────────────────────────────────────
YEAR_MIN: int = 1900
YEAR_MAX: int = 9999
