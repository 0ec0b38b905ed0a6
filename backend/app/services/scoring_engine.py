"""
ProjectScoringEngine — bounded 0–100 priority score per project.

    raw   = 0.25·s_client + 0.35·s_marge + 0.20·s_urgence + 0.10·0 + 0.10·0
    score = clamp(round2(raw × multiplier), 0, 100)   multiplier = 1.15 for star clients

The two trailing zero terms are recency and strategic fit, which have no data
source yet. All-neutral inputs (unknown client, unknown margin, no deadline)
score 0.80 × 50 = 40.
"""
import math
from datetime import date
from typing import Any, Dict, Optional

from app.config import (
    NEUTRAL_SUB_SCORE,
    SCORE_WEIGHTS,
    SEGMENT_SCORES,
    STAR_CLIENT_MULTIPLIER,
)
from app.models.records import ClientRecord, ProjectRecord


def round2(x: float) -> float:
    """Two decimals, halves rounded up: round2(0.125) == 0.13 where round() gives 0.12."""
    return math.floor(x * 100 + 0.5) / 100


def days_left(due_date: Optional[date], today: date) -> Optional[int]:
    """Whole calendar days from *today* to *due_date*; negative once overdue."""
    if due_date is None:
        return None
    return (due_date - today).days


def s_client(segment: Optional[str]) -> float:
    if not segment:
        return NEUTRAL_SUB_SCORE
    base = segment.lower()
    for marker, value in SEGMENT_SCORES.items():
        if marker in base:
            return value
    return NEUTRAL_SUB_SCORE


def s_marge(margin_pct: Optional[float]) -> float:
    """Margin sub-score; None is neutral. Steps from 58 to 60 at pct=20."""
    if margin_pct is None:
        return NEUTRAL_SUB_SCORE
    if margin_pct <= 0:
        return 0.0
    if margin_pct < 20:
        return 20 + 2 * (margin_pct - 1)
    if margin_pct < 40:
        return 60 + 2 * (margin_pct - 20)
    return 100.0


def s_urgence(days: Optional[float], effort_days: Optional[float]) -> float:
    if days is None or effort_days is None or effort_days <= 0:
        return NEUTRAL_SUB_SCORE
    buffer_ratio = days / effort_days
    if buffer_ratio <= 0:
        return 100.0
    if buffer_ratio < 1:
        return 90.0
    if buffer_ratio < 3:
        return 60.0
    return 20.0


def compute_score(
    segment: Optional[str],
    margin_pct: Optional[float],
    days: Optional[float],
    effort_days: Optional[float],
    star: bool = False,
) -> float:
    s_recence = 0.0    # no data source
    s_strategie = 0.0  # no data source
    raw = (
        SCORE_WEIGHTS["client"] * s_client(segment)
        + SCORE_WEIGHTS["marge"] * s_marge(margin_pct)
        + SCORE_WEIGHTS["urgence"] * s_urgence(days, effort_days)
        + SCORE_WEIGHTS["recence"] * s_recence
        + SCORE_WEIGHTS["strategie"] * s_strategie
    )
    multiplier = STAR_CLIENT_MULTIPLIER if star else 1.0
    return min(100.0, max(0.0, round2(raw * multiplier)))


def score_project(
    project: ProjectRecord,
    client: Optional[ClientRecord],
    margin_pct: Optional[float],
    today: date,
) -> Dict[str, Any]:
    """Build the ScoreResult record for one project."""
    segment = client.segment if client else None
    star = bool(client.star) if client else False
    score = compute_score(
        segment,
        margin_pct,
        days_left(project.due_date, today),
        project.effort_days,
        star,
    )
    return {
        "project_id": project.id,
        "code": project.code,
        "name": project.name,
        "client": {"id": client.id, "code": client.code, "name": client.name} if client else None,
        "score": score,
        "margin_pct": margin_pct,
        "due_date": project.due_date.isoformat() if project.due_date else None,
        "effort_days": project.effort_days,
        "segment": segment,
        "star": star,
    }
