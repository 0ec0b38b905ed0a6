"""
Request / response schemas for the profitability API.

Request bodies are tagged with an ``action`` literal so one endpoint can grow
further actions without breaking existing clients.
"""
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


Scope = Literal["global", "team", "me"]


# ─── Requests ────────────────────────────────────────────────────────────────

class PortfolioRequest(BaseModel):
    action: Literal["overview"] = "overview"
    scope: str = Field("global", description="global | team | me")
    year: Optional[int] = Field(None, description="Calendar year; defaults to the current UTC year")
    team: Optional[str] = Field(None, description="Team label overriding the requester's own team")


class ProjectOverviewRequest(BaseModel):
    action: Literal["overview"] = "overview"
    project_id: str = Field(..., min_length=1)
    year: Optional[int] = None


class ScoresRequest(BaseModel):
    action: Literal["list"] = "list"
    scope: str = Field("global", description="global | team | me")


class AlertsRequest(BaseModel):
    action: Literal["list"] = "list"
    scope: str = Field("me", description="global | team | me")
    limit: Optional[int] = Field(None, description="Clamped to [1, 100]; defaults to 20")


class ProjectProfitabilityRequest(BaseModel):
    action: Literal["list"] = "list"
    client_id: Optional[str] = None


class TimeCostRequest(BaseModel):
    action: Literal["overview"] = "overview"
    start: Optional[date] = Field(None, description="First day of the 7-day window; defaults to this Monday")


# ─── Responses ───────────────────────────────────────────────────────────────

class RefOut(BaseModel):
    id: str
    code: str
    name: str


class ScoreOut(BaseModel):
    project_id: str
    code: str
    name: str
    client: Optional[RefOut] = None
    score: float
    margin_pct: Optional[float] = None
    due_date: Optional[str] = None
    effort_days: Optional[float] = None
    segment: Optional[str] = None
    star: bool = False


class ScoresResponse(BaseModel):
    scope: Scope
    items: List[ScoreOut]


class AlertOut(BaseModel):
    id: str
    project: RefOut
    type: Literal["deadline", "budget_days", "margin"]
    severity: Literal["critical", "warning", "info"]
    short: str
    source: str = "rule"
    meta: Dict[str, Any] = Field(default_factory=dict)


class AlertsResponse(BaseModel):
    scope: Scope
    items: List[AlertOut]


class ProjectCostOut(BaseModel):
    hours_planned: float = 0.0
    hours_actual: float = 0.0
    cost_planned: float = 0.0
    cost_actual: float = 0.0
